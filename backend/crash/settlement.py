import logging
import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List

from asgiref.sync import sync_to_async

from chain.client import to_fixed_point
from chain.exceptions import ChainError

from .cashout import HOUSE_EDGE, MAX_WIN_RATIO, cap_payout, compute_payout
from .exceptions import SettlementError

logger = logging.getLogger(__name__)

BATCH_SIZE = 15


@dataclass
class SettlementReport:
    round_id: int
    cash_outs: int
    tx_hashes: List[str] = field(default_factory=list)

    @property
    def batches(self):
        return len(self.tx_hashes)


def partition(records, size=BATCH_SIZE):
    records = list(records)
    return [records[i:i + size] for i in range(0, len(records), size)]


class SettlementBatcher:
    """
    Pushes a round's cash-outs to ``processCashOuts`` in batches small enough
    to stay under the block gas limit. Batches go out one at a time, each
    waiting for its receipt before the next is sent.
    """

    def __init__(self, chain, batch_size=BATCH_SIZE, house_edge=HOUSE_EDGE, max_win_ratio=MAX_WIN_RATIO):
        self.chain = chain
        self.batch_size = batch_size
        self.house_edge = Decimal(house_edge)
        self.max_win_ratio = Decimal(max_win_ratio)

    async def settle(self, round_id, records) -> SettlementReport:
        records = list(records)
        unpayable = [r for r in records if not math.isfinite(r.multiplier)]
        if unpayable:
            # the contract cannot take them; the rest still go out
            logger.error("Round %s: skipping cash-outs with no finite multiplier: %s", round_id, [r.wallet for r in unpayable])
            records = [r for r in records if math.isfinite(r.multiplier)]
        report = SettlementReport(round_id=round_id, cash_outs=len(records))
        if not records:
            logger.info("Round %s: no cash-outs to process", round_id)
            return report

        batches = partition(records, self.batch_size)
        total = len(batches)
        logger.info("Round %s: processing %s cash-outs in %s batches", round_id, len(records), total)

        for number, batch in enumerate(batches, start=1):
            entries = [(r.wallet, to_fixed_point(r.multiplier)) for r in batch]
            try:
                tx_hash = await sync_to_async(self.chain.process_cash_outs, thread_sensitive=False)(
                    round_id, entries
                )
            except ChainError as e:
                raise SettlementError(round_id, report.batches, total, e) from e

            report.tx_hashes.append(tx_hash)
            logger.info("Round %s: batch %s/%s processed (%s cash-outs)", round_id, number, total, len(batch))

        return report

    async def preview_payouts(self, round_id, records):
        """[(wallet, payout)] as the contract will credit them, pool cap included"""
        pool = await sync_to_async(self.chain.pool_balance, thread_sensitive=False)()
        previews = []
        for record in records:
            payout = compute_payout(record.bet_amount, record.multiplier, self.house_edge)
            previews.append((record.wallet, cap_payout(payout, pool, self.max_win_ratio)))
        logger.debug("Round %s: payout preview against pool %s: %s", round_id, pool, previews)
        return previews
