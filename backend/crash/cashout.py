import logging
import math
import time
from dataclasses import dataclass
from decimal import Decimal

from asgiref.sync import sync_to_async
from web3 import Web3

from chain.exceptions import ChainError

from .exceptions import CashOutRejected, RejectReason
from .state import CashOutRecord, GamePhase

logger = logging.getLogger(__name__)

HOUSE_EDGE = Decimal("0.015")
MAX_BET = Decimal("1000")
MAX_WIN_RATIO = Decimal("0.70")


def compute_payout(amount, multiplier, house_edge=HOUSE_EDGE) -> Decimal:
    """amount * multiplier less the house edge"""
    return Decimal(amount) * Decimal(str(multiplier)) * (1 - Decimal(house_edge))


def cap_payout(payout: Decimal, pool_balance: Decimal, max_win_ratio=MAX_WIN_RATIO) -> Decimal:
    return min(payout, Decimal(pool_balance) * Decimal(max_win_ratio))


@dataclass(frozen=True)
class CashOutAccepted:
    round_id: int
    wallet: str
    multiplier: float
    payout: Decimal
    record: CashOutRecord


class CashOutValidator:
    """
    Accepts or rejects cash-out claims against the engine's active round.

    ``rounds`` is anything exposing ``active_round`` (the engine itself in
    production). The duplicate check, the on-chain bet lookup and the append
    all happen under the round's lock, so two concurrent claims for the same
    wallet can never both be recorded.
    """

    def __init__(self, rounds, chain, max_bet=MAX_BET, house_edge=HOUSE_EDGE, max_win_ratio=MAX_WIN_RATIO):
        self.rounds = rounds
        self.chain = chain
        self.max_bet = Decimal(max_bet)
        self.house_edge = Decimal(house_edge)
        self.max_win_ratio = Decimal(max_win_ratio)

    async def request_cash_out(self, round_id, wallet, claimed_multiplier, received_multiplier=None):
        if round_id is None or not wallet or not claimed_multiplier:
            raise CashOutRejected(RejectReason.MISSING_FIELDS)

        # any case is fine, get_bet checksums it
        if not isinstance(wallet, str) or not Web3.is_address(wallet.lower()):
            raise CashOutRejected(RejectReason.INVALID_WALLET, repr(wallet))

        active = self.rounds.active_round
        if (
            active is None
            or active.round_id != round_id
            or active.phase != GamePhase.RUNNING
            or not active.accepting
        ):
            raise CashOutRejected(RejectReason.ROUND_NOT_ACTIVE, f"round {round_id}")

        # judged against the multiplier that was live when the request arrived
        live = active.current_multiplier if received_multiplier is None else received_multiplier
        if not math.isfinite(claimed_multiplier) or claimed_multiplier < 1.00 or claimed_multiplier > live:
            raise CashOutRejected(
                RejectReason.INVALID_MULTIPLIER, f"{claimed_multiplier} (max {live})"
            )

        wallet_key = wallet.lower()

        async with active.lock:
            if not active.accepting:
                raise CashOutRejected(RejectReason.ROUND_NOT_ACTIVE, f"round {round_id} closed")

            if active.has_cashed_out(wallet_key):
                raise CashOutRejected(RejectReason.ALREADY_CASHED_OUT, wallet_key)

            try:
                bet = await sync_to_async(self.chain.get_bet, thread_sensitive=False)(round_id, wallet)
            except ChainError as e:
                logger.error("Round %s: bet lookup for %s failed: %s", round_id, wallet_key, e)
                raise CashOutRejected(RejectReason.BET_LOOKUP_FAILED, str(e)) from e

            if bet.amount <= 0:
                raise CashOutRejected(RejectReason.NO_BET, wallet_key)

            amount = bet.amount_tokens
            if amount > self.max_bet:
                raise CashOutRejected(RejectReason.INVALID_BET, f"{amount} > {self.max_bet}")

            record = CashOutRecord(
                wallet=wallet_key,
                multiplier=claimed_multiplier,
                received_at=time.time(),
                verified=True,
                bet_amount=amount,
            )
            active.cash_outs[wallet_key] = record
            logger.info(
                "Round %s: cash-out recorded for %s at %.2fx (%s cash-outs)",
                round_id, wallet_key, claimed_multiplier, len(active.cash_outs),
            )

        record.payout = await self.advisory_payout(amount, claimed_multiplier)
        return CashOutAccepted(
            round_id=round_id,
            wallet=wallet_key,
            multiplier=claimed_multiplier,
            payout=record.payout,
            record=record,
        )

    async def advisory_payout(self, amount, multiplier) -> Decimal:
        payout = compute_payout(amount, multiplier, self.house_edge)
        try:
            pool = await sync_to_async(self.chain.pool_balance, thread_sensitive=False)()
        except ChainError as e:
            logger.warning("Could not read pool balance for max win limit: %s", e)
            return payout

        capped = cap_payout(payout, pool, self.max_win_ratio)
        if capped < payout:
            logger.info("Payout capped at max win (%s of pool %s): %s", self.max_win_ratio, pool, capped)
        return capped
