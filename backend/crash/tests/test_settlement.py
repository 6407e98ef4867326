import math
from decimal import Decimal

import pytest

from chain.client import to_fixed_point
from crash.exceptions import SettlementError
from crash.settlement import SettlementBatcher, partition
from crash.state import CashOutRecord


def _records(count, multiplier=1.5, amount="10"):
    return [
        CashOutRecord(
            wallet=f"0x{i:040x}",
            multiplier=multiplier,
            received_at=1_700_000_000.0 + i,
            bet_amount=Decimal(amount),
        )
        for i in range(1, count + 1)
    ]


@pytest.fixture
def batcher(fake_chain):
    return SettlementBatcher(fake_chain)


class TestPartition:
    @pytest.mark.parametrize("count", [0, 1, 14, 15, 16, 30, 31, 100])
    def test_batch_count_is_ceiling(self, count):
        batches = partition(range(count), 15)
        assert len(batches) == math.ceil(count / 15)
        assert all(len(b) <= 15 for b in batches)
        assert [x for b in batches for x in b] == list(range(count))


class TestSettle:
    async def test_no_cash_outs_sends_nothing(self, batcher, fake_chain):
        report = await batcher.settle(42, [])

        assert report.batches == 0
        assert report.cash_outs == 0
        assert fake_chain.batches == []

    async def test_batches_in_order(self, batcher, fake_chain):
        records = _records(31)

        report = await batcher.settle(42, records)

        assert report.batches == 3
        assert report.tx_hashes == ["0xbatch1", "0xbatch2", "0xbatch3"]
        assert [len(entries) for _, entries in fake_chain.batches] == [15, 15, 1]
        sent = [wallet for _, entries in fake_chain.batches for wallet, _ in entries]
        assert sent == [r.wallet for r in records]

    async def test_multiplier_is_fixed_point(self, batcher, fake_chain):
        await batcher.settle(42, _records(1, multiplier=2.37))

        (round_id, entries), = fake_chain.batches
        assert round_id == 42
        assert entries[0][1] == 2_370_000_000_000_000_000
        assert entries[0][1] == to_fixed_point(2.37)

    async def test_custom_batch_size(self, fake_chain):
        batcher = SettlementBatcher(fake_chain, batch_size=4)
        report = await batcher.settle(7, _records(9))
        assert report.batches == 3

    async def test_failed_batch_reports_progress(self, batcher, fake_chain):
        fake_chain.fail_batch = 2

        with pytest.raises(SettlementError) as exc:
            await batcher.settle(42, _records(40))

        assert exc.value.round_id == 42
        assert exc.value.batches_done == 1
        assert exc.value.total_batches == 3
        # the third batch is never attempted
        assert len(fake_chain.batches) == 1


class TestPreviewPayouts:
    async def test_payout_per_wallet(self, batcher):
        records = _records(2, multiplier=2.0, amount="100")
        previews = await batcher.preview_payouts(42, records)
        assert previews == [(records[0].wallet, Decimal("197")), (records[1].wallet, Decimal("197"))]

    async def test_capped_at_pool_share(self, batcher, fake_chain):
        fake_chain.pool = Decimal("200")
        records = _records(1, multiplier=5.0, amount="100")

        (wallet, payout), = await batcher.preview_payouts(42, records)

        assert payout == Decimal("140")


class TestUnpayableRecords:
    async def test_non_finite_multiplier_skipped(self, batcher, fake_chain, caplog):
        records = _records(3)
        records[1].multiplier = float("nan")

        report = await batcher.settle(42, records)

        assert report.cash_outs == 2
        (_, entries), = fake_chain.batches
        assert [wallet for wallet, _ in entries] == [records[0].wallet, records[2].wallet]
        assert "skipping cash-outs" in caplog.text
