import logging
from datetime import datetime, timezone as dt_timezone
from decimal import Decimal

from channels.db import database_sync_to_async
from django.utils import timezone

from .models import CashOut, GameRound
from .state import RoundStatus

logger = logging.getLogger(__name__)

TOKEN_QUANTUM = Decimal("1e-18")


def _token_amount(value):
    return None if value is None else Decimal(value).quantize(TOKEN_QUANTUM)


class RoundArchive:
    """
    Persists the engine's rounds and cash-outs. The engine never reads back
    from here; the HTTP API does.
    """

    @database_sync_to_async
    def save_round(self, active, reveal_tx_hash="", settle_tx_hash=""):
        defaults = {
            "chain_id": active.chain_id,
            "protocol_version": active.protocol_version,
            "server_seed_hash": active.commitment,
            "sequence_number": active.sequence_number or None,
            "entropy_value": str(active.entropy_value) if active.entropy_value else "",
            "status": active.status.value,
            "tick_interval_ms": active.tick_interval_ms,
        }
        # the seed is secret until revealed on-chain
        if active.status in (RoundStatus.SEED_REVEALED, RoundStatus.SETTLED):
            defaults["server_seed"] = active.server_seed
        if active.final_multiplier is not None:
            defaults["final_multiplier"] = Decimal(str(active.final_multiplier))
        if active.started_at is not None:
            defaults["started_at"] = datetime.fromtimestamp(active.started_at, tz=dt_timezone.utc)
        if reveal_tx_hash:
            defaults["reveal_tx_hash"] = reveal_tx_hash
        if settle_tx_hash:
            defaults["settle_tx_hash"] = settle_tx_hash
        if active.status == RoundStatus.SETTLED:
            defaults["settled_at"] = timezone.now()

        obj, created = GameRound.objects.update_or_create(round_id=active.round_id, defaults=defaults)
        logger.debug("Round %s archived as %s (created=%s)", active.round_id, obj.status, created)
        return obj

    @database_sync_to_async
    def record_cash_out(self, active, record):
        game_round, _ = GameRound.objects.get_or_create(
            round_id=active.round_id,
            defaults={
                "chain_id": active.chain_id,
                "protocol_version": active.protocol_version,
                "server_seed_hash": active.commitment,
                "status": active.status.value,
                "tick_interval_ms": active.tick_interval_ms,
            },
        )
        obj, _ = CashOut.objects.get_or_create(
            round=game_round,
            wallet=record.wallet,
            defaults={
                "multiplier": Decimal(str(record.multiplier)),
                "payout_estimate": _token_amount(record.payout),
                "verified": record.verified,
                "received_at": datetime.fromtimestamp(record.received_at, tz=dt_timezone.utc),
            },
        )
        return obj
