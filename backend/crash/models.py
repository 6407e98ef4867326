from django.db import models

from .provably_fair import DEFAULT_PROTOCOL_VERSION
from .state import RoundStatus


class GameRound(models.Model):
    ROUND_STATUS = [(s.value, s.value.replace("_", " ").title()) for s in RoundStatus]

    round_id = models.PositiveBigIntegerField(unique=True)  # on-chain id
    chain_id = models.PositiveBigIntegerField()
    protocol_version = models.PositiveSmallIntegerField(default=DEFAULT_PROTOCOL_VERSION)

    server_seed_hash = models.CharField(max_length=66)  # 0x + keccak256(server_seed)
    server_seed = models.CharField(max_length=128, blank=True)  # empty until revealed
    sequence_number = models.PositiveBigIntegerField(null=True, blank=True)
    entropy_value = models.CharField(max_length=80, blank=True)  # uint256 as decimal string

    final_multiplier = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    status = models.CharField(max_length=20, choices=ROUND_STATUS, default=RoundStatus.CREATED.value)
    tick_interval_ms = models.PositiveIntegerField(default=100)

    reveal_tx_hash = models.CharField(max_length=66, blank=True)
    settle_tx_hash = models.CharField(max_length=66, blank=True)

    started_at = models.DateTimeField(null=True, blank=True)
    settled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-round_id"]
        indexes = [
            models.Index(fields=["status", "round_id"]),
        ]

    def __str__(self):
        return f"Round {self.round_id} @ {self.final_multiplier}x"

    @property
    def is_revealed(self):
        return self.status in (RoundStatus.SEED_REVEALED.value, RoundStatus.SETTLED.value)


class CashOut(models.Model):
    round = models.ForeignKey(GameRound, on_delete=models.CASCADE, related_name="cash_outs")
    wallet = models.CharField(max_length=42)  # lowercased
    multiplier = models.DecimalField(max_digits=10, decimal_places=2)
    payout_estimate = models.DecimalField(max_digits=36, decimal_places=18, null=True, blank=True)
    verified = models.BooleanField(default=True)
    received_at = models.DateTimeField()

    class Meta:
        unique_together = [("round", "wallet")]
        ordering = ["received_at"]

    def __str__(self):
        return f"{self.wallet} @ {self.multiplier}x (round {self.round.round_id})"
