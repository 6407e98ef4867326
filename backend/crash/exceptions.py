from enum import Enum


class RejectReason(str, Enum):
    MISSING_FIELDS = "missing_fields"
    ROUND_NOT_ACTIVE = "round_not_active"
    INVALID_MULTIPLIER = "invalid_multiplier"
    NO_BET = "no_bet"
    INVALID_BET = "invalid_bet"
    ALREADY_CASHED_OUT = "already_cashed_out"
    BET_LOOKUP_FAILED = "bet_lookup_failed"
    INVALID_WALLET = "invalid_wallet"


REJECT_MESSAGES = {
    RejectReason.MISSING_FIELDS: "Missing required fields",
    RejectReason.ROUND_NOT_ACTIVE: "Round not active",
    RejectReason.INVALID_MULTIPLIER: "Invalid multiplier",
    RejectReason.NO_BET: "No bet found",
    RejectReason.INVALID_BET: "Bet exceeds maximum",
    RejectReason.ALREADY_CASHED_OUT: "Already cashed out",
    RejectReason.BET_LOOKUP_FAILED: "Failed to verify bet",
    RejectReason.INVALID_WALLET: "Invalid wallet address",
}

CASH_OUT_FAILED = "Cash-out failed"


class CashOutRejected(ValueError):
    def __init__(self, reason: RejectReason, detail: str = ""):
        self.reason = reason
        self.detail = detail
        super().__init__(REJECT_MESSAGES[reason])

    @property
    def message(self):
        return REJECT_MESSAGES[self.reason]


class CommitmentMismatch(RuntimeError):
    """keccak256(seed) does not match the on-chain commitment."""

    def __init__(self, round_id, commitment):
        self.round_id = round_id
        self.commitment = commitment
        super().__init__(f"Server seed does not match commitment {commitment} (round {round_id})")


class InvalidTransition(RuntimeError):
    pass


class SettlementError(RuntimeError):
    def __init__(self, round_id, batches_done, total_batches, cause=None):
        self.round_id = round_id
        self.batches_done = batches_done
        self.total_batches = total_batches
        super().__init__(
            f"Cash-out settlement for round {round_id} stopped after "
            f"{batches_done}/{total_batches} batches: {cause}"
        )
