class ChainError(RuntimeError):
    """An RPC call or transaction against the game contract failed."""


class EntropyTimeout(ChainError):
    """Entropy was requested but the provider callback never landed."""

    def __init__(self, round_id, waited):
        self.round_id = round_id
        self.waited = waited
        super().__init__(
            f"Entropy for round {round_id} not received after {waited:.0f} seconds"
        )
