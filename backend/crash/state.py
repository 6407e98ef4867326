import asyncio
from collections import deque
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from .exceptions import InvalidTransition
from .provably_fair import DEFAULT_PROTOCOL_VERSION

MAX_CHAT_MESSAGES = 4
MAX_RECENT_ROUNDS = 6


class RoundStatus(str, Enum):
    CREATED = "CREATED"
    RANDOM_REQUESTED = "RANDOM_REQUESTED"
    RANDOM_READY = "RANDOM_READY"
    SEED_REVEALED = "SEED_REVEALED"
    SETTLED = "SETTLED"
    ABANDONED = "ABANDONED"


ROUND_TRANSITIONS = {
    RoundStatus.CREATED: {RoundStatus.RANDOM_REQUESTED, RoundStatus.ABANDONED},
    RoundStatus.RANDOM_REQUESTED: {RoundStatus.RANDOM_READY, RoundStatus.ABANDONED},
    RoundStatus.RANDOM_READY: {RoundStatus.SEED_REVEALED},
    RoundStatus.SEED_REVEALED: {RoundStatus.SETTLED},
    RoundStatus.SETTLED: set(),
    RoundStatus.ABANDONED: set(),
}


class GamePhase(str, Enum):
    PREPARING = "preparing"
    BETTING = "betting"
    PREPARED = "prepared"
    RUNNING = "running"
    ENDED = "ended"


@dataclass
class CashOutRecord:
    wallet: str
    multiplier: float
    received_at: float
    verified: bool = True
    bet_amount: Decimal = Decimal("0")
    payout: Optional[Decimal] = None


@dataclass
class ActiveRound:
    """
    Live state of the one round the engine is driving.

    ``cash_outs`` is only mutated while ``lock`` is held; once settlement
    starts ``accepting`` is cleared under the same lock so no record can be
    appended behind the batcher's back.
    """

    round_id: int
    server_seed: str
    commitment: str
    chain_id: int
    protocol_version: int = DEFAULT_PROTOCOL_VERSION
    status: RoundStatus = RoundStatus.CREATED
    phase: GamePhase = GamePhase.PREPARING
    sequence_number: int = 0
    entropy_value: int = 0
    final_multiplier: Optional[float] = None
    current_multiplier: float = 1.00
    started_at: Optional[float] = None
    tick_interval_ms: int = 100
    accepting: bool = True
    cash_outs: Dict[str, CashOutRecord] = field(default_factory=dict)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def advance(self, status: RoundStatus):
        if status not in ROUND_TRANSITIONS[self.status]:
            raise InvalidTransition(
                f"Round {self.round_id}: {self.status.value} -> {status.value} is not allowed"
            )
        self.status = status

    def has_cashed_out(self, wallet: str) -> bool:
        return wallet.lower() in self.cash_outs

    def records(self) -> List[CashOutRecord]:
        return list(self.cash_outs.values())


class LiveGameState:
    """What a late joiner needs: current phase, latest update, chat, results."""

    def __init__(self):
        self.round_id = None
        self.phase = GamePhase.PREPARING
        self.current_multiplier = 1.00
        self.betting_close_time = None
        self.latest_update = None
        self.chat_messages = deque(maxlen=MAX_CHAT_MESSAGES)
        self.recent_rounds = deque(maxlen=MAX_RECENT_ROUNDS)

    def reset_for(self, round_id, phase):
        self.round_id = round_id
        self.phase = phase
        self.current_multiplier = 1.00
        self.betting_close_time = None
        self.latest_update = None

    def push_result(self, round_id, multiplier):
        self.recent_rounds.append({"roundId": round_id, "multiplier": multiplier})

    def snapshot(self):
        return {
            "roundId": self.round_id,
            "gameState": self.phase.value,
            "currentMultiplier": self.current_multiplier,
            "bettingCloseTime": self.betting_close_time,
            "latestUpdate": self.latest_update,
            "recentChatMessages": list(self.chat_messages),
            "recentRounds": list(self.recent_rounds),
        }
