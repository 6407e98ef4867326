"""
Websocket message kinds.

Server -> client messages are dataclasses whose ``to_message()`` returns the
JSON object sent on the wire (camelCase keys, ``type`` discriminator).
Client -> server payloads are parsed into ``CashOutRequest``,
``ChatRequest`` or ``Ping``; anything else parses to ``None``.
"""
import math
import random
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Union

from .curve import Tick

MAX_CHAT_LENGTH = 5000

STATUS_PREPARING_GAME = "preparing_game"
STATUS_BETTING_OPEN = "betting_open"
STATUS_PREPARED = "prepared"
STATUS_GAME_STARTED = "game_started"
STATUS_REVEALED = "revealed"


def _compact(payload):
    return {k: v for k, v in payload.items() if v is not None}


def format_address(address: str) -> str:
    if not address or len(address) < 8:
        return address
    return f"{address[:4]}...{address[-4:]}"


def _message_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"{int(time.time() * 1000)}{suffix}"


# ---------------------------------------------------
# SERVER -> CLIENT
# ---------------------------------------------------
@dataclass(frozen=True)
class StatusMessage:
    status: str
    round_id: Optional[int] = None
    message: Optional[str] = None
    betting_close_time: Optional[int] = None
    server_seed: Optional[str] = None
    tx_hash: Optional[str] = None

    def to_message(self):
        return _compact({
            "type": "status",
            "status": self.status,
            "roundId": self.round_id,
            "message": self.message,
            "bettingCloseTime": self.betting_close_time,
            "serverSeed": self.server_seed,
            "txHash": self.tx_hash,
        })


@dataclass(frozen=True)
class UpdateMessage:
    current_value: int
    open: float
    high: float
    low: float
    close: float
    bar_time: dict
    game_state: int
    next_game_no_more_bets_at: int = 0

    @classmethod
    def from_tick(cls, tick: Tick):
        return cls(
            current_value=tick.value,
            open=tick.open,
            high=tick.high,
            low=tick.low,
            close=tick.close,
            bar_time=bar_date(tick.time),
            game_state=int(tick.phase),
        )

    @classmethod
    def opening(cls, first_tick: Tick):
        """Flat 1.00x candle sent right after game_started so charts start at 1"""
        return cls(
            current_value=100000,
            open=1.00,
            high=1.00,
            low=1.00,
            close=1.00,
            bar_time=bar_date(first_tick.time),
            game_state=2,
        )

    def to_message(self, timestamp: Optional[float] = None):
        # stamped when sent, never precomputed from the tick schedule
        return {
            "type": "update",
            "currentValue": self.current_value,
            "bar": {
                "open": self.open,
                "high": self.high,
                "low": self.low,
                "close": self.close,
                "time": self.bar_time,
            },
            "gameState": self.game_state,
            "nextGameNoMoreBetsAt": self.next_game_no_more_bets_at,
            "timestamp": time.time() if timestamp is None else timestamp,
        }


def bar_date(ts: float) -> dict:
    d = datetime.fromtimestamp(ts, tz=timezone.utc)
    return {"year": d.year, "month": d.month, "day": d.day}


@dataclass(frozen=True)
class ChatMessage:
    address: str
    message: str
    user: str = ""
    id: str = field(default_factory=_message_id)
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def create(cls, address: str, text: str):
        return cls(address=address.lower(), message=text, user=format_address(address))

    def to_message(self):
        return {
            "type": "chat_message",
            "id": self.id,
            "user": self.user,
            "address": self.address,
            "message": self.message,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class CashOutAck:
    round_id: int
    address: str
    multiplier: float

    def to_message(self):
        return {
            "type": "cash_out",
            "roundId": self.round_id,
            "address": self.address,
            "user": format_address(self.address),
            "multiplier": self.multiplier,
        }


@dataclass(frozen=True)
class CashOutResponse:
    success: bool
    round_id: Optional[int] = None
    multiplier: Optional[float] = None
    payout: Optional[float] = None
    error: Optional[str] = None

    def to_message(self):
        return _compact({
            "type": "cash_out_response",
            "success": self.success,
            "roundId": self.round_id,
            "multiplier": self.multiplier,
            "payout": self.payout,
            "error": self.error,
        })


@dataclass(frozen=True)
class StateSnapshot:
    state: dict

    def to_message(self):
        return {"type": "state_snapshot", **self.state}


@dataclass(frozen=True)
class Pong:
    def to_message(self):
        return {"type": "pong", "timestamp": time.time()}


# ---------------------------------------------------
# CLIENT -> SERVER
# ---------------------------------------------------
@dataclass(frozen=True)
class CashOutRequest:
    round_id: Optional[int]
    multiplier: Optional[float]
    wallet: Optional[str]


@dataclass(frozen=True)
class ChatRequest:
    address: str
    text: str


@dataclass(frozen=True)
class Ping:
    pass


ClientMessage = Union[CashOutRequest, ChatRequest, Ping]


def _as_int(value):
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def _as_float(value):
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    # "nan" and "inf" parse as floats but are never a multiplier
    return number if math.isfinite(number) else None


def clean_chat_text(text) -> str:
    if not isinstance(text, str):
        return ""
    return text.strip()[:MAX_CHAT_LENGTH]


def parse_client_message(content) -> Optional[ClientMessage]:
    if not isinstance(content, dict):
        return None

    kind = content.get("type")

    if kind == "cash_out":
        wallet = content.get("walletAddress")
        return CashOutRequest(
            round_id=_as_int(content.get("roundId")),
            multiplier=_as_float(content.get("multiplier")),
            wallet=wallet if isinstance(wallet, str) and wallet else None,
        )

    if kind == "chat_message":
        address = content.get("address")
        text = clean_chat_text(content.get("message"))
        if not isinstance(address, str) or not address or not text:
            return None
        return ChatRequest(address=address, text=text)

    if kind == "ping":
        return Ping()

    return None
