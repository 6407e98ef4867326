"""
Deterministic price path for one round.

Everything here is a pure function of (roundId, entropy, serverSeed, chainId,
tick interval): a verifier holding the revealed seed replays the exact same
ticks. Float arithmetic and rounding deliberately follow the reference
verifier (IEEE-754 doubles, round-half-up to cents), so do not swap in
Decimal here.
"""
import math
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Tuple

from .provably_fair import (
    DEFAULT_PROTOCOL_VERSION,
    derive_seed,
    get_random,
    random_denominator,
    verify_commitment,
)

HOUSE_EDGE = 0.015          # 150 bps
MIN_MULTIPLIER = 1.00
MAX_MULTIPLIER = 10000.0
MIN_DURATION_MS = 3000
MAX_DURATION_MS = 30000
VALUE_SCALE = 100000        # integer encoding of multipliers on the wire

# Index offsets for per-tick draws
DIRECTION_OFFSET = 10
TREND_OFFSET = 20


class TickPhase(IntEnum):
    RUNNING = 2
    CRASHED = 3


@dataclass(frozen=True)
class Tick:
    index: int
    open: float
    high: float
    low: float
    close: float
    value: int
    phase: TickPhase
    time: float

    @property
    def is_crash(self):
        return self.phase == TickPhase.CRASHED


@dataclass(frozen=True)
class CurveParameters:
    min_price: float
    trend_strength: float
    volatility_base: float
    volatility_decay: float
    duration_ms: int
    total_ticks: int


@dataclass(frozen=True)
class CrashGameResult:
    ticks: Tuple[Tick, ...]
    final_multiplier: float
    raw_multiplier: float
    derived_seed: int
    parameters: CurveParameters


@dataclass(frozen=True)
class VerificationResult:
    valid: bool
    commitment_valid: Optional[bool]
    final_multiplier: float
    raw_multiplier: float


def round_cents(value: float) -> float:
    """Math.round(value * 100) / 100, ties toward +infinity"""
    scaled = value * 100
    whole = math.floor(scaled)
    if scaled - whole >= 0.5:
        whole += 1
    return whole / 100


def encode_value(multiplier: float) -> int:
    return math.floor(multiplier * VALUE_SCALE)


def crash_point(derived_seed: int, protocol_version: int = DEFAULT_PROTOCOL_VERSION):
    """Returns (final_multiplier, raw_multiplier) from draw r0."""
    r0 = get_random(derived_seed, 0, random_denominator(protocol_version))
    p = HOUSE_EDGE + r0 * (1 - HOUSE_EDGE)
    raw = (1 - HOUSE_EDGE) / (1 - p)
    clamped = max(MIN_MULTIPLIER, min(raw, MAX_MULTIPLIER))
    return round_cents(clamped), raw


def generate_crash_game(
    round_id: int,
    entropy_value: int,
    server_seed: str,
    chain_id: int,
    start_timestamp: float,
    tick_interval_ms: int,
    protocol_version: int = DEFAULT_PROTOCOL_VERSION,
) -> CrashGameResult:
    seed = derive_seed(entropy_value, round_id, server_seed, chain_id)
    denominator = random_denominator(protocol_version)

    def draw(i):
        return get_random(seed, i, denominator)

    final_multiplier, raw_multiplier = crash_point(seed, protocol_version)

    r1 = draw(1)
    min_price = 0.40 + draw(2) * 0.30
    trend_strength = 0.15 + draw(3) * 0.30
    volatility_base = 0.015 + draw(4) * 0.020
    volatility_decay = 0.5 + draw(5) * 0.4

    duration = MIN_DURATION_MS + math.floor(r1 * (MAX_DURATION_MS - MIN_DURATION_MS))
    total_ticks = math.ceil(duration / tick_interval_ms)

    params = CurveParameters(
        min_price=min_price,
        trend_strength=trend_strength,
        volatility_base=volatility_base,
        volatility_decay=volatility_decay,
        duration_ms=duration,
        total_ticks=total_ticks,
    )

    ticks = []
    previous = 1.00
    price = 1.00

    for i in range(total_ticks):
        progress = i / total_ticks
        direction = draw(i + DIRECTION_OFFSET)
        draw(i + TREND_OFFSET)  # drawn but unused; keeps index layout stable for verifiers

        target = 1.00 + (final_multiplier - 1.00) * math.pow(progress, 0.8)
        volatility = volatility_base * math.pow(1 - progress, volatility_decay)

        bias = (target - price) * trend_strength
        move = (direction - 0.5) * 2
        price = price * (1 + bias + move * volatility)
        price = max(min_price, min(price, final_multiplier))

        tick_time = start_timestamp + i * tick_interval_ms / 1000

        # compare the unrounded price so rounding never crashes a round early
        if price >= final_multiplier or i == total_ticks - 1:
            ticks.append(Tick(
                index=i,
                open=previous,
                high=max(previous, final_multiplier),
                low=min(previous, final_multiplier),
                close=final_multiplier,
                value=encode_value(final_multiplier),
                phase=TickPhase.CRASHED,
                time=tick_time,
            ))
            break

        close = round_cents(price)
        ticks.append(Tick(
            index=i,
            open=previous,
            high=max(previous, close),
            low=min(previous, close),
            close=close,
            value=encode_value(close),
            phase=TickPhase.RUNNING,
            time=tick_time,
        ))
        previous = close

    return CrashGameResult(
        ticks=tuple(ticks),
        final_multiplier=final_multiplier,
        raw_multiplier=raw_multiplier,
        derived_seed=seed,
        parameters=params,
    )


def verify_round(
    round_id: int,
    entropy_value: int,
    server_seed: str,
    chain_id: int,
    server_seed_hash: Optional[str] = None,
    final_multiplier: Optional[float] = None,
    protocol_version: int = DEFAULT_PROTOCOL_VERSION,
) -> VerificationResult:
    seed = derive_seed(entropy_value, round_id, server_seed, chain_id)
    expected, raw = crash_point(seed, protocol_version)

    commitment_valid = None
    if server_seed_hash:
        commitment_valid = verify_commitment(server_seed, server_seed_hash)

    valid = commitment_valid is not False
    if final_multiplier is not None:
        valid = valid and round_cents(float(final_multiplier)) == expected

    return VerificationResult(
        valid=valid,
        commitment_valid=commitment_valid,
        final_multiplier=expected,
        raw_multiplier=raw,
    )
