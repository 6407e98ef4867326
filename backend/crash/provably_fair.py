import secrets

from web3 import Web3

from .exceptions import CommitmentMismatch

# Denominators for mapping a 256-bit hash onto [0, 1).
# v2 is the uint256 maximum and is what every verifier divides by.
# v1 (33 bytes of 0xff) is opt-in legacy only: no 256-bit hash reaches
# 1/256 of it, so every v1 round crashes at 1.00x.
RANDOM_DENOMINATORS = {
    1: int("ff" * 33, 16),
    2: 2 ** 256 - 1,
}
DEFAULT_PROTOCOL_VERSION = 2


def keccak256(data: bytes) -> bytes:
    return bytes(Web3.keccak(primitive=data))


def _word(value: int) -> bytes:
    # 32-byte big-endian, like a Solidity uint256
    return int(value).to_bytes(32, "big")


def generate_server_seed() -> str:
    return secrets.token_hex(32)


def commitment_hash(server_seed: str) -> str:
    """Hash committed on-chain before the round: keccak256(utf8(seed))"""
    return "0x" + keccak256(server_seed.encode("utf-8")).hex()


def verify_commitment(server_seed: str, commitment: str) -> bool:
    return commitment_hash(server_seed) == commitment.lower()


def assert_commitment(server_seed: str, commitment: str, round_id=None) -> None:
    if not verify_commitment(server_seed, commitment):
        raise CommitmentMismatch(round_id, commitment)


def random_denominator(protocol_version: int = DEFAULT_PROTOCOL_VERSION) -> int:
    try:
        return RANDOM_DENOMINATORS[protocol_version]
    except KeyError:
        raise ValueError(f"Unknown protocol version: {protocol_version}") from None


def derive_seed(entropy_value: int, round_id: int, server_seed: str, chain_id: int) -> int:
    """
    keccak256(entropy || roundId || serverSeed || chainId)

    Numbers are 32-byte words; the seed is its raw UTF-8 bytes (variable
    length, no padding). The result never leaves the server until the seed
    is revealed.
    """
    combined = (
        _word(entropy_value)
        + _word(round_id)
        + server_seed.encode("utf-8")
        + _word(chain_id)
    )
    return int.from_bytes(keccak256(combined), "big")


def get_random(seed: int, index: int, denominator: int = RANDOM_DENOMINATORS[DEFAULT_PROTOCOL_VERSION]) -> float:
    """
    Indexed uniform draw from the derived seed.

    Both operands are converted to IEEE-754 doubles *before* dividing. The
    precision lost there is reproduced by every verifier, so the division
    must stay float/float.
    """
    numerator = int.from_bytes(keccak256(_word(seed) + _word(index)), "big")
    return float(numerator) / float(denominator)
