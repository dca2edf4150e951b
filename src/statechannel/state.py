"""
Channel state: the (balance_a, balance_b, nonce) triple and its canonical digest.
"""

import hashlib
from dataclasses import dataclass

UINT256_MAX = 2**256 - 1
WORD_SIZE = 32  # bytes per encoded field
DIGEST_SIZE = 32


def validate_uint256(name: str, value: int) -> None:
    """Validate that value fits an unsigned 256-bit word"""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be integer, got {type(value)}")
    if value < 0:
        raise ValueError(f"{name} cannot be negative, got {value}")
    if value > UINT256_MAX:
        raise ValueError(f"{name} exceeds uint256 range: {value}")


@dataclass(frozen=True)
class ChannelState:
    """Balances both participants agree on, ordered by nonce"""

    balance_a: int
    balance_b: int
    nonce: int

    def __post_init__(self):
        validate_uint256("balance_a", self.balance_a)
        validate_uint256("balance_b", self.balance_b)
        validate_uint256("nonce", self.nonce)

    def to_dict(self) -> dict:
        return {
            "balance_a": self.balance_a,
            "balance_b": self.balance_b,
            "nonce": self.nonce,
        }


def encode_state(state: ChannelState) -> bytes:
    """
    Canonical byte encoding of a state.

    Each field is a 32-byte big-endian unsigned integer, concatenated as
    balance_a || balance_b || nonce.
    """
    return b"".join(
        value.to_bytes(WORD_SIZE, "big")
        for value in (state.balance_a, state.balance_b, state.nonce)
    )


def hash_state(state: ChannelState) -> bytes:
    """Compute the 32-byte digest both participants sign."""
    return hashlib.sha256(encode_state(state)).digest()
