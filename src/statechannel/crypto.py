import base64, binascii, hashlib, os
from typing import Union

import base58
from nacl.signing import SigningKey, VerifyKey
from nacl.exceptions import BadSignatureError, CryptoError

from statechannel.state import DIGEST_SIZE, ChannelState, hash_state

# Fixed preamble so a signature over a channel digest can't be lifted from,
# or replayed into, any other protocol that signs raw 32-byte hashes.
PREAMBLE = b"\x19State Channel Signed Message:\n"

SIGNING_KEY_ENV = "STATE_CHANNEL_SIGNING_SK_B64"

Signature = Union[bytes, str]


def wrap_digest(digest: bytes) -> bytes:
    """Domain-separate a digest: sha256(PREAMBLE || len(digest) as text || digest)."""
    return hashlib.sha256(PREAMBLE + str(len(digest)).encode() + digest).digest()


def _get_env(name: str) -> bytes:
    val = os.getenv(name)
    if not val:
        raise RuntimeError(f"Missing env var: {name}")
    return base64.b64decode(val)


def load_signer() -> SigningKey:
    seed = _get_env(SIGNING_KEY_ENV)  # 32 bytes
    return SigningKey(seed)


def generate_signing_key() -> SigningKey:
    return SigningKey.generate()


def identity_of(key: Union[SigningKey, VerifyKey]) -> str:
    """Identity of a participant: base58 of its Ed25519 verify key."""
    if isinstance(key, SigningKey):
        key = key.verify_key
    return base58.b58encode(bytes(key)).decode("ascii")


def sign_digest(signing_key: SigningKey, digest: bytes) -> bytes:
    """Raw 64-byte signature over the wrapped digest."""
    return signing_key.sign(wrap_digest(digest)).signature


def sign_state(signing_key: SigningKey, state: ChannelState) -> str:
    """Base64 signature over a state, the form exchanged off-channel."""
    return base64.b64encode(sign_digest(signing_key, hash_state(state))).decode()


def _decode_signature(signature: Signature) -> bytes:
    if isinstance(signature, str):
        return base64.b64decode(signature, validate=True)
    if isinstance(signature, (bytes, bytearray)):
        return bytes(signature)
    raise TypeError(f"Signature must be bytes or base64 text, got {type(signature)}")


class SignatureVerifier:
    """
    Checks that a signature over a digest was produced by a claimed identity.

    Never raises on malformed identities or signatures; anything that does not
    verify is simply False so callers can name which party failed.
    """

    def verify(self, digest: bytes, signature: Signature, claimed_signer: str) -> bool:
        if not isinstance(digest, (bytes, bytearray)) or len(digest) != DIGEST_SIZE:
            return False
        if not isinstance(claimed_signer, str) or not claimed_signer:
            return False
        try:
            verify_key = VerifyKey(base58.b58decode(claimed_signer))
            verify_key.verify(wrap_digest(bytes(digest)), _decode_signature(signature))
            return True
        except (BadSignatureError, CryptoError, binascii.Error, ValueError, TypeError):
            return False
