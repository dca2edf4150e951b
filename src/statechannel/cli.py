"""
Participant tooling for the off-channel side of a state channel.

Generates keys and produces or checks the signatures participants exchange
before calling update_state / close_channel:

    statechannel keygen --out .env
    statechannel identity
    statechannel hash 20 10 1
    statechannel sign 20 10 1
    statechannel verify 20 10 1 <sig_b64> <identity>
"""

import argparse
import base64
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from statechannel.crypto import (
    SIGNING_KEY_ENV,
    SignatureVerifier,
    generate_signing_key,
    identity_of,
    load_signer,
    sign_state,
)
from statechannel.state import ChannelState, hash_state

logger = logging.getLogger(__name__)


def _state_from_args(args) -> ChannelState:
    return ChannelState(balance_a=args.balance_a, balance_b=args.balance_b, nonce=args.nonce)


def cmd_keygen(args) -> int:
    out = Path(args.out)
    if out.exists():
        print(f"{out} already exists. Delete it if you want to regenerate.")
        return 1

    sk = generate_signing_key()
    seed_b64 = base64.b64encode(sk.encode()).decode()  # 32 bytes

    with open(out, "w") as f:
        f.write(f"{SIGNING_KEY_ENV}={seed_b64}\n")
        f.write(f"STATE_CHANNEL_IDENTITY={identity_of(sk)}\n")

    os.chmod(out, 0o600)
    print(f"Wrote {out} with {SIGNING_KEY_ENV} and STATE_CHANNEL_IDENTITY")
    return 0


def cmd_identity(args) -> int:
    print(identity_of(load_signer()))
    return 0


def cmd_hash(args) -> int:
    print(hash_state(_state_from_args(args)).hex())
    return 0


def cmd_sign(args) -> int:
    print(sign_state(load_signer(), _state_from_args(args)))
    return 0


def cmd_verify(args) -> int:
    digest = hash_state(_state_from_args(args))
    if SignatureVerifier().verify(digest, args.signature, args.identity):
        print("valid")
        return 0
    print("invalid")
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="statechannel",
        description="Sign and check two-party state channel states",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    sub = parser.add_subparsers(dest="command", required=True)

    keygen = sub.add_parser("keygen", help="Generate an Ed25519 signing key")
    keygen.add_argument("--out", default=".env", help="Env file to write (default .env)")
    keygen.set_defaults(func=cmd_keygen)

    ident = sub.add_parser("identity", help=f"Print the identity for ${SIGNING_KEY_ENV}")
    ident.set_defaults(func=cmd_identity)

    for name, func, help_text in (
        ("hash", cmd_hash, "Print the hex digest of a state"),
        ("sign", cmd_sign, f"Sign a state with ${SIGNING_KEY_ENV}"),
        ("verify", cmd_verify, "Check a signature over a state"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("balance_a", type=int)
        p.add_argument("balance_b", type=int)
        p.add_argument("nonce", type=int)
        if name == "verify":
            p.add_argument("signature", help="Base64 signature")
            p.add_argument("identity", help="Claimed signer identity")
        p.set_defaults(func=func)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Command-line entry point"""
    args = build_parser().parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    try:
        return args.func(args)
    except (RuntimeError, ValueError) as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
