"""
Tests for the participant CLI.
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import base64

import pytest

from statechannel.cli import main
from statechannel.crypto import SIGNING_KEY_ENV, generate_signing_key, identity_of
from statechannel.state import ChannelState, hash_state


@pytest.fixture
def signer_env(monkeypatch):
    sk = generate_signing_key()
    monkeypatch.setenv(SIGNING_KEY_ENV, base64.b64encode(sk.encode()).decode())
    return sk


def last_line(capsys):
    return capsys.readouterr().out.strip().splitlines()[-1]


class TestKeygen:

    def test_writes_env_file(self, tmp_path, capsys):
        out = tmp_path / ".env"
        assert main(["keygen", "--out", str(out)]) == 0

        lines = dict(line.split("=", 1) for line in out.read_text().splitlines())
        assert len(base64.b64decode(lines[SIGNING_KEY_ENV])) == 32
        assert lines["STATE_CHANNEL_IDENTITY"]

    def test_refuses_to_overwrite(self, tmp_path, capsys):
        out = tmp_path / ".env"
        out.write_text("keep me\n")
        assert main(["keygen", "--out", str(out)]) == 1
        assert out.read_text() == "keep me\n"


class TestStateCommands:

    def test_identity(self, signer_env, capsys):
        assert main(["identity"]) == 0
        assert last_line(capsys) == identity_of(signer_env)

    def test_hash(self, capsys):
        assert main(["hash", "20", "10", "1"]) == 0
        assert last_line(capsys) == hash_state(ChannelState(20, 10, 1)).hex()

    def test_sign_then_verify(self, signer_env, capsys):
        assert main(["sign", "7", "3", "2"]) == 0
        signature = last_line(capsys)

        assert main(["verify", "7", "3", "2", signature, identity_of(signer_env)]) == 0
        assert last_line(capsys) == "valid"

    def test_verify_other_state_fails(self, signer_env, capsys):
        main(["sign", "7", "3", "2"])
        signature = last_line(capsys)

        assert main(["verify", "3", "7", "2", signature, identity_of(signer_env)]) == 1
        assert last_line(capsys) == "invalid"

    def test_sign_without_key(self, monkeypatch, capsys):
        monkeypatch.delenv(SIGNING_KEY_ENV, raising=False)
        assert main(["sign", "7", "3", "2"]) == 2
        assert "Missing env var" in capsys.readouterr().err
