"""
Tests for launcher/wallet.py
"""

import json
import logging

import pytest
from eth_account import Account

from launcher.state import StateStore
from launcher.wallet import load_or_create_wallet


class TestWallet:

    def test_env_key_wins(self, store):
        account = Account.create()
        key = account.key.hex()

        wallet = load_or_create_wallet(key, store, secret="s3cret")

        assert wallet.origin == "env"
        assert wallet.address == account.address
        assert store.get("wallet") is None

    def test_generate_then_reuse(self, store, state_path):
        first = load_or_create_wallet("", store, secret="s3cret")
        assert first.origin == "generated"
        stored = store.get("wallet")
        assert stored["address"] == first.address
        assert first.private_key not in stored["encrypted_key"]

        reloaded = StateStore(str(state_path))
        reloaded.load()
        second = load_or_create_wallet("", reloaded, secret="s3cret")

        assert second.origin == "stored"
        assert second.address == first.address
        assert second.private_key == first.private_key

    def test_wrong_secret_refuses_to_replace(self, store):
        load_or_create_wallet("", store, secret="right")
        with pytest.raises(ValueError, match="cannot be decrypted"):
            load_or_create_wallet("", store, secret="wrong")

    def test_key_not_in_repr_or_logs(self, store, caplog):
        with caplog.at_level(logging.INFO, logger="launcher.wallet"):
            wallet = load_or_create_wallet("", store, secret="s3cret")
        bare_key = wallet.private_key.removeprefix("0x")
        assert bare_key not in repr(wallet)
        assert bare_key not in caplog.text
        assert wallet.address in caplog.text

    def test_corrupt_state_keeps_old_wallet_recoverable(self, store, state_path):
        """A damaged state file must not be replaced by a fresh wallet's state."""
        first = load_or_create_wallet("", store, secret="s3cret")
        original = state_path.read_text()
        state_path.write_text(original + "\n}trailing garbage")
        damaged = state_path.read_text()

        reloaded = StateStore(str(state_path))
        assert reloaded.load() is False
        second = load_or_create_wallet("", reloaded, secret="s3cret")

        assert second.origin == "generated"
        assert second.address != first.address
        assert reloaded.quarantined.read_text() == damaged
        assert json.loads(original)["wallet"]["encrypted_key"] in damaged
