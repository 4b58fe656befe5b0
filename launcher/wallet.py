"""
Wallet credential bootstrap.

Order of preference:
  1. WALLET_PRIVATE_KEY from the environment
  2. a credential generated on an earlier run (state store, encrypted)
  3. a fresh one, generated now and stored encrypted

Stored keys are Fernet-encrypted with a key derived from WALLET_SECRET via
HMAC-SHA256. The private key itself is never logged.
"""

import hmac
import base64
import hashlib
import logging
from dataclasses import dataclass

from cryptography.fernet import Fernet, InvalidToken
from eth_account import Account

from .state import StateStore

logger = logging.getLogger("launcher.wallet")

_DEFAULT_SECRET = "launcher-wallet-secret-change-me"


@dataclass
class WalletCredential:
    address: str
    private_key: str
    origin: str            # "env" | "stored" | "generated"

    def __repr__(self) -> str:
        return f"WalletCredential(address={self.address!r}, origin={self.origin!r})"


def _fernet(secret: str) -> Fernet:
    derived = hmac.new(
        (secret or _DEFAULT_SECRET).encode(),
        b"wallet-credential-encryption",
        hashlib.sha256,
    ).digest()
    return Fernet(base64.urlsafe_b64encode(derived))


def load_or_create_wallet(private_key: str, store: StateStore, secret: str = "") -> WalletCredential:
    if private_key:
        account = Account.from_key(private_key)
        return WalletCredential(address=account.address, private_key=private_key, origin="env")

    if not secret:
        logger.warning("WALLET_SECRET not set - generated wallet is encrypted with the default secret")
    fernet = _fernet(secret)

    stored = store.get("wallet")
    if stored and stored.get("encrypted_key"):
        try:
            key = fernet.decrypt(stored["encrypted_key"].encode()).decode()
            account = Account.from_key(key)
            return WalletCredential(address=account.address, private_key=key, origin="stored")
        except InvalidToken:
            raise ValueError(
                f"Stored wallet {stored.get('address', '?')} cannot be decrypted with this "
                f"WALLET_SECRET; refusing to generate a replacement"
            )

    if store.quarantined is not None:
        logger.warning(f"Generating a new wallet; any previous wallet is still in {store.quarantined}")
    account = Account.create()
    key = account.key.hex()
    store.set("wallet", {
        "address": account.address,
        "encrypted_key": fernet.encrypt(key.encode()).decode(),
    })
    logger.info(f"Generated new wallet: {account.address}")
    logger.warning("Fund this wallet before deploying!")
    return WalletCredential(address=account.address, private_key=key, origin="generated")
