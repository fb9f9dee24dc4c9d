"""Process-wide transaction signer with a single key acquisition path."""

from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator
import binascii
import threading

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3

from .keystore import FileKeyStore


class SignerUnavailableError(RuntimeError):
    """Raised when no usable key material is configured."""


@dataclass(frozen=True)
class SignedPayload:
    raw_transaction: bytes
    tx_hash: str
    nonce: int


class TransactionSigner:
    """Signs transactions for one key; created once per process.

    The key is read exactly once, at construction. ``exclusive()`` serialises
    nonce reads, signing and broadcast for the key, so at most one broadcast
    is in flight per signer.
    """

    def __init__(self, account: LocalAccount) -> None:
        self._account = account
        self._lock = threading.RLock()

    @classmethod
    def from_private_key(cls, private_key: str) -> "TransactionSigner":
        if not private_key or not private_key.strip():
            raise SignerUnavailableError("Signer private key is not configured.")
        normalized = private_key.strip()
        if not normalized.startswith("0x"):
            normalized = "0x" + normalized
        try:
            account = Account.from_key(normalized)
        except (ValueError, TypeError, binascii.Error) as exc:
            raise SignerUnavailableError("Signer private key is malformed.") from exc
        return cls(account)

    @classmethod
    def from_keystore(cls, path: Path, passphrase: str) -> "TransactionSigner":
        try:
            private_key = FileKeyStore(path).load(passphrase)
        except (OSError, ValueError, KeyError) as exc:
            raise SignerUnavailableError(f"Unable to unlock keystore {path}: {exc}") from exc
        return cls(Account.from_key(private_key))

    @property
    def address(self) -> str:
        return self._account.address

    @contextmanager
    def exclusive(self) -> Iterator["TransactionSigner"]:
        with self._lock:
            yield self

    def sign_transaction(self, transaction: Dict[str, object]) -> SignedPayload:
        with self._lock:
            signed = self._account.sign_transaction(transaction)
        return SignedPayload(
            raw_transaction=bytes(signed.raw_transaction),
            tx_hash=Web3.to_hex(signed.hash),
            nonce=int(transaction["nonce"]),
        )
