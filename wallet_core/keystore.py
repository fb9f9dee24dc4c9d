"""Encrypted JSON keystore (Web3 Secret Storage) persistence for the signer key."""

from pathlib import Path
import json

from eth_account import Account
from web3 import Web3


class FileKeyStore:
    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def store(self, private_key: str, passphrase: str, iterations: int = 262_144) -> str:
        """Encrypt ``private_key`` and write it; returns the account address."""
        encrypted = Account.encrypt(private_key, passphrase, kdf="pbkdf2", iterations=iterations)
        self._path.write_text(json.dumps(encrypted, indent=2))
        return Account.from_key(private_key).address

    def load(self, passphrase: str) -> bytes:
        data = json.loads(self._path.read_text())
        return bytes(Account.decrypt(data, passphrase))

    def address(self) -> str:
        data = json.loads(self._path.read_text())
        return Web3.to_checksum_address(data["address"])
