"""Signer acquisition, locking and keystore tests."""

from pathlib import Path
import tempfile
import threading
import unittest

from eth_account import Account
from web3 import Web3

from wallet_core.keystore import FileKeyStore
from wallet_core.signer import SignerUnavailableError, TransactionSigner

PRIVATE_KEY = "0x" + "4c" * 32


def _transaction(nonce: int = 0) -> dict:
    return {
        "to": Web3.to_checksum_address("0x2cd0f925b6d2ddea0d3fe3e0f6b3ba5d87e17073"),
        "data": "0x40c10f19" + "00" * 64,
        "value": 0,
        "gas": 120_000,
        "gasPrice": 1_000_000_000,
        "nonce": nonce,
        "chainId": 1315,
    }


class TransactionSignerTests(unittest.TestCase):
    def test_address_matches_key(self) -> None:
        signer = TransactionSigner.from_private_key(PRIVATE_KEY)
        self.assertEqual(signer.address, Account.from_key(PRIVATE_KEY).address)

    def test_key_without_prefix_is_accepted(self) -> None:
        signer = TransactionSigner.from_private_key(PRIVATE_KEY[2:])
        self.assertEqual(signer.address, Account.from_key(PRIVATE_KEY).address)

    def test_missing_or_malformed_key(self) -> None:
        for key in ("", "   ", "0x1234", "not-a-key"):
            with self.subTest(key=key):
                with self.assertRaises(SignerUnavailableError):
                    TransactionSigner.from_private_key(key)

    def test_signing_is_local_and_recoverable(self) -> None:
        signer = TransactionSigner.from_private_key(PRIVATE_KEY)
        payload = signer.sign_transaction(_transaction(nonce=3))

        self.assertEqual(payload.nonce, 3)
        self.assertEqual(payload.tx_hash, Web3.to_hex(Web3.keccak(payload.raw_transaction)))
        self.assertEqual(Account.recover_transaction(payload.raw_transaction), signer.address)

    def test_signing_is_deterministic(self) -> None:
        signer = TransactionSigner.from_private_key(PRIVATE_KEY)
        self.assertEqual(
            signer.sign_transaction(_transaction()).raw_transaction,
            signer.sign_transaction(_transaction()).raw_transaction,
        )

    def test_exclusive_blocks_other_threads(self) -> None:
        signer = TransactionSigner.from_private_key(PRIVATE_KEY)
        entered = threading.Event()

        def contender() -> None:
            with signer.exclusive():
                entered.set()

        with signer.exclusive():
            thread = threading.Thread(target=contender)
            thread.start()
            self.assertFalse(entered.wait(0.05))
            # re-entrant for the holder
            signer.sign_transaction(_transaction())
        thread.join(1)
        self.assertTrue(entered.is_set())


class FileKeyStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "signer.json"

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_store_and_unlock(self) -> None:
        keystore = FileKeyStore(self.path)
        address = keystore.store(PRIVATE_KEY, "correct horse", iterations=2)

        self.assertEqual(keystore.address(), address)
        self.assertNotIn("4c" * 32, self.path.read_text())
        signer = TransactionSigner.from_keystore(self.path, "correct horse")
        self.assertEqual(signer.address, address)

    def test_wrong_passphrase(self) -> None:
        FileKeyStore(self.path).store(PRIVATE_KEY, "correct horse", iterations=2)
        with self.assertRaises(SignerUnavailableError):
            TransactionSigner.from_keystore(self.path, "battery staple")

    def test_missing_file(self) -> None:
        with self.assertRaises(SignerUnavailableError):
            TransactionSigner.from_keystore(self.path, "anything")


if __name__ == "__main__":
    unittest.main()
