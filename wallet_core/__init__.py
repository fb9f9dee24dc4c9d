from .keystore import FileKeyStore
from .signer import SignedPayload, SignerUnavailableError, TransactionSigner

__all__ = [
    "FileKeyStore",
    "SignedPayload",
    "SignerUnavailableError",
    "TransactionSigner",
]
