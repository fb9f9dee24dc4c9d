"""Failure taxonomy for transaction execution."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    INSUFFICIENT_FUNDS = "InsufficientFunds"
    NONCE_CONFLICT = "NonceConflict"
    GAS_CONGESTION = "GasCongestion"
    REVERTED = "Reverted"
    ENDPOINT_UNAVAILABLE = "EndpointUnavailable"
    CONTRACT_NOT_FOUND = "ContractNotFound"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class ClassifiedError:
    kind: ErrorKind
    raw_message: str
    retryable: bool
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "rawMessage": self.raw_message,
            "retryable": self.retryable,
            "reason": self.reason,
        }
