"""Total classification of provider and contract errors into a fixed taxonomy.

Every input, whether an exception, a JSON-RPC error object, or a bare string,
maps to exactly one ``ErrorKind``. Transport-shaped exceptions are recognised
by type first; everything else goes through an ordered substring table where
the first matching rule wins.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple
import json
import re

import requests
from web3.exceptions import ContractLogicError

from .models import ClassifiedError, ErrorKind


@dataclass(frozen=True)
class _Rule:
    kind: ErrorKind
    any_of: Tuple[str, ...]
    all_of: Tuple[str, ...] = ()
    none_of: Tuple[str, ...] = ()

    def matches(self, text: str) -> bool:
        if any(needle in text for needle in self.none_of):
            return False
        if not all(needle in text for needle in self.all_of):
            return False
        return any(needle in text for needle in self.any_of)


# Ordered by specificity: "insufficient funds for gas * price" must not be
# read as congestion, and "function selector was not recognized ... reverted"
# must not be read as a business revert.
RULES: Tuple[_Rule, ...] = (
    _Rule(
        ErrorKind.INSUFFICIENT_FUNDS,
        ("insufficient funds", "doesn't have enough funds"),
    ),
    # Token contracts revert with "insufficient balance" for their own ledgers.
    _Rule(ErrorKind.INSUFFICIENT_FUNDS, ("insufficient balance",), none_of=("revert",)),
    _Rule(
        ErrorKind.NONCE_CONFLICT,
        (
            "nonce",
            "replacement transaction underpriced",
            "already known",
            "known transaction",
            "already imported",
        ),
    ),
    _Rule(
        ErrorKind.GAS_CONGESTION,
        (
            "underpriced",
            "base fee",
            "fee cap",
            "too low",
            "congest",
            "max fee per gas",
            "exceeds block gas limit",
            "gas price",
        ),
        all_of=("gas",),
    ),
    _Rule(
        ErrorKind.GAS_CONGESTION,
        ("transaction underpriced", "txpool is full", "network is busy"),
    ),
    _Rule(
        ErrorKind.CONTRACT_NOT_FOUND,
        (
            "no code",
            "contract not found",
            "not a contract",
            "contract does not exist",
            "function selector was not recognized",
            "function not found",
        ),
    ),
    _Rule(
        ErrorKind.REVERTED,
        ("execution reverted", "reverted", "revert", "vm exception", "invalid opcode"),
    ),
    _Rule(
        ErrorKind.ENDPOINT_UNAVAILABLE,
        (
            "timeout",
            "timed out",
            "connection",
            "econnrefused",
            "econnreset",
            "enotfound",
            "name or service not known",
            "max retries exceeded",
            "could not connect",
            "network error",
            "too many requests",
            "rate limit",
            "bad gateway",
            "service unavailable",
            "gateway timeout",
        ),
    ),
)

_RETRYABLE: Dict[ErrorKind, bool] = {
    ErrorKind.INSUFFICIENT_FUNDS: False,
    ErrorKind.NONCE_CONFLICT: True,
    ErrorKind.GAS_CONGESTION: True,
    ErrorKind.REVERTED: False,
    ErrorKind.ENDPOINT_UNAVAILABLE: True,
    ErrorKind.CONTRACT_NOT_FOUND: True,
    ErrorKind.UNKNOWN: False,
}

_HTTP_STATUS: Dict[ErrorKind, int] = {
    ErrorKind.INSUFFICIENT_FUNDS: 402,
    ErrorKind.NONCE_CONFLICT: 409,
    ErrorKind.GAS_CONGESTION: 503,
    ErrorKind.REVERTED: 422,
    ErrorKind.ENDPOINT_UNAVAILABLE: 503,
    ErrorKind.CONTRACT_NOT_FOUND: 404,
    ErrorKind.UNKNOWN: 500,
}

# Reasons that describe who may call rather than what was asked; another
# candidate contract may grant the permission this one refused.
_PERMISSION_MARKERS = (
    "not authorized",
    "unauthorized",
    "not the owner",
    "caller is not",
    "accesscontrol",
    "missing role",
    "permission",
    "not allowed",
    "paused",
)

_REASON_PATTERNS = (
    re.compile(r"execution reverted:\s*(.+)", re.IGNORECASE | re.DOTALL),
    re.compile(r"reverted with reason string '([^']*)'", re.IGNORECASE),
    re.compile(r"vm exception while processing transaction: revert\s+(.+)", re.IGNORECASE),
)

_TRANSPORT_ERRORS = (
    requests.exceptions.Timeout,
    requests.exceptions.ConnectionError,
    TimeoutError,
    ConnectionError,
)

_ALREADY_SUBMITTED = ("already known", "known transaction", "already imported")


def classify(raw_error: object) -> ClassifiedError:
    if isinstance(raw_error, ClassifiedError):
        return raw_error

    message = _extract_message(raw_error)
    if isinstance(raw_error, _TRANSPORT_ERRORS):
        return ClassifiedError(
            kind=ErrorKind.ENDPOINT_UNAVAILABLE,
            raw_message=message,
            retryable=True,
        )

    text = message.lower()
    kind = ErrorKind.UNKNOWN
    for rule in RULES:
        if rule.matches(text):
            kind = rule.kind
            break
    else:
        if isinstance(raw_error, ContractLogicError):
            kind = ErrorKind.REVERTED

    if kind == ErrorKind.REVERTED:
        reason = revert_reason(message)
        return ClassifiedError(
            kind=kind,
            raw_message=message,
            retryable=_revert_is_retryable(reason),
            reason=reason,
        )

    return ClassifiedError(kind=kind, raw_message=message, retryable=_RETRYABLE[kind])


def delivery_uncertain(raw_error: object) -> bool:
    """True when a failed send may still have put the transaction on the wire."""
    if isinstance(raw_error, _TRANSPORT_ERRORS):
        return True
    text = _extract_message(raw_error).lower()
    return any(marker in text for marker in _ALREADY_SUBMITTED)


def revert_reason(message: str) -> Optional[str]:
    for pattern in _REASON_PATTERNS:
        match = pattern.search(message)
        if match:
            reason = match.group(1).strip().strip("'\"")
            if reason:
                return reason
    return None


def http_status_for(kind: ErrorKind) -> int:
    return _HTTP_STATUS[kind]


def user_message(error: ClassifiedError, wallet_address: Optional[str] = None) -> str:
    if error.kind == ErrorKind.INSUFFICIENT_FUNDS:
        if wallet_address:
            return f"Insufficient funds in wallet. Please fund: {wallet_address}"
        return "Insufficient funds in wallet. Please fund the minting wallet."
    if error.kind == ErrorKind.NONCE_CONFLICT:
        return "Transaction nonce error. Please try again."
    if error.kind == ErrorKind.GAS_CONGESTION:
        return "Gas estimation failed. The network may be congested."
    if error.kind == ErrorKind.REVERTED:
        if error.reason:
            return f"Transaction reverted by the contract: {error.reason}"
        return "Transaction reverted by the contract."
    if error.kind == ErrorKind.ENDPOINT_UNAVAILABLE:
        return "Blockchain network is unreachable. Please try again later."
    if error.kind == ErrorKind.CONTRACT_NOT_FOUND:
        return "Target contract was not found on the selected network."
    return f"Transaction execution failed: {error.raw_message}"


def _revert_is_retryable(reason: Optional[str]) -> bool:
    if reason is None:
        # An undecodable revert usually means the call does not fit this contract.
        return True
    lowered = reason.lower()
    return any(marker in lowered for marker in _PERMISSION_MARKERS)


def _extract_message(raw_error: object) -> str:
    if raw_error is None:
        return ""
    if isinstance(raw_error, str):
        return raw_error
    if isinstance(raw_error, dict):
        return _message_from_dict(raw_error)
    if isinstance(raw_error, BaseException):
        message = getattr(raw_error, "message", None)
        if isinstance(message, str) and message:
            return message
        if raw_error.args and isinstance(raw_error.args[0], dict):
            return _message_from_dict(raw_error.args[0])
        text = str(raw_error)
        return text or type(raw_error).__name__
    return str(raw_error)


def _message_from_dict(data: dict) -> str:
    message = data.get("message")
    if isinstance(message, str) and message:
        return message
    return json.dumps(data, sort_keys=True, default=str)
