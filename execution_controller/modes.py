"""Execution modes and the caller-visible transaction result."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from failures.classifier import http_status_for, user_message
from failures.models import ClassifiedError


class ExecutionMode(Enum):
    PRODUCTION = "production"
    DEMONSTRATION = "demonstration"


class ResultStatus(Enum):
    CONFIRMED = "confirmed"
    REVERTED = "reverted"
    TIMED_OUT = "timed_out"
    FAILED = "failed"
    DEMONSTRATION = "demonstration"


@dataclass(frozen=True)
class TransactionResult:
    success: bool
    mode: ExecutionMode
    status: ResultStatus
    tx_hash: Optional[str] = None
    explorer_url: Optional[str] = None
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    classified_error: Optional[ClassifiedError] = None
    explanation: Optional[dict] = None
    demonstration_id: Optional[str] = None
    attempts: Tuple[dict, ...] = ()

    def __post_init__(self) -> None:
        if self.mode == ExecutionMode.DEMONSTRATION:
            if self.explorer_url is not None or self.tx_hash is not None:
                raise ValueError("Demonstration results never carry a transaction hash or explorer link.")
        if self.explorer_url is not None and self.tx_hash is None:
            raise ValueError("An explorer link requires a real transaction hash.")

    def http_response(self, wallet_address: Optional[str] = None) -> Tuple[int, dict]:
        """Status code and JSON body for the caller-visible result."""
        body = {
            "success": self.success,
            "mode": self.mode.value,
            "status": self.status.value,
            "attempts": list(self.attempts),
        }
        if self.mode == ExecutionMode.DEMONSTRATION:
            body.update(
                transactionHash=None,
                explorerUrl=None,
                demonstrationId=self.demonstration_id,
                explanation=self.explanation,
            )
            return 200, body

        if self.tx_hash is not None:
            body.update(
                transactionHash=self.tx_hash,
                blockNumber=self.block_number,
                gasUsed=self.gas_used,
                explorerUrl=self.explorer_url,
            )
        if self.status == ResultStatus.CONFIRMED:
            return 200, body
        if self.status == ResultStatus.TIMED_OUT:
            body["error"] = (
                f"Transaction {self.tx_hash} was broadcast but not confirmed in time. "
                "It may still be mined; check the explorer link."
            )
            return 202, body

        error = self.classified_error
        status_code = http_status_for(error.kind)
        body.update(
            error=user_message(error, wallet_address),
            classifiedKind=error.kind.value,
            statusCode=status_code,
            retryable=error.retryable,
            details=error.raw_message,
        )
        return status_code, body
