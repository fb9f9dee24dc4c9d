"""Candidate-pair retry policy."""

from dataclasses import dataclass
from enum import Enum

from failures.models import ClassifiedError, ErrorKind


class CandidateAction(Enum):
    RETRY_PAIR = "RETRY_PAIR"
    NEXT_PAIR = "NEXT_PAIR"
    NEXT_ENDPOINT = "NEXT_ENDPOINT"
    STOP = "STOP"


@dataclass(frozen=True)
class RetryPolicy:
    nonce_retries: int = 1
    congestion_bump_percent: int = 20
    demonstration_enabled: bool = True

    def next_action(self, error: ClassifiedError, nonce_retries_used: int = 0) -> CandidateAction:
        if error.kind == ErrorKind.NONCE_CONFLICT and nonce_retries_used < self.nonce_retries:
            return CandidateAction.RETRY_PAIR
        if not error.retryable:
            return CandidateAction.STOP
        if error.kind == ErrorKind.ENDPOINT_UNAVAILABLE:
            return CandidateAction.NEXT_ENDPOINT
        return CandidateAction.NEXT_PAIR

    def invalidates_contract(self, error: ClassifiedError) -> bool:
        """Whether the failure suggests the cached contract resolution is wrong."""
        if error.kind == ErrorKind.CONTRACT_NOT_FOUND:
            return True
        return error.kind == ErrorKind.REVERTED and error.retryable

    def escalated_buffer(self, buffer_percent: int, error: ClassifiedError) -> int:
        if error.kind == ErrorKind.GAS_CONGESTION:
            return buffer_percent + self.congestion_bump_percent
        return buffer_percent
