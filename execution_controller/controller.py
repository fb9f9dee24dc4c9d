"""Degradation controller: walk endpoint and contract candidates in order.

Attempts run strictly one after another. A success, an on-chain revert or a
receipt timeout ends the run; classified failures advance to the next pair
according to the retry policy. Demonstration mode is entered only once every
candidate pair is exhausted, and its result never carries a hash or link.
"""

from typing import List, Optional, Sequence, Tuple
import logging
import threading

from execution_adapter.ethereum.adapter import prepare_call, required_selectors_for, validate_request
from execution_adapter.ethereum.executor import fail
from execution_adapter.ethereum.gas import GasEstimationError
from execution_adapter.ethereum.models import AttemptState, ExecutionAttempt, TransactionRequest
from execution_adapter.ethereum.simulator import demonstrate
from failures.classifier import classify
from failures.models import ClassifiedError, ErrorKind
from network.client import RpcClient
from network.health import online_endpoints, probe
from network.models import RPCEndpoint
from wallet_core.signer import SignerUnavailableError

from .context import ExecutionContext
from .modes import ExecutionMode, ResultStatus, TransactionResult
from .policy import CandidateAction

LOGGER = logging.getLogger("movemint.controller")


class PipelineCancelledError(RuntimeError):
    """Raised when the caller cancels between attempts or while pending."""

    def __init__(self, attempts: Sequence[ExecutionAttempt]) -> None:
        self.attempts = tuple(attempts)
        pending = [attempt.tx_hash for attempt in self.attempts if attempt.state == AttemptState.PENDING]
        message = "Execution cancelled."
        if pending:
            message += f" Transaction {pending[-1]} was broadcast and may still confirm."
        super().__init__(message)

    @property
    def pending_tx_hash(self) -> Optional[str]:
        for attempt in reversed(self.attempts):
            if attempt.state == AttemptState.PENDING:
                return attempt.tx_hash
        return None


class DegradationController:
    def __init__(self, context: ExecutionContext) -> None:
        self._context = context

    @property
    def context(self) -> ExecutionContext:
        return self._context

    def execute(
        self,
        request: TransactionRequest,
        cancel: Optional[threading.Event] = None,
    ) -> TransactionResult:
        validate_request(request)
        context = self._context
        if context.signer is None or context.executor is None:
            raise SignerUnavailableError(context.signer_error or "Signer private key is not configured.")

        settings = context.settings
        attempts: List[ExecutionAttempt] = []
        _check_cancelled(cancel, attempts)

        endpoints = probe(
            settings.endpoints(),
            settings.chain_id,
            context.client_factory,
            max_workers=settings.probe_workers,
            timeout=settings.rpc_timeout_seconds,
        )
        online = online_endpoints(endpoints)
        if not online:
            LOGGER.warning("no endpoint online; configured=%s", len(endpoints))
            return self._exhausted(request, attempts, None, endpoints)

        selectors = required_selectors_for(request)
        buffer_percent = context.gas_estimator.buffer_percent
        last_error: Optional[ClassifiedError] = None

        for endpoint in online:
            try:
                client = context.client_factory(endpoint)
            except Exception as exc:
                last_error = classify(exc)
                LOGGER.warning("client unavailable endpoint=%s kind=%s", endpoint.name, last_error.kind.value)
                continue

            action = CandidateAction.NEXT_PAIR
            for address in request.candidate_addresses:
                nonce_retries_used = 0
                while True:
                    _check_cancelled(cancel, attempts)
                    attempt = self._attempt(request, endpoint, client, address, selectors, buffer_percent, cancel)
                    attempts.append(attempt)
                    LOGGER.info(
                        "attempt endpoint=%s contract=%s state=%s",
                        endpoint.name,
                        address,
                        attempt.state.value,
                    )

                    if attempt.state == AttemptState.PENDING:
                        raise PipelineCancelledError(attempts)
                    if attempt.state == AttemptState.CONFIRMED:
                        return self._settled(attempt, attempts, success=True, status=ResultStatus.CONFIRMED)
                    if attempt.state == AttemptState.REVERTED:
                        return self._settled(attempt, attempts, success=False, status=ResultStatus.REVERTED)
                    if attempt.state == AttemptState.TIMED_OUT:
                        return self._settled(attempt, attempts, success=False, status=ResultStatus.TIMED_OUT)

                    last_error = attempt.error
                    if context.policy.invalidates_contract(last_error):
                        context.resolver.invalidate(endpoint.url, address)
                    buffer_percent = context.policy.escalated_buffer(buffer_percent, last_error)
                    action = context.policy.next_action(last_error, nonce_retries_used)
                    if action != CandidateAction.RETRY_PAIR:
                        break
                    nonce_retries_used += 1
                    LOGGER.info("retrying pair with fresh nonce endpoint=%s contract=%s", endpoint.name, address)

                if action == CandidateAction.STOP:
                    LOGGER.warning("stopping on non-retryable kind=%s", last_error.kind.value)
                    return _failed(last_error, attempts)
                if action == CandidateAction.NEXT_ENDPOINT:
                    LOGGER.info("skipping remaining contracts on endpoint=%s", endpoint.name)
                    break

        return self._exhausted(request, attempts, last_error, endpoints)

    def _attempt(
        self,
        request: TransactionRequest,
        endpoint: RPCEndpoint,
        client: RpcClient,
        address: str,
        selectors: Tuple[str, ...],
        buffer_percent: int,
        cancel: Optional[threading.Event],
    ) -> ExecutionAttempt:
        context = self._context
        signer_address = context.signer.address
        attempt = ExecutionAttempt(endpoint_name=endpoint.name, contract_address=address)

        try:
            target = context.resolver.resolve(
                endpoint,
                client,
                address,
                selectors,
                label=context.settings.contract_label(address),
                caller_address=signer_address,
            )
        except Exception as exc:
            return fail(attempt, classify(exc))

        attempt.prepared_call = prepare_call(request, endpoint, target, signer_address)
        try:
            attempt.gas_quote = context.gas_estimator.estimate(
                attempt.prepared_call,
                client,
                buffer_percent=buffer_percent,
                requested_gas_limit=request.gas_limit,
            )
        except GasEstimationError as exc:
            return fail(attempt, exc.error)

        return context.executor.execute(attempt, client, cancel)

    def _settled(
        self,
        attempt: ExecutionAttempt,
        attempts: Sequence[ExecutionAttempt],
        success: bool,
        status: ResultStatus,
    ) -> TransactionResult:
        return TransactionResult(
            success=success,
            mode=ExecutionMode.PRODUCTION,
            status=status,
            tx_hash=attempt.tx_hash,
            explorer_url=self._context.settings.explorer_tx_url(attempt.tx_hash),
            block_number=attempt.block_number,
            gas_used=attempt.gas_used,
            classified_error=attempt.error,
            attempts=_summaries(attempts),
        )

    def _exhausted(
        self,
        request: TransactionRequest,
        attempts: Sequence[ExecutionAttempt],
        last_error: Optional[ClassifiedError],
        endpoints: Sequence[RPCEndpoint],
    ) -> TransactionResult:
        context = self._context
        if last_error is None:
            statuses = ", ".join(f"{endpoint.name}={endpoint.status.value}" for endpoint in endpoints)
            last_error = ClassifiedError(
                kind=ErrorKind.ENDPOINT_UNAVAILABLE,
                raw_message=f"no configured RPC endpoint is online ({statuses or 'none configured'})",
                retryable=True,
            )

        if not context.policy.demonstration_enabled:
            return _failed(last_error, attempts)

        record = demonstrate(
            request,
            context.settings.chain_id,
            reason=f"{last_error.kind.value}: {last_error.raw_message}",
            signer_address=context.signer.address if context.signer else None,
            attempts=attempts,
        )
        explanation = dict(record.explanation)
        explanation["endpoints"] = [endpoint.to_dict() for endpoint in endpoints]
        LOGGER.warning(
            "all candidates exhausted; demonstration id=%s attempts=%s",
            record.demonstration_id,
            len(attempts),
        )
        return TransactionResult(
            success=True,
            mode=ExecutionMode.DEMONSTRATION,
            status=ResultStatus.DEMONSTRATION,
            classified_error=last_error,
            explanation=explanation,
            demonstration_id=record.demonstration_id,
            attempts=_summaries(attempts),
        )


def _failed(error: ClassifiedError, attempts: Sequence[ExecutionAttempt]) -> TransactionResult:
    return TransactionResult(
        success=False,
        mode=ExecutionMode.PRODUCTION,
        status=ResultStatus.FAILED,
        classified_error=error,
        attempts=_summaries(attempts),
    )


def _summaries(attempts: Sequence[ExecutionAttempt]) -> Tuple[dict, ...]:
    return tuple(attempt.summary() for attempt in attempts)


def _check_cancelled(cancel: Optional[threading.Event], attempts: Sequence[ExecutionAttempt]) -> None:
    if cancel is not None and cancel.is_set():
        raise PipelineCancelledError(attempts)
