"""Sign, broadcast and confirm a prepared call as an explicit state machine.

Prepared -> Signed -> Broadcast -> Pending -> Confirmed | Reverted | TimedOut

A definite provider rejection at broadcast ends the attempt as ``Rejected``
without waiting. A send whose acknowledgement was lost (transport failure, or
the node already holding the transaction) is treated as broadcast and polled
under the locally computed hash. Failures before signing (nonce read,
balance check, key material) end it as ``Failed``. Every attempt broadcasts
at most once; a retry is a new attempt with a freshly read nonce.
"""

from typing import Callable, Dict, Optional
import logging
import threading
import time

from failures.classifier import classify, delivery_uncertain
from failures.models import ClassifiedError, ErrorKind
from network.client import RpcClient
from wallet_core.signer import TransactionSigner

from .models import ALLOWED_TRANSITIONS, AttemptState, ExecutionAttempt, GasQuote, PreparedCall

LOGGER = logging.getLogger("movemint.executor")


class InvalidTransitionError(RuntimeError):
    """Raised when an attempt is moved along an edge the state machine lacks."""


def advance(attempt: ExecutionAttempt, state: AttemptState) -> None:
    if state not in ALLOWED_TRANSITIONS.get(attempt.state, frozenset()):
        raise InvalidTransitionError(
            f"Cannot move attempt from {attempt.state.value} to {state.value}."
        )
    attempt.state = state
    attempt.history.append(state)


def fail(attempt: ExecutionAttempt, error: ClassifiedError) -> ExecutionAttempt:
    advance(attempt, AttemptState.FAILED)
    attempt.error = error
    return attempt


def wait_for_receipt(
    client: RpcClient,
    tx_hash: str,
    timeout: float,
    poll_interval: float = 2.0,
    confirmations: int = 1,
    cancel: Optional[threading.Event] = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Optional[Callable[[float], None]] = None,
) -> Optional[Dict[str, int]]:
    """Poll until the receipt has ``confirmations`` blocks or the window closes.

    Returns ``None`` on timeout or cancellation. Transient polling errors are
    logged and polling continues; the transaction is already on the wire.
    """
    if sleep is None:
        sleep = cancel.wait if cancel is not None else time.sleep
    deadline = clock() + timeout
    while True:
        if cancel is not None and cancel.is_set():
            return None
        try:
            receipt = client.get_transaction_receipt(tx_hash)
            if receipt is not None and _confirmed(client, receipt, confirmations):
                return receipt
        except Exception as exc:  # keep polling; the outcome must not be lost
            LOGGER.warning("receipt poll failed tx=%s error=%s", tx_hash, classify(exc).kind.value)
        remaining = deadline - clock()
        if remaining <= 0:
            return None
        sleep(min(poll_interval, remaining))


class TransactionExecutor:
    def __init__(
        self,
        signer: TransactionSigner,
        chain_id: int,
        receipt_timeout: float = 120.0,
        poll_interval: float = 2.0,
        confirmations: int = 1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        if confirmations < 1:
            raise ValueError("At least one confirmation is required.")
        self._signer = signer
        self._chain_id = chain_id
        self._receipt_timeout = receipt_timeout
        self._poll_interval = poll_interval
        self._confirmations = confirmations
        self._clock = clock
        self._sleep = sleep

    def execute(
        self,
        attempt: ExecutionAttempt,
        client: RpcClient,
        cancel: Optional[threading.Event] = None,
    ) -> ExecutionAttempt:
        prepared_call = attempt.prepared_call
        gas_quote = attempt.gas_quote
        if prepared_call is None or gas_quote is None:
            raise InvalidTransitionError("Attempt must carry a prepared call and gas quote.")

        with self._signer.exclusive():
            try:
                nonce = client.get_transaction_count(self._signer.address)
                gas_price = client.gas_price()
                balance = client.get_balance(self._signer.address)
            except Exception as exc:
                return fail(attempt, classify(exc))

            required = prepared_call.value + gas_quote.buffered * gas_price
            if balance < required:
                LOGGER.warning(
                    "insufficient balance address=%s balance=%s required=%s",
                    self._signer.address,
                    balance,
                    required,
                )
                return fail(
                    attempt,
                    ClassifiedError(
                        kind=ErrorKind.INSUFFICIENT_FUNDS,
                        raw_message=(
                            f"insufficient funds: wallet {self._signer.address} has {balance} wei, "
                            f"needs {required} wei"
                        ),
                        retryable=False,
                    ),
                )

            attempt.nonce = nonce
            try:
                signed = self._signer.sign_transaction(
                    _build_transaction(prepared_call, gas_quote, nonce, gas_price, self._chain_id)
                )
            except Exception as exc:
                return fail(attempt, classify(exc))
            tx_hash = signed.tx_hash
            attempt.tx_hash = tx_hash
            advance(attempt, AttemptState.SIGNED)

            try:
                client.send_raw_transaction(signed.raw_transaction)
            except Exception as exc:
                error = classify(exc)
                if not delivery_uncertain(exc):
                    attempt.tx_hash = None
                    advance(attempt, AttemptState.REJECTED)
                    attempt.error = error
                    LOGGER.warning(
                        "broadcast rejected endpoint=%s kind=%s",
                        prepared_call.endpoint.name,
                        error.kind.value,
                    )
                    return attempt
                LOGGER.warning(
                    "broadcast unacknowledged tx=%s endpoint=%s kind=%s, polling",
                    tx_hash,
                    prepared_call.endpoint.name,
                    error.kind.value,
                )

            advance(attempt, AttemptState.BROADCAST)
            LOGGER.info(
                "broadcast tx=%s endpoint=%s to=%s nonce=%s gas=%s source=%s",
                tx_hash,
                prepared_call.endpoint.name,
                prepared_call.contract.address,
                nonce,
                gas_quote.buffered,
                gas_quote.source.value,
            )

            advance(attempt, AttemptState.PENDING)
            receipt = wait_for_receipt(
                client,
                tx_hash,
                timeout=self._receipt_timeout,
                poll_interval=self._poll_interval,
                confirmations=self._confirmations,
                cancel=cancel,
                clock=self._clock,
                sleep=self._sleep,
            )

        if receipt is None:
            if cancel is not None and cancel.is_set():
                LOGGER.info("cancelled while pending tx=%s", tx_hash)
                return attempt
            advance(attempt, AttemptState.TIMED_OUT)
            LOGGER.warning("receipt wait timed out tx=%s", tx_hash)
            return attempt

        attempt.block_number = int(receipt["blockNumber"])
        attempt.gas_used = int(receipt["gasUsed"])
        if int(receipt["status"]) == 1:
            advance(attempt, AttemptState.CONFIRMED)
            LOGGER.info("confirmed tx=%s block=%s gas_used=%s", tx_hash, attempt.block_number, attempt.gas_used)
        else:
            advance(attempt, AttemptState.REVERTED)
            attempt.error = ClassifiedError(
                kind=ErrorKind.REVERTED,
                raw_message=f"transaction {tx_hash} reverted on-chain in block {attempt.block_number}",
                retryable=False,
            )
            LOGGER.warning("reverted on-chain tx=%s block=%s", tx_hash, attempt.block_number)
        return attempt


def _build_transaction(
    prepared_call: PreparedCall,
    gas_quote: GasQuote,
    nonce: int,
    gas_price: int,
    chain_id: int,
) -> Dict[str, object]:
    return {
        "to": prepared_call.contract.address,
        "data": prepared_call.data,
        "value": prepared_call.value,
        "gas": gas_quote.buffered,
        "gasPrice": gas_price,
        "nonce": nonce,
        "chainId": chain_id,
    }


def _confirmed(client: RpcClient, receipt: Dict[str, int], confirmations: int) -> bool:
    if confirmations <= 1:
        return True
    latest = client.block_number()
    return latest - int(receipt["blockNumber"]) + 1 >= confirmations
