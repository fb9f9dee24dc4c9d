"""Ethereum adapter models for prepared calls, gas quotes and execution attempts."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from contracts.models import ContractTarget
from failures.models import ClassifiedError
from network.models import RPCEndpoint


@dataclass(frozen=True)
class TransactionRequest:
    """Caller intent: an encoded call plus candidate target addresses."""

    to: str
    data: str
    value_wei: int = 0
    gas_limit: Optional[int] = None
    fallback_addresses: Tuple[str, ...] = ()
    required_selectors: Tuple[str, ...] = ()

    @property
    def candidate_addresses(self) -> Tuple[str, ...]:
        seen = set()
        ordered = []
        for address in (self.to,) + self.fallback_addresses:
            key = address.lower()
            if key not in seen:
                seen.add(key)
                ordered.append(address)
        return tuple(ordered)


@dataclass(frozen=True)
class PreparedCall:
    endpoint: RPCEndpoint
    contract: ContractTarget
    function_selector: str
    encoded_args: str
    value: int
    caller_address: str

    @property
    def data(self) -> str:
        return self.function_selector + self.encoded_args

    def to_transaction(self) -> dict:
        return {
            "from": self.caller_address,
            "to": self.contract.address,
            "data": self.data,
            "value": self.value,
        }


class GasSource(Enum):
    ESTIMATED = "Estimated"
    FALLBACK_FIXED = "FallbackFixed"
    REQUESTED = "Requested"


@dataclass(frozen=True)
class GasQuote:
    estimated: int
    buffered: int
    source: GasSource
    detail: Optional[str] = None


class AttemptState(Enum):
    PREPARED = "Prepared"
    SIGNED = "Signed"
    BROADCAST = "Broadcast"
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    REVERTED = "Reverted"
    TIMED_OUT = "TimedOut"
    REJECTED = "Rejected"
    FAILED = "Failed"


TERMINAL_STATES = frozenset(
    {
        AttemptState.CONFIRMED,
        AttemptState.REVERTED,
        AttemptState.TIMED_OUT,
        AttemptState.REJECTED,
        AttemptState.FAILED,
    }
)

ALLOWED_TRANSITIONS = {
    AttemptState.PREPARED: frozenset({AttemptState.SIGNED, AttemptState.FAILED}),
    AttemptState.SIGNED: frozenset({AttemptState.BROADCAST, AttemptState.REJECTED}),
    AttemptState.BROADCAST: frozenset({AttemptState.PENDING}),
    AttemptState.PENDING: frozenset(
        {AttemptState.CONFIRMED, AttemptState.REVERTED, AttemptState.TIMED_OUT}
    ),
}


@dataclass
class ExecutionAttempt:
    """One try against one (endpoint, contract) pair.

    ``prepared_call`` and ``gas_quote`` stay empty when the attempt failed
    before the call could be prepared (resolution or estimation).
    """

    endpoint_name: str
    contract_address: str
    prepared_call: Optional[PreparedCall] = None
    gas_quote: Optional[GasQuote] = None
    state: AttemptState = AttemptState.PREPARED
    tx_hash: Optional[str] = None
    nonce: Optional[int] = None
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    error: Optional[ClassifiedError] = None
    history: List[AttemptState] = field(default_factory=lambda: [AttemptState.PREPARED])

    @property
    def terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def broadcast(self) -> bool:
        return self.tx_hash is not None

    def summary(self) -> dict:
        return {
            "endpoint": self.endpoint_name,
            "contract": self.contract_address,
            "state": self.state.value,
            "txHash": self.tx_hash,
            "nonce": self.nonce,
            "blockNumber": self.block_number,
            "gasUsed": self.gas_used,
            "gasLimit": self.gas_quote.buffered if self.gas_quote else None,
            "gasSource": self.gas_quote.source.value if self.gas_quote else None,
            "error": self.error.to_dict() if self.error else None,
        }


@dataclass(frozen=True)
class DemonstrationRecord:
    demonstration_id: str
    explanation: dict
    notes: Tuple[str, ...] = ()
