from .adapter import (
    AdapterError,
    build_request,
    parse_ether_value,
    prepare_call,
    required_selectors_for,
    validate_request,
)
from .executor import InvalidTransitionError, TransactionExecutor, advance, fail, wait_for_receipt
from .gas import GasEstimationError, GasEstimator, buffered_gas
from .models import (
    AttemptState,
    DemonstrationRecord,
    ExecutionAttempt,
    GasQuote,
    GasSource,
    PreparedCall,
    TransactionRequest,
)
from .simulator import demonstrate

__all__ = [
    "AdapterError",
    "AttemptState",
    "DemonstrationRecord",
    "ExecutionAttempt",
    "GasEstimationError",
    "GasEstimator",
    "GasQuote",
    "GasSource",
    "InvalidTransitionError",
    "PreparedCall",
    "TransactionExecutor",
    "TransactionRequest",
    "advance",
    "build_request",
    "buffered_gas",
    "demonstrate",
    "fail",
    "parse_ether_value",
    "prepare_call",
    "required_selectors_for",
    "validate_request",
    "wait_for_receipt",
]
