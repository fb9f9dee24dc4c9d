from .config import Settings, get_settings, settings_from_env
from .context import ExecutionContext, build_context, build_signer
from .controller import DegradationController, PipelineCancelledError
from .modes import ExecutionMode, ResultStatus, TransactionResult
from .policy import CandidateAction, RetryPolicy

__all__ = [
    "CandidateAction",
    "DegradationController",
    "ExecutionContext",
    "ExecutionMode",
    "PipelineCancelledError",
    "ResultStatus",
    "RetryPolicy",
    "Settings",
    "TransactionResult",
    "build_context",
    "build_signer",
    "get_settings",
    "settings_from_env",
]
