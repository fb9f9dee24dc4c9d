from .classifier import classify, http_status_for, revert_reason, user_message
from .models import ClassifiedError, ErrorKind

__all__ = [
    "ClassifiedError",
    "ErrorKind",
    "classify",
    "http_status_for",
    "revert_reason",
    "user_message",
]
