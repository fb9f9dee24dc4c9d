from .models import ContractTarget, function_selector, normalize_selector, selector_of
from .resolver import ContractNotFoundError, ContractResolver, SelectorMissingError

__all__ = [
    "ContractNotFoundError",
    "ContractResolver",
    "ContractTarget",
    "SelectorMissingError",
    "function_selector",
    "normalize_selector",
    "selector_of",
]
