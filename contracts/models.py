"""Contract target model and selector helpers."""

from dataclasses import dataclass
from typing import FrozenSet
import re

from web3 import Web3

_SELECTOR_PATTERN = re.compile(r"^0x[0-9a-f]{8}$")


@dataclass(frozen=True)
class ContractTarget:
    address: str
    label: str
    bytecode_verified: bool
    supported_functions: FrozenSet[str] = frozenset()

    def supports(self, selectors) -> bool:
        return set(selectors) <= self.supported_functions

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "label": self.label,
            "bytecodeVerified": self.bytecode_verified,
            "supportedFunctions": sorted(self.supported_functions),
        }


def function_selector(signature: str) -> str:
    """Four-byte selector for a signature such as ``mint(address,string)``."""
    compact = signature.replace(" ", "")
    return Web3.to_hex(Web3.keccak(text=compact)[:4])


def normalize_selector(value: str) -> str:
    """Accept either a hex selector or a function signature."""
    candidate = value.strip().lower()
    if _SELECTOR_PATTERN.match(candidate):
        return candidate
    if "(" in candidate and candidate.endswith(")"):
        return function_selector(value.strip())
    raise ValueError(f"Not a function selector or signature: {value}")


def selector_of(data: str) -> str:
    """Selector prefix of encoded calldata."""
    selector = data[:10].lower()
    if not _SELECTOR_PATTERN.match(selector):
        raise ValueError("Calldata must start with a 4-byte function selector.")
    return selector
