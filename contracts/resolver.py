"""Contract resolver: deployed-code and selector checks with a per-endpoint cache."""

from typing import Dict, Iterable, Optional, Tuple
import logging
import threading

from web3 import Web3

from failures.classifier import classify
from failures.models import ErrorKind
from network.client import RpcClient
from network.models import RPCEndpoint

from .models import ContractTarget, normalize_selector

LOGGER = logging.getLogger("movemint.resolver")

# Four zero words: enough for most argument layouts to decode without
# running off the end of calldata.
_PROBE_ARGUMENTS = "00" * 128

_ABSENT_MARKERS = (
    "function selector was not recognized",
    "function not found",
    "unrecognized function",
    "no fallback function",
)

_EMPTY_CODE = ("", "0x", "0x0")


class ContractNotFoundError(LookupError):
    """Raised when a candidate address has no deployed code."""


class SelectorMissingError(LookupError):
    """Raised when deployed code does not expose a required function."""


class ContractResolver:
    """Resolves candidate addresses into verified contract targets.

    Results are cached per (endpoint url, address) for the life of the
    process. Reads are lock-free in effect; writes and invalidations take the
    lock, and a resolution that raced with an invalidation is returned to its
    caller but not cached.
    """

    def __init__(self) -> None:
        self._cache: Dict[Tuple[str, str], ContractTarget] = {}
        self._generations: Dict[Tuple[str, str], int] = {}
        self._lock = threading.Lock()

    def resolve(
        self,
        endpoint: RPCEndpoint,
        client: RpcClient,
        candidate_address: str,
        required_selectors: Iterable[str] = (),
        label: str = "",
        caller_address: Optional[str] = None,
    ) -> ContractTarget:
        if not Web3.is_address(candidate_address):
            raise ValueError(f"Invalid contract address: {candidate_address}")

        key = (endpoint.url, candidate_address.lower())
        required = frozenset(normalize_selector(selector) for selector in required_selectors)

        with self._lock:
            cached = self._cache.get(key)
            generation = self._generations.get(key, 0)
        if cached is not None and cached.supports(required):
            return cached

        code = client.get_code(candidate_address)
        if (code or "").lower() in _EMPTY_CODE:
            LOGGER.info("no code endpoint=%s address=%s", endpoint.name, candidate_address)
            raise ContractNotFoundError(f"no code at address {candidate_address}")

        supported = set(cached.supported_functions) if cached is not None else set()
        for selector in sorted(required - supported):
            if not self._selector_present(client, candidate_address, selector, caller_address):
                LOGGER.info(
                    "selector absent endpoint=%s address=%s selector=%s",
                    endpoint.name,
                    candidate_address,
                    selector,
                )
                raise SelectorMissingError(
                    f"function not found: selector {selector} on {candidate_address}"
                )
            supported.add(selector)

        target = ContractTarget(
            address=Web3.to_checksum_address(candidate_address),
            label=label or (cached.label if cached is not None else ""),
            bytecode_verified=True,
            supported_functions=frozenset(supported),
        )
        with self._lock:
            if self._generations.get(key, 0) == generation:
                self._cache[key] = target
        LOGGER.info(
            "resolved endpoint=%s address=%s selectors=%s",
            endpoint.name,
            target.address,
            ",".join(sorted(supported)),
        )
        return target

    def invalidate(self, endpoint_url: str, address: str) -> bool:
        key = (endpoint_url, address.lower())
        with self._lock:
            self._generations[key] = self._generations.get(key, 0) + 1
            removed = self._cache.pop(key, None)
        if removed is not None:
            LOGGER.info("invalidated endpoint=%s address=%s", endpoint_url, address)
        return removed is not None

    def cached(self, endpoint_url: str, address: str) -> Optional[ContractTarget]:
        with self._lock:
            return self._cache.get((endpoint_url, address.lower()))

    def _selector_present(
        self,
        client: RpcClient,
        address: str,
        selector: str,
        caller_address: Optional[str],
    ) -> bool:
        transaction: Dict[str, object] = {"to": address, "data": selector + _PROBE_ARGUMENTS}
        if caller_address:
            transaction["from"] = caller_address
        try:
            client.call(transaction)
        except Exception as exc:
            error = classify(exc)
            text = error.raw_message.lower()
            if any(marker in text for marker in _ABSENT_MARKERS):
                return False
            if error.kind == ErrorKind.REVERTED:
                # Implemented but rejected the garbage arguments.
                return True
            if error.kind == ErrorKind.ENDPOINT_UNAVAILABLE:
                raise
            return False
        return True
