"""Environment-driven settings for the execution pipeline."""

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Mapping, Optional, Tuple
import os

from network.models import RPCEndpoint

from .policy import RetryPolicy

DEFAULT_CHAIN_ID = 1315
DEFAULT_EXPLORER_URL = "https://aeneid.storyscan.io"
DEFAULT_RPC_ENDPOINTS = (
    ("aeneid-primary", "https://aeneid.storyrpc.io"),
    ("aeneid-fallback", "https://rpc.aeneid.testnet.story.foundation"),
)

MIN_RPC_TIMEOUT = 5.0
MAX_RPC_TIMEOUT = 10.0

_TRUE_VALUES = {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True)
class Settings:
    rpc_endpoints: Tuple[Tuple[str, str], ...] = DEFAULT_RPC_ENDPOINTS
    contract_addresses: Tuple[Tuple[str, str], ...] = ()
    required_selectors: Tuple[str, ...] = ()
    chain_id: int = DEFAULT_CHAIN_ID
    explorer_url: str = DEFAULT_EXPLORER_URL
    gas_buffer_percent: int = 20
    fallback_gas_limit: int = 800_000
    confirmations: int = 1
    receipt_timeout_seconds: float = 120.0
    receipt_poll_seconds: float = 2.0
    rpc_timeout_seconds: float = 8.0
    probe_workers: int = 4
    nonce_retries: int = 1
    congestion_bump_percent: int = 20
    demonstration_enabled: bool = True
    log_level: str = "INFO"
    signer_private_key: Optional[str] = field(default=None, repr=False)
    signer_keystore: Optional[str] = None
    signer_passphrase: Optional[str] = field(default=None, repr=False)

    @property
    def signer_configured(self) -> bool:
        return bool(self.signer_private_key or self.signer_keystore)

    def endpoints(self) -> Tuple[RPCEndpoint, ...]:
        return tuple(
            RPCEndpoint(name=name, url=url, chain_id=self.chain_id) for name, url in self.rpc_endpoints
        )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            nonce_retries=self.nonce_retries,
            congestion_bump_percent=self.congestion_bump_percent,
            demonstration_enabled=self.demonstration_enabled,
        )

    def explorer_tx_url(self, tx_hash: Optional[str]) -> Optional[str]:
        if not tx_hash or not self.explorer_url:
            return None
        return f"{self.explorer_url.rstrip('/')}/tx/{tx_hash}"

    def contract_label(self, address: str) -> str:
        for label, configured in self.contract_addresses:
            if configured.lower() == address.lower():
                return label
        return ""

    def fallback_addresses_for(self, to: str) -> Tuple[str, ...]:
        """Configured contracts after ``to``, only when ``to`` is one of them."""
        configured = [address for _, address in self.contract_addresses]
        if to.lower() not in {address.lower() for address in configured}:
            return ()
        return tuple(address for address in configured if address.lower() != to.lower())


def settings_from_env(environ: Mapping[str, str]) -> Settings:
    rpc_endpoints = _parse_pairs(environ.get("MINT_RPC_ENDPOINTS", ""), "rpc") or DEFAULT_RPC_ENDPOINTS
    timeout = _float(environ, "MINT_RPC_TIMEOUT_SECONDS", 8.0)

    return Settings(
        rpc_endpoints=rpc_endpoints,
        contract_addresses=_parse_pairs(environ.get("MINT_CONTRACT_ADDRESSES", ""), "contract"),
        required_selectors=_parse_list(environ.get("MINT_REQUIRED_SELECTORS", "")),
        chain_id=_int(environ, "MINT_CHAIN_ID", DEFAULT_CHAIN_ID),
        explorer_url=environ.get("MINT_EXPLORER_URL", DEFAULT_EXPLORER_URL).strip(),
        gas_buffer_percent=_int(environ, "MINT_GAS_BUFFER_PERCENT", 20),
        fallback_gas_limit=_int(environ, "MINT_FALLBACK_GAS_LIMIT", 800_000),
        confirmations=max(_int(environ, "MINT_CONFIRMATIONS", 1), 1),
        receipt_timeout_seconds=_float(environ, "MINT_RECEIPT_TIMEOUT_SECONDS", 120.0),
        receipt_poll_seconds=_float(environ, "MINT_RECEIPT_POLL_SECONDS", 2.0),
        rpc_timeout_seconds=min(max(timeout, MIN_RPC_TIMEOUT), MAX_RPC_TIMEOUT),
        probe_workers=max(_int(environ, "MINT_PROBE_WORKERS", 4), 1),
        nonce_retries=max(_int(environ, "MINT_NONCE_RETRIES", 1), 0),
        congestion_bump_percent=max(_int(environ, "MINT_CONGESTION_BUMP_PERCENT", 20), 0),
        demonstration_enabled=_bool(environ, "MINT_DEMONSTRATION_ENABLED", True),
        log_level=environ.get("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        signer_private_key=environ.get("MINT_SIGNER_PRIVATE_KEY") or None,
        signer_keystore=environ.get("MINT_SIGNER_KEYSTORE") or None,
        signer_passphrase=environ.get("MINT_SIGNER_PASSPHRASE") or None,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return settings_from_env(os.environ)


def _parse_pairs(raw: str, prefix: str) -> Tuple[Tuple[str, str], ...]:
    """``name=value`` items; bare values get a positional name."""
    pairs = []
    for index, item in enumerate(_parse_list(raw), start=1):
        name, sep, value = item.partition("=")
        if sep and not value.strip():
            raise ValueError(f"Empty value in configuration entry: {item}")
        if sep:
            pairs.append((name.strip(), value.strip()))
        else:
            pairs.append((f"{prefix}-{index}", item))
    return tuple(pairs)


def _parse_list(raw: str) -> Tuple[str, ...]:
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _int(environ: Mapping[str, str], name: str, default: int) -> int:
    value = environ.get(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}.") from exc


def _float(environ: Mapping[str, str], name: str, default: float) -> float:
    value = environ.get(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {value!r}.") from exc


def _bool(environ: Mapping[str, str], name: str, default: bool) -> bool:
    value = environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES
