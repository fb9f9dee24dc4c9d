"""Endpoint health monitor: concurrent chain-identity probes with bounded waits."""

from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional, Tuple
import logging
import math

import requests

from .client import ClientFactory
from .models import EndpointStatus, RPCEndpoint

LOGGER = logging.getLogger("movemint.health")

_TIMEOUT_ERRORS = (requests.exceptions.Timeout, TimeoutError)


class NetworkOutageError(RuntimeError):
    """Raised when no configured endpoint is online for the expected chain."""


def probe(
    endpoints: Iterable[RPCEndpoint],
    expected_chain_id: int,
    client_factory: ClientFactory,
    max_workers: int = 4,
    timeout: float = 8.0,
    time_provider: Optional[Callable[[], str]] = None,
) -> Tuple[RPCEndpoint, ...]:
    """Return every endpoint with its status populated, in configured order.

    Each probe issues ``eth_chainId`` on its own worker. A probe that fails
    for any reason only affects its own endpoint. Probes still running when
    the overall deadline passes are reported as ``Timeout``.
    """
    endpoints = tuple(endpoints)
    if not endpoints:
        return ()

    clock = time_provider or _utc_timestamp
    workers = max(1, min(max_workers, len(endpoints)))
    deadline = timeout * math.ceil(len(endpoints) / workers) + 1.0

    pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="rpc-probe")
    try:
        futures = [
            pool.submit(_probe_one, endpoint, expected_chain_id, client_factory, clock)
            for endpoint in endpoints
        ]
        done, _ = wait(futures, timeout=deadline)
        results = []
        for endpoint, future in zip(endpoints, futures):
            if future in done:
                results.append(future.result())
            else:
                results.append(
                    _mark(endpoint, EndpointStatus.TIMEOUT, clock(), detail="probe deadline exceeded")
                )
    finally:
        pool.shutdown(wait=False, cancel_futures=True)

    LOGGER.info(
        "probed endpoints=%s online=%s",
        len(results),
        sum(1 for endpoint in results if endpoint.online),
    )
    return tuple(results)


def online_endpoints(endpoints: Iterable[RPCEndpoint]) -> Tuple[RPCEndpoint, ...]:
    return tuple(endpoint for endpoint in endpoints if endpoint.online)


def select_endpoint(endpoints: Iterable[RPCEndpoint]) -> RPCEndpoint:
    """First ``Online`` endpoint in configured priority order."""
    for endpoint in endpoints:
        if endpoint.online:
            return endpoint
    raise NetworkOutageError("No configured RPC endpoint is online for the expected chain.")


def _probe_one(
    endpoint: RPCEndpoint,
    expected_chain_id: int,
    client_factory: ClientFactory,
    clock: Callable[[], str],
) -> RPCEndpoint:
    try:
        observed = int(client_factory(endpoint).chain_id())
    except _TIMEOUT_ERRORS as exc:
        LOGGER.warning("probe timeout endpoint=%s", endpoint.name)
        return _mark(endpoint, EndpointStatus.TIMEOUT, clock(), detail=str(exc) or "timeout")
    except Exception as exc:  # isolated per endpoint
        LOGGER.warning("probe failed endpoint=%s error=%s", endpoint.name, type(exc).__name__)
        return _mark(endpoint, EndpointStatus.OFFLINE, clock(), detail=str(exc) or type(exc).__name__)

    if observed != expected_chain_id:
        LOGGER.warning(
            "wrong chain endpoint=%s expected=%s observed=%s",
            endpoint.name,
            expected_chain_id,
            observed,
        )
        return _mark(
            endpoint,
            EndpointStatus.WRONG_CHAIN,
            clock(),
            observed_chain_id=observed,
            detail=f"expected chain {expected_chain_id}, got {observed}",
        )
    return _mark(endpoint, EndpointStatus.ONLINE, clock(), observed_chain_id=observed)


def _mark(
    endpoint: RPCEndpoint,
    status: EndpointStatus,
    checked_at: str,
    observed_chain_id: Optional[int] = None,
    detail: Optional[str] = None,
) -> RPCEndpoint:
    return replace(
        endpoint,
        status=status,
        last_checked_at=checked_at,
        observed_chain_id=observed_chain_id,
        detail=detail,
    )


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()
