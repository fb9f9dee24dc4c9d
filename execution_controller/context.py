"""Shared, long-lived collaborators for one running service."""

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional
import time

from contracts.resolver import ContractResolver
from execution_adapter.ethereum.executor import TransactionExecutor
from execution_adapter.ethereum.gas import GasEstimator
from network.client import ClientFactory, web3_client_factory
from wallet_core.signer import SignerUnavailableError, TransactionSigner

from .config import Settings, get_settings
from .policy import RetryPolicy


@dataclass
class ExecutionContext:
    settings: Settings
    client_factory: ClientFactory
    resolver: ContractResolver
    gas_estimator: GasEstimator
    policy: RetryPolicy
    signer: Optional[TransactionSigner] = None
    executor: Optional[TransactionExecutor] = None
    signer_error: Optional[str] = None


def build_signer(settings: Settings) -> Optional[TransactionSigner]:
    if settings.signer_private_key:
        return TransactionSigner.from_private_key(settings.signer_private_key)
    if settings.signer_keystore:
        if settings.signer_passphrase is None:
            raise SignerUnavailableError("Keystore configured without MINT_SIGNER_PASSPHRASE.")
        return TransactionSigner.from_keystore(Path(settings.signer_keystore), settings.signer_passphrase)
    return None


def build_context(
    settings: Optional[Settings] = None,
    client_factory: Optional[ClientFactory] = None,
    signer: Optional[TransactionSigner] = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Optional[Callable[[float], None]] = None,
) -> ExecutionContext:
    """Assemble a context; a misconfigured signer is recorded, not raised."""
    settings = settings or get_settings()
    signer_error = None
    if signer is None:
        try:
            signer = build_signer(settings)
        except SignerUnavailableError as exc:
            signer_error = str(exc)

    executor = None
    if signer is not None:
        executor = TransactionExecutor(
            signer,
            chain_id=settings.chain_id,
            receipt_timeout=settings.receipt_timeout_seconds,
            poll_interval=settings.receipt_poll_seconds,
            confirmations=settings.confirmations,
            clock=clock,
            sleep=sleep,
        )

    return ExecutionContext(
        settings=settings,
        client_factory=client_factory or web3_client_factory(settings.rpc_timeout_seconds),
        resolver=ContractResolver(),
        gas_estimator=GasEstimator(settings.gas_buffer_percent, settings.fallback_gas_limit),
        policy=settings.retry_policy(),
        signer=signer,
        executor=executor,
        signer_error=signer_error,
    )
