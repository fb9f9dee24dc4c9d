"""Gas estimation with a safety buffer and a fixed fallback."""

from typing import Optional
import logging

from failures.classifier import classify
from failures.models import ClassifiedError, ErrorKind
from network.client import RpcClient

from .models import GasQuote, GasSource, PreparedCall

LOGGER = logging.getLogger("movemint.gas")

MIN_BUFFER_PERCENT = 20

# Failures that describe the call or the endpoint rather than the estimator.
_TERMINAL_KINDS = frozenset(
    {
        ErrorKind.REVERTED,
        ErrorKind.INSUFFICIENT_FUNDS,
        ErrorKind.NONCE_CONFLICT,
        ErrorKind.ENDPOINT_UNAVAILABLE,
        ErrorKind.CONTRACT_NOT_FOUND,
    }
)


class GasEstimationError(RuntimeError):
    """Raised when estimation shows the call cannot proceed on this endpoint."""

    def __init__(self, error: ClassifiedError) -> None:
        super().__init__(error.raw_message)
        self.error = error


def buffered_gas(estimated: int, buffer_percent: int) -> int:
    """``estimated * (100 + buffer_percent) / 100`` rounded up."""
    return -(-estimated * (100 + buffer_percent) // 100)


class GasEstimator:
    def __init__(self, buffer_percent: int = MIN_BUFFER_PERCENT, fallback_gas_limit: int = 800_000) -> None:
        if fallback_gas_limit <= 0:
            raise ValueError("Fallback gas limit must be positive.")
        self._buffer_percent = max(buffer_percent, MIN_BUFFER_PERCENT)
        self._fallback_gas_limit = fallback_gas_limit

    @property
    def buffer_percent(self) -> int:
        return self._buffer_percent

    @property
    def fallback_gas_limit(self) -> int:
        return self._fallback_gas_limit

    def estimate(
        self,
        prepared_call: PreparedCall,
        client: RpcClient,
        buffer_percent: Optional[int] = None,
        requested_gas_limit: Optional[int] = None,
    ) -> GasQuote:
        if requested_gas_limit is not None:
            return GasQuote(
                estimated=requested_gas_limit,
                buffered=requested_gas_limit,
                source=GasSource.REQUESTED,
            )

        percent = max(buffer_percent if buffer_percent is not None else self._buffer_percent, MIN_BUFFER_PERCENT)
        try:
            estimated = int(client.estimate_gas(prepared_call.to_transaction()))
        except Exception as exc:
            error = classify(exc)
            if error.kind in _TERMINAL_KINDS:
                LOGGER.info(
                    "estimation failed endpoint=%s contract=%s kind=%s",
                    prepared_call.endpoint.name,
                    prepared_call.contract.address,
                    error.kind.value,
                )
                raise GasEstimationError(error) from exc
            LOGGER.warning(
                "estimation unavailable endpoint=%s kind=%s; using fallback gas=%s",
                prepared_call.endpoint.name,
                error.kind.value,
                self._fallback_gas_limit,
            )
            return GasQuote(
                estimated=self._fallback_gas_limit,
                buffered=self._fallback_gas_limit,
                source=GasSource.FALLBACK_FIXED,
                detail=error.raw_message,
            )

        quote = GasQuote(
            estimated=estimated,
            buffered=buffered_gas(estimated, percent),
            source=GasSource.ESTIMATED,
        )
        LOGGER.debug("estimated gas=%s buffered=%s percent=%s", quote.estimated, quote.buffered, percent)
        return quote
