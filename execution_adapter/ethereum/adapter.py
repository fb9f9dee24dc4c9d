"""Translate caller intent into validated requests and prepared Ethereum calls."""

from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional, Union
import re

from web3 import Web3

from contracts.models import ContractTarget, normalize_selector, selector_of
from network.models import RPCEndpoint

from .models import PreparedCall, TransactionRequest


class AdapterError(ValueError):
    """Raised when a request cannot be adapted to an Ethereum call."""


_HEX_DATA = re.compile(r"^0x(?:[0-9a-fA-F]{2})*$")
_WEI_PER_ETHER = Decimal(10) ** 18


def build_request(
    to: Optional[str],
    data: Optional[str],
    value: Union[str, int, float, None] = None,
    gas_limit: Union[str, int, None] = None,
    fallback_addresses: Iterable[str] = (),
    required_selectors: Iterable[str] = (),
) -> TransactionRequest:
    """Validate raw inputs; ``value`` is an ether amount, converted to wei."""
    if not to or not data:
        raise AdapterError("Missing required fields: to, data")

    request = TransactionRequest(
        to=to,
        data=data,
        value_wei=parse_ether_value(value),
        gas_limit=_parse_gas_limit(gas_limit),
        fallback_addresses=tuple(fallback_addresses),
        required_selectors=tuple(required_selectors),
    )
    validate_request(request)
    return request


def validate_request(request: TransactionRequest) -> None:
    for address in request.candidate_addresses:
        if not Web3.is_address(address):
            raise AdapterError(f"Invalid target address: {address}")
    if not _HEX_DATA.match(request.data):
        raise AdapterError("Calldata must be an even-length 0x-prefixed hex string.")
    try:
        selector_of(request.data)
        for selector in request.required_selectors:
            normalize_selector(selector)
    except ValueError as exc:
        raise AdapterError(str(exc)) from exc
    if request.value_wei < 0:
        raise AdapterError("Value must be non-negative.")
    if request.gas_limit is not None and request.gas_limit <= 0:
        raise AdapterError("Gas limit must be positive.")


def required_selectors_for(request: TransactionRequest) -> tuple:
    """The called function plus any extra selectors the caller demands."""
    selectors = [selector_of(request.data)]
    for selector in request.required_selectors:
        normalized = normalize_selector(selector)
        if normalized not in selectors:
            selectors.append(normalized)
    return tuple(selectors)


def prepare_call(
    request: TransactionRequest,
    endpoint: RPCEndpoint,
    contract: ContractTarget,
    caller_address: str,
) -> PreparedCall:
    selector = selector_of(request.data)
    return PreparedCall(
        endpoint=endpoint,
        contract=contract,
        function_selector=selector,
        encoded_args=request.data[10:],
        value=request.value_wei,
        caller_address=caller_address,
    )


def parse_ether_value(value: Union[str, int, float, None]) -> int:
    if value is None or value == "":
        return 0
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise AdapterError(f"Invalid value: {value}") from exc
    if not amount.is_finite() or amount < 0:
        raise AdapterError(f"Invalid value: {value}")
    wei = amount * _WEI_PER_ETHER
    if wei != wei.to_integral_value():
        raise AdapterError(f"Value has more precision than 1 wei: {value}")
    return int(wei)


def _parse_gas_limit(value: Union[str, int, None]) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        gas_limit = int(str(value).strip(), 0)
    except ValueError as exc:
        raise AdapterError(f"Invalid gas limit: {value}") from exc
    if gas_limit <= 0:
        raise AdapterError("Gas limit must be positive.")
    return gas_limit
