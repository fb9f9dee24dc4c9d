"""JSON-RPC client surface consumed by the execution pipeline."""

from typing import Callable, Dict, Optional, Protocol

from web3 import Web3
from web3.exceptions import TransactionNotFound

from .models import RPCEndpoint


class RpcClient(Protocol):
    def chain_id(self) -> int:
        ...

    def get_code(self, address: str) -> str:
        ...

    def call(self, transaction: Dict[str, object]) -> str:
        ...

    def estimate_gas(self, transaction: Dict[str, object]) -> int:
        ...

    def get_transaction_count(self, address: str) -> int:
        ...

    def gas_price(self) -> int:
        ...

    def get_balance(self, address: str) -> int:
        ...

    def send_raw_transaction(self, raw_transaction: bytes) -> str:
        ...

    def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, int]]:
        ...

    def block_number(self) -> int:
        ...


ClientFactory = Callable[[RPCEndpoint], RpcClient]


class Web3RpcClient:
    """RpcClient over web3's HTTP provider with a bounded request timeout.

    The provider's own exception retries are switched off: each call waits at
    most ``timeout`` seconds, and a raw transaction is posted exactly once.
    """

    def __init__(self, url: str, timeout: float = 8.0, web3: Optional[Web3] = None) -> None:
        self._url = url
        self._web3 = web3 or Web3(
            Web3.HTTPProvider(
                url,
                request_kwargs={"timeout": timeout},
                exception_retry_configuration=None,
            )
        )

    @property
    def url(self) -> str:
        return self._url

    def chain_id(self) -> int:
        return int(self._web3.eth.chain_id)

    def get_code(self, address: str) -> str:
        code = self._web3.eth.get_code(Web3.to_checksum_address(address))
        return Web3.to_hex(code)

    def call(self, transaction: Dict[str, object]) -> str:
        result = self._web3.eth.call(_checksummed(transaction), "latest")
        return Web3.to_hex(result)

    def estimate_gas(self, transaction: Dict[str, object]) -> int:
        return int(self._web3.eth.estimate_gas(_checksummed(transaction)))

    def get_transaction_count(self, address: str) -> int:
        return int(
            self._web3.eth.get_transaction_count(Web3.to_checksum_address(address), "pending")
        )

    def gas_price(self) -> int:
        return int(self._web3.eth.gas_price)

    def get_balance(self, address: str) -> int:
        return int(self._web3.eth.get_balance(Web3.to_checksum_address(address)))

    def send_raw_transaction(self, raw_transaction: bytes) -> str:
        return Web3.to_hex(self._web3.eth.send_raw_transaction(raw_transaction))

    def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, int]]:
        try:
            receipt = self._web3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        return {
            "status": int(receipt["status"]),
            "blockNumber": int(receipt["blockNumber"]),
            "gasUsed": int(receipt["gasUsed"]),
        }

    def block_number(self) -> int:
        return int(self._web3.eth.block_number)


def web3_client_factory(timeout: float = 8.0) -> ClientFactory:
    def factory(endpoint: RPCEndpoint) -> RpcClient:
        return Web3RpcClient(endpoint.url, timeout=timeout)

    return factory


def _checksummed(transaction: Dict[str, object]) -> Dict[str, object]:
    converted = dict(transaction)
    for key in ("from", "to"):
        value = converted.get(key)
        if isinstance(value, str) and value:
            converted[key] = Web3.to_checksum_address(value)
    return converted
