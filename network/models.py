"""RPC endpoint models for the health monitor."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class EndpointStatus(Enum):
    UNKNOWN = "Unknown"
    ONLINE = "Online"
    WRONG_CHAIN = "WrongChain"
    TIMEOUT = "Timeout"
    OFFLINE = "Offline"


@dataclass(frozen=True)
class RPCEndpoint:
    name: str
    url: str
    chain_id: int
    status: EndpointStatus = EndpointStatus.UNKNOWN
    last_checked_at: Optional[str] = None
    observed_chain_id: Optional[int] = None
    detail: Optional[str] = None

    @property
    def online(self) -> bool:
        return self.status == EndpointStatus.ONLINE

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "url": self.url,
            "chainId": self.chain_id,
            "status": self.status.value,
            "lastCheckedAt": self.last_checked_at,
            "observedChainId": self.observed_chain_id,
            "detail": self.detail,
        }
