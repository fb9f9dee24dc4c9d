from .client import ClientFactory, RpcClient, Web3RpcClient, web3_client_factory
from .health import NetworkOutageError, online_endpoints, probe, select_endpoint
from .models import EndpointStatus, RPCEndpoint

__all__ = [
    "ClientFactory",
    "EndpointStatus",
    "NetworkOutageError",
    "RPCEndpoint",
    "RpcClient",
    "Web3RpcClient",
    "online_endpoints",
    "probe",
    "select_endpoint",
    "web3_client_factory",
]
