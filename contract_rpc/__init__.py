"""
contract_rpc - Declarative HTTP service clients

Describe a remote service as a decorated Python class and get a client that
turns method calls into HTTP requests: path substitution, payload assembly,
header propagation, retries and response reshaping included.
"""

# Protocol definitions
from contract_rpc._internal.protocols import (
    SerializerProtocol,
    ServiceResolverProtocol,
    TransportProtocol,
)

# Engine
from contract_rpc.client import ContractClient

# Configuration classes
from contract_rpc.config import ContractClientConfig, RetryPolicy

# Contract declarations
from contract_rpc.declarations import (
    ContractMethod,
    Header,
    PathVariable,
    PayloadVariable,
    ServiceDeclaration,
    delete,
    get,
    mapping,
    patch,
    post,
    put,
    remote_service,
)

# Service discovery
from contract_rpc.discovery import (
    InMemoryServiceRegistry,
    RegistryServiceResolver,
    ServiceInstance,
    StaticServiceResolver,
)

# Exceptions
from contract_rpc.exceptions import (
    ConnectionFailure,
    ContractError,
    DecodeError,
    InternalProcessingError,
    RemoteHttpError,
    RpcError,
    ServiceUnavailableError,
    TransportFailure,
)

# Header propagation
from contract_rpc.headers import (
    clear_propagated_headers,
    get_propagated_headers,
    propagated_headers,
    remove_propagated_header,
    set_propagated_header,
    snapshot_propagated_headers,
)
from contract_rpc.interceptors import InterceptorChain, LoggingInterceptor, RequestInterceptor

# Logging utilities
from contract_rpc.logger import LoggingModes, get_logger, logging_config

# Request/response schemas
from contract_rpc.schemas import (
    HttpMethod,
    OutboundRequest,
    PayloadMode,
    RawResponse,
    RemoteResponse,
    ReturnShape,
)
from contract_rpc.serializer import PydanticJsonSerializer
from contract_rpc.transport import HttpxTransport

__version__ = "0.1.0"

__all__ = [
    "ConnectionFailure",
    "ContractClient",
    "ContractClientConfig",
    "ContractError",
    "ContractMethod",
    "DecodeError",
    "Header",
    "HttpMethod",
    "HttpxTransport",
    "InMemoryServiceRegistry",
    "InterceptorChain",
    "InternalProcessingError",
    "LoggingInterceptor",
    "LoggingModes",
    "OutboundRequest",
    "PathVariable",
    "PayloadMode",
    "PayloadVariable",
    "PydanticJsonSerializer",
    "RawResponse",
    "RegistryServiceResolver",
    "RemoteHttpError",
    "RemoteResponse",
    "RequestInterceptor",
    "RetryPolicy",
    "ReturnShape",
    "RpcError",
    "SerializerProtocol",
    "ServiceDeclaration",
    "ServiceInstance",
    "ServiceResolverProtocol",
    "ServiceUnavailableError",
    "StaticServiceResolver",
    "TransportFailure",
    "TransportProtocol",
    "clear_propagated_headers",
    "delete",
    "get",
    "get_logger",
    "get_propagated_headers",
    "logging_config",
    "mapping",
    "patch",
    "post",
    "propagated_headers",
    "put",
    "remote_service",
    "remove_propagated_header",
    "set_propagated_header",
    "snapshot_propagated_headers",
]
