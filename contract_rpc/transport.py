"""
Default HTTP transport built on httpx.

The transport resolves the logical service name on every attempt, sends the
request with a synchronous ``httpx.Client`` and applies the method's retry
policy. Connection-level errors become ``ConnectionFailure`` and non-2xx
responses become ``RemoteHttpError``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx

from ._internal.rpc_retry import RetryManager
from .exceptions import ConnectionFailure, RemoteHttpError
from .logger import get_logger
from .schemas import RawResponse

if TYPE_CHECKING:
    from ._internal.protocols import ServiceResolverProtocol
    from .config import RetryPolicy
    from .schemas import OutboundRequest

logger = get_logger("TRANSPORT")


class HttpxTransport:
    """
    Sends outbound requests with httpx.

    Args:
        resolver: Turns a service name and path into an absolute URL
        client: Externally owned ``httpx.Client``; it is never closed by the
            transport. When omitted a client is created and owned.
        timeout: Per-attempt timeout in seconds for an owned client
        **client_kwargs: Extra keyword arguments for an owned client

    Example:
        ```python
        transport = HttpxTransport(StaticServiceResolver({"users": "http://localhost:8000"}))
        with ContractClient(transport) as client:
            users = client.create(UserService)
        ```
    """

    def __init__(
        self,
        resolver: ServiceResolverProtocol,
        *,
        client: httpx.Client | None = None,
        timeout: float | None = 30.0,
        **client_kwargs: Any,
    ) -> None:
        self._resolver = resolver
        self._owns_client = client is None
        self._client = client if client is not None else httpx.Client(timeout=timeout, **client_kwargs)

    @property
    def client(self) -> httpx.Client:
        return self._client

    def execute(self, request: OutboundRequest, retry: RetryPolicy) -> RawResponse:
        """
        Dispatch ``request``, retrying according to ``retry``.

        Raises:
            RemoteHttpError: If the last attempt ended with a non-2xx response
            ConnectionFailure: If no response could be obtained
        """
        return RetryManager(retry).call(lambda: self._send_once(request))

    def _send_once(self, request: OutboundRequest) -> RawResponse:
        url = self._resolver.resolve(request.service_name, request.path)
        request.url = url
        logger.debug("Request to service %s: %s %s", request.service_name, request.method.value, url)

        try:
            response = self._client.request(
                request.method.value,
                url,
                content=request.content,
                headers=request.headers,
            )
        except httpx.TransportError as e:
            raise ConnectionFailure(f"Can not reach service '{request.service_name}' at {url}: {e}", e) from e

        headers = dict(response.headers.items())
        if not response.is_success:
            raise RemoteHttpError(response.status_code, headers, response.content, url)

        return RawResponse(status_code=response.status_code, headers=headers, content=response.content)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> HttpxTransport:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
