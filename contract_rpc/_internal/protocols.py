"""
Protocol definitions for the capabilities the engine consumes.

The call-translation engine never talks HTTP, discovers services or parses
JSON by itself. These protocols describe the seams where those capabilities
are plugged in, so tests and alternative stacks can substitute their own.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..config import RetryPolicy
    from ..schemas import OutboundRequest, RawResponse


@runtime_checkable
class TransportProtocol(Protocol):
    """
    Protocol for request executors.

    Examples
    --------
    >>> class EchoTransport:
    ...     def execute(self, request, retry):
    ...         return RawResponse(status_code=200, content=request.content or b"")
    >>> isinstance(EchoTransport(), TransportProtocol)
    True
    """

    def execute(self, request: OutboundRequest, retry: RetryPolicy) -> RawResponse:
        """
        Dispatch a request, retrying according to ``retry``.

        Returns
        -------
        RawResponse
            The first 2xx response.

        Raises
        ------
        RemoteHttpError
            When all attempts ended with a non-2xx response. Carries the
            last-seen status, headers and body.
        ConnectionFailure
            When no response could be obtained (unreachable host, failed
            service resolution). Carries no response data.
        """
        ...

    def close(self) -> None:
        """Release pooled connections."""
        ...


@runtime_checkable
class ServiceResolverProtocol(Protocol):
    """
    Protocol for turning a logical service name into a dispatchable URL.
    """

    def resolve(self, service_name: str, path: str) -> str:
        """
        Build the absolute URL for ``path`` on one instance of ``service_name``.

        Raises
        ------
        ServiceUnavailableError
            If the service has no known reachable instance.
        """
        ...


@runtime_checkable
class SerializerProtocol(Protocol):
    """
    Protocol for structured serializers.

    ``decode`` must be collection-aware: given ``list[User]`` it returns a
    list of ``User`` instances.
    """

    def encode(self, value: Any) -> bytes:
        ...

    def to_tree(self, value: Any) -> Any:
        """Encode a value into plain dicts, lists and scalars."""
        ...

    def decode(self, data: bytes, target: Any) -> Any:
        ...

    def decode_tree(self, data: bytes) -> Any:
        """Decode bytes into plain dicts, lists and scalars."""
        ...

    def convert(self, tree: Any, target: Any) -> Any:
        """Validate an already decoded tree into ``target``."""
        ...
