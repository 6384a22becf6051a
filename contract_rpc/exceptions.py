"""
Exception classes for contract_rpc.

This module defines all custom exceptions raised by the library.
All exceptions inherit from RpcError, which inherits from Exception.
"""

from __future__ import annotations

from typing import Any


class RpcError(Exception):
    """
    Base exception for all RPC-related errors.

    Catching this exception will catch all library-specific errors.
    """


class ContractError(RpcError):
    """
    Raised when a contract declaration or a call against it is invalid.

    This is a caller-side programming error and is never retried. Examples:
    - The contract class is not decorated with @remote_service
    - A method has no @mapping declaration or no return annotation
    - The declared return shape cannot be honored
    - A write verb (POST/PUT/PATCH) was called without exactly one payload
    """


class InternalProcessingError(RpcError):
    """
    Raised when a call could not be completed for reasons the caller cannot fix
    by changing arguments.

    Wraps connection-level transport failures and body decode failures.
    """

    def __init__(self, message: str = "Internal error processing. Retry later") -> None:
        super().__init__(message)


class DecodeError(RpcError):
    """
    Raised by serializers when bytes cannot be decoded into the target type.
    """


class TransportFailure(RpcError):
    """
    Base class for failures reported by a transport.

    A failure either carries the last-seen response (status, headers, body)
    or carries no response data at all (connection-level failure).
    """

    status_code: int | None = None
    headers: dict[str, str] | None = None
    content: bytes | None = None

    @property
    def has_response(self) -> bool:
        return self.status_code is not None


class RemoteHttpError(TransportFailure):
    """
    Raised when the remote service answered with a non-2xx status.

    Carries the status code, headers and raw body of the last response seen
    after all attempts were exhausted.
    """

    def __init__(
        self,
        status_code: int,
        headers: dict[str, str] | None = None,
        content: bytes | None = None,
        url: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.headers = dict(headers or {})
        self.content = content or b""
        self.url = url
        super().__init__(f"Remote service responded with HTTP {status_code} ({url})")

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace") if self.content else ""

    def to_error_dict(self) -> dict[str, Any]:
        return {"status_code": self.status_code, "headers": self.headers, "body": self.text}


class ConnectionFailure(TransportFailure):
    """
    Raised when no response could be obtained at all.

    Host unreachable, connection refused, timeouts and service resolution
    failures all end up here. There is no status, headers or body.
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


class ServiceUnavailableError(ConnectionFailure):
    """
    Raised when a service name cannot be resolved to a reachable address.
    """
