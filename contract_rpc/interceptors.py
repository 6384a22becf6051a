"""
Request interceptors observing the lifecycle of every contract call.

Interceptors are side-effect-only observers. They may inspect and mutate the
header set, the outbound request and the raw response in place, but they do
not change control flow. An exception raised by an interceptor is a defect
in the interceptor and propagates to the caller untouched.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from .logger import get_logger

if TYPE_CHECKING:
    from .schemas import HttpMethod, OutboundRequest, RawResponse, ReturnShape

logger = get_logger("INTERCEPTORS")


class RequestInterceptor:
    """
    Base class for interceptors. Override only the hooks you need.

    Hooks fire in this order for a single call, on the thread executing the
    call (a worker thread for calls returning a Future):
    ``before_build`` → ``before_send`` → ``after_send``.

    Example:
        ```python
        class TenantInterceptor(RequestInterceptor):
            def before_build(self, service_name, path_template, method, return_shape, headers):
                headers["X-Tenant"] = current_tenant()
        ```
    """

    def before_build(
        self,
        service_name: str,
        path_template: str,
        method: HttpMethod,
        return_shape: ReturnShape,
        headers: dict[str, str],
    ) -> None:
        """Called with the header set before the request object is built."""

    def before_send(
        self,
        service_name: str,
        path_template: str,
        method: HttpMethod,
        request: OutboundRequest,
        return_shape: ReturnShape,
    ) -> None:
        """Called with the built request right before it is dispatched."""

    def after_send(
        self,
        service_name: str,
        path_template: str,
        method: HttpMethod,
        request: OutboundRequest,
        response: RawResponse,
        return_shape: ReturnShape,
    ) -> None:
        """Called with the raw response of a successful dispatch."""


class InterceptorChain:
    """
    Ordered list of interceptors, invoked in registration order.
    """

    def __init__(self, interceptors: Iterable[RequestInterceptor] | None = None) -> None:
        self._interceptors: list[RequestInterceptor] = list(interceptors or [])

    def add(self, interceptor: RequestInterceptor) -> None:
        self._interceptors.append(interceptor)

    def __len__(self) -> int:
        return len(self._interceptors)

    def __iter__(self):
        # iterate over a copy so registration during a call is not observed mid-chain
        return iter(list(self._interceptors))

    def before_build(
        self,
        service_name: str,
        path_template: str,
        method: HttpMethod,
        return_shape: ReturnShape,
        headers: dict[str, str],
    ) -> None:
        for interceptor in self:
            interceptor.before_build(service_name, path_template, method, return_shape, headers)

    def before_send(
        self,
        service_name: str,
        path_template: str,
        method: HttpMethod,
        request: OutboundRequest,
        return_shape: ReturnShape,
    ) -> None:
        for interceptor in self:
            interceptor.before_send(service_name, path_template, method, request, return_shape)

    def after_send(
        self,
        service_name: str,
        path_template: str,
        method: HttpMethod,
        request: OutboundRequest,
        response: RawResponse,
        return_shape: ReturnShape,
    ) -> None:
        for interceptor in self:
            interceptor.after_send(
                service_name, path_template, method, request, response, return_shape
            )


class LoggingInterceptor(RequestInterceptor):
    """
    Interceptor logging every dispatched request and its response status.
    """

    def before_send(
        self,
        service_name: str,
        path_template: str,
        method: HttpMethod,
        request: OutboundRequest,
        return_shape: ReturnShape,
    ) -> None:
        logger.info("-> %s %s%s", method.value, service_name, request.path)

    def after_send(
        self,
        service_name: str,
        path_template: str,
        method: HttpMethod,
        request: OutboundRequest,
        response: RawResponse,
        return_shape: ReturnShape,
    ) -> None:
        logger.info(
            "<- %s %s%s [%d, %d bytes]",
            method.value,
            service_name,
            request.path,
            response.status_code,
            len(response.content),
        )
