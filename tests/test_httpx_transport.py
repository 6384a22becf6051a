"""
Tests for the httpx transport and its retry behavior.

This test module covers:
- Request translation (verb, URL, headers, body)
- Non-2xx responses and connection errors
- Retries on 5xx and connection failures, none on 4xx
- Per-attempt service resolution
- Client ownership on close
"""

from __future__ import annotations

import httpx
import pytest

from contract_rpc._internal.rpc_retry import RetryManager, _is_retryable
from contract_rpc.config import RetryPolicy
from contract_rpc.discovery import (
    InMemoryServiceRegistry,
    RegistryServiceResolver,
    ServiceInstance,
    StaticServiceResolver,
)
from contract_rpc.exceptions import ConnectionFailure, RemoteHttpError, ServiceUnavailableError
from contract_rpc.schemas import HttpMethod, OutboundRequest
from contract_rpc.transport import HttpxTransport

NO_RETRY = RetryPolicy(enabled=False)
FAST_RETRY = RetryPolicy(max_attempts=3, delay=0.0)


def make_transport(handler) -> HttpxTransport:  # noqa: ANN001
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return HttpxTransport(StaticServiceResolver({"users": "http://users.test/api/"}), client=client)


def make_request(method: HttpMethod = HttpMethod.GET, content: bytes | None = None) -> OutboundRequest:
    return OutboundRequest(
        service_name="users",
        method=method,
        path="/users/42",
        headers={"X-Tenant": "acme", "Content-Type": "application/json"},
        content=content,
    )


# ============================================================================
# Request Translation
# ============================================================================


class TestDispatch:
    """Test a single successful dispatch."""

    def test_request_translation(self) -> None:
        """
        Test what reaches the wire.

        Verifies that:
        - The URL is the resolved base URL joined with the path
        - Verb, headers and body are passed through
        - The request records the URL it was sent to
        """
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, content=b'{"ok":true}', headers={"X-Served-By": "a"})

        transport = make_transport(handler)
        request = make_request(HttpMethod.POST, b'{"name": "x"}')

        response = transport.execute(request, NO_RETRY)

        assert str(seen[0].url) == "http://users.test/api/users/42"
        assert seen[0].method == "POST"
        assert seen[0].headers["x-tenant"] == "acme"
        assert seen[0].content == b'{"name": "x"}'
        assert request.url == "http://users.test/api/users/42"
        assert response.status_code == 201
        assert response.headers["x-served-by"] == "a"
        assert response.content == b'{"ok":true}'

    def test_remote_error(self) -> None:
        transport = make_transport(lambda request: httpx.Response(404, content=b"not found"))

        with pytest.raises(RemoteHttpError) as exc_info:
            transport.execute(make_request(), NO_RETRY)

        assert exc_info.value.status_code == 404
        assert exc_info.value.text == "not found"
        assert exc_info.value.url == "http://users.test/api/users/42"

    def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        transport = make_transport(handler)

        with pytest.raises(ConnectionFailure) as exc_info:
            transport.execute(make_request(), NO_RETRY)

        assert not exc_info.value.has_response
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    def test_unknown_service(self) -> None:
        transport = make_transport(lambda request: httpx.Response(200))
        request = make_request()
        request.service_name = "unknown"

        with pytest.raises(ServiceUnavailableError):
            transport.execute(request, NO_RETRY)


# ============================================================================
# Retries
# ============================================================================


class TestRetries:
    """Test retry behavior driven by the method's policy."""

    def test_retries_server_errors_until_success(self) -> None:
        statuses = iter([503, 502, 200])
        transport = make_transport(lambda request: httpx.Response(next(statuses), content=b"{}"))

        response = transport.execute(make_request(), FAST_RETRY)

        assert response.status_code == 200

    def test_last_response_is_surfaced(self) -> None:
        """When attempts run out the last-seen response data is kept."""
        attempts: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(1)
            return httpx.Response(500, content=f"failure {len(attempts)}".encode())

        transport = make_transport(handler)

        with pytest.raises(RemoteHttpError) as exc_info:
            transport.execute(make_request(), FAST_RETRY)

        assert len(attempts) == 3
        assert exc_info.value.text == "failure 3"

    def test_client_errors_are_not_retried(self) -> None:
        attempts: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(1)
            return httpx.Response(400)

        with pytest.raises(RemoteHttpError):
            make_transport(handler).execute(make_request(), FAST_RETRY)
        assert len(attempts) == 1

    def test_disabled_policy_makes_one_attempt(self) -> None:
        attempts: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(1)
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(ConnectionFailure):
            make_transport(handler).execute(make_request(), RetryPolicy(enabled=False, max_attempts=5))
        assert len(attempts) == 1

    def test_each_attempt_resolves_the_service(self) -> None:
        """A retry may land on another registered instance."""
        registry = InMemoryServiceRegistry()
        registry.register_service(ServiceInstance(service_name="users", host="a.test", port=80))
        registry.register_service(ServiceInstance(service_name="users", host="b.test", port=80))
        hosts: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            hosts.append(request.url.host)
            return httpx.Response(503 if len(hosts) == 1 else 200)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        transport = HttpxTransport(RegistryServiceResolver(registry), client=client)

        transport.execute(make_request(), FAST_RETRY)

        assert hosts == ["a.test", "b.test"]

    @pytest.mark.parametrize(
        ("failure", "expected"),
        [
            (ConnectionFailure("down"), True),
            (ServiceUnavailableError("no instance"), True),
            (RemoteHttpError(500), True),
            (RemoteHttpError(404), False),
            (ValueError("bug"), False),
        ],
    )
    def test_retryable_failures(self, failure: Exception, expected: bool) -> None:
        assert _is_retryable(failure) is expected

    def test_retry_manager(self) -> None:
        calls: list[int] = []

        def flaky() -> str:
            calls.append(1)
            if len(calls) < 2:
                raise ConnectionFailure("flaky")
            return "ok"

        manager = RetryManager(FAST_RETRY)
        assert manager.is_enabled
        assert manager.attempts == 3
        assert manager.call(flaky) == "ok"
        assert len(calls) == 2


# ============================================================================
# Lifecycle
# ============================================================================


class TestClientOwnership:
    """Test which httpx clients the transport closes."""

    def test_external_client_is_left_open(self) -> None:
        client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
        with HttpxTransport(StaticServiceResolver({}), client=client):
            pass
        assert not client.is_closed
        client.close()

    def test_owned_client_is_closed(self) -> None:
        transport = HttpxTransport(StaticServiceResolver({}), timeout=5.0)
        transport.close()
        assert transport.client.is_closed
