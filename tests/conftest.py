"""
Pytest configuration and shared fixtures for contract_rpc tests.

This module provides:
- Custom pytest markers for test categorization
- A recording fake transport that stands in for the network
- Shared client fixtures
"""

from __future__ import annotations

import json
import threading
from collections import deque
from typing import TYPE_CHECKING, Any

import pytest

from contract_rpc.client import ContractClient
from contract_rpc.config import ContractClientConfig, RetryPolicy
from contract_rpc.schemas import RawResponse

if TYPE_CHECKING:
    from collections.abc import Iterator

    from contract_rpc.schemas import OutboundRequest


def pytest_configure(config: pytest.Config) -> None:
    """
    Register custom pytest markers.

    This function is called during pytest initialization to register
    custom markers that can be used to categorize and filter tests.
    """
    config.addinivalue_line(
        "markers",
        "slow: mark test as slow (retry delays, concurrency tests)",
    )
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test (drives a real HTTP app)",
    )


# ============================================================================
# Fake Transport
# ============================================================================


class RecordingTransport:
    """
    Transport double that records every request and replays queued outcomes.

    Outcomes are consumed in order; each is either a RawResponse to return or
    an exception to raise. When the queue is empty an empty 200 is returned.
    """

    def __init__(self) -> None:
        self.requests: list[OutboundRequest] = []
        self.retry_policies: list[RetryPolicy] = []
        self.threads: list[str] = []
        self.closed = False
        self._outcomes: deque[Any] = deque()
        self._lock = threading.Lock()

    def respond(
        self,
        status_code: int = 200,
        content: bytes = b"",
        headers: dict[str, str] | None = None,
    ) -> RecordingTransport:
        self._outcomes.append(
            RawResponse(status_code=status_code, headers=headers or {}, content=content)
        )
        return self

    def respond_json(self, value: Any, status_code: int = 200) -> RecordingTransport:
        return self.respond(
            status_code,
            json.dumps(value).encode(),
            {"content-type": "application/json"},
        )

    def fail(self, failure: BaseException) -> RecordingTransport:
        self._outcomes.append(failure)
        return self

    def execute(self, request: OutboundRequest, retry: RetryPolicy) -> RawResponse:
        with self._lock:
            self.requests.append(request)
            self.retry_policies.append(retry)
            self.threads.append(threading.current_thread().name)
            outcome = self._outcomes.popleft() if self._outcomes else RawResponse(status_code=200)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def close(self) -> None:
        self.closed = True

    @property
    def last_request(self) -> OutboundRequest:
        assert self.requests, "no request was dispatched"
        return self.requests[-1]

    @property
    def last_json(self) -> Any:
        content = self.last_request.content
        assert content is not None, "last request had no body"
        return json.loads(content)


# ============================================================================
# Shared Fixtures
# ============================================================================


@pytest.fixture
def transport() -> RecordingTransport:
    """Create a fresh recording transport."""
    return RecordingTransport()


@pytest.fixture
def config() -> ContractClientConfig:
    """Default configuration with retries disabled, so failures are immediate."""
    return ContractClientConfig(default_retry=RetryPolicy(enabled=False))


@pytest.fixture
def client(transport: RecordingTransport, config: ContractClientConfig) -> Iterator[ContractClient]:
    """Create a contract client over the recording transport."""
    contract_client = ContractClient(transport, config=config)
    yield contract_client
    contract_client.close()
