"""Ambient headers propagated into every outgoing request.

Headers set here are scoped to the current execution context (a thread, or an
asyncio task) using ``contextvars``. Each context starts with an empty set;
values are never shared between threads. The engine reads a snapshot of the
current headers when a call is initiated, on the calling thread, so calls
handed to a worker thread carry the headers as they were at initiation time.
"""

from __future__ import annotations

import contextvars
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from types import MappingProxyType

__all__ = [
    "clear_propagated_headers",
    "get_propagated_headers",
    "propagated_headers",
    "remove_propagated_header",
    "set_propagated_header",
    "snapshot_propagated_headers",
]

_EMPTY: Mapping[str, str] = MappingProxyType({})

# The stored mapping is never mutated; every change publishes a new one.
_headers_ctx: contextvars.ContextVar[Mapping[str, str]] = contextvars.ContextVar(
    "contract_rpc_propagated_headers",
    default=_EMPTY,
)


def get_propagated_headers() -> dict[str, str]:
    """Return a copy of the headers propagated from the current context."""
    return dict(_headers_ctx.get())


def snapshot_propagated_headers() -> Mapping[str, str]:
    """Return an immutable view of the current headers, safe to hand to another thread."""
    return _headers_ctx.get()


def set_propagated_header(name: str, value: str) -> None:
    """Propagate ``name: value`` on every request originated from this context."""
    updated = dict(_headers_ctx.get())
    updated[name] = str(value)
    _headers_ctx.set(MappingProxyType(updated))


def remove_propagated_header(name: str) -> None:
    current = _headers_ctx.get()
    if name in current:
        updated = dict(current)
        del updated[name]
        _headers_ctx.set(MappingProxyType(updated))


def clear_propagated_headers() -> None:
    _headers_ctx.set(_EMPTY)


@contextmanager
def propagated_headers(
    headers: Mapping[str, str] | None = None, **kwargs: str
) -> Iterator[Mapping[str, str]]:
    """
    Temporarily add headers to the current context.

    The previous header set is restored on exit, even if the block raises.

    Example:
        ```python
        with propagated_headers({"X-Tenant": "acme"}):
            users.find("42")  # sent with X-Tenant: acme
        ```
    """
    updated = dict(_headers_ctx.get())
    updated.update(headers or {})
    updated.update(kwargs)
    token = _headers_ctx.set(MappingProxyType(updated))
    try:
        yield _headers_ctx.get()
    finally:
        _headers_ctx.reset(token)
