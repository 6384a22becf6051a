"""
Declaration surface for remote service contracts.

A contract is a plain class whose methods describe remote operations. The
class is marked with ``@remote_service`` and each remote method with
``@mapping`` (or one of the verb shortcuts). Parameters are tagged with
``typing.Annotated`` markers. Nothing here performs a call: the decorators
only attach immutable records that the metadata resolver reads once.

Example:
    ```python
    @remote_service("users")
    class UsersApi:
        @get("/users/{id}")
        def find(self, user_id: Annotated[str, PathVariable("id")]) -> User: ...

        @post("/users")
        def create(self, user: User) -> User: ...

        @put("/users/{id}/profile")
        def rename(
            self,
            user_id: Annotated[str, PathVariable("id")],
            first: Annotated[str, PayloadVariable("profile.firstname")],
            last: Annotated[str, PayloadVariable("profile.lastname")],
        ) -> None: ...
    ```
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

from .exceptions import ContractError
from .schemas import HttpMethod

if TYPE_CHECKING:
    from collections.abc import Callable

    from .config import RetryPolicy

F = TypeVar("F", bound="Callable[..., Any]")
C = TypeVar("C", bound=type)

# Attribute names the records are stored under
SERVICE_ATTR = "__remote_service__"
MAPPING_ATTR = "__remote_mapping__"


@dataclass(frozen=True)
class PathVariable:
    """Substitute the argument into the ``{key}`` placeholder of the path."""

    key: str

    def __post_init__(self) -> None:
        if not self.key:
            raise ContractError("PathVariable key must not be empty")


@dataclass(frozen=True)
class PayloadVariable:
    """
    Graft the argument into the merged request body.

    ``path`` is a dotted location inside the body (``"profile.name"``). When
    empty, the parameter name is used as a top-level key.
    """

    path: str = ""


@dataclass(frozen=True)
class Header:
    """Send the argument as the value of the named request header."""

    name: str

    def __post_init__(self) -> None:
        if not self.name:
            raise ContractError("Header name must not be empty")


ParameterTag = (PathVariable, PayloadVariable, Header)


@dataclass(frozen=True)
class ServiceDeclaration:
    """Record attached to a contract class by @remote_service."""

    name: str


@dataclass(frozen=True)
class ContractMethod:
    """
    Routing metadata attached to a contract method by @mapping.

    Immutable once declared; the engine never mutates it.
    """

    path: str = "/"
    method: HttpMethod = HttpMethod.GET
    retry: RetryPolicy | None = None
    convert_response_to_map: bool = False
    return_path: str | None = None


def remote_service(name: str) -> Callable[[C], C]:
    """
    Mark a class as a remote service contract.

    Args:
        name: Logical name of the remote service, resolved to an address by
            the transport's service resolver.
    """
    if not name:
        raise ContractError("Remote service name must not be empty")

    def decorator(cls: C) -> C:
        if not isinstance(cls, type):
            raise ContractError(f"@remote_service expects a class, got {cls!r}")
        setattr(cls, SERVICE_ATTR, ServiceDeclaration(name=name))
        return cls

    return decorator


def mapping(
    path: str = "/",
    method: HttpMethod | str = HttpMethod.GET,
    *,
    retry: RetryPolicy | None = None,
    convert_response_to_map: bool = False,
    return_path: str | None = None,
) -> Callable[[F], F]:
    """
    Declare a contract method as a remote operation.

    Args:
        path: Path template with ``{name}`` placeholders.
        method: HTTP verb.
        retry: Retry policy for this method. None uses the client default.
        convert_response_to_map: Honor a ``dict[str, Any]`` return annotation
            by decoding the body into a plain mapping.
        return_path: Dotted path of the sub-tree of the response body to
            return instead of the whole body.
    """
    try:
        verb = HttpMethod(method.upper() if isinstance(method, str) else method)
    except ValueError as e:
        raise ContractError(f"Unknown HTTP method: {method!r}") from e

    record = ContractMethod(
        path=path or "/",
        method=verb,
        retry=retry,
        convert_response_to_map=convert_response_to_map,
        return_path=return_path or None,
    )

    def decorator(func: F) -> F:
        if not callable(func):
            raise ContractError(f"@mapping expects a function, got {func!r}")
        setattr(func, MAPPING_ATTR, record)
        return func

    return decorator


def get(path: str = "/", **kwargs: Any) -> Callable[[F], F]:
    return mapping(path, HttpMethod.GET, **kwargs)


def post(path: str = "/", **kwargs: Any) -> Callable[[F], F]:
    return mapping(path, HttpMethod.POST, **kwargs)


def put(path: str = "/", **kwargs: Any) -> Callable[[F], F]:
    return mapping(path, HttpMethod.PUT, **kwargs)


def patch(path: str = "/", **kwargs: Any) -> Callable[[F], F]:
    return mapping(path, HttpMethod.PATCH, **kwargs)


def delete(path: str = "/", **kwargs: Any) -> Callable[[F], F]:
    return mapping(path, HttpMethod.DELETE, **kwargs)


def get_service_declaration(cls: type) -> ServiceDeclaration | None:
    declaration = getattr(cls, SERVICE_ATTR, None)
    return declaration if isinstance(declaration, ServiceDeclaration) else None


def get_contract_method(func: Any) -> ContractMethod | None:
    record = getattr(func, MAPPING_ATTR, None)
    return record if isinstance(record, ContractMethod) else None


def mapped_method_names(cls: type) -> list[str]:
    """Names of all methods of ``cls`` (including inherited ones) carrying @mapping."""
    names = []
    for name in dir(cls):
        if name.startswith("__"):
            continue
        if get_contract_method(getattr(cls, name, None)) is not None:
            names.append(name)
    return names
