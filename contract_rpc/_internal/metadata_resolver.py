"""
Metadata resolution for contract methods.

This module turns the static declarations attached by ``@remote_service`` and
``@mapping`` into immutable ``CallDescriptor`` objects. Descriptors are built
once per method and cached; every later call reads the cached snapshot.
"""

from __future__ import annotations

import inspect
import threading
import types
from collections.abc import Collection, Mapping, MutableMapping, MutableSequence, Sequence
from collections.abc import Set as AbstractSet
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any, TypeVar, Union, get_args, get_origin, get_type_hints

from ..config import RetryPolicy
from ..declarations import (
    Header,
    ParameterTag,
    PathVariable,
    PayloadVariable,
    get_contract_method,
    get_service_declaration,
)
from ..exceptions import ContractError
from ..logger import get_logger
from ..schemas import HttpMethod, PayloadMode, RemoteResponse, ReturnShape

logger = get_logger("METADATA_RESOLVER")

NoneType = type(None)

COLLECTION_TYPES = (list, set, frozenset, tuple)
COLLECTION_ORIGINS = (
    list,
    set,
    frozenset,
    tuple,
    Sequence,
    MutableSequence,
    AbstractSet,
    Collection,
)
MAPPING_ORIGINS = (dict, Mapping, MutableMapping)
UNION_ORIGINS = (Union, types.UnionType)


class ParameterKind(str, Enum):
    PATH = "path"
    PAYLOAD = "payload"
    HEADER = "header"
    FREE = "free"


@dataclass(frozen=True)
class ParameterBinding:
    """
    How one declared parameter feeds into the request.

    Attributes:
        name: Parameter name in the contract method signature
        kind: Which part of the request the argument is routed to
        key: Placeholder key, dotted payload path or header name
            (None for free parameters)
    """

    name: str
    kind: ParameterKind
    key: str | None = None


@dataclass(frozen=True)
class CallDescriptor:
    """
    Cached, resolved routing and shape metadata for one contract method.

    Built exactly once per method and immutable thereafter, so it can be read
    concurrently without synchronization.
    """

    contract: type
    name: str
    service_name: str
    method: HttpMethod
    path_template: str
    return_type: Any
    return_shape: ReturnShape
    inner_type: Any
    payload_mode: PayloadMode
    retry: RetryPolicy
    convert_response_to_map: bool
    return_path: str | None
    parameters: tuple[ParameterBinding, ...]
    signature: inspect.Signature

    @property
    def qualified_name(self) -> str:
        return f"{self.contract.__qualname__}.{self.name}"

    def bindings_of(self, kind: ParameterKind) -> list[ParameterBinding]:
        return [binding for binding in self.parameters if binding.kind is kind]


def _strip_annotated(annotation: Any) -> Any:
    while get_origin(annotation) is Annotated:
        annotation = get_args(annotation)[0]
    return annotation


def _check_inner_type(annotation: Any, outer: str) -> None:
    inner = _strip_annotated(annotation)
    if isinstance(inner, TypeVar):
        raise ContractError(f"{outer} of an unbound type variable is not supported")
    origin = get_origin(inner)
    if inner is Future or origin is Future:
        raise ContractError(f"Future cannot be nested inside {outer}")
    if inner is RemoteResponse or origin is RemoteResponse:
        raise ContractError(f"RemoteResponse cannot be nested inside {outer}")


def classify_return_type(annotation: Any) -> tuple[ReturnShape, Any]:
    """
    Classify a declared return annotation into a return shape.

    Returns:
        Tuple of (shape, inner type). The inner type is what the body is
        decoded into, or None when the shape never decodes (void, raw bytes,
        a Future without a type argument).

    Raises:
        ContractError: If the annotation is missing or cannot be honored.

    Example:
        ```python
        classify_return_type(Optional[list[User]])  # -> (OPTIONAL, list[User])
        classify_return_type(Future[User])          # -> (ASYNC, User)
        classify_return_type(dict[str, Any])        # -> (MAP, dict[str, Any])
        ```
    """
    if annotation is inspect.Signature.empty:
        raise ContractError("Contract methods must declare a return type")

    annotation = _strip_annotated(annotation)

    if annotation is None or annotation is NoneType:
        return ReturnShape.VOID, None

    if annotation is bytes:
        return ReturnShape.RAW_BYTES, None

    if isinstance(annotation, TypeVar):
        raise ContractError(f"Cannot decode into unbound type variable {annotation!r}")

    origin = get_origin(annotation)
    args = get_args(annotation)

    if origin in UNION_ORIGINS:
        members = [arg for arg in args if arg is not NoneType]
        if len(members) != 1 or len(members) == len(args):
            raise ContractError(
                f"Unsupported return type {annotation!r}: only Optional[T] unions are allowed"
            )
        _check_inner_type(members[0], "Optional")
        return ReturnShape.OPTIONAL, members[0]

    if annotation is Future or origin is Future:
        if not args or args[0] is None or args[0] is NoneType:
            return ReturnShape.ASYNC, None
        _check_inner_type(args[0], "Future")
        return ReturnShape.ASYNC, args[0]

    if annotation is RemoteResponse or origin is RemoteResponse:
        inner = args[0] if args else None
        if inner is not None:
            _check_inner_type(inner, "RemoteResponse")
        return ReturnShape.PASS_THROUGH, inner

    if origin in MAPPING_ORIGINS and len(args) == 2 and args[0] is str and args[1] is Any:
        return ReturnShape.MAP, annotation

    if annotation in COLLECTION_TYPES or origin in COLLECTION_ORIGINS:
        return ReturnShape.COLLECTION, annotation

    return ReturnShape.PLAIN, annotation


def _parameter_tag(name: str, hint: Any) -> PathVariable | PayloadVariable | Header | None:
    if get_origin(hint) is not Annotated:
        return None
    tags = [meta for meta in hint.__metadata__ if isinstance(meta, ParameterTag)]
    if len(tags) > 1:
        raise ContractError(
            f"Parameter '{name}' can carry only one of PathVariable, PayloadVariable or Header"
        )
    return tags[0] if tags else None


def _bind_parameter(parameter: inspect.Parameter, hint: Any) -> ParameterBinding:
    if parameter.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
        raise ContractError(
            f"Contract methods cannot declare *args or **kwargs ('{parameter.name}')"
        )
    tag = _parameter_tag(parameter.name, hint)
    if isinstance(tag, PathVariable):
        return ParameterBinding(parameter.name, ParameterKind.PATH, tag.key)
    if isinstance(tag, PayloadVariable):
        return ParameterBinding(parameter.name, ParameterKind.PAYLOAD, tag.path or parameter.name)
    if isinstance(tag, Header):
        return ParameterBinding(parameter.name, ParameterKind.HEADER, tag.name)
    return ParameterBinding(parameter.name, ParameterKind.FREE)


class MetadataResolver:
    """
    Builds and caches call descriptors, keyed by (contract class, method name).

    The cache tolerates concurrent first access: building happens under a lock
    with a second lookup, so exactly one descriptor is published per method
    and later lookups never re-read the declarations.

    Args:
        default_retry: Retry policy for methods that do not declare one.
    """

    def __init__(self, default_retry: RetryPolicy | None = None) -> None:
        self._default_retry = default_retry or RetryPolicy()
        self._descriptors: dict[tuple[type, str], CallDescriptor] = {}
        self._lock = threading.Lock()
        # Number of descriptors actually built (not served from cache)
        self.build_count = 0

    def __len__(self) -> int:
        return len(self._descriptors)

    def resolve(self, contract: type, name: str) -> CallDescriptor:
        """
        Return the descriptor of ``contract.name``, building it on first use.

        Raises:
            ContractError: If the contract or the method lacks its routing
                declaration, or the declared return shape is unsupported.
        """
        key = (contract, name)
        descriptor = self._descriptors.get(key)
        if descriptor is not None:
            return descriptor

        with self._lock:
            # Double-check after acquiring lock
            descriptor = self._descriptors.get(key)
            if descriptor is None:
                descriptor = self._build(contract, name)
                self._descriptors[key] = descriptor
                self.build_count += 1
        return descriptor

    def clear(self) -> None:
        """Drop all cached descriptors (for testing)."""
        with self._lock:
            self._descriptors.clear()

    def _build(self, contract: type, name: str) -> CallDescriptor:
        service = get_service_declaration(contract)
        if service is None:
            raise ContractError(
                f"{contract.__qualname__} must be decorated with @remote_service"
            )

        func = getattr(contract, name, None)
        record = get_contract_method(func)
        if func is None or record is None:
            raise ContractError(
                f"{contract.__qualname__}.{name} is not declared with @mapping"
            )

        try:
            hints = get_type_hints(func, include_extras=True)
        except Exception as e:
            raise ContractError(
                f"Cannot resolve type annotations of {contract.__qualname__}.{name}: {e}"
            ) from e

        signature = inspect.signature(func)
        parameters = list(signature.parameters.values())
        # first parameter is the contract instance
        bound_parameters = parameters[1:]

        bindings = tuple(
            _bind_parameter(parameter, hints.get(parameter.name, parameter.annotation))
            for parameter in bound_parameters
        )

        return_annotation = hints.get("return", inspect.Signature.empty)
        try:
            shape, inner_type = classify_return_type(return_annotation)
        except ContractError as e:
            raise ContractError(f"{contract.__qualname__}.{name}: {e}") from e

        if any(binding.kind is ParameterKind.PAYLOAD for binding in bindings):
            payload_mode = PayloadMode.MERGED_TREE
        elif record.method.is_write:
            payload_mode = PayloadMode.SINGLE_ARGUMENT
        else:
            payload_mode = PayloadMode.NONE

        descriptor = CallDescriptor(
            contract=contract,
            name=name,
            service_name=service.name,
            method=record.method,
            path_template=record.path,
            return_type=return_annotation,
            return_shape=shape,
            inner_type=inner_type,
            payload_mode=payload_mode,
            retry=record.retry or self._default_retry,
            convert_response_to_map=record.convert_response_to_map,
            return_path=record.return_path,
            parameters=bindings,
            signature=signature.replace(parameters=bound_parameters),
        )
        logger.debug(
            "Resolved %s -> %s %s (service=%s, shape=%s, payload=%s)",
            descriptor.qualified_name,
            descriptor.method.value,
            descriptor.path_template,
            descriptor.service_name,
            descriptor.return_shape.value,
            descriptor.payload_mode.value,
        )
        return descriptor
