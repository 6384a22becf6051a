"""
Request assembly for contract calls.

This module substitutes path placeholders, layers headers and builds the
request body from live call arguments according to the descriptor's payload
mode.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from ..exceptions import ContractError
from ..logger import get_logger
from ..schemas import JSON_CONTENT_TYPE, OCTET_STREAM_CONTENT_TYPE, OutboundRequest, PayloadMode
from .metadata_resolver import ParameterKind

if TYPE_CHECKING:
    from .protocols import SerializerProtocol
    from ..interceptors import InterceptorChain
    from .metadata_resolver import CallDescriptor

logger = get_logger("REQUEST_BUILDER")

CONTENT_TYPE_HEADER = "Content-Type"


def bind_arguments(
    descriptor: CallDescriptor, args: tuple[Any, ...], kwargs: dict[str, Any]
) -> dict[str, Any]:
    """
    Bind live call arguments to the contract method's parameter names.

    Missing arguments are allowed here (partial binding); defaults declared
    on the contract method are applied. Arity rules for write verbs are
    enforced later, when the payload is built.

    Raises:
        ContractError: If the arguments cannot be bound at all (unknown
            keyword, too many positional arguments).
    """
    try:
        bound = descriptor.signature.bind_partial(*args, **kwargs)
    except TypeError as e:
        raise ContractError(f"Invalid arguments for {descriptor.qualified_name}: {e}") from e
    bound.apply_defaults()
    return dict(bound.arguments)


def substitute_path(descriptor: CallDescriptor, arguments: Mapping[str, Any]) -> tuple[str, int]:
    """
    Replace ``{key}`` placeholders with percent-encoded argument values.

    A path variable whose key has no placeholder is a no-op, and placeholders
    with no matching argument stay in the path as-is.

    Returns:
        Tuple of (final path, number of path arguments that were supplied)
    """
    path = descriptor.path_template
    supplied = 0
    for binding in descriptor.bindings_of(ParameterKind.PATH):
        if binding.name not in arguments:
            continue
        supplied += 1
        value = arguments[binding.name]
        if value is None:
            continue
        path = path.replace("{" + str(binding.key) + "}", quote(str(value), safe=""))
    return path, supplied


def set_header(headers: dict[str, str], name: str, value: str) -> None:
    """Set a header, replacing any existing entry whose name differs only in case."""
    lowered = name.lower()
    for existing in [key for key in headers if key.lower() == lowered]:
        del headers[existing]
    headers[name] = value


def graft(root: dict[str, Any], dotted_path: str, value: Any) -> None:
    """
    Set ``value`` at ``dotted_path`` inside ``root``.

    Intermediate nodes are created as needed; an existing object node created
    by a sibling argument is reused. A later value at the same leaf
    overwrites the earlier one.

    Example:
        ```python
        root = {}
        graft(root, "profile.name", "x")
        graft(root, "profile.age", 5)
        graft(root, "profile.name", "y")
        # root == {"profile": {"name": "y", "age": 5}}
        ```
    """
    segments = dotted_path.split(".")
    node = root
    for segment in segments[:-1]:
        child = node.get(segment)
        if not isinstance(child, dict):
            child = {}
            node[segment] = child
        node = child
    node[segments[-1]] = value


class RequestBuilder:
    """
    Builds an ``OutboundRequest`` from a descriptor and live arguments.

    Args:
        serializer: Structured serializer used to encode payloads
        interceptors: Chain whose ``before_build`` hook sees the header set
    """

    def __init__(self, serializer: SerializerProtocol, interceptors: InterceptorChain) -> None:
        self._serializer = serializer
        self._interceptors = interceptors

    def build(
        self,
        descriptor: CallDescriptor,
        arguments: Mapping[str, Any],
        ambient_headers: Mapping[str, str],
    ) -> OutboundRequest:
        """
        Assemble the request for one call.

        Args:
            descriptor: Resolved metadata of the contract method
            arguments: Bound arguments, keyed by parameter name
            ambient_headers: Propagated headers captured when the call was
                initiated

        Raises:
            ContractError: If a write verb does not receive exactly one
                payload argument.
        """
        path, supplied_path_args = substitute_path(descriptor, arguments)
        payload, has_payload = self._build_payload(descriptor, arguments, supplied_path_args)

        # propagated headers first, per-call headers layered on top
        headers: dict[str, str] = dict(ambient_headers)
        for binding in descriptor.bindings_of(ParameterKind.HEADER):
            value = arguments.get(binding.name)
            if value is not None:
                set_header(headers, str(binding.key), str(value))

        content: bytes | None = None
        if has_payload:
            if isinstance(payload, (bytes, bytearray)):
                content = bytes(payload)
                set_header(headers, CONTENT_TYPE_HEADER, OCTET_STREAM_CONTENT_TYPE)
            else:
                content = self._serializer.encode(payload)
                set_header(headers, CONTENT_TYPE_HEADER, JSON_CONTENT_TYPE)

        self._interceptors.before_build(
            descriptor.service_name,
            descriptor.path_template,
            descriptor.method,
            descriptor.return_shape,
            headers,
        )

        logger.debug(
            "Built %s %s for %s (%d header(s), %s)",
            descriptor.method.value,
            path,
            descriptor.service_name,
            len(headers),
            f"{len(content)} byte payload" if content is not None else "no payload",
        )
        return OutboundRequest(
            service_name=descriptor.service_name,
            method=descriptor.method,
            path=path,
            headers=headers,
            content=content,
        )

    def _build_payload(
        self,
        descriptor: CallDescriptor,
        arguments: Mapping[str, Any],
        supplied_path_args: int,
    ) -> tuple[Any, bool]:
        if descriptor.payload_mode is PayloadMode.MERGED_TREE:
            root: dict[str, Any] = {}
            for binding in descriptor.bindings_of(ParameterKind.PAYLOAD):
                if binding.name not in arguments:
                    continue
                graft(root, str(binding.key), self._serializer.to_tree(arguments[binding.name]))
            return root, True

        if descriptor.payload_mode is PayloadMode.SINGLE_ARGUMENT:
            return self._single_payload(descriptor, arguments, supplied_path_args), True

        return None, False

    def _single_payload(
        self,
        descriptor: CallDescriptor,
        arguments: Mapping[str, Any],
        supplied_path_args: int,
    ) -> Any:
        supplied_headers = sum(
            1 for binding in descriptor.bindings_of(ParameterKind.HEADER) if binding.name in arguments
        )
        free = [
            binding for binding in descriptor.bindings_of(ParameterKind.FREE) if binding.name in arguments
        ]
        total = len(arguments) - supplied_headers
        verb = descriptor.method.value

        if total == 0 or not free:
            raise ContractError(
                f"You must pass EXACTLY ONE payload to {verb} method "
                f"{descriptor.qualified_name}, have 0"
            )
        if supplied_path_args + 1 != total or len(free) != 1:
            raise ContractError(
                f"You must pass EXACTLY ONE payload to {verb} method "
                f"{descriptor.qualified_name}, have {len(free)}"
            )
        return arguments[free[0].name]
