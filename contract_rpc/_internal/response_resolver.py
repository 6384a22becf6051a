"""
Response reshaping for contract calls.

This module turns a raw response (or a transport failure) into the value the
caller declared: None, raw bytes, an optional value, a decoded object or
collection, a plain mapping, or a ``RemoteResponse`` wrapper.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ..exceptions import (
    ConnectionFailure,
    DecodeError,
    InternalProcessingError,
    RemoteHttpError,
    TransportFailure,
)
from ..logger import get_logger
from ..schemas import RawResponse, RemoteResponse, ReturnShape

if TYPE_CHECKING:
    from .metadata_resolver import CallDescriptor
    from .protocols import SerializerProtocol

logger = get_logger("RESPONSE_RESOLVER")

UNSUPPORTED_SHAPE_MESSAGE = "Internal error processing. Unsupported return shape"


def extract_path(tree: Any, dotted_path: str) -> Any:
    """
    Walk a decoded JSON tree along a dotted path.

    Numeric segments index into lists. A missing segment yields None.
    """
    node = tree
    for segment in dotted_path.split("."):
        if isinstance(node, dict):
            node = node.get(segment)
        elif isinstance(node, list) and segment.lstrip("-").isdigit():
            index = int(segment)
            node = node[index] if -len(node) <= index < len(node) else None
        else:
            return None
        if node is None:
            return None
    return node


class ResponseResolver:
    """
    Reshapes raw responses according to a descriptor's return shape.

    Args:
        serializer: Structured serializer used to decode bodies
        return_none_on_empty_body: Resolve an empty successful body to None
            instead of decoding it
    """

    def __init__(self, serializer: SerializerProtocol, return_none_on_empty_body: bool = True) -> None:
        self._serializer = serializer
        self._return_none_on_empty_body = return_none_on_empty_body

    def resolve_failure(self, failure: TransportFailure, descriptor: CallDescriptor) -> Any:
        """
        Handle a failed dispatch.

        A pass-through descriptor absorbs a failure that carries response
        data and returns it as a ``RemoteResponse`` whose body is the
        response text. Every other failure is raised again: a remote error as
        is, a connection-level failure as ``InternalProcessingError``.
        """
        if descriptor.return_shape is ReturnShape.PASS_THROUGH and failure.has_response:
            content = failure.content or b""
            return RemoteResponse(
                status_code=int(failure.status_code or 0),
                headers=dict(failure.headers or {}),
                body=content.decode("utf-8", errors="replace"),
            )

        if isinstance(failure, RemoteHttpError):
            raise failure

        logger.error(
            "Can not get response from service %s for %s: %s",
            descriptor.service_name,
            descriptor.qualified_name,
            failure,
        )
        raise InternalProcessingError() from failure

    def resolve(self, response: RawResponse, descriptor: CallDescriptor) -> Any:
        """
        Reshape a successful response. The first matching rule wins.

        Raises:
            InternalProcessingError: If the body cannot be decoded into the
                declared type, or the return shape cannot be honored.
        """
        try:
            return self._resolve(response, descriptor)
        except DecodeError as e:
            logger.error(
                "Can not decode response of %s %s from service %s as %r",
                descriptor.method.value,
                descriptor.path_template,
                descriptor.service_name,
                descriptor.inner_type,
                exc_info=True,
            )
            raise InternalProcessingError() from e

    def _resolve(self, response: RawResponse, descriptor: CallDescriptor) -> Any:
        shape = descriptor.return_shape

        if shape is ReturnShape.VOID:
            return None

        if shape is ReturnShape.OPTIONAL:
            if not response.has_body:
                return None
            return self._decode(response.content, descriptor.inner_type, descriptor)

        if (
            not response.has_body
            and shape is not ReturnShape.PASS_THROUGH
            and self._return_none_on_empty_body
        ):
            return None

        if shape is ReturnShape.ASYNC:
            if descriptor.inner_type is None:
                return None
            return self._decode(response.content, descriptor.inner_type, descriptor)

        if shape is ReturnShape.RAW_BYTES:
            return response.content

        if shape is ReturnShape.PASS_THROUGH:
            body = None
            if response.has_body:
                body = self._decode(response.content, descriptor.inner_type, descriptor)
            return RemoteResponse(
                status_code=response.status_code,
                headers=dict(response.headers),
                body=body,
            )

        if shape is ReturnShape.MAP and descriptor.convert_response_to_map:
            tree = self._decode_tree(response.content, descriptor)
            if not isinstance(tree, dict):
                raise DecodeError(f"Expected a JSON object, got {type(tree).__name__}")
            return tree

        if shape is ReturnShape.COLLECTION or shape is ReturnShape.PLAIN:
            return self._decode(response.content, descriptor.inner_type, descriptor)

        raise InternalProcessingError(UNSUPPORTED_SHAPE_MESSAGE)

    def _decode_tree(self, content: bytes, descriptor: CallDescriptor) -> Any:
        tree = self._serializer.decode_tree(content)
        if descriptor.return_path:
            return extract_path(tree, descriptor.return_path)
        return tree

    def _decode(self, content: bytes, target: Any, descriptor: CallDescriptor) -> Any:
        if target is bytes:
            return content
        if target is None:
            return self._decode_tree(content, descriptor)
        if descriptor.return_path:
            tree = self._decode_tree(content, descriptor)
            if tree is None:
                return None
            return self._serializer.convert(tree, target)
        return self._serializer.decode(content, target)
