from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, Field, field_validator

T = TypeVar("T")

JSON_CONTENT_TYPE = "application/json"
OCTET_STREAM_CONTENT_TYPE = "application/octet-stream"


class HttpMethod(str, Enum):
    """
    HTTP verbs a contract method can be mapped to.

    POST, PUT and PATCH are write verbs: when none of the arguments is tagged
    as a payload variable, exactly one untagged argument is sent as the body.
    """

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"

    @property
    def is_write(self) -> bool:
        return self in (HttpMethod.POST, HttpMethod.PUT, HttpMethod.PATCH)


class ReturnShape(str, Enum):
    """
    How a raw response body is reshaped into the value a caller receives.

    Attributes
    ----------
    VOID : str
        Return annotation is None; the body is discarded.
    RAW_BYTES : str
        Return annotation is bytes; the body is returned verbatim.
    OPTIONAL : str
        Optional[T]; an empty body resolves to None.
    ASYNC : str
        concurrent.futures.Future[T]; the call runs on a worker thread.
    PASS_THROUGH : str
        RemoteResponse[T]; status and headers are exposed to the caller.
    MAP : str
        dict[str, Any] honored only with convert_response_to_map.
    COLLECTION : str
        list/set/tuple/Sequence of T.
    PLAIN : str
        Anything else the serializer can decode.
    """

    VOID = "void"
    RAW_BYTES = "raw-bytes"
    OPTIONAL = "optional"
    ASYNC = "async"
    PASS_THROUGH = "pass-through-response"
    MAP = "map"
    COLLECTION = "collection"
    PLAIN = "plain"


class PayloadMode(str, Enum):
    """
    How the request body is assembled from call arguments.

    Attributes
    ----------
    SINGLE_ARGUMENT : str
        The one untagged argument is sent wholesale (write verbs only).
    MERGED_TREE : str
        Every payload-tagged argument is grafted into a shared object tree.
    NONE : str
        No body is sent.
    """

    SINGLE_ARGUMENT = "single-argument"
    MERGED_TREE = "merged-tree"
    NONE = "none"


class OutboundRequest(BaseModel):
    """
    A fully resolved request, built once per call.

    Interceptors may mutate headers and other fields in place before the
    request is handed to the transport. The transport fills in ``url`` once
    the service name has been resolved.

    Attributes:
        service_name: Logical name of the target service
        method: HTTP verb
        path: Final path with every known placeholder substituted
        headers: Propagated headers overlaid with per-call headers
        content: Encoded payload, None when the request has no body
        url: Absolute URL, set by the transport
    """

    service_name: str
    method: HttpMethod
    path: str
    headers: dict[str, str] = Field(default_factory=dict)
    content: Optional[bytes] = None
    url: Optional[str] = None

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        if not v.startswith("/"):
            return "/" + v
        return v


class RawResponse(BaseModel):
    """
    A response as received from the transport, before any reshaping.
    """

    status_code: int
    headers: dict[str, str] = Field(default_factory=dict)
    content: bytes = b""

    @property
    def has_body(self) -> bool:
        return len(self.content) > 0

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


@dataclass
class RemoteResponse(Generic[T]):
    """
    Pass-through return shape exposing status, headers and body to the caller.

    The body is the decoded value for successful responses, the body text for
    a failed response absorbed into a return value, or None when the remote
    side sent no body.

    Examples
    --------
    >>> @get("/users/{id}")
    ... def find(self, id: Annotated[str, PathVariable("id")]) -> RemoteResponse[User]:
    ...     ...
    >>> response = users.find("42")
    >>> response.status_code, response.body
    (200, User(id='42', ...))
    """

    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    body: Optional[T] = None

    @property
    def has_body(self) -> bool:
        return self.body is not None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def header(self, name: str, default: Any = None) -> Any:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return default
