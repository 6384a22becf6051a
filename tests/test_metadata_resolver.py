"""
Tests for the metadata resolver.

This test module covers:
- Return type classification into return shapes
- Parameter tagging (path, payload, header, free)
- Payload mode selection
- Declaration errors (missing decorators, bad annotations)
- Descriptor caching, including concurrent first resolution
"""

from __future__ import annotations

import threading
from concurrent.futures import Future
from typing import Annotated, Any, Optional, TypeVar, Union

import pytest
from pydantic import BaseModel

from contract_rpc._internal.metadata_resolver import (
    MetadataResolver,
    ParameterKind,
    classify_return_type,
)
from contract_rpc.config import RetryPolicy
from contract_rpc.declarations import (
    Header,
    PathVariable,
    PayloadVariable,
    get,
    mapping,
    post,
    put,
    remote_service,
)
from contract_rpc.exceptions import ContractError
from contract_rpc.schemas import HttpMethod, PayloadMode, RemoteResponse, ReturnShape

T = TypeVar("T")

# ============================================================================
# Test Contracts
# ============================================================================


class User(BaseModel):
    id: str
    name: str


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
        name: Annotated[str, PayloadVariable("profile.name")],
        age: Annotated[int, PayloadVariable()],
    ) -> None: ...

    @get("/users", retry=RetryPolicy(max_attempts=5, delay=0.0))
    def search(self, tenant: Annotated[str, Header("X-Tenant")], query: str) -> list[User]: ...

    def helper(self) -> str:
        return "not remote"


@remote_service("broken")
class BrokenApi:
    @get("/no-annotation")
    def no_return(self):  # noqa: ANN201
        ...

    @get("/typevar")
    def typevar(self) -> T: ...  # type: ignore[type-var]

    @get("/union")
    def union(self) -> Union[int, str]: ...

    @get("/varargs")
    def varargs(self, *ids: str) -> None: ...

    @get("/double-tag")
    def double_tag(self, x: Annotated[str, PathVariable("x"), Header("X")]) -> None: ...

    def not_mapped(self) -> None: ...


class NotAService:
    @get("/")
    def ping(self) -> None: ...


# ============================================================================
# Return Shape Classification
# ============================================================================


class TestClassifyReturnType:
    """Test return annotation classification."""

    @pytest.mark.parametrize(
        ("annotation", "shape", "inner"),
        [
            (None, ReturnShape.VOID, None),
            (bytes, ReturnShape.RAW_BYTES, None),
            (Optional[User], ReturnShape.OPTIONAL, User),
            (User | None, ReturnShape.OPTIONAL, User),
            (Future[User], ReturnShape.ASYNC, User),
            (Future, ReturnShape.ASYNC, None),
            (Future[None], ReturnShape.ASYNC, None),
            (RemoteResponse[User], ReturnShape.PASS_THROUGH, User),
            (RemoteResponse, ReturnShape.PASS_THROUGH, None),
            (dict[str, Any], ReturnShape.MAP, dict[str, Any]),
            (list[User], ReturnShape.COLLECTION, list[User]),
            (set[int], ReturnShape.COLLECTION, set[int]),
            (dict[str, int], ReturnShape.PLAIN, dict[str, int]),
            (User, ReturnShape.PLAIN, User),
            (str, ReturnShape.PLAIN, str),
        ],
    )
    def test_shapes(self, annotation: Any, shape: ReturnShape, inner: Any) -> None:
        """Each supported annotation maps to its return shape and inner type."""
        assert classify_return_type(annotation) == (shape, inner)

    @pytest.mark.parametrize(
        "annotation",
        [T, Union[int, str], Optional[Future[User]], Future[RemoteResponse[User]]],
    )
    def test_unsupported_shapes(self, annotation: Any) -> None:
        """Type variables, real unions and nested wrappers are rejected."""
        with pytest.raises(ContractError):
            classify_return_type(annotation)


# ============================================================================
# Descriptor Building
# ============================================================================


@pytest.fixture
def resolver() -> MetadataResolver:
    return MetadataResolver(RetryPolicy(max_attempts=3, delay=0.5))


class TestDescriptorBuilding:
    """Test descriptor content for well-formed contracts."""

    def test_routing_metadata(self, resolver: MetadataResolver) -> None:
        """
        Test the routing part of a descriptor.

        Verifies that:
        - Service name comes from @remote_service
        - Verb and path template come from @mapping
        - The method default retry policy is applied
        """
        descriptor = resolver.resolve(UsersApi, "find")

        assert descriptor.service_name == "users"
        assert descriptor.method is HttpMethod.GET
        assert descriptor.path_template == "/users/{id}"
        assert descriptor.return_shape is ReturnShape.PLAIN
        assert descriptor.inner_type is User
        assert descriptor.retry == RetryPolicy(max_attempts=3, delay=0.5)
        assert descriptor.qualified_name == "UsersApi.find"

    def test_declared_retry_overrides_default(self, resolver: MetadataResolver) -> None:
        descriptor = resolver.resolve(UsersApi, "search")
        assert descriptor.retry == RetryPolicy(max_attempts=5, delay=0.0)

    def test_parameter_bindings(self, resolver: MetadataResolver) -> None:
        """
        Test parameter tagging.

        Verifies that:
        - PathVariable keys are kept
        - PayloadVariable without a path defaults to the parameter name
        - Header names are kept and untagged parameters are free
        - The bound signature excludes self
        """
        rename = resolver.resolve(UsersApi, "rename")
        assert [(b.name, b.kind, b.key) for b in rename.parameters] == [
            ("user_id", ParameterKind.PATH, "id"),
            ("name", ParameterKind.PAYLOAD, "profile.name"),
            ("age", ParameterKind.PAYLOAD, "age"),
        ]
        assert list(rename.signature.parameters) == ["user_id", "name", "age"]

        search = resolver.resolve(UsersApi, "search")
        assert [(b.name, b.kind, b.key) for b in search.parameters] == [
            ("tenant", ParameterKind.HEADER, "X-Tenant"),
            ("query", ParameterKind.FREE, None),
        ]

    @pytest.mark.parametrize(
        ("name", "mode"),
        [
            ("find", PayloadMode.NONE),
            ("create", PayloadMode.SINGLE_ARGUMENT),
            ("rename", PayloadMode.MERGED_TREE),
            ("search", PayloadMode.NONE),
        ],
    )
    def test_payload_mode(self, resolver: MetadataResolver, name: str, mode: PayloadMode) -> None:
        """Payload-tagged arguments win, otherwise write verbs send one argument."""
        assert resolver.resolve(UsersApi, name).payload_mode is mode

    def test_mapping_accepts_string_verb(self, resolver: MetadataResolver) -> None:
        @remote_service("misc")
        class MiscApi:
            @mapping("/things", "patch")
            def touch(self, thing: dict) -> None: ...

        descriptor = resolver.resolve(MiscApi, "touch")
        assert descriptor.method is HttpMethod.PATCH
        assert descriptor.payload_mode is PayloadMode.SINGLE_ARGUMENT


class TestDeclarationErrors:
    """Test that malformed declarations fail when the descriptor is built."""

    @pytest.mark.parametrize(
        "name", ["no_return", "typevar", "union", "varargs", "double_tag", "not_mapped"]
    )
    def test_broken_methods(self, resolver: MetadataResolver, name: str) -> None:
        with pytest.raises(ContractError):
            resolver.resolve(BrokenApi, name)

    def test_missing_service_declaration(self, resolver: MetadataResolver) -> None:
        with pytest.raises(ContractError, match="@remote_service"):
            resolver.resolve(NotAService, "ping")

    def test_unknown_method(self, resolver: MetadataResolver) -> None:
        with pytest.raises(ContractError):
            resolver.resolve(UsersApi, "missing")

    def test_plain_method(self, resolver: MetadataResolver) -> None:
        with pytest.raises(ContractError, match="@mapping"):
            resolver.resolve(UsersApi, "helper")

    def test_unknown_verb(self) -> None:
        with pytest.raises(ContractError, match="Unknown HTTP method"):
            mapping("/", "TELEPORT")

    def test_failed_build_is_not_cached(self, resolver: MetadataResolver) -> None:
        with pytest.raises(ContractError):
            resolver.resolve(BrokenApi, "union")
        assert len(resolver) == 0
        assert resolver.build_count == 0


# ============================================================================
# Caching
# ============================================================================


class TestDescriptorCache:
    """Test descriptor caching."""

    def test_second_resolution_is_cached(self, resolver: MetadataResolver) -> None:
        first = resolver.resolve(UsersApi, "find")
        second = resolver.resolve(UsersApi, "find")

        assert first is second
        assert resolver.build_count == 1

    def test_clear(self, resolver: MetadataResolver) -> None:
        resolver.resolve(UsersApi, "find")
        resolver.clear()
        assert len(resolver) == 0

        resolver.resolve(UsersApi, "find")
        assert resolver.build_count == 2

    @pytest.mark.slow
    def test_concurrent_first_resolution(self, resolver: MetadataResolver) -> None:
        """
        Test resolving the same method from many threads at once.

        Verifies that:
        - Every thread gets an equal descriptor
        - The descriptor is built exactly once
        """
        thread_count = 32
        barrier = threading.Barrier(thread_count)
        results = []
        results_lock = threading.Lock()

        def worker() -> None:
            barrier.wait()
            descriptor = resolver.resolve(UsersApi, "rename")
            with results_lock:
                results.append(descriptor)

        threads = [threading.Thread(target=worker) for _ in range(thread_count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(results) == thread_count
        assert all(descriptor == results[0] for descriptor in results)
        assert resolver.build_count == 1
