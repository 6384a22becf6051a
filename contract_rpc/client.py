"""
The contract client engine.

``ContractClient`` turns calls on a declared contract into remote HTTP
requests: it resolves the call descriptor, builds the request, lets the
interceptors observe it, dispatches it through the transport and reshapes
the response into the declared return type.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import TYPE_CHECKING, Any, TypeVar

from ._internal.caller import build_client_class, instantiate_client
from ._internal.metadata_resolver import MetadataResolver
from ._internal.request_builder import RequestBuilder, bind_arguments
from ._internal.response_resolver import ResponseResolver
from .config import ContractClientConfig
from .declarations import get_service_declaration, mapped_method_names
from .discovery import StaticServiceResolver
from .exceptions import ContractError, RpcError, TransportFailure
from .headers import snapshot_propagated_headers
from .interceptors import InterceptorChain
from .logger import get_logger
from .schemas import ReturnShape
from .serializer import PydanticJsonSerializer
from .transport import HttpxTransport

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from ._internal.metadata_resolver import CallDescriptor
    from ._internal.protocols import SerializerProtocol, TransportProtocol
    from .interceptors import RequestInterceptor

logger = get_logger("CONTRACT_CLIENT")

C = TypeVar("C")


class ContractClient:
    """
    Engine that executes contract method calls against remote services.

    Calls made through a client returned by ``create()`` run synchronously on
    the caller's thread, except for methods declared to return a
    ``concurrent.futures.Future``: those are handed to a worker pool and the
    future is returned immediately. Propagated headers are always captured on
    the calling thread.

    The client owns the transport: ``close()`` closes it and shuts down the
    worker pool.
    """

    def __init__(
        self,
        transport: TransportProtocol,
        *,
        serializer: SerializerProtocol | None = None,
        interceptors: Iterable[RequestInterceptor] | None = None,
        config: ContractClientConfig | None = None,
    ) -> None:
        """Initialize the ContractClient.

        Parameters
        ----------
        transport : TransportProtocol
            Executes built requests (see ``HttpxTransport``).
        serializer : SerializerProtocol | None, optional
            Encodes payloads and decodes bodies. Defaults to
            ``PydanticJsonSerializer``.
        interceptors : Iterable[RequestInterceptor] | None, optional
            Observers invoked around every call, in registration order.
        config : ContractClientConfig | None, optional
            Engine configuration. If None, uses default configuration.

        Examples
        --------
        Using a static service map::

            transport = HttpxTransport(StaticServiceResolver({"users": "http://localhost:8000"}))
            with ContractClient(transport) as client:
                users = client.create(UsersApi)
                user = users.find("42")

        Using preset configurations::

            client = ContractClient(transport, config=ContractClientConfig.production_defaults())
        """
        self.config = config or ContractClientConfig()
        self.config.validate()

        self.transport = transport
        self.serializer = serializer or PydanticJsonSerializer()
        self.interceptors = InterceptorChain(interceptors)

        self.metadata = MetadataResolver(self.config.default_retry)
        self._request_builder = RequestBuilder(self.serializer, self.interceptors)
        self._response_resolver = ResponseResolver(
            self.serializer, self.config.return_none_on_empty_body
        )

        # Worker pool for Future-returning methods, created on first use
        self._executor: ThreadPoolExecutor | None = None
        self._executor_lock = threading.Lock()
        self._closed = False

    @classmethod
    def from_services(
        cls,
        services: Mapping[str, str],
        *,
        config: ContractClientConfig | None = None,
        **kwargs: Any,
    ) -> ContractClient:
        """
        Build a client dispatching over httpx to a static service map.

        The transport's timeout and extra client options come from ``config``.
        """
        config = config or ContractClientConfig()
        transport = HttpxTransport(
            StaticServiceResolver(services),
            timeout=config.request_timeout,
            **config.transport_kwargs,
        )
        return cls(transport, config=config, **kwargs)

    def add_interceptor(self, interceptor: RequestInterceptor) -> None:
        self.interceptors.add(interceptor)

    def create(self, contract: type[C]) -> C:
        """
        Create a client object for a contract class.

        Every mapped method is resolved up front, so declaration errors
        surface here rather than on the first call. The returned object is an
        instance of a class derived from ``contract``.

        Raises:
            ContractError: If the class is not a remote service contract or a
                mapped method is malformed.
        """
        if get_service_declaration(contract) is None:
            raise ContractError(f"{contract.__qualname__} must be decorated with @remote_service")

        for name in mapped_method_names(contract):
            self.metadata.resolve(contract, name)

        client_class = build_client_class(contract, self.invoke)
        return instantiate_client(client_class)

    def invoke(self, contract: type, method_name: str, *args: Any, **kwargs: Any) -> Any:
        """
        Execute one call of ``contract.method_name``.

        Arguments are bound and propagated headers captured on the calling
        thread. Future-returning methods continue on the worker pool.

        Raises:
            ContractError: For malformed declarations or wrong arguments
            RemoteHttpError: If the remote service answered with an error
                status and the method does not return a RemoteResponse
            InternalProcessingError: If no response could be obtained or the
                body could not be decoded
        """
        descriptor = self.metadata.resolve(contract, method_name)
        arguments = bind_arguments(descriptor, args, kwargs)
        headers = snapshot_propagated_headers()

        if descriptor.return_shape is ReturnShape.ASYNC:
            return self._submit(descriptor, arguments, headers)
        return self._execute(descriptor, arguments, headers)

    def _execute(
        self,
        descriptor: CallDescriptor,
        arguments: Mapping[str, Any],
        headers: Mapping[str, str],
    ) -> Any:
        logger.debug("Start contract method %s", descriptor.qualified_name)

        request = self._request_builder.build(descriptor, arguments, headers)
        self.interceptors.before_send(
            descriptor.service_name,
            descriptor.path_template,
            descriptor.method,
            request,
            descriptor.return_shape,
        )

        try:
            response = self.transport.execute(request, descriptor.retry)
        except TransportFailure as failure:
            result = self._response_resolver.resolve_failure(failure, descriptor)
        else:
            self.interceptors.after_send(
                descriptor.service_name,
                descriptor.path_template,
                descriptor.method,
                request,
                response,
                descriptor.return_shape,
            )
            result = self._response_resolver.resolve(response, descriptor)

        logger.debug("End contract method %s", descriptor.qualified_name)
        return result

    def _submit(self, *call_args: Any) -> Future:
        # close() cannot shut the pool down between the closed check and submit
        with self._executor_lock:
            if self._closed:
                raise RpcError("ContractClient is closed")
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.config.max_workers,
                    thread_name_prefix="contract-rpc",
                )
            return self._executor.submit(self._execute, *call_args)

    def close(self) -> None:
        """
        Wait for pending Future-returning calls, then close the transport.

        Idempotent.
        """
        with self._executor_lock:
            if self._closed:
                return
            self._closed = True
            executor, self._executor = self._executor, None

        if executor is not None:
            executor.shutdown(wait=True)
        self.transport.close()
        logger.debug("Contract client closed")

    def __enter__(self) -> ContractClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
