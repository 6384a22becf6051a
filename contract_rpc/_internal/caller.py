"""
Client generation for contract classes.

This module builds, for a contract class, a derived class whose mapped
methods forward to a generic invoker. Instances of the derived class are what
``ContractClient.create`` hands out.
"""

from __future__ import annotations

import functools
from typing import TYPE_CHECKING, Any, TypeVar

from ..declarations import get_service_declaration, mapped_method_names
from ..logger import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

logger = get_logger("RPC_CALLER")

C = TypeVar("C")

INVOKER_ATTR = "__contract_invoker__"


class ContractProxy:
    """
    Forwards calls of one contract method to the invoker.

    Example:
        ```python
        proxy = ContractProxy(client.invoke, UsersApi, "find")
        user = proxy("42")
        ```
    """

    def __init__(self, invoke: Callable[..., Any], contract: type, method_name: str) -> None:
        """
        Initialize the proxy.

        Args:
            invoke: Generic invoker, called as ``invoke(contract, name, *args, **kwargs)``
            contract: Contract class declaring the method
            method_name: Name of the mapped method
        """
        self.invoke = invoke
        self.contract = contract
        self.method_name = method_name

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        logger.debug("Calling contract method: %s.%s", self.contract.__qualname__, self.method_name)
        return self.invoke(self.contract, self.method_name, *args, **kwargs)


def _forwarding_method(proxy: ContractProxy, original: Any) -> Any:
    @functools.wraps(original)
    def method(self: Any, *args: Any, **kwargs: Any) -> Any:
        return proxy(*args, **kwargs)

    return method


def build_client_class(contract: type[C], invoke: Callable[..., Any]) -> type[C]:
    """
    Derive a client class from ``contract``.

    Every ``@mapping`` method is overridden to forward to ``invoke``; any
    other attribute (helpers, properties, ``__repr__``) is inherited as is.
    """
    service = get_service_declaration(contract)
    service_name = service.name if service is not None else "?"

    namespace: dict[str, Any] = {
        "__module__": contract.__module__,
        "__qualname__": f"{contract.__qualname__}Client",
        INVOKER_ATTR: invoke,
    }
    names = mapped_method_names(contract)
    for name in names:
        proxy = ContractProxy(invoke, contract, name)
        namespace[name] = _forwarding_method(proxy, getattr(contract, name))

    if contract.__repr__ is object.__repr__:
        namespace["__repr__"] = lambda self: f"<{type(self).__name__} service={service_name!r}>"

    logger.debug("Generated client for %s with %d method(s)", contract.__qualname__, len(names))
    return type(f"{contract.__name__}Client", (contract,), namespace)


def instantiate_client(client_class: type[C]) -> C:
    """
    Create an instance without running the contract's ``__init__``.

    Contract classes describe remote operations only; their constructor, if
    any, is not meant to be called by the engine.
    """
    return client_class.__new__(client_class)
