"""
Service discovery for the default HTTP transport.

A resolver turns the logical service name of a contract into an absolute URL.
Two resolvers are provided: a static name -> base URL map, and a
round-robin resolver backed by an in-memory instance registry.
"""

from __future__ import annotations

import itertools
import os
import threading
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field

from .exceptions import ServiceUnavailableError
from .logger import get_logger

logger = get_logger("DISCOVERY")

DEFAULT_SERVICE_URL_SUFFIX = "_SERVICE_URL"


def join_url(base_url: str, path: str) -> str:
    """Join a base URL and an absolute path without doubling slashes."""
    return base_url.rstrip("/") + "/" + path.lstrip("/")


class ServiceInstance(BaseModel):
    """A reachable instance of a remote service."""

    service_name: str
    host: str
    port: int
    scheme: str = "http"
    weight: int = 1
    metadata: dict[str, str] = Field(default_factory=dict)

    @property
    def url(self) -> str:
        """Base URL of the instance."""
        return f"{self.scheme}://{self.host}:{self.port}"

    @property
    def instance_id(self) -> str:
        return f"{self.service_name}:{self.host}:{self.port}"

    def get_metadata_value(self, key: str) -> str | None:
        return self.metadata.get(key)


class InMemoryServiceRegistry:
    """Thread-safe in-memory registry of service instances."""

    def __init__(self) -> None:
        self._services: dict[str, list[ServiceInstance]] = {}
        self._lock = threading.Lock()

    def register_service(self, instance: ServiceInstance) -> None:
        with self._lock:
            instances = self._services.setdefault(instance.service_name, [])
            # re-registering an instance replaces it
            instances[:] = [i for i in instances if i.instance_id != instance.instance_id]
            instances.append(instance)
        logger.info("Registered service instance: %s", instance.instance_id)

    def unregister_service(self, instance: ServiceInstance) -> None:
        with self._lock:
            instances = self._services.get(instance.service_name)
            if not instances:
                return
            instances[:] = [i for i in instances if i.instance_id != instance.instance_id]
            if not instances:
                del self._services[instance.service_name]
        logger.info("Unregistered service instance: %s", instance.instance_id)

    def list_instances(self, service_name: str) -> list[ServiceInstance]:
        with self._lock:
            return list(self._services.get(service_name) or [])

    def service_names(self) -> list[str]:
        with self._lock:
            return sorted(self._services)


class StaticServiceResolver:
    """
    Resolves service names from a fixed name -> base URL map.

    Example:
        ```python
        resolver = StaticServiceResolver({"users": "http://users.internal:8080"})
        resolver.resolve("users", "/users/42")
        # "http://users.internal:8080/users/42"
        ```
    """

    def __init__(self, services: Mapping[str, str]) -> None:
        self._services = dict(services)

    @classmethod
    def from_env(
        cls,
        suffix: str = DEFAULT_SERVICE_URL_SUFFIX,
        environ: Mapping[str, str] | None = None,
    ) -> StaticServiceResolver:
        """
        Build the map from environment variables.

        ``USERS_SERVICE_URL=http://...`` maps the service ``users``. The key is
        the part before the suffix, lowercased.
        """
        env = os.environ if environ is None else environ
        services: dict[str, str] = {}
        for key, value in env.items():
            if not value or not key.endswith(suffix):
                continue
            name = key[: -len(suffix)].lower()
            if name:
                services[name] = value.strip()
        return cls(services)

    @property
    def services(self) -> dict[str, str]:
        return dict(self._services)

    def resolve(self, service_name: str, path: str) -> str:
        base_url = self._services.get(service_name)
        if not base_url:
            raise ServiceUnavailableError(f"No URL configured for service '{service_name}'")
        return join_url(base_url, path)


class RegistryServiceResolver:
    """
    Resolves service names to registered instances, round-robin.

    Args:
        registry: Registry (or anything with ``list_instances``) to query
    """

    def __init__(self, registry: Any) -> None:
        self._registry = registry
        self._counters: dict[str, itertools.count] = {}
        self._lock = threading.Lock()

    def select_instance(self, service_name: str) -> ServiceInstance:
        instances = self._registry.list_instances(service_name)
        if not instances:
            raise ServiceUnavailableError(f"No available instance for service '{service_name}'")
        with self._lock:
            counter = self._counters.setdefault(service_name, itertools.count())
            index = next(counter)
        return instances[index % len(instances)]

    def resolve(self, service_name: str, path: str) -> str:
        instance = self.select_instance(service_name)
        logger.debug("Resolved service %s to %s", service_name, instance.instance_id)
        return join_url(instance.url, path)
