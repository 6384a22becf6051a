"""
JSON serialization backed by pydantic.

``PydanticJsonSerializer`` is the default structured serializer: it encodes
any value pydantic can dump (models, dataclasses, plain containers) and
decodes bytes into any type pydantic can validate, collections included.
"""

from __future__ import annotations

import json
import threading
from typing import Any

from pydantic import PydanticSchemaGenerationError, TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError

from .exceptions import ContractError, DecodeError
from .logger import get_logger

logger = get_logger("SERIALIZER")


class PydanticJsonSerializer:
    """
    Structured serializer using pydantic ``TypeAdapter`` instances.

    Adapters are built once per type and cached; the cache is shared by all
    threads using the serializer.

    Args:
        by_alias: Dump models using their field aliases.
        exclude_none: Drop None-valued fields when encoding models.
    """

    def __init__(self, by_alias: bool = False, exclude_none: bool = False) -> None:
        self._by_alias = by_alias
        self._exclude_none = exclude_none
        self._adapters: dict[Any, TypeAdapter[Any]] = {}
        self._lock = threading.Lock()

    def _adapter(self, target: Any) -> TypeAdapter[Any]:
        adapter = self._adapters.get(target)
        if adapter is not None:
            return adapter
        with self._lock:
            adapter = self._adapters.get(target)
            if adapter is None:
                adapter = TypeAdapter(target)
                self._adapters[target] = adapter
        return adapter

    def _dump_adapter(self, value: Any) -> TypeAdapter[Any]:
        try:
            return self._adapter(type(value))
        except PydanticSchemaGenerationError as e:
            raise ContractError(
                f"Values of type {type(value).__name__} cannot be serialized"
            ) from e

    def to_tree(self, value: Any) -> Any:
        if value is None:
            return None
        try:
            return self._dump_adapter(value).dump_python(
                value,
                mode="json",
                by_alias=self._by_alias,
                exclude_none=self._exclude_none,
            )
        except PydanticSerializationError as e:
            raise ContractError(f"Cannot serialize {type(value).__name__}: {e}") from e

    def encode(self, value: Any) -> bytes:
        if value is None:
            return b"null"
        try:
            return self._dump_adapter(value).dump_json(
                value, by_alias=self._by_alias, exclude_none=self._exclude_none
            )
        except PydanticSerializationError as e:
            raise ContractError(f"Cannot serialize {type(value).__name__}: {e}") from e

    def decode(self, data: bytes, target: Any) -> Any:
        try:
            return self._adapter(target).validate_json(data)
        except ValidationError as e:
            logger.debug("Failed to decode %d bytes as %r: %s", len(data), target, e)
            raise DecodeError(f"Cannot decode response body as {target!r}") from e
        except PydanticSchemaGenerationError as e:
            raise DecodeError(f"No decoder available for {target!r}") from e

    def decode_tree(self, data: bytes) -> Any:
        try:
            return json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DecodeError("Response body is not valid JSON") from e

    def convert(self, tree: Any, target: Any) -> Any:
        try:
            return self._adapter(target).validate_python(tree)
        except ValidationError as e:
            raise DecodeError(f"Cannot convert value to {target!r}") from e
        except PydanticSchemaGenerationError as e:
            raise DecodeError(f"No decoder available for {target!r}") from e
