"""Configuration dataclasses for the contract RPC client.

This module provides immutable, validated configuration objects: the retry
policy attached to every contract method and the engine-wide client
configuration.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any

DEFAULT_ENV_PREFIX = "CONTRACT_RPC_"


@dataclass(frozen=True)
class RetryPolicy:
    """Retry behavior for a single contract method.

    The engine never sleeps or retries by itself; the policy is handed to the
    transport which applies it around the network call.

    Parameters
    ----------
    enabled : bool, default True
        Whether failed dispatches are retried. When False exactly one attempt
        is made.
    max_attempts : int, default 2
        Maximum number of attempts, including the initial one.
    delay : float, default 1.1
        Seconds to wait between two attempts.

    Examples
    --------
    >>> policy = RetryPolicy(max_attempts=3, delay=0.5)
    >>> policy.attempts
    3

    >>> RetryPolicy(enabled=False).attempts
    1
    """

    enabled: bool = True
    max_attempts: int = 2
    delay: float = 1.1

    def __post_init__(self) -> None:
        """Validate configuration after initialization.

        Raises
        ------
        ValueError
            If max_attempts is not positive or delay is negative.
        """
        if self.max_attempts <= 0:
            raise ValueError(f"max_attempts must be positive, got {self.max_attempts}")

        if self.delay < 0:
            raise ValueError(f"delay must be non-negative, got {self.delay}")

    @property
    def attempts(self) -> int:
        """Number of attempts the transport should make."""
        return self.max_attempts if self.enabled else 1

    def validate(self) -> None:
        """Explicitly validate the configuration.

        Validation is automatically performed in __post_init__, so this is
        typically not needed.
        """


@dataclass(frozen=True)
class ContractClientConfig:
    """Complete configuration for the contract client engine.

    Parameters
    ----------
    return_none_on_empty_body : bool, default True
        When a successful response has an empty body, return None instead of
        trying to decode it. Does not apply to pass-through responses, and
        optional return shapes always resolve an empty body to None.
    max_workers : int, default 8
        Size of the worker pool running calls that return a Future.
    default_retry : RetryPolicy, default RetryPolicy()
        Retry policy used by methods that do not declare their own.
    request_timeout : float | None, default 30.0
        Per-attempt timeout in seconds, applied by transports that support it.
    transport_kwargs : dict[str, Any], default {}
        Additional keyword arguments for the underlying HTTP client.

    Examples
    --------
    >>> config = ContractClientConfig()
    >>> config.validate()

    >>> config = ContractClientConfig(return_none_on_empty_body=False)
    >>> assert not config.return_none_on_empty_body
    """

    return_none_on_empty_body: bool = True
    max_workers: int = 8
    default_retry: RetryPolicy = field(default_factory=RetryPolicy)
    request_timeout: float | None = 30.0
    transport_kwargs: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate configuration after initialization.

        Raises
        ------
        ValueError
            If max_workers is not positive or request_timeout is not positive.
        """
        if self.max_workers <= 0:
            raise ValueError(f"max_workers must be positive, got {self.max_workers}")

        if self.request_timeout is not None and self.request_timeout <= 0:
            raise ValueError(
                f"request_timeout must be positive, got {self.request_timeout}"
            )

    def validate(self) -> None:
        """Validate all sub-configurations."""
        self.default_retry.validate()

    @classmethod
    def from_env(
        cls, prefix: str = DEFAULT_ENV_PREFIX, environ: dict[str, str] | None = None
    ) -> ContractClientConfig:
        """Build a configuration from environment variables.

        Recognized variables (with the default prefix):
        CONTRACT_RPC_RETURN_NONE_ON_EMPTY_BODY, CONTRACT_RPC_MAX_WORKERS,
        CONTRACT_RPC_REQUEST_TIMEOUT, CONTRACT_RPC_RETRY_ENABLED,
        CONTRACT_RPC_RETRY_MAX_ATTEMPTS and CONTRACT_RPC_RETRY_DELAY.
        Missing variables keep their defaults.
        """
        env = os.environ if environ is None else environ

        def _get(name: str) -> str | None:
            value = env.get(f"{prefix}{name}")
            return value.strip() if value is not None and value.strip() else None

        def _flag(value: str) -> bool:
            return value.lower() in ("1", "true", "yes", "on")

        kwargs: dict[str, Any] = {}
        value = _get("RETURN_NONE_ON_EMPTY_BODY")
        if value is not None:
            kwargs["return_none_on_empty_body"] = _flag(value)
        value = _get("MAX_WORKERS")
        if value is not None:
            kwargs["max_workers"] = int(value)
        value = _get("REQUEST_TIMEOUT")
        if value is not None:
            kwargs["request_timeout"] = float(value)

        retry_kwargs: dict[str, Any] = {}
        value = _get("RETRY_ENABLED")
        if value is not None:
            retry_kwargs["enabled"] = _flag(value)
        value = _get("RETRY_MAX_ATTEMPTS")
        if value is not None:
            retry_kwargs["max_attempts"] = int(value)
        value = _get("RETRY_DELAY")
        if value is not None:
            retry_kwargs["delay"] = float(value)
        if retry_kwargs:
            kwargs["default_retry"] = RetryPolicy(**retry_kwargs)

        return cls(**kwargs)

    @classmethod
    def production_defaults(cls) -> ContractClientConfig:
        """Create configuration with production-ready defaults.

        - Two attempts per call with 1.1s between them
        - 10-second per-attempt timeout to fail fast
        - 16 workers for Future-returning calls
        """
        return cls(
            return_none_on_empty_body=True,
            max_workers=16,
            default_retry=RetryPolicy(enabled=True, max_attempts=2, delay=1.1),
            request_timeout=10.0,
        )

    @classmethod
    def development_defaults(cls) -> ContractClientConfig:
        """Create configuration with development-friendly defaults.

        - No retries so failures show up immediately
        - Generous timeout to allow debugging the remote side
        """
        return cls(
            return_none_on_empty_body=True,
            max_workers=4,
            default_retry=RetryPolicy(enabled=False),
            request_timeout=300.0,
        )
