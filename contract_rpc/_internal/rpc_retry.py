"""
Retry management for contract call dispatch.

This module provides RetryManager, which turns a method's RetryPolicy into
tenacity retry behavior around a single network attempt.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, TypeVar

import tenacity
from tenacity import Retrying, stop_after_attempt, wait_fixed
from tenacity.retry import retry_if_exception

from ..exceptions import ConnectionFailure, RemoteHttpError
from ..logger import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

    from ..config import RetryPolicy

logger = get_logger("RPC_RETRY")

T = TypeVar("T")


def _is_retryable(value: Any) -> bool:
    """
    Check if a failed attempt is worth repeating.

    Connection-level failures and 5xx responses are retried. Client errors
    (4xx) are not, since repeating the same request won't change the answer.

    Parameters
    ----------
    value : Any
        The exception raised by the attempt.

    Returns
    -------
    bool
        True if the attempt should be retried, False otherwise.
    """
    if isinstance(value, RemoteHttpError):
        return value.status_code >= 500
    return isinstance(value, ConnectionFailure)


def _log_retry_attempt(retry_state: tenacity.RetryCallState) -> None:
    """
    Log the failure that triggered a retry.

    Invoked by tenacity before sleeping between two attempts.
    """
    outcome = retry_state.outcome
    if outcome is not None:
        logger.warning(
            "Attempt %d failed, retrying: %s",
            retry_state.attempt_number,
            outcome.exception(),
        )


class RetryManager:
    """
    Applies a RetryPolicy around a dispatch attempt.

    The policy decides how many attempts are made and how long to wait
    between them. Once attempts are exhausted the last exception is raised
    again unchanged, so a RemoteHttpError keeps the last-seen status, headers
    and body.

    Parameters
    ----------
    policy : RetryPolicy
        Retry behavior of the contract method being dispatched.

    Usage
    -----
    ```python
    retry_mgr = RetryManager(RetryPolicy(max_attempts=3, delay=0.5))
    response = retry_mgr.call(lambda: send_once(request))
    ```
    """

    def __init__(self, policy: RetryPolicy) -> None:
        self._policy = policy

    @property
    def is_enabled(self) -> bool:
        """
        Check if more than one attempt may be made.

        Returns:
            bool: True if the policy allows retries.
        """
        return self._policy.attempts > 1

    @property
    def attempts(self) -> int:
        return self._policy.attempts

    def build(self) -> Retrying:
        """
        Build the tenacity controller for one dispatch.
        """
        return Retrying(
            stop=stop_after_attempt(self._policy.attempts),
            wait=wait_fixed(self._policy.delay),
            retry=retry_if_exception(_is_retryable),
            before_sleep=_log_retry_attempt,
            reraise=True,
        )

    def call(self, func: Callable[[], T]) -> T:
        """
        Run ``func`` with retry behavior.

        If retries are disabled, ``func`` is called exactly once.
        """
        if not self.is_enabled:
            return func()
        return self.build()(func)
