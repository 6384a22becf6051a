from __future__ import annotations

import logging
import os
from enum import Enum
from logging.config import dictConfig
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from loguru import Logger as LoguruLogger  # type: ignore[import-not-found]

ENV_VAR = "CONTRACT_RPC_LOGGING"
LEVEL_ENV_VAR = "CONTRACT_RPC_LOG_LEVEL"
ROOT_LOGGER = "contract_rpc"


class LoggingModes(Enum):
    # silence the library loggers
    NO_LOGS = 0
    # attach a stream handler to the library loggers
    STANDARD = 1
    # leave configuration to the application
    SIMPLE = 2
    # route everything through loguru
    LOGURU = 3


def _level_from_env(default: int) -> int:
    value = os.environ.get(LEVEL_ENV_VAR, "").strip()
    if not value:
        return default
    if value.isdigit():
        return int(value)
    level = logging.getLevelName(value.upper())
    return level if isinstance(level, int) else default


class LoggingConfig:
    """
    Process-wide logging mode of the library.

    The mode is read lazily from ``CONTRACT_RPC_LOGGING`` (and the level from
    ``CONTRACT_RPC_LOG_LEVEL``) the first time a logger is requested, unless
    ``set_mode()`` was called before.
    """

    def __init__(self) -> None:
        self._mode: LoggingModes | None = None
        self._level = logging.INFO

    @staticmethod
    def _dict_config(handlers: list[str], level: int) -> dict[str, Any]:
        return {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "contract_rpc": {
                    "format": "%(asctime)s %(levelname)-8s [%(threadName)s] %(name)s: %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
            },
            "handlers": {
                "contract_rpc": {
                    "formatter": "contract_rpc",
                    "class": "logging.StreamHandler",
                },
            },
            "loggers": {
                ROOT_LOGGER: {"handlers": handlers, "propagate": False, "level": level},
            },
        }

    @property
    def level(self) -> int:
        return self._level

    def get_mode(self) -> LoggingModes:
        if self._mode is None:
            mode = LoggingModes.__members__.get(
                os.environ.get(ENV_VAR, "").strip().upper(), LoggingModes.SIMPLE
            )
            self.set_mode(mode, _level_from_env(logging.INFO))
        if self._mode is None:
            raise RuntimeError("Logging mode must be set by set_mode() method")
        return self._mode

    def set_mode(self, mode: LoggingModes = LoggingModes.STANDARD, level: int = logging.INFO) -> None:
        """
        Configure the library loggers (all nested under "contract_rpc").

        STANDARD attaches a stream handler with a thread-aware format, NO_LOGS
        silences the library, SIMPLE and LOGURU leave the stdlib configuration
        untouched. Call this before creating clients; for anything more
        elaborate configure the "contract_rpc" logger with 'logging.config'.

        Args:
            mode (LoggingModes, optional): The mode to set logging to. Defaults to
            LoggingModes.STANDARD.
            level (int, optional): The logging level. Defaults to logging.INFO.
        """
        self._mode = mode
        self._level = level
        if mode == LoggingModes.STANDARD:
            dictConfig(self._dict_config(["contract_rpc"], level))
        elif mode == LoggingModes.NO_LOGS:
            dictConfig(self._dict_config([], logging.CRITICAL + 1))

    def reset(self) -> None:
        """Forget the configured mode so the environment is read again (for testing)."""
        self._mode = None
        self._level = logging.INFO


# Singleton for logging configuration
logging_config = LoggingConfig()


def get_logger(name: str) -> logging.Logger | LoguruLogger:
    """
    Get the logger for one library component.

    Args:
        name (str): Component name, e.g. "TRANSPORT".

    Returns:
        A stdlib logger named "contract_rpc.<name>", or the loguru logger bound
        with ``component=<name>`` in LOGURU mode.
    """
    if logging_config.get_mode() == LoggingModes.LOGURU:
        from loguru import logger

        return logger.bind(component=name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
