# ruff: noqa: A005
"""Structured logging configuration.

This module configures structlog on top of the standard library logging
module and exposes ``get_logger`` for every other module of the package.

Design Principles:
- One processor chain, configured once per process
- Context variables (scope id, request id) merged into every record
- Environment-specific defaults (console renderer in development,
  JSON in staging/production, quiet plain output in tests)

Architecture:
- LogConfig: Configuration with validation and environment defaults
- LoggerFactory: Processor chain setup and logger caching
- get_logger / bound_context: Module level helpers

Note: This module name intentionally shadows the standard library 'logging'
module inside the package namespace; the stdlib module is imported absolutely.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

import structlog
from structlog.contextvars import (
    bind_contextvars,
    merge_contextvars,
    reset_contextvars,
)

from audit_trail.core.enums import Environment, LogFormat, LogLevel
from audit_trail.core.errors import ConfigurationError


@dataclass
class LogConfig:
    """
    Logging configuration with validation and environment defaults.

    Usage Example:
        config = LogConfig(level=LogLevel.DEBUG, environment=Environment.DEVELOPMENT)
        configure_logging(config)
    """

    level: LogLevel = field(default=LogLevel.INFO)
    format: LogFormat | None = field(default=None)
    environment: Environment = field(default=Environment.DEVELOPMENT)

    enable_timestamps: bool = field(default=True)
    enable_caller_info: bool = field(default=False)
    enable_exception_info: bool = field(default=True)

    quiet_loggers: tuple[str, ...] = field(
        default=("sqlalchemy.engine", "celery", "kombu", "httpx")
    )

    def __post_init__(self):
        """Post-initialization validation and setup."""
        self.validate()
        self.apply_environment_defaults()

    def validate(self) -> None:
        """
        Validate logging configuration parameters.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if not isinstance(self.level, LogLevel):
            raise ConfigurationError(
                f"Invalid log level: {self.level!r}", config_key="AUDIT_LOG_LEVEL"
            )
        if self.format is not None and not isinstance(self.format, LogFormat):
            raise ConfigurationError(
                f"Invalid log format: {self.format!r}", config_key="AUDIT_LOG_FORMAT"
            )

    def apply_environment_defaults(self) -> None:
        """Apply environment-specific defaults for settings left unspecified."""
        if self.environment == Environment.DEVELOPMENT:
            self.format = self.format or LogFormat.CONSOLE
            self.enable_caller_info = True

        elif self.environment == Environment.TESTING:
            self.level = LogLevel.WARNING
            self.format = self.format or LogFormat.PLAIN

        else:
            self.format = self.format or LogFormat.JSON
            self.enable_caller_info = False

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "level": self.level.level_name,
            "format": self.format.value if self.format else None,
            "environment": self.environment.value,
            "enable_timestamps": self.enable_timestamps,
            "enable_caller_info": self.enable_caller_info,
        }


class LoggerFactory:
    """Creates structlog loggers once the processor chain is installed."""

    def __init__(self, config: LogConfig):
        self.config = config
        self._loggers: dict[str, Any] = {}
        self._configured = False

    def configure_logging(self) -> None:
        """Configure structlog and the stdlib root handler."""
        if self._configured:
            return

        processors: list[Any] = [
            merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
        ]

        if self.config.enable_timestamps:
            processors.append(structlog.processors.TimeStamper(fmt="iso"))

        if self.config.enable_caller_info:
            processors.append(
                structlog.processors.CallsiteParameterAdder(
                    parameters=[
                        structlog.processors.CallsiteParameter.FILENAME,
                        structlog.processors.CallsiteParameter.LINENO,
                        structlog.processors.CallsiteParameter.FUNC_NAME,
                    ]
                )
            )

        if self.config.enable_exception_info:
            processors.extend(
                [
                    structlog.processors.StackInfoRenderer(),
                    structlog.processors.format_exc_info,
                ]
            )

        processors.append(structlog.processors.UnicodeDecoder())

        if self.config.format == LogFormat.JSON:
            processors.append(structlog.processors.JSONRenderer())
        elif self.config.format == LogFormat.CONSOLE:
            processors.append(structlog.dev.ConsoleRenderer(colors=False))
        else:
            processors.append(structlog.processors.KeyValueRenderer())

        structlog.configure(
            processors=processors,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

        logging.basicConfig(
            format="%(message)s",
            stream=sys.stdout,
            level=self.config.level.to_logging_level(),
        )

        if self.config.environment.is_production:
            for name in self.config.quiet_loggers:
                logging.getLogger(name).setLevel(logging.WARNING)

        self._configured = True

    def get_logger(self, name: str) -> Any:
        """Get or create a structlog logger bound to ``name``."""
        if not self._configured:
            self.configure_logging()

        if name not in self._loggers:
            self._loggers[name] = structlog.get_logger(name)

        return self._loggers[name]


_logger_factory: LoggerFactory | None = None


def configure_logging(config: LogConfig | None = None) -> None:
    """
    Configure global logging system.

    Args:
        config: Logging configuration (uses defaults if not provided)
    """
    global _logger_factory  # noqa: PLW0603 - Required to initialize global factory

    _logger_factory = LoggerFactory(config or LogConfig())
    _logger_factory.configure_logging()


def get_logger(name: str) -> Any:
    """
    Get structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        A structlog bound logger
    """
    if _logger_factory is None:
        configure_logging()

    return _logger_factory.get_logger(name)


@contextmanager
def bound_context(**kwargs: Any) -> Iterator[None]:
    """Bind logging context for the duration of a block."""
    tokens = bind_contextvars(**{k: v for k, v in kwargs.items() if v is not None})
    try:
        yield
    finally:
        reset_contextvars(**tokens)
