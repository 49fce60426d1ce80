"""Standardized Error Handling Utilities

Provides the error taxonomy used across gifcompose and the helpers that turn
foreign exceptions (I/O, struct unpacking, Pillow) into it with consistent
logging.
"""

from __future__ import annotations

import logging
import traceback
from contextlib import contextmanager
from enum import Enum
from typing import Any


class ErrorLevel(Enum):
    """Error severity levels for consistent logging."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class GifComposeError(Exception):
    """Base exception class for all gifcompose errors."""

    def __init__(
        self, message: str, cause: Exception | None = None, context: dict | None = None
    ):
        super().__init__(message)
        self.cause = cause
        self.context = context or {}

    def __str__(self) -> str:
        base_msg = super().__str__()
        if self.cause:
            return f"{base_msg} (caused by: {self.cause})"
        return base_msg


class ConfigurationError(GifComposeError):
    """Raised when frame/delay inputs or configuration values are invalid."""

    pass


class DecodeError(GifComposeError):
    """Raised when a GIF bitstream cannot be decoded."""

    pass


class EncodeError(GifComposeError):
    """Raised when writing a GIF bitstream fails."""

    pass


def _format_context(context: dict) -> str:
    return ", ".join(
        f"{k}={v}" for k, v in context.items() if k not in ["has_traceback"]
    )


def handle_error(
    error: Exception,
    operation: str,
    error_type: type[GifComposeError] = DecodeError,
    level: ErrorLevel = ErrorLevel.ERROR,
    context: dict | None = None,
    logger: logging.Logger | None = None,
    reraise: bool = True,
) -> GifComposeError | None:
    """Standardized error handling with consistent logging and error transformation.

    Errors that already belong to the gifcompose taxonomy keep their type;
    anything else is wrapped into ``error_type``.

    Args:
        error: Original exception that occurred
        operation: Description of operation that failed
        error_type: Type of GifComposeError to raise for foreign exceptions
        level: Logging level for the error
        context: Additional context information
        logger: Logger to use (defaults to module logger)
        reraise: Whether to reraise the transformed exception

    Returns:
        The transformed error if reraise=False, otherwise None

    Raises:
        GifComposeError: Transformed error if reraise=True
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    error_context = dict(context or {})
    error_context.update(
        {
            "operation": operation,
            "original_error_type": type(error).__name__,
            "has_traceback": True,
        }
    )

    if isinstance(error, GifComposeError):
        error.context = {**error_context, **error.context}
        transformed_error = error
    else:
        transformed_error = error_type(
            f"Failed to {operation}: {error}", cause=error, context=error_context
        )

    log_message = f"{operation.capitalize()} failed: {error}"
    context_str = _format_context(error_context)
    if context_str:
        log_message += f" (context: {context_str})"

    log_func = getattr(logger, level.value)
    log_func(log_message)

    if level in [ErrorLevel.ERROR, ErrorLevel.CRITICAL]:
        logger.debug(f"Traceback for {operation}: {traceback.format_exc()}")

    if reraise:
        if transformed_error is error:
            raise transformed_error
        raise transformed_error from error
    return transformed_error


@contextmanager
def error_context(
    operation: str,
    error_type: type[GifComposeError] = DecodeError,
    context: dict | None = None,
) -> Any:
    """Context manager that converts foreign exceptions into ``error_type``.

    Usage:
        with error_context("read image descriptor", DecodeError):
            risky_operation()

    Nothing is logged here; logging happens once, where the error is finally
    handled.

    Args:
        operation: Description of operation being performed
        error_type: Type of GifComposeError to raise on failure
        context: Additional context information
    """
    try:
        yield
    except GifComposeError:
        raise
    except Exception as e:
        raise error_type(
            f"Failed to {operation}: {e}", cause=e, context=dict(context or {})
        ) from e


def log_info_with_context(
    message: str, context: dict | None = None, logger: logging.Logger | None = None
) -> None:
    """Log an info message with standardized context formatting.

    Args:
        message: Info message
        context: Additional context information
        logger: Logger to use
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    info_msg = message
    if context:
        info_msg += f" (context: {_format_context(context)})"

    logger.info(info_msg)
