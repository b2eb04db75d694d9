#!/usr/bin/env python3
"""
Error Handling Utility Module

Reusable error handling patterns for the scrape pipeline. A failure of one
filter, locator, build or statistic is logged with its context and the
pipeline moves on; nothing here retries.

This module provides two core utilities:
1. log_and_continue() - Log error and continue execution (for expected failures)
2. log_and_return_default() - Log error and return a default value

Context is attached as `extra_fields`, so it shows up in both the console and
the JSON log formats.
"""

import logging
from typing import Any, TypeVar

T = TypeVar("T")


def _error_fields(error: Exception, context: dict[str, Any], error_type: str) -> dict[str, Any]:
    return {
        "error_type": error_type,
        "exception_class": error.__class__.__name__,
        **context,
    }


def log_and_continue(
    logger: logging.Logger,
    error: Exception,
    context: dict[str, Any],
    error_type: str = "Operation",
    level: str = "warning",
) -> None:
    """
    Log an error with structured context and continue execution gracefully.

    Use this for expected failures that must not halt the caller (e.g., a
    statistic whose value is not a number).

    Args:
        logger: Logger instance from logging.getLogger(__name__)
        error: The caught exception
        context: Structured data about what failed (build_id, filter, ...)
        error_type: Human-readable description of the operation
        level: Log level name (default: warning)

    Example:
        try:
            value = float(prop.value)
        except ValueError as e:
            log_and_continue(logger, e, {"property": prop.name}, "Value parsing", level="error")
            continue
    """
    log_func = getattr(logger, level.lower())
    log_func(
        f"{error_type} failed: {error}",
        extra={"extra_fields": _error_fields(error, context, error_type)},
    )


def log_and_return_default(
    logger: logging.Logger,
    error: Exception,
    context: dict[str, Any],
    default_value: T,
    error_type: str = "Operation",
    level: str = "warning",
) -> T:
    """
    Log an error and return a default value.

    Use this when a stage should yield an empty result on failure rather
    than raising.

    Args:
        logger: Logger instance
        error: The caught exception
        context: Structured data about what failed
        default_value: Value to return on error (None, [], {}, etc.)
        error_type: Human-readable description
        level: Log level name (default: warning)

    Returns:
        default_value

    Example:
        try:
            return await client.get_builds(locator)
        except httpx.HTTPError as e:
            return log_and_return_default(logger, e, locator.log_fields(), [], "Build search")
    """
    log_func = getattr(logger, level.lower())
    log_func(
        f"{error_type} failed, returning default value: {error}",
        extra={"extra_fields": {**_error_fields(error, context, error_type), "default_value": str(default_value)}},
    )
    return default_value
