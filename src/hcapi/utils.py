"""Formatting helpers and error logging shared across the client."""

from __future__ import annotations

import logging
import re
import traceback

from hcapi.transport.errors import APIError

# Regular pluralisation rules: (suffix pattern, replacement, characters to drop)
_PLURAL_RULES = [
    (r"on$", "a", 2),
    (r"us$", "i", 1),
    (r"[^aeiou]y$", "ies", 1),
    (r"(ch|is|o|s|sh|x|z)$", "es", 0),
    (r"", "s", 0),
]

_last_logged_error: BaseException | None = None


def plural(count: int, noun: str | tuple[str, str], show_count: bool = True) -> str:
    """Pluralise a noun to agree with a count.

    Args:
        count: Number of items
        noun: Singular noun, or an explicit (singular, plural) pair
        show_count: Prefix the result with the count

    Returns:
        For example ``"1 key"`` or ``"3 appliances"``
    """
    singular, explicit = (noun, "") if isinstance(noun, str) else noun
    word = singular if count == 1 else explicit
    if not word:
        for pattern, suffix, drop in _PLURAL_RULES:
            if re.search(pattern, singular, re.IGNORECASE):
                if singular == singular.upper():
                    suffix = suffix.upper()
                word = singular[: len(singular) - drop] + suffix
                break
    return f"{count} {word}" if show_count else word


def format_list(items: list[str]) -> str:
    """Join items as English prose: ``a``, ``a and b``, ``a, b, and c``."""
    if not items:
        return "n/a"
    if len(items) == 1:
        return items[0]
    if len(items) == 2:
        return f"{items[0]} and {items[1]}"
    return ", ".join([*items[:-1], f"and {items[-1]}"])


def format_duration(seconds: float, max_parts: int = 2) -> str:
    """Describe a duration using its most significant components.

    Args:
        seconds: Duration in seconds
        max_parts: Maximum number of components to include

    Returns:
        For example ``"1 hour 5 minutes"``, or ``"n/a"`` for non-positive values
    """
    ms = int(seconds * 1000)
    if ms < 1:
        return "n/a"

    parts = [
        ("day", ms // 86_400_000),
        ("hour", ms // 3_600_000 % 24),
        ("minute", ms // 60_000 % 60),
        ("second", ms // 1000 % 60),
        ("millisecond", ms % 1000),
    ]
    while parts and parts[0][1] == 0:
        parts.pop(0)
    return " ".join(
        plural(value, name) for name, value in parts[:max_parts] if value != 0
    )


def columns(rows: list[list[str]], separator: str = "  ") -> list[str]:
    """Align rows of cells into columns; the last column is not padded."""
    widths: list[int] = []
    for row in rows:
        for index, value in enumerate(row):
            if index == len(widths):
                widths.append(0)
            widths[index] = max(widths[index], len(value))
    if widths:
        widths[-1] = 0
    return [
        separator.join(value.ljust(widths[index]) for index, value in enumerate(row))
        for row in rows
    ]


def log_error(logger: logging.Logger, when: str, err: BaseException) -> BaseException:
    """Log an error with its request and chain of causes.

    Consecutive reports of the same exception object are suppressed, so an
    error may be logged where it is caught and again where it is re-raised.

    Args:
        logger: Destination logger
        when: Short description of the operation that failed
        err: The exception

    Returns:
        The same exception, so callers can ``raise log_error(...)``
    """
    global _last_logged_error
    if _last_logged_error is err:
        return err
    _last_logged_error = err

    logger.error(f"[{when}] {err}")
    if isinstance(err, APIError):
        logger.error(f"{err.request.method} {err.request.path}")

    cause = err.__cause__
    prefix = " " * (len(when) + 3)
    while cause is not None:
        logger.error(f"{prefix}└─ {cause}")
        prefix += "   "
        cause = cause.__cause__

    if err.__traceback__ is not None:
        logger.debug("".join(traceback.format_exception(err)))
    return err
