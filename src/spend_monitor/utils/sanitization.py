"""Secret sanitization utilities for logging and error messages.

This module provides utilities to sanitize sensitive information (device
tokens, credentials, token-bearing URLs) from strings and structured data
before logging or displaying in error messages.

Device tokens are not fully redacted: an 8-character prefix is kept so that
an operator can still correlate log lines with a registration.

Examples:
    >>> sanitize_text("registering " + "ab" * 32)
    'registering abababab...'

    >>> sanitize_value({"api_secret": "hunter2", "count": 42})
    {'api_secret': '<REDACTED>', 'count': 42}
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import TypeIs

__all__ = [
    "REDACTED",
    "is_sensitive_field",
    "mask_device_token",
    "register_sanitization_pattern",
    "sanitize_args",
    "sanitize_exception",
    "sanitize_mapping",
    "sanitize_text",
    "sanitize_value",
]

# Redaction marker for sanitized values
REDACTED = "<REDACTED>"

TOKEN_PREVIEW_LENGTH = 8

# 64-hex push device tokens, not part of a longer hex run
_DEVICE_TOKEN_PATTERN = re.compile(r"(?<![0-9a-fA-F])([0-9a-fA-F]{8})[0-9a-fA-F]{56}(?![0-9a-fA-F])")

# Tokens in URL path segments or query parameters
_GENERIC_TOKEN_IN_PATH = re.compile(
    r"(/(?:token|api[-_]?key|auth|secret|bearer)[=/])([^/?#\s]+)",
    re.IGNORECASE,
)
_GENERIC_TOKEN_IN_QUERY = re.compile(
    r"([?&](?:token|api[-_]?key|auth|secret|bearer|signature)=)([^&\s]+)",
    re.IGNORECASE,
)

# Patterns contributed at import time by provider plugins
_registered_patterns: list[tuple[re.Pattern[str], str]] = []

# Sensitive field name patterns (case-insensitive)
_SENSITIVE_FIELD_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in [
        r".*token.*",
        r".*key.*",
        r".*secret.*",
        r".*password.*",
        r".*credential.*",
        r".*auth.*",
        r".*bearer.*",
        r".*private.*",
    ]
]


def register_sanitization_pattern(pattern: re.Pattern[str], replacement: str = REDACTED) -> None:
    """Register an additional redaction pattern.

    Args:
        pattern: Compiled pattern matching secret text
        replacement: Substitution string (may reference groups)
    """
    if all(existing is not pattern for existing, _ in _registered_patterns):
        _registered_patterns.append((pattern, replacement))


def is_sensitive_field(field_name: str) -> bool:
    """Check if a field name indicates sensitive data.

    Examples:
        >>> is_sensitive_field("device_token")
        True
        >>> is_sensitive_field("endpoint")
        False
    """
    return any(pattern.match(field_name) for pattern in _SENSITIVE_FIELD_PATTERNS)


def mask_device_token(token: str) -> str:
    """Reduce a device token to a short preview.

    Examples:
        >>> mask_device_token("0123456789abcdef" * 4)
        '01234567...'
    """
    if len(token) <= TOKEN_PREVIEW_LENGTH:
        return "..."
    return f"{token[:TOKEN_PREVIEW_LENGTH]}..."


def sanitize_text(text: str) -> str:
    """Sanitize secrets embedded in free text.

    Args:
        text: Text to sanitize

    Returns:
        Text with device tokens masked and registered secrets redacted
    """
    # Defensive check for runtime safety, even though type signature requires str
    if not text or not isinstance(text, str):  # pyright: ignore[reportUnnecessaryIsInstance]
        return text

    sanitized = text
    for pattern, replacement in _registered_patterns:
        sanitized = pattern.sub(replacement, sanitized)

    sanitized = _DEVICE_TOKEN_PATTERN.sub(r"\1...", sanitized)
    sanitized = _GENERIC_TOKEN_IN_PATH.sub(rf"\1{REDACTED}", sanitized)
    return _GENERIC_TOKEN_IN_QUERY.sub(rf"\1{REDACTED}", sanitized)


def _is_primitive(value: object) -> TypeIs[str | int | float | bool | None]:
    return isinstance(value, (str, int, float, bool, type(None)))


def _is_mapping(value: object) -> TypeIs[Mapping[str, object]]:
    return isinstance(value, Mapping)


def _is_sequence(value: object) -> TypeIs[Sequence[object]]:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes))


def sanitize_value(
    value: object,
    *,
    field_name: str | None = None,
) -> object:
    """Recursively sanitize sensitive values from structured data.

    This function walks through nested data structures (dicts, lists, tuples)
    and sanitizes sensitive values based on:
    1. Field name patterns (e.g., "token", "password", "secret")
    2. Secret patterns in string values
    3. Recursive processing of nested structures

    Args:
        value: The value to sanitize (can be any type)
        field_name: Optional field name for context-aware sanitization

    Returns:
        Sanitized value with secrets replaced by REDACTED marker
    """
    if field_name and is_sensitive_field(field_name):
        return REDACTED

    if _is_primitive(value):
        if type(value) is str:
            return sanitize_text(value)
        return value

    if _is_mapping(value):
        sanitized_dict: dict[str, object] = {
            key: sanitize_value(val, field_name=str(key)) for key, val in value.items()
        }
        return sanitized_dict

    if _is_sequence(value):
        sanitized_items: list[object] = [sanitize_value(item) for item in value]
        if isinstance(value, tuple):
            return tuple(sanitized_items)
        return sanitized_items

    # Fail-safe for unexpected types
    return sanitize_text(str(value))


def sanitize_exception(exc: BaseException) -> str:
    """Sanitize exception messages to remove sensitive information.

    Examples:
        >>> sanitize_exception(ValueError("bad token " + "f" * 64))
        'ValueError: bad token ffffffff...'
    """
    return f"{type(exc).__name__}: {sanitize_text(str(exc))}"


def sanitize_args(args: tuple[object, ...]) -> tuple[object, ...]:
    """Sanitize a tuple of logging arguments."""
    return tuple(sanitize_value(arg) for arg in args)


def sanitize_mapping(
    data: Mapping[str, object],
) -> dict[str, object]:
    """Sanitize a mapping (e.g., logging extra dict) for safe output.

    Examples:
        >>> sanitize_mapping({"user_secret": "x", "status": 200})
        {'user_secret': '<REDACTED>', 'status': 200}
    """
    return {key: sanitize_value(val, field_name=key) for key, val in data.items()}
