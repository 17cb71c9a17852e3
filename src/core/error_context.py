"""Redaction of credentials in Vigil's log context.

Vigil logs request headers, client addresses, store settings and exception
attributes when something fails. Anything that can carry a credential is
replaced with ``REDACTED`` before the record is emitted:

- the store DSN (``store_uri``) and anything naming a password, a token, an API key
  or a session;
- the request headers that carry client credentials;
- extra field names listed in ``LOG_CONFIG__SENSITIVE_FIELDS``.

Field names are split into words (``storeUri``, ``store-uri`` and
``STORE_URI`` all read as ``store uri``) and matched word by word, so a name
such as ``author`` is not mistaken for the ``auth`` prefix of a credential.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Any, Final

from src.core.config import get_settings
from src.core.constants import REDACTED

SanitizableValue = (
    str | int | float | bool | None | dict[str, Any] | list[Any] | tuple[Any, ...]
)

# Headers a client authenticates with, and the cookies the service hands out
SENSITIVE_HEADERS: Final[frozenset[str]] = frozenset(
    {
        "authorization",
        "proxy-authorization",
        "cookie",
        "set-cookie",
        "x-api-key",
        "x-auth-token",
        "x-csrf-token",
    }
)

CREDENTIAL_WORDS: Final[frozenset[str]] = frozenset(
    {
        "apikey",
        "auth",
        "authorization",
        "cookie",
        "credential",
        "credentials",
        "dsn",
        "passphrase",
        "passwd",
        "password",
        "pwd",
        "secret",
        "session",
        "token",
    }
)

# Word pairs that only name a credential together
CREDENTIAL_PAIRS: Final[frozenset[tuple[str, str]]] = frozenset(
    {
        ("api", "key"),
        ("private", "key"),
        ("signing", "key"),
        ("store", "uri"),
        ("store", "url"),
        ("connection", "string"),
    }
)

MAX_DEPTH: Final[int] = 10

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_WORD_SEPARATOR = re.compile(r"[^a-z0-9]+")


@lru_cache(maxsize=1)
def _get_sensitive_fields() -> list[str]:
    """Extra sensitive names from ``LOG_CONFIG__SENSITIVE_FIELDS``, lowercased."""
    return [name.lower() for name in get_settings().log_config.sensitive_fields]


def _words(name: str) -> list[str]:
    spaced = _CAMEL_BOUNDARY.sub(" ", name).lower()
    return [word for word in _WORD_SEPARATOR.split(spaced) if word]


def is_sensitive_field(field_name: str) -> bool:
    """Check whether a log field or payload key may hold a credential.

    Args:
        field_name: The field name to check.

    Returns:
        bool: True when the value must be redacted.
    """
    words = _words(field_name)
    if CREDENTIAL_WORDS.intersection(words):
        return True
    if CREDENTIAL_PAIRS.intersection(zip(words, words[1:], strict=False)):
        return True

    # Configured names match anywhere in the field name
    lowered = field_name.lower()
    return any(name in lowered for name in _get_sensitive_fields())


def is_sensitive_header(header_name: str) -> bool:
    """Check if a header name is sensitive (case-insensitive)."""
    return header_name.lower() in SENSITIVE_HEADERS


def sanitize_value(
    value: SanitizableValue, field_name: str = "", depth: int = 0
) -> SanitizableValue:
    """Redact ``value`` if ``field_name`` is sensitive, descending into containers.

    Structures nested deeper than ``MAX_DEPTH`` are redacted whole.
    """
    if depth > MAX_DEPTH or (field_name and is_sensitive_field(field_name)):
        return REDACTED

    if isinstance(value, dict):
        return {
            key: sanitize_value(item, key, depth + 1) for key, item in value.items()
        }

    if isinstance(value, list | tuple):
        items = [sanitize_value(item, "", depth + 1) for item in value]
        return items if isinstance(value, list) else tuple(items)

    return value


def sanitize_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``data`` with sensitive values redacted."""
    return {key: sanitize_value(value, key) for key, value in data.items()}


def sanitize_headers(headers: dict[str, str]) -> dict[str, str]:
    """Return a copy of ``headers`` with credential headers redacted."""
    return {
        name: REDACTED if is_sensitive_header(name) else value
        for name, value in headers.items()
    }


def sanitize_error_context(
    error: Exception, context: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Build the log fields describing a failed request.

    The fields are the exception type and text, the caller's ``context`` and
    the exception's public attributes (``error_code``, ``client_id``, the
    rejected ``limit`` and so on) under ``error_attributes``. The wrapped
    ``cause`` is left out since the traceback already shows it.

    Args:
        error: The exception being logged.
        context: Request fields to log alongside it.

    Returns:
        dict[str, Any]: Log fields with credentials redacted.
    """
    fields: dict[str, Any] = {
        "error_type": type(error).__name__,
        "error_message": str(error),
        **sanitize_dict(context or {}),
    }

    attributes = {
        name: value
        for name, value in getattr(error, "__dict__", {}).items()
        if not name.startswith("_") and name != "cause"
    }
    if attributes:
        fields["error_attributes"] = sanitize_dict(attributes)

    return fields
