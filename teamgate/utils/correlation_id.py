# -*- coding: utf-8 -*-
"""Location: ./teamgate/utils/correlation_id.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Teamgate Contributors

Correlation IDs for join requests.

A correlation ID follows one join request from the HTTP layer through the
approval pipeline into the rendered mails, the issue telemetry and every log
line. It is kept in a ContextVar, so concurrent submissions stay apart and a
pipeline shielded from client disconnects still sees the ID of the request
that started it.

Examples:
    >>> with correlation_scope("join-1"):
    ...     get_correlation_id()
    'join-1'
    >>> get_correlation_id() is None
    True
"""

# Standard
from contextlib import contextmanager
from contextvars import ContextVar
import logging
import re
from typing import Iterator, Mapping, Optional
import uuid

logger = logging.getLogger(__name__)

MAX_CORRELATION_ID_LENGTH = 255

_SAFE_ID = re.compile(r"^[A-Za-z0-9_-]+$")
_current_id: ContextVar[Optional[str]] = ContextVar("teamgate_correlation_id", default=None)


def get_correlation_id() -> Optional[str]:
    """Correlation ID of the join request being handled, if any.

    Returns:
        Optional[str]: The ID, or None outside a request
    """
    return _current_id.get()


def set_correlation_id(correlation_id: Optional[str]) -> None:
    """Bind an ID to the current context.

    Args:
        correlation_id: ID to bind, None to unbind
    """
    _current_id.set(correlation_id)


def clear_correlation_id() -> None:
    """Unbind the current ID."""
    _current_id.set(None)


def new_correlation_id() -> str:
    """Create an ID for a request that did not bring a usable one.

    Returns:
        str: 32 lowercase hex characters

    Examples:
        >>> cid = new_correlation_id()
        >>> len(cid), cid == cid.lower()
        (32, True)
    """
    return uuid.uuid4().hex


def correlation_id_from_headers(headers: Mapping[str, str], header_name: str = "X-Correlation-ID", max_length: int = MAX_CORRELATION_ID_LENGTH) -> Optional[str]:
    """Client-supplied ID from the request headers, when safe to reuse.

    The header name matches case-insensitively and padding is stripped. Values
    end up in mail bodies and log records, so only ``[A-Za-z0-9_-]`` up to
    ``max_length`` characters is accepted.

    Args:
        headers: Request headers
        header_name: Header carrying the ID
        max_length: Longest accepted ID

    Returns:
        Optional[str]: The ID, or None when absent, blank or rejected

    Examples:
        >>> correlation_id_from_headers({"x-correlation-id": " abc-123 "})
        'abc-123'
        >>> correlation_id_from_headers({"X-Correlation-ID": "<b>hi</b>"}) is None
        True
        >>> correlation_id_from_headers({"X-Request-ID": "r1"}, "x-request-id")
        'r1'
        >>> correlation_id_from_headers({"X-Correlation-ID": "a" * 300}) is None
        True
    """
    wanted = header_name.lower()
    value = next((v for k, v in headers.items() if k.lower() == wanted), None)
    if value is None or not value.strip():
        return None

    value = value.strip()
    if len(value) > max_length:
        logger.warning(f"Ignoring {header_name}: {len(value)} characters exceeds {max_length}")
        return None
    if not _SAFE_ID.match(value):
        logger.warning(f"Ignoring {header_name}: unsupported characters")
        return None
    return value


@contextmanager
def correlation_scope(correlation_id: str) -> Iterator[str]:
    """Bind ``correlation_id`` for the duration of the block, restoring the previous one after.

    Args:
        correlation_id: ID to bind

    Yields:
        str: The bound ID
    """
    token = _current_id.set(correlation_id)
    try:
        yield correlation_id
    finally:
        _current_id.reset(token)
