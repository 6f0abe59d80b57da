# -*- coding: utf-8 -*-
"""Tests for correlation ID helpers."""

# Standard
import asyncio

# Third-Party
import pytest

# First-Party
from teamgate.utils.correlation_id import (
    clear_correlation_id,
    correlation_id_from_headers,
    correlation_scope,
    get_correlation_id,
    new_correlation_id,
    set_correlation_id,
)


@pytest.fixture(autouse=True)
def unbound():
    """Every test starts and ends without a bound ID."""
    clear_correlation_id()
    yield
    clear_correlation_id()


def test_new_ids_are_distinct():
    """New IDs never repeat."""
    assert len({new_correlation_id() for _ in range(50)}) == 50


def test_scope_restores_outer_id():
    """Nested scopes restore the enclosing ID on exit."""
    set_correlation_id("outer")

    with correlation_scope("inner"):
        assert get_correlation_id() == "inner"

    assert get_correlation_id() == "outer"


def test_scope_restores_after_error():
    """The previous ID comes back even when the block raises."""
    with pytest.raises(RuntimeError):
        with correlation_scope("failing-request"):
            raise RuntimeError("pipeline aborted")

    assert get_correlation_id() is None


@pytest.mark.parametrize(
    "headers,expected",
    [
        ({"X-Correlation-ID": "join-42"}, "join-42"),
        ({"x-correlation-id": "  padded_id  "}, "padded_id"),
        ({"X-Correlation-ID": ""}, None),
        ({"X-Correlation-ID": "two words"}, None),
        ({"X-Correlation-ID": "mail@host"}, None),
        ({"X-Correlation-ID": "x" * 256}, None),
        ({"Accept": "text/html"}, None),
    ],
)
def test_correlation_id_from_headers(headers, expected):
    """Only present, safe and short IDs are reused."""
    assert correlation_id_from_headers(headers) == expected


def test_correlation_id_from_custom_header():
    """Another header name can carry the ID, and the length limit is adjustable."""
    headers = {"X-Request-ID": "r" * 300}

    assert correlation_id_from_headers(headers, "X-Request-ID") is None
    assert correlation_id_from_headers(headers, "X-Request-ID", max_length=300) == "r" * 300


@pytest.mark.asyncio
async def test_concurrent_submissions_keep_their_ids():
    """Concurrent requests never see each other's ID."""
    seen = {}

    async def submission(correlation_id):
        with correlation_scope(correlation_id):
            await asyncio.sleep(0.01)
            seen[correlation_id] = get_correlation_id()

    await asyncio.gather(*(submission(f"join-{i}") for i in range(5)))

    assert seen == {f"join-{i}": f"join-{i}" for i in range(5)}


@pytest.mark.asyncio
async def test_shielded_pipeline_sees_request_id():
    """A pipeline shielded from cancellation keeps the ID of its request."""

    async def pipeline():
        await asyncio.sleep(0)
        return get_correlation_id()

    with correlation_scope("request-id"):
        assert await asyncio.shield(pipeline()) == "request-id"
