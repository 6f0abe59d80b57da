# -*- coding: utf-8 -*-
"""Location: ./tests/unit/teamgate/services/test_mail_address_service.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Teamgate Contributors

Tests for the mail address resolver.
"""

# Standard
import asyncio
from unittest.mock import AsyncMock

# Third-Party
import pytest

# First-Party
from teamgate.providers.directory import DirectoryLookupError, DirectoryProvider
from teamgate.services.errors import AddressResolutionError
from teamgate.services.mail_address_service import MailAddressResolver, ResolutionPolicy


class CountingDirectory(DirectoryProvider):
    """Directory that maps ``user@corp`` to ``user@mail`` and tracks concurrency."""

    def __init__(self, failing=(), delay=0.01):
        self.failing = set(failing)
        self.delay = delay
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def get_address_from_upn(self, upn):
        self.calls.append(upn)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if upn in self.failing:
                raise DirectoryLookupError(f"Unknown identity {upn}", upn=upn)
            return upn.replace("@corp", "@mail")
        finally:
            self.in_flight -= 1


class TestMailAddressResolver:
    """Tests for MailAddressResolver."""

    @pytest.mark.asyncio
    async def test_get_address_from_upn(self):
        """A known identity resolves to its address."""
        resolver = MailAddressResolver(CountingDirectory())

        assert await resolver.get_address_from_upn("ada@corp") == "ada@mail"

    @pytest.mark.asyncio
    async def test_get_address_from_upn_wraps_directory_errors(self):
        """Directory failures surface as AddressResolutionError carrying the identity."""
        resolver = MailAddressResolver(CountingDirectory(failing={"ghost@corp"}))

        with pytest.raises(AddressResolutionError) as exc_info:
            await resolver.get_address_from_upn("ghost@corp")

        assert exc_info.value.upn == "ghost@corp"
        assert isinstance(exc_info.value.__cause__, DirectoryLookupError)

    @pytest.mark.asyncio
    async def test_get_address_from_upn_rejects_empty_result(self):
        """An empty directory answer is a resolution failure."""
        directory = AsyncMock(spec=DirectoryProvider)
        directory.get_address_from_upn.return_value = ""
        resolver = MailAddressResolver(directory)

        with pytest.raises(AddressResolutionError, match="no address"):
            await resolver.get_address_from_upn("ada@corp")

    @pytest.mark.asyncio
    async def test_get_address_from_upn_without_identity(self):
        """A missing identity fails without calling the directory."""
        directory = AsyncMock(spec=DirectoryProvider)
        resolver = MailAddressResolver(directory)

        with pytest.raises(AddressResolutionError):
            await resolver.get_address_from_upn(None)

        directory.get_address_from_upn.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_resolve_many_keeps_input_order_and_skips_missing(self):
        """Results align with the input; entries without identity stay None."""
        directory = CountingDirectory()
        resolver = MailAddressResolver(directory)

        result = await resolver.resolve_many(["a@corp", None, "b@corp"], ResolutionPolicy.STRICT)

        assert result == ["a@mail", None, "b@mail"]
        assert sorted(directory.calls) == ["a@corp", "b@corp"]

    @pytest.mark.asyncio
    async def test_resolve_many_strict_raises_on_failure(self):
        """Under STRICT one failure fails the whole batch."""
        resolver = MailAddressResolver(CountingDirectory(failing={"b@corp"}))

        with pytest.raises(AddressResolutionError) as exc_info:
            await resolver.resolve_many(["a@corp", "b@corp", "c@corp"], ResolutionPolicy.STRICT)

        assert exc_info.value.upn == "b@corp"

    @pytest.mark.asyncio
    async def test_resolve_many_strict_cancels_remaining_lookups(self):
        """Under STRICT the first failure stops lookups still in flight or queued."""
        finished = []

        class SlowDirectory(DirectoryProvider):
            async def get_address_from_upn(self, upn):
                if upn == "gone@corp":
                    raise DirectoryLookupError("Unknown identity gone@corp", upn=upn)
                await asyncio.sleep(5)
                finished.append(upn)
                return upn.replace("@corp", "@mail")

        resolver = MailAddressResolver(SlowDirectory(), concurrency=2)

        with pytest.raises(AddressResolutionError) as exc_info:
            await asyncio.wait_for(resolver.resolve_many(["slow@corp", "gone@corp", "queued@corp"], ResolutionPolicy.STRICT), timeout=1)

        assert exc_info.value.upn == "gone@corp"
        assert finished == []

    @pytest.mark.asyncio
    async def test_resolve_many_best_effort_skips_failures(self):
        """Under BEST_EFFORT failing entries are left None."""
        resolver = MailAddressResolver(CountingDirectory(failing={"b@corp"}))

        result = await resolver.resolve_many(["a@corp", "b@corp", "c@corp"], ResolutionPolicy.BEST_EFFORT)

        assert result == ["a@mail", None, "c@mail"]

    @pytest.mark.asyncio
    async def test_resolve_many_bounds_concurrency(self):
        """No more than ``concurrency`` lookups run at the same time."""
        directory = CountingDirectory(delay=0.02)
        resolver = MailAddressResolver(directory, concurrency=2)

        await resolver.resolve_many([f"user{i}@corp" for i in range(7)], ResolutionPolicy.STRICT)

        assert len(directory.calls) == 7
        assert directory.max_in_flight == 2

    def test_default_concurrency_from_settings(self):
        """The default bound comes from settings."""
        resolver = MailAddressResolver(CountingDirectory())

        assert resolver.concurrency == 5

    @pytest.mark.asyncio
    async def test_resolve_many_empty(self):
        """An empty batch resolves to an empty list."""
        resolver = MailAddressResolver(CountingDirectory())

        assert await resolver.resolve_many([], ResolutionPolicy.STRICT) == []
