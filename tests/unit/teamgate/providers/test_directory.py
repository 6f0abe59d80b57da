# -*- coding: utf-8 -*-
"""Location: ./tests/unit/teamgate/providers/test_directory.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Teamgate Contributors

Tests for the directory providers.
"""

# Standard
from unittest.mock import patch

# Third-Party
import httpx
import pytest

# First-Party
from teamgate.providers import directory as directory_module
from teamgate.providers.directory import create_directory_provider, DirectoryLookupError, HttpDirectoryProvider, PassthroughDirectoryProvider
from teamgate.services.errors import AddressResolutionError, ApprovalProviderError
from teamgate.services.mail_address_service import MailAddressResolver


def _provider(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpDirectoryProvider(client, api_url="https://directory.test/v1/", token="secret")


class TestHttpDirectoryProvider:
    """Tests for HttpDirectoryProvider."""

    @pytest.mark.asyncio
    async def test_resolves_mail(self):
        """The mail attribute of the directory entry is returned."""
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"mail": "ada@mail", "upn": "ada@corp"})

        assert await _provider(handler).get_address_from_upn("ada@corp") == "ada@mail"
        assert seen[0].url.path == "/v1/users/ada@corp"
        assert seen[0].headers["Authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response,match",
        [
            (httpx.Response(404, json={}), "Unknown"),
            (httpx.Response(500, json={}), "500"),
            (httpx.Response(200, json={"upn": "ada@corp"}), "no mail"),
        ],
    )
    async def test_lookup_failures(self, response, match):
        """Unknown users, server errors and entries without mail all fail."""
        with pytest.raises(DirectoryLookupError, match=match) as exc_info:
            await _provider(lambda request: response).get_address_from_upn("ada@corp")

        assert exc_info.value.upn == "ada@corp"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response,match",
        [
            (httpx.Response(200, text="<html>Gateway login</html>", headers={"Content-Type": "text/html"}), "non-JSON"),
            (httpx.Response(200, json=["ada@mail"]), "expected an object"),
            (httpx.Response(200, json="ada@mail"), "expected an object"),
        ],
    )
    async def test_unexpected_bodies(self, response, match):
        """Answers that are not a JSON object are lookup failures, not decoding errors."""
        with pytest.raises(DirectoryLookupError, match=match) as exc_info:
            await _provider(lambda request: response).get_address_from_upn("ada@corp")

        assert exc_info.value.upn == "ada@corp"

    @pytest.mark.asyncio
    async def test_html_answer_reaches_resolver_as_resolution_error(self):
        """A proxy page in front of the directory is reported like any other failed lookup."""
        resolver = MailAddressResolver(_provider(lambda request: httpx.Response(200, text="<html>oops</html>")))

        with pytest.raises(AddressResolutionError) as exc_info:
            await resolver.get_address_from_upn("ada@corp")

        assert isinstance(exc_info.value, ApprovalProviderError)
        assert "ada@corp" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        """Transport errors surface as DirectoryLookupError."""

        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(DirectoryLookupError, match="timed out"):
            await _provider(handler).get_address_from_upn("ada@corp")

    def test_requires_endpoint(self):
        """The http provider cannot be built without an endpoint."""
        with patch.object(directory_module.settings, "directory_api_url", None):
            with pytest.raises(ValueError):
                HttpDirectoryProvider(httpx.AsyncClient())


class TestCreateDirectoryProvider:
    """Tests for create_directory_provider."""

    def test_default_is_passthrough(self):
        """Without configuration UPNs are used as addresses."""
        with patch.object(directory_module.settings, "directory_provider", "passthrough"):
            assert isinstance(create_directory_provider(httpx.AsyncClient()), PassthroughDirectoryProvider)

    def test_http_provider(self):
        """The http kind builds an HttpDirectoryProvider."""
        with patch.object(directory_module.settings, "directory_provider", "http"), patch.object(directory_module.settings, "directory_api_url", "https://directory.test"):
            assert isinstance(create_directory_provider(httpx.AsyncClient()), HttpDirectoryProvider)
