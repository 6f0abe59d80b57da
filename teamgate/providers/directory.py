# -*- coding: utf-8 -*-
"""Location: ./teamgate/providers/directory.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Teamgate Contributors

Directory Providers.
Map a directory identifier (UPN) to a deliverable mail address.
"""

# Standard
from typing import Optional

# Third-Party
import httpx

# First-Party
from teamgate.config import settings
from teamgate.services.logging_service import LoggingService

logging_service = LoggingService()
logger = logging_service.get_logger(__name__)


class DirectoryLookupError(Exception):
    """Raised when a UPN cannot be resolved to a mail address.

    Examples:
        >>> error = DirectoryLookupError("unknown", upn="ghost@contoso.com")
        >>> error.upn
        'ghost@contoso.com'
    """

    def __init__(self, message: str, upn: Optional[str] = None):
        """Initialize the error.

        Args:
            message: Error description
            upn: The identifier that failed to resolve
        """
        super().__init__(message)
        self.upn = upn


class DirectoryProvider:
    """Interface of a directory provider."""

    async def get_address_from_upn(self, upn: str) -> str:
        """Resolve a UPN.

        Args:
            upn: Directory user principal name

        Returns:
            str: Mail address

        Raises:
            NotImplementedError: Always, subclasses implement the lookup
        """
        raise NotImplementedError


class PassthroughDirectoryProvider(DirectoryProvider):
    """Directory where the UPN is itself the mail address.

    Examples:
        >>> import asyncio
        >>> asyncio.run(PassthroughDirectoryProvider().get_address_from_upn("Octo@Contoso.com"))
        'Octo@Contoso.com'
        >>> try:
        ...     asyncio.run(PassthroughDirectoryProvider().get_address_from_upn("octocat"))
        ... except DirectoryLookupError as e:
        ...     e.upn
        'octocat'
    """

    async def get_address_from_upn(self, upn: str) -> str:
        """Return the UPN when it looks like an address.

        Args:
            upn: Directory user principal name

        Returns:
            str: The same value

        Raises:
            DirectoryLookupError: If the UPN is not an address
        """
        if not upn or "@" not in upn:
            raise DirectoryLookupError(f"'{upn}' is not a mail address", upn=upn)
        return upn


class HttpDirectoryProvider(DirectoryProvider):
    """Directory lookups against a REST endpoint.

    The endpoint is called as ``GET {api_url}/users/{upn}`` and must answer a JSON
    object carrying ``mail``.
    """

    def __init__(self, http_client: httpx.AsyncClient, api_url: Optional[str] = None, token: Optional[str] = None):
        """Initialize the provider.

        Args:
            http_client: Shared HTTP client
            api_url: Directory endpoint (default from settings)
            token: Bearer token (default from settings)

        Raises:
            ValueError: If no endpoint is configured
        """
        api_url = api_url or settings.directory_api_url
        if not api_url:
            raise ValueError("directory_api_url is required for the http directory provider")
        self.http_client = http_client
        self.api_url = api_url.rstrip("/")
        if token is None and settings.directory_api_token is not None:
            token = settings.directory_api_token.get_secret_value()
        self._headers = {"Authorization": f"Bearer {token}"} if token else {}

    async def get_address_from_upn(self, upn: str) -> str:
        """Resolve a UPN through the directory endpoint.

        Args:
            upn: Directory user principal name

        Returns:
            str: Mail address

        Raises:
            DirectoryLookupError: If the user is unknown or has no mail, the call fails, or the answer is not a JSON object
        """
        try:
            response = await self.http_client.get(f"{self.api_url}/users/{upn}", headers=self._headers)
        except httpx.HTTPError as e:
            raise DirectoryLookupError(f"Directory lookup for {upn} failed: {e}", upn=upn) from e

        if response.status_code == 404:
            raise DirectoryLookupError(f"Unknown directory identifier {upn}", upn=upn)
        if response.status_code >= 400:
            raise DirectoryLookupError(f"Directory lookup for {upn} returned {response.status_code}", upn=upn)

        try:
            payload = response.json()
        except ValueError as e:
            raise DirectoryLookupError(f"Directory lookup for {upn} returned a non-JSON body", upn=upn) from e
        if not isinstance(payload, dict):
            raise DirectoryLookupError(f"Directory lookup for {upn} returned {type(payload).__name__}, expected an object", upn=upn)

        mail = payload.get("mail")
        if not mail:
            raise DirectoryLookupError(f"Directory entry {upn} has no mail address", upn=upn)
        return mail


def create_directory_provider(http_client: httpx.AsyncClient) -> DirectoryProvider:
    """Build the configured directory provider.

    Args:
        http_client: Shared HTTP client

    Returns:
        DirectoryProvider: The provider
    """
    if settings.directory_provider == "http":
        return HttpDirectoryProvider(http_client)
    return PassthroughDirectoryProvider()
