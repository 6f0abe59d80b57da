# -*- coding: utf-8 -*-
"""Location: ./teamgate/services/mail_address_service.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Teamgate Contributors

Mail Address Resolution Service.
Resolves directory identifiers (UPNs) to mail addresses, one at a time or for a
list of entries with bounded concurrency. The list form takes a policy:

- ``ResolutionPolicy.STRICT`` aborts on the first failure (approver notification)
- ``ResolutionPolicy.BEST_EFFORT`` skips failing entries (informational pages)

Examples:
    >>> import asyncio
    >>> from teamgate.providers.directory import PassthroughDirectoryProvider
    >>> resolver = MailAddressResolver(PassthroughDirectoryProvider())
    >>> asyncio.run(resolver.resolve_many(["a@contoso.com", None, "b@contoso.com"], ResolutionPolicy.STRICT))
    ['a@contoso.com', None, 'b@contoso.com']
"""

# Standard
import asyncio
from enum import Enum
from typing import List, Optional, Sequence

# First-Party
from teamgate.config import settings
from teamgate.providers.directory import DirectoryLookupError, DirectoryProvider
from teamgate.services.errors import AddressResolutionError
from teamgate.services.logging_service import LoggingService

logging_service = LoggingService()
logger = logging_service.get_logger(__name__)


class ResolutionPolicy(str, Enum):
    """What to do when one address in a batch fails to resolve."""

    STRICT = "strict"
    BEST_EFFORT = "best_effort"


class MailAddressResolver:
    """Service mapping directory identifiers to mail addresses.

    Attributes:
        directory (DirectoryProvider): Backing directory
        concurrency (int): Maximum lookups in flight for one batch
    """

    def __init__(self, directory: DirectoryProvider, concurrency: Optional[int] = None):
        """Initialize the resolver.

        Args:
            directory: Backing directory provider
            concurrency: Maximum concurrent lookups (default from settings)
        """
        self.directory = directory
        self.concurrency = concurrency or settings.mail_resolution_concurrency

    async def get_address_from_upn(self, upn: Optional[str]) -> str:
        """Resolve one identifier.

        Args:
            upn: Directory user principal name

        Returns:
            str: Mail address

        Raises:
            AddressResolutionError: If the directory cannot resolve the identifier
        """
        if not upn:
            raise AddressResolutionError("No directory identity to resolve", upn=upn)
        try:
            address = await self.directory.get_address_from_upn(upn)
        except DirectoryLookupError as e:
            raise AddressResolutionError(str(e), upn=upn) from e
        if not address:
            raise AddressResolutionError(f"Directory returned no address for {upn}", upn=upn)
        return address

    async def resolve_many(self, upns: Sequence[Optional[str]], policy: ResolutionPolicy) -> List[Optional[str]]:
        """Resolve a batch of identifiers, at most ``concurrency`` at a time.

        Entries without an identifier resolve to None without a lookup.

        Args:
            upns: Identifiers, possibly None
            policy: Failure policy for the batch

        Returns:
            List[Optional[str]]: Addresses aligned with ``upns``; None for missing
            identifiers and, under BEST_EFFORT, for failed lookups

        Raises:
            AddressResolutionError: Under STRICT, the first failure; lookups not yet
                finished are cancelled
        """
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _resolve(upn: Optional[str]) -> Optional[str]:
            if not upn:
                return None
            async with semaphore:
                try:
                    return await self.get_address_from_upn(upn)
                except AddressResolutionError as e:
                    if policy is ResolutionPolicy.STRICT:
                        raise
                    logger.debug(f"Skipping unresolved address for {upn}: {e}")
                    return None

        tasks = [asyncio.create_task(_resolve(upn)) for upn in upns]
        if not tasks:
            return []
        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        finally:
            # Lookups still queued or in flight stop at the first failure
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        for task in tasks:
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()
        return [task.result() for task in tasks]
