# -*- coding: utf-8 -*-
"""Location: ./teamgate/services/maintainer_service.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Teamgate Contributors

Maintainer Service.
Finds the maintainers of a team who can review join requests and resolves
their mail addresses. The join pipeline resolves strictly; the team overview
page resolves best-effort through the same loop.
"""

# Standard
from typing import Dict, Iterable, List

# Third-Party
from sqlalchemy import select
from sqlalchemy.orm import Session

# First-Party
from teamgate.db import AccountLink
from teamgate.schemas import Maintainer, MaintainerLink
from teamgate.services.errors import MembershipProviderError
from teamgate.services.logging_service import LoggingService
from teamgate.services.mail_address_service import MailAddressResolver, ResolutionPolicy

logging_service = LoggingService()
logger = logging_service.get_logger(__name__)


def load_account_links(db: Session, account_ids: Iterable[str]) -> Dict[str, MaintainerLink]:
    """Load directory links for a set of issue tracker accounts.

    Args:
        db: Database session
        account_ids: Issue tracker account ids

    Returns:
        Dict[str, MaintainerLink]: Links keyed by account id; unlinked accounts are absent
    """
    ids = [account_id for account_id in account_ids if account_id]
    if not ids:
        return {}
    rows = db.execute(select(AccountLink).where(AccountLink.account_id.in_(ids))).scalars().all()
    return {row.account_id: MaintainerLink(upn=row.upn, display_name=row.display_name) for row in rows}


class MaintainerResolver:
    """Service for team maintainer lookups.

    Attributes:
        address_resolver (MailAddressResolver): Resolver for maintainer mail addresses
    """

    def __init__(self, address_resolver: MailAddressResolver):
        """Initialize the service.

        Args:
            address_resolver: Resolver for maintainer mail addresses
        """
        self.address_resolver = address_resolver

    async def list_official_maintainers(self, team) -> List[Maintainer]:
        """Fetch every designated maintainer of a team, linked or not.

        Args:
            team: Team handle exposing ``get_official_maintainers()``

        Returns:
            List[Maintainer]: The maintainers

        Raises:
            MembershipProviderError: If the team service fails
        """
        try:
            return list(await team.get_official_maintainers())
        except Exception as e:
            raise MembershipProviderError(f"Could not list maintainers of team {team.name}: {e}") from e

    async def list_eligible_maintainers(self, team) -> List[Maintainer]:
        """Fetch the maintainers able to review join requests.

        A maintainer is eligible when it has both a login and a directory link.

        Args:
            team: Team handle exposing ``get_official_maintainers()``

        Returns:
            List[Maintainer]: Eligible maintainers, in the order the team reports them

        Raises:
            MembershipProviderError: If the team service fails
        """
        maintainers = await self.list_official_maintainers(team)
        eligible = [maintainer for maintainer in maintainers if maintainer is not None and maintainer.is_eligible()]
        if len(eligible) != len(maintainers):
            logger.info(f"Team {team.name}: {len(eligible)} of {len(maintainers)} maintainers are linked and eligible to review")
        return eligible

    async def resolve_mail_addresses(self, maintainers: List[Maintainer], policy: ResolutionPolicy) -> List[Maintainer]:
        """Set ``mail_address`` on every maintainer that has a directory identifier.

        Args:
            maintainers: Maintainers to resolve
            policy: STRICT aborts on the first failure; BEST_EFFORT leaves failed entries unset

        Returns:
            List[Maintainer]: The same maintainers

        Raises:
            AddressResolutionError: Under STRICT, when any lookup fails
        """
        addresses = await self.address_resolver.resolve_many([maintainer.upn for maintainer in maintainers], policy)
        for maintainer, address in zip(maintainers, addresses):
            if address:
                maintainer.mail_address = address
        return maintainers
