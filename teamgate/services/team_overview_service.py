# -*- coding: utf-8 -*-
"""Location: ./teamgate/services/team_overview_service.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Teamgate Contributors

Team Overview Service.
Read-only views of a team for the join and overview pages. Maintainer mail
addresses are informational here, so lookups that fail are left blank.
"""

# Standard
from typing import List

# First-Party
from teamgate.schemas import JoinPageResponse, Maintainer, MaintainerResponse, TeamOverviewResponse
from teamgate.services.logging_service import LoggingService
from teamgate.services.mail_address_service import ResolutionPolicy
from teamgate.services.maintainer_service import MaintainerResolver

# Initialize logging
logging_service = LoggingService()
logger = logging_service.get_logger(__name__)


def _to_response(maintainer: Maintainer) -> MaintainerResponse:
    """Convert a maintainer for display.

    Args:
        maintainer: Maintainer

    Returns:
        MaintainerResponse: Display model

    Examples:
        >>> from teamgate.schemas import MaintainerLink
        >>> _to_response(Maintainer(id="1", login="octocat", link=MaintainerLink(upn="o@contoso.com", display_name="Octo Cat"))).display_name
        'Octo Cat'
    """
    display_name = maintainer.link.display_name if maintainer.link else None
    return MaintainerResponse(login=maintainer.login, display_name=display_name, mail_address=maintainer.mail_address)


class TeamOverviewService:
    """Service backing the team pages.

    Attributes:
        maintainer_resolver (MaintainerResolver): Maintainer lookup
    """

    def __init__(self, maintainer_resolver: MaintainerResolver):
        """Initialize the service.

        Args:
            maintainer_resolver: Maintainer lookup
        """
        self.maintainer_resolver = maintainer_resolver

    async def list_maintainers(self, team) -> List[MaintainerResponse]:
        """List the official maintainers with best-effort mail addresses.

        Args:
            team: Team handle

        Returns:
            List[MaintainerResponse]: Maintainers for display
        """
        maintainers = await self.maintainer_resolver.list_official_maintainers(team)
        await self.maintainer_resolver.resolve_mail_addresses(maintainers, ResolutionPolicy.BEST_EFFORT)
        return [_to_response(maintainer) for maintainer in maintainers]

    async def get_join_page(self, organization, team) -> JoinPageResponse:
        """Data for the join page.

        The broad-access team can be joined without approval, so its page
        skips the maintainer lookup.

        Args:
            organization: Organization handle
            team: Team handle

        Returns:
            JoinPageResponse: Join page data
        """
        if organization.is_all_members_team(team):
            return JoinPageResponse(team=team.ref, allow_self_join=True)
        maintainers = await self.maintainer_resolver.list_official_maintainers(team)
        return JoinPageResponse(team=team.ref, maintainers=[_to_response(maintainer) for maintainer in maintainers])

    async def get_overview(self, organization, team) -> TeamOverviewResponse:
        """Data for the team overview page.

        Args:
            organization: Organization handle
            team: Team handle

        Returns:
            TeamOverviewResponse: Overview data
        """
        maintainers = await self.list_maintainers(team)
        logger.debug(f"Team overview {organization.name}/{team.name}: {len(maintainers)} maintainers")
        return TeamOverviewResponse(team=team.ref, org_name=organization.name, is_broad_access_team=organization.is_all_members_team(team), maintainers=maintainers)
