# -*- coding: utf-8 -*-
"""Location: ./tests/unit/teamgate/services/test_team_overview_service.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Teamgate Contributors

Tests for the team overview service.
"""

# Standard
from unittest.mock import AsyncMock, MagicMock

# Third-Party
import pytest

# First-Party
from teamgate.providers.directory import PassthroughDirectoryProvider
from teamgate.schemas import Maintainer, MaintainerLink, TeamRef
from teamgate.services.mail_address_service import MailAddressResolver
from teamgate.services.maintainer_service import MaintainerResolver
from teamgate.services.team_overview_service import TeamOverviewService


@pytest.fixture
def team():
    """Team with one resolvable, one unresolvable and one unlinked maintainer."""
    team = MagicMock()
    team.name = "sdk"
    team.ref = TeamRef(id="42", slug="sdk", name="sdk")
    team.get_official_maintainers = AsyncMock(
        return_value=[
            Maintainer(id="1", login="ada", link=MaintainerLink(upn="ada@contoso.com", display_name="Ada")),
            Maintainer(id="2", login="bob", link=MaintainerLink(upn="bob")),
            Maintainer(id="3", login="cy"),
        ]
    )
    return team


@pytest.fixture
def organization():
    """Organization whose broad-access team is not ``sdk``."""
    org = MagicMock()
    org.name = "contoso"
    org.is_all_members_team = MagicMock(return_value=False)
    return org


@pytest.fixture
def service():
    """Service over the passthrough directory."""
    return TeamOverviewService(MaintainerResolver(MailAddressResolver(PassthroughDirectoryProvider())))


class TestTeamOverviewService:
    """Tests for TeamOverviewService."""

    @pytest.mark.asyncio
    async def test_list_maintainers_is_best_effort(self, service, team):
        """Unresolvable addresses are left blank instead of failing."""
        maintainers = await service.list_maintainers(team)

        assert [(m.login, m.mail_address) for m in maintainers] == [("ada", "ada@contoso.com"), ("bob", None), ("cy", None)]
        assert maintainers[0].display_name == "Ada"

    @pytest.mark.asyncio
    async def test_join_page_lists_official_maintainers(self, service, organization, team):
        """The join page shows every official maintainer."""
        page = await service.get_join_page(organization, team)

        assert page.allow_self_join is False
        assert [m.login for m in page.maintainers] == ["ada", "bob", "cy"]

    @pytest.mark.asyncio
    async def test_join_page_broad_access_team(self, service, organization, team):
        """The broad-access team can be joined directly without listing maintainers."""
        organization.is_all_members_team.return_value = True

        page = await service.get_join_page(organization, team)

        assert page.allow_self_join is True
        assert page.maintainers == []
        team.get_official_maintainers.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_overview(self, service, organization, team):
        """The overview carries team, organization and maintainers."""
        overview = await service.get_overview(organization, team)

        assert overview.team.slug == "sdk"
        assert overview.org_name == "contoso"
        assert overview.is_broad_access_team is False
        assert len(overview.maintainers) == 3
