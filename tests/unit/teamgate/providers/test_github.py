# -*- coding: utf-8 -*-
"""Location: ./tests/unit/teamgate/providers/test_github.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Teamgate Contributors

Tests for the GitHub provider, against a mocked transport.
"""

# Standard
import json

# Third-Party
import httpx
import pytest

# First-Party
from teamgate.providers.github import GitHubClient, GitHubError, GitHubNotFoundError, GitHubOrganization, GitHubTeam, PAGE_SIZE, WorkflowRepositoryNotConfigured
from teamgate.schemas import MaintainerLink, TeamRef


class FakeGitHub:
    """Routes requests to canned answers and records them."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        if key not in self.routes:
            return httpx.Response(404, json={"message": "Not Found"})
        answer = self.routes[key]
        if callable(answer):
            return answer(request)
        status, body = answer
        return httpx.Response(status, json=body) if body is not None else httpx.Response(status)


@pytest.fixture
def make_org():
    """Factory for an organization wired to a fake GitHub."""
    clients = []

    def _make(routes, **kwargs):
        fake = FakeGitHub(routes)
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(fake))
        clients.append(http_client)
        client = GitHubClient(http_client, api_url="https://api.github.test", token="t0ken")
        kwargs.setdefault("workflow_repository", "contoso/workflow")
        kwargs.setdefault("all_members_team_slug", "everyone")
        return GitHubOrganization(client, "contoso", **kwargs), fake

    return _make


def _team(org, slug="sdk"):
    return GitHubTeam(org, TeamRef(id="42", slug=slug, name=slug.upper()))


class TestGitHubClient:
    """Tests for GitHubClient.request."""

    @pytest.mark.asyncio
    async def test_sends_auth_headers(self, make_org):
        """Requests carry the token and API version headers."""
        org, fake = make_org({("GET", "/orgs/contoso/teams/sdk"): (200, {"id": 42, "slug": "sdk", "name": "SDK"})})

        team = await org.get_team("sdk")

        assert team.ref == TeamRef(id="42", slug="sdk", name="SDK")
        request = fake.requests[0]
        assert request.headers["Authorization"] == "Bearer t0ken"
        assert request.headers["X-GitHub-Api-Version"] == "2022-11-28"

    @pytest.mark.asyncio
    async def test_not_found(self, make_org):
        """404 answers raise GitHubNotFoundError."""
        org, _ = make_org({})

        with pytest.raises(GitHubNotFoundError) as exc_info:
            await org.get_team("missing")

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_server_error(self, make_org):
        """Other error statuses raise GitHubError with the status code."""
        org, _ = make_org({("GET", "/orgs/contoso/teams/sdk"): (502, {"message": "Bad Gateway"})})

        with pytest.raises(GitHubError) as exc_info:
            await org.get_team("sdk")

        assert exc_info.value.status_code == 502
        assert not isinstance(exc_info.value, GitHubNotFoundError)

    @pytest.mark.asyncio
    async def test_transport_error(self, make_org):
        """Transport failures raise GitHubError."""

        def _boom(request):
            raise httpx.ConnectError("connection refused", request=request)

        org, _ = make_org({("GET", "/orgs/contoso/teams/sdk"): _boom})

        with pytest.raises(GitHubError, match="connection refused"):
            await org.get_team("sdk")

    @pytest.mark.asyncio
    async def test_html_answer(self, make_org):
        """A 200 answer that is not JSON raises GitHubError instead of a decoding error."""
        org, _ = make_org({("GET", "/orgs/contoso/teams/sdk"): lambda request: httpx.Response(200, text="<html>Sign in</html>")})

        with pytest.raises(GitHubError, match="non-JSON") as exc_info:
            await org.get_team("sdk")

        assert exc_info.value.status_code == 200


class TestGitHubTeam:
    """Tests for team membership and maintainers."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "answer,expected",
        [
            ((200, {"state": "active", "role": "maintainer"}), "maintainer"),
            ((200, {"state": "pending", "role": "member"}), None),
            ((404, {"message": "Not Found"}), None),
        ],
    )
    async def test_get_membership(self, make_org, answer, expected):
        """Only active memberships report a role."""
        org, _ = make_org({("GET", "/orgs/contoso/teams/sdk/memberships/octocat"): answer})

        assert await _team(org).get_membership("octocat") == expected
        assert await _team(org).is_member("octocat") is (expected is not None)

    @pytest.mark.asyncio
    async def test_add_membership(self, make_org):
        """Adding a member PUTs the role."""
        org, fake = make_org({("PUT", "/orgs/contoso/teams/everyone/memberships/octocat"): (200, {"state": "active"})})

        await _team(org, "everyone").add_membership("octocat", role="member")

        assert json.loads(fake.requests[0].content) == {"role": "member"}

    @pytest.mark.asyncio
    async def test_get_official_maintainers_pages_and_links(self, make_org):
        """Maintainers are paged and linked through the lookup."""
        first_page = [{"id": i, "login": f"user{i}"} for i in range(PAGE_SIZE)]
        second_page = [{"id": 1000, "login": "last"}]

        def _members(request):
            assert request.url.params["role"] == "maintainer"
            return httpx.Response(200, json=first_page if request.url.params["page"] == "1" else second_page)

        looked_up = []

        def _lookup(ids):
            looked_up.append(ids)
            return {"1000": MaintainerLink(upn="last@corp")}

        org, fake = make_org({("GET", "/orgs/contoso/teams/sdk/members"): _members}, link_lookup=_lookup)

        maintainers = await _team(org).get_official_maintainers()

        assert len(fake.requests) == 2
        assert len(maintainers) == PAGE_SIZE + 1
        assert len(looked_up) == 1
        assert maintainers[-1].link == MaintainerLink(upn="last@corp")
        assert maintainers[-1].is_eligible()
        assert maintainers[0].link is None


class TestGitHubOrganization:
    """Tests for organization level lookups."""

    @pytest.mark.asyncio
    async def test_workflow_repository_issues(self, make_org):
        """Issues are created and patched in the workflow repository."""
        org, fake = make_org(
            {
                ("POST", "/repos/contoso/workflow/issues"): (201, {"id": 900, "number": 7}),
                ("PATCH", "/repos/contoso/workflow/issues/7"): (200, {"id": 900, "number": 7}),
            }
        )
        repository = org.get_workflow_repository()

        issue = await repository.create_issue("title", "body")
        await repository.update_issue("7", {"assignee": "ada"})

        assert issue == {"id": 900, "number": 7}
        assert json.loads(fake.requests[0].content) == {"title": "title", "body": "body"}
        assert json.loads(fake.requests[1].content) == {"assignee": "ada"}

    def test_missing_workflow_repository(self, make_org):
        """An empty repository setting raises WorkflowRepositoryNotConfigured."""
        org, _ = make_org({}, workflow_repository="")

        with pytest.raises(WorkflowRepositoryNotConfigured):
            org.get_workflow_repository()

    def test_is_all_members_team_makes_no_calls(self, make_org):
        """The broad-access check only reads configuration."""
        org, fake = make_org({})

        assert org.is_all_members_team(_team(org, "everyone")) is True
        assert org.is_all_members_team(_team(org, "sdk")) is False
        assert fake.requests == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "answer,expected",
        [((200, {"state": "active"}), "active"), ((200, {"state": "pending"}), "pending"), ((404, None), None)],
    )
    async def test_get_membership_status(self, make_org, answer, expected):
        """Organization membership states are passed through."""
        org, _ = make_org({("GET", "/orgs/contoso/memberships/octocat"): answer})

        assert await org.get_membership_status("octocat") == expected
