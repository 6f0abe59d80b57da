# -*- coding: utf-8 -*-
"""Location: ./teamgate/providers/github.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Teamgate Contributors

GitHub Provider.
Organization, team and workflow repository handles backed by the GitHub REST
API. The join pipeline only talks to these handles, so tests and other
trackers can substitute objects with the same methods.
"""

# Standard
from typing import Any, Callable, Dict, Iterable, List, Optional

# Third-Party
import httpx

# First-Party
from teamgate.config import settings
from teamgate.schemas import Maintainer, MaintainerLink, TeamRef
from teamgate.services.logging_service import LoggingService

logging_service = LoggingService()
logger = logging_service.get_logger(__name__)

PAGE_SIZE = 100

LinkLookup = Callable[[Iterable[str]], Dict[str, MaintainerLink]]


class GitHubError(Exception):
    """Base class for GitHub provider errors.

    Examples:
        >>> error = GitHubError("rate limited", status_code=403)
        >>> str(error), error.status_code
        ('rate limited', 403)
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        """Initialize the error.

        Args:
            message: Error description
            status_code: HTTP status returned by GitHub, if any
        """
        super().__init__(message)
        self.status_code = status_code


class GitHubNotFoundError(GitHubError):
    """Raised when GitHub answers 404."""


class WorkflowRepositoryNotConfigured(GitHubError):
    """Raised when the organization has no repository for join request issues.

    Examples:
        >>> isinstance(WorkflowRepositoryNotConfigured("none"), GitHubError)
        True
    """


class GitHubClient:
    """Thin async wrapper over the GitHub REST API.

    Attributes:
        http_client (httpx.AsyncClient): Shared HTTP client
        api_url (str): REST API base URL
    """

    def __init__(self, http_client: httpx.AsyncClient, api_url: Optional[str] = None, token: Optional[str] = None):
        """Initialize the client.

        Args:
            http_client: Shared HTTP client
            api_url: REST API base URL (default from settings)
            token: Token for authenticated calls (default from settings)
        """
        self.http_client = http_client
        self.api_url = (api_url or settings.github_api_url).rstrip("/")
        if token is None and settings.github_token is not None:
            token = settings.github_token.get_secret_value()
        self._headers = {"Accept": "application/vnd.github+json", "X-GitHub-Api-Version": "2022-11-28"}
        if token:
            self._headers["Authorization"] = f"Bearer {token}"

    async def request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send a request and decode the JSON answer.

        Args:
            method: HTTP method
            path: Path relative to the API base URL
            **kwargs: Extra arguments for httpx

        Returns:
            Any: Decoded JSON body, or None for empty responses

        Raises:
            GitHubNotFoundError: On 404
            GitHubError: On any other HTTP or transport failure, or a body that is not JSON
        """
        try:
            response = await self.http_client.request(method, f"{self.api_url}{path}", headers=self._headers, **kwargs)
        except httpx.HTTPError as e:
            raise GitHubError(f"GitHub request {method} {path} failed: {e}") from e

        if response.status_code == 404:
            raise GitHubNotFoundError(f"GitHub resource not found: {path}", status_code=404)
        if response.status_code >= 400:
            raise GitHubError(f"GitHub request {method} {path} returned {response.status_code}: {response.text[:200]}", status_code=response.status_code)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise GitHubError(f"GitHub request {method} {path} returned a non-JSON body", status_code=response.status_code) from e


class GitHubRepository:
    """Repository receiving join request issues."""

    def __init__(self, client: GitHubClient, full_name: str):
        """Initialize the repository handle.

        Args:
            client: GitHub client
            full_name: Repository in owner/name form
        """
        self.client = client
        self.full_name = full_name

    async def create_issue(self, title: str, body: str) -> Dict[str, Any]:
        """Open an issue.

        Args:
            title: Issue title
            body: Markdown body

        Returns:
            Dict[str, Any]: The issue as returned by GitHub (id, number, ...)
        """
        return await self.client.request("POST", f"/repos/{self.full_name}/issues", json={"title": title, "body": body})

    async def update_issue(self, number: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        """Patch an issue, e.g. to set its assignee.

        Args:
            number: Issue number
            patch: Fields to update

        Returns:
            Dict[str, Any]: The updated issue
        """
        return await self.client.request("PATCH", f"/repos/{self.full_name}/issues/{number}", json=patch)


class GitHubTeam:
    """A team inside an organization."""

    def __init__(self, organization: "GitHubOrganization", ref: TeamRef):
        """Initialize the team handle.

        Args:
            organization: Owning organization
            ref: Team identity
        """
        self.organization = organization
        self.ref = ref

    @property
    def id(self) -> str:
        """Team id."""
        return self.ref.id

    @property
    def name(self) -> str:
        """Team display name."""
        return self.ref.name

    def _path(self, suffix: str = "") -> str:
        return f"/orgs/{self.organization.name}/teams/{self.ref.slug}{suffix}"

    async def get_membership(self, login: str) -> Optional[str]:
        """Get the membership role of a user.

        Args:
            login: GitHub login

        Returns:
            Optional[str]: "member" or "maintainer" for active members, None otherwise
        """
        try:
            membership = await self.organization.client.request("GET", self._path(f"/memberships/{login}"))
        except GitHubNotFoundError:
            return None
        if not membership or membership.get("state") != "active":
            return None
        return membership.get("role")

    async def is_member(self, login: str) -> bool:
        """Check whether a user is an active member of the team.

        Args:
            login: GitHub login

        Returns:
            bool: True for active members and maintainers
        """
        return await self.get_membership(login) is not None

    async def add_membership(self, login: str, role: str = "member") -> None:
        """Add a user to the team.

        Args:
            login: GitHub login
            role: "member" or "maintainer"
        """
        await self.organization.client.request("PUT", self._path(f"/memberships/{login}"), json={"role": role})
        logger.info(f"Added {login} to team {self.organization.name}/{self.ref.slug} as {role}")

    async def get_official_maintainers(self) -> List[Maintainer]:
        """List the team maintainers with their account links attached.

        Returns:
            List[Maintainer]: Maintainers; entries without a link have ``link=None``
        """
        maintainers: List[Maintainer] = []
        page = 1
        while True:
            batch = await self.organization.client.request("GET", self._path("/members"), params={"role": "maintainer", "per_page": PAGE_SIZE, "page": page})
            batch = batch or []
            maintainers.extend(Maintainer(id=str(entry["id"]), login=entry.get("login")) for entry in batch)
            if len(batch) < PAGE_SIZE:
                break
            page += 1

        links = self.organization.link_lookup([m.id for m in maintainers]) if self.organization.link_lookup else {}
        for maintainer in maintainers:
            maintainer.link = links.get(maintainer.id)
        return maintainers


class GitHubOrganization:
    """An organization and its workflow configuration."""

    def __init__(self, client: GitHubClient, name: str, link_lookup: Optional[LinkLookup] = None, workflow_repository: Optional[str] = None, all_members_team_slug: Optional[str] = None):
        """Initialize the organization handle.

        Args:
            client: GitHub client
            name: Organization login
            link_lookup: Callable mapping account ids to directory links
            workflow_repository: owner/name of the join issue repository (default from settings)
            all_members_team_slug: Slug of the broad-access team (default from settings)
        """
        self.client = client
        self.name = name
        self.link_lookup = link_lookup
        self.workflow_repository = workflow_repository if workflow_repository is not None else settings.github_workflow_repository
        self.all_members_team_slug = all_members_team_slug or settings.github_all_members_team

    @property
    def base_url(self) -> str:
        """Site-relative root of the organization pages.

        Examples:
            >>> GitHubOrganization(None, "contoso").base_url
            '/contoso/'
        """
        return f"/{self.name}/"

    async def get_team(self, slug: str) -> GitHubTeam:
        """Look up a team by slug.

        Args:
            slug: Team slug

        Returns:
            GitHubTeam: The team handle

        Raises:
            GitHubNotFoundError: If the team does not exist
        """
        data = await self.client.request("GET", f"/orgs/{self.name}/teams/{slug}")
        return GitHubTeam(self, TeamRef(id=str(data["id"]), slug=data.get("slug", slug), name=data.get("name", slug)))

    def is_all_members_team(self, team: "GitHubTeam") -> bool:
        """Check whether a team is the broad-access team anyone in the organization may join.

        Decided from configuration alone, without calling GitHub.

        Args:
            team: Team handle

        Returns:
            bool: True for the broad-access team

        Examples:
            >>> org = GitHubOrganization(None, "contoso", all_members_team_slug="everyone")
            >>> org.is_all_members_team(GitHubTeam(org, TeamRef(id="1", slug="Everyone", name="Everyone")))
            True
            >>> org.is_all_members_team(GitHubTeam(org, TeamRef(id="2", slug="core", name="Core")))
            False
        """
        return team.ref.slug.lower() == self.all_members_team_slug.lower()

    def get_workflow_repository(self) -> GitHubRepository:
        """Repository where join request issues are opened.

        Returns:
            GitHubRepository: The repository handle

        Raises:
            WorkflowRepositoryNotConfigured: If no repository is wired for this organization

        Examples:
            >>> org = GitHubOrganization(None, "contoso", workflow_repository="")
            >>> try:
            ...     org.get_workflow_repository()
            ... except WorkflowRepositoryNotConfigured as e:
            ...     "contoso" in str(e)
            True
        """
        if not self.workflow_repository:
            raise WorkflowRepositoryNotConfigured(f"No workflow repository configured for organization {self.name}")
        return GitHubRepository(self.client, self.workflow_repository)

    async def get_membership_status(self, login: str) -> Optional[str]:
        """Organization membership state of a user.

        Args:
            login: GitHub login

        Returns:
            Optional[str]: "active", "pending" or None when not a member
        """
        try:
            membership = await self.client.request("GET", f"/orgs/{self.name}/memberships/{login}")
        except GitHubNotFoundError:
            return None
        return membership.get("state") if membership else None
