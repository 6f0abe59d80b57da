# -*- coding: utf-8 -*-
"""Location: ./teamgate/routers/teams.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Teamgate Contributors

Teams Router.
FastAPI routes for the team pages and team join submissions.

Examples:
    >>> from fastapi import FastAPI
    >>> from teamgate.routers.teams import teams_router
    >>> app = FastAPI()
    >>> app.include_router(teams_router)
    >>> isinstance(teams_router, APIRouter)
    True
"""

# Standard
import asyncio
from functools import partial
from typing import Any, Dict, Iterable, Optional

# Third-Party
from fastapi import APIRouter, Depends, HTTPException, Request, status
import httpx

# First-Party
from teamgate.auth import get_current_requester, Requester
from teamgate.db import SessionLocal
from teamgate.observability import TelemetryClient
from teamgate.providers.directory import create_directory_provider
from teamgate.providers.github import GitHubClient, GitHubError, GitHubNotFoundError, GitHubOrganization, GitHubTeam
from teamgate.providers.mail import MailProvider
from teamgate.schemas import JoinPageResponse, JoinResponse, JoinTeamRequest, MaintainerLink, TeamOverviewResponse
from teamgate.services.approval_store import ApprovalStore
from teamgate.services.errors import (
    AlreadyTeamMemberError,
    ApprovalConfigurationError,
    ApprovalProviderError,
    JoinValidationError,
    MembershipProviderError,
    OrganizationMembershipRequiredError,
)
from teamgate.services.logging_service import LoggingService
from teamgate.services.mail_address_service import MailAddressResolver
from teamgate.services.maintainer_service import load_account_links, MaintainerResolver
from teamgate.services.team_join_service import ApprovalOrchestrator, JoinRequestContext, JoinResult
from teamgate.services.team_overview_service import TeamOverviewService
from teamgate.utils.correlation_id import get_correlation_id

# Initialize logging
logging_service = LoggingService()
logger = logging_service.get_logger(__name__)

# Create router
teams_router = APIRouter(tags=["Teams"])


def get_http_client(request: Request) -> httpx.AsyncClient:
    """Shared HTTP client created by the application lifespan.

    Args:
        request: Incoming request

    Returns:
        httpx.AsyncClient: The client
    """
    return request.app.state.http_client


def get_mail_provider(request: Request) -> Optional[MailProvider]:
    """Mail provider wired by the application lifespan.

    Args:
        request: Incoming request

    Returns:
        Optional[MailProvider]: The provider, or None when mail is not wired
    """
    return getattr(request.app.state, "mail_provider", None)


def get_telemetry(request: Request) -> TelemetryClient:
    """Telemetry sink of the application.

    Args:
        request: Incoming request

    Returns:
        TelemetryClient: The sink
    """
    return getattr(request.app.state, "telemetry", None) or TelemetryClient()


def get_address_resolver(http_client: httpx.AsyncClient = Depends(get_http_client)) -> MailAddressResolver:
    """Mail address resolver over the configured directory.

    Args:
        http_client: Shared HTTP client

    Returns:
        MailAddressResolver: The resolver
    """
    return MailAddressResolver(create_directory_provider(http_client))


def lookup_account_links(account_ids: Iterable[str]) -> Dict[str, MaintainerLink]:
    """Account links read in a short session of their own.

    The maintainer listing runs inside the shielded join pipeline, which can
    outlive the request and its session.

    Args:
        account_ids: Issue tracker account ids

    Returns:
        Dict[str, MaintainerLink]: Links keyed by account id
    """
    with SessionLocal() as session:
        return load_account_links(session, account_ids)


def get_organization(org: str, http_client: httpx.AsyncClient = Depends(get_http_client)) -> GitHubOrganization:
    """Organization handle for the path parameter.

    Args:
        org: Organization name
        http_client: Shared HTTP client

    Returns:
        GitHubOrganization: The organization
    """
    return GitHubOrganization(GitHubClient(http_client), org, link_lookup=lookup_account_links)


async def get_team(team: str, organization: GitHubOrganization = Depends(get_organization)) -> GitHubTeam:
    """Team handle for the path parameter.

    Args:
        team: Team slug
        organization: Organization handle

    Returns:
        GitHubTeam: The team

    Raises:
        HTTPException: 404 for unknown teams, 502 when GitHub fails
    """
    try:
        return await organization.get_team(team)
    except GitHubNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Team {team} not found in organization {organization.name}")
    except GitHubError as e:
        logger.error(f"Failed to load team {organization.name}/{team}: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="GitHub is unavailable, please try again later")


def get_orchestrator(
    address_resolver: MailAddressResolver = Depends(get_address_resolver),
    mail_provider: Optional[MailProvider] = Depends(get_mail_provider),
    telemetry: TelemetryClient = Depends(get_telemetry),
) -> ApprovalOrchestrator:
    """Approval orchestrator wired to the application providers.

    The store gets a session of its own rather than the request session:
    FastAPI closes that one at teardown, while a shielded pipeline may still
    be writing. ``run_submission`` closes it when the pipeline ends; it only
    connects on first use.

    Args:
        address_resolver: Mail address resolver
        mail_provider: Mail provider
        telemetry: Telemetry sink

    Returns:
        ApprovalOrchestrator: The orchestrator
    """
    return ApprovalOrchestrator(ApprovalStore(SessionLocal()), address_resolver, mail_provider=mail_provider, telemetry=telemetry)


def get_overview_service(address_resolver: MailAddressResolver = Depends(get_address_resolver)) -> TeamOverviewService:
    """Team overview service.

    Args:
        address_resolver: Mail address resolver

    Returns:
        TeamOverviewService: The service
    """
    return TeamOverviewService(MaintainerResolver(address_resolver))


def _validation_detail(error: JoinValidationError) -> Dict[str, Any]:
    """Body of a 400 answer.

    Args:
        error: Validation error

    Returns:
        Dict[str, Any]: Message plus optional title, detail and link

    Examples:
        >>> _validation_detail(JoinValidationError("nope"))["message"]
        'nope'
        >>> _validation_detail(OrganizationMembershipRequiredError("contoso", None))["link"]["url"]
        '/contoso'
    """
    link = {"url": error.link[0], "title": error.link[1]} if error.link else None
    return {"message": error.user_message, "title": error.title, "detail": error.detail, "link": link}


async def check_join_preconditions(organization: GitHubOrganization, team: GitHubTeam, requester: Requester) -> None:
    """Reject requesters who are already on the team or not in the organization.

    Args:
        organization: Organization handle
        team: Team handle
        requester: Requester

    Raises:
        AlreadyTeamMemberError: If the requester already has a team role
        OrganizationMembershipRequiredError: If the organization membership is not active
        MembershipProviderError: If GitHub cannot be queried
    """
    try:
        role = await team.get_membership(requester.login)
        org_state = None if role else await organization.get_membership_status(requester.login)
    except GitHubError as e:
        raise MembershipProviderError(f"Could not check memberships of {requester.login}: {e}") from e
    if role:
        raise AlreadyTeamMemberError(team.name, role)
    if org_state != "active":
        raise OrganizationMembershipRequiredError(organization.name, org_state)


def _release_store(orchestrator: ApprovalOrchestrator, _task: "asyncio.Task[JoinResult]") -> None:
    orchestrator.store.close()


def _report_detached_failure(context: JoinRequestContext, task: "asyncio.Task[JoinResult]") -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(f"Join request {context.correlation_id} by {context.requester_login} failed after its client disconnected: {error}")


async def run_submission(orchestrator: ApprovalOrchestrator, context: JoinRequestContext) -> JoinResult:
    """Run the join pipeline shielded from client disconnects.

    A disconnect cancels only the wait: the pipeline keeps going, its
    failure is logged since nobody awaits it any more, and the store session
    is closed when it ends either way.

    Args:
        orchestrator: Approval orchestrator
        context: Join request context

    Returns:
        JoinResult: The pipeline result

    Raises:
        asyncio.CancelledError: If the client went away; the pipeline continues
    """
    task = asyncio.create_task(orchestrator.submit_join_request(context))
    task.add_done_callback(partial(_release_store, orchestrator))
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        logger.warning(f"Client of join request {context.correlation_id} disconnected; the submission continues")
        task.add_done_callback(partial(_report_detached_failure, context))
        raise


@teams_router.get("/orgs/{org}/teams/{team}/join", response_model=JoinPageResponse)
async def get_join_page(
    organization: GitHubOrganization = Depends(get_organization),
    team: GitHubTeam = Depends(get_team),
    requester: Requester = Depends(get_current_requester),
    overview: TeamOverviewService = Depends(get_overview_service),
) -> JoinPageResponse:
    """Join page data: self-join for the broad-access team, else the maintainers.

    Args:
        organization: Organization handle
        team: Team handle
        requester: Requester
        overview: Team overview service

    Returns:
        JoinPageResponse: Join page data

    Raises:
        HTTPException: 400 if the requester cannot join, 502 when GitHub fails
    """
    try:
        await check_join_preconditions(organization, team, requester)
        return await overview.get_join_page(organization, team)
    except JoinValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=_validation_detail(e))
    except MembershipProviderError as e:
        logger.error(f"Join page for {organization.name}/{team.name} failed: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="GitHub is unavailable, please try again later")


@teams_router.post("/orgs/{org}/teams/{team}/join", response_model=JoinResponse)
async def submit_join_request(
    body: JoinTeamRequest,
    request: Request,
    organization: GitHubOrganization = Depends(get_organization),
    team: GitHubTeam = Depends(get_team),
    requester: Requester = Depends(get_current_requester),
    orchestrator: ApprovalOrchestrator = Depends(get_orchestrator),
) -> JoinResponse:
    """Submit a team join request.

    The pipeline runs through ``run_submission``: a client that disconnects
    does not cancel provider calls already under way.

    Args:
        body: Join request body
        request: Incoming request
        organization: Organization handle
        team: Team handle
        requester: Requester
        orchestrator: Approval orchestrator

    Returns:
        JoinResponse: Redirect target, notice and outcome

    Raises:
        HTTPException: 400 for requests the requester must fix, 500 when approvals are not configured, 502 when a provider fails
    """
    correlation_id = get_correlation_id()
    try:
        await check_join_preconditions(organization, team, requester)
        context = JoinRequestContext(
            requester_account_id=requester.account_id,
            requester_login=requester.login,
            requester_name=requester.name,
            requester_upn=requester.upn,
            justification=body.justification,
            organization=organization,
            team=team,
            correlation_id=correlation_id,
            display_hostname=request.url.hostname or "localhost",
        )
        result = await run_submission(orchestrator, context)
    except JoinValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=_validation_detail(e))
    except ApprovalConfigurationError as e:
        logger.error(f"Team join approvals not configured: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Team join approvals are not configured")
    except ApprovalProviderError as e:
        logger.error(f"Team join request for {organization.name}/{team.name} failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"message": "Your request could not be submitted, please try again later", "correlation_id": correlation_id},
        )

    return JoinResponse(**result.model_dump())


@teams_router.get("/orgs/{org}/teams/{team}", response_model=TeamOverviewResponse)
async def get_team_overview(
    organization: GitHubOrganization = Depends(get_organization),
    team: GitHubTeam = Depends(get_team),
    requester: Requester = Depends(get_current_requester),
    overview: TeamOverviewService = Depends(get_overview_service),
) -> TeamOverviewResponse:
    """Team overview: maintainers with their mail addresses where known.

    Args:
        organization: Organization handle
        team: Team handle
        requester: Requester
        overview: Team overview service

    Returns:
        TeamOverviewResponse: Overview data

    Raises:
        HTTPException: 502 when GitHub fails
    """
    try:
        return await overview.get_overview(organization, team)
    except MembershipProviderError as e:
        logger.error(f"Team overview for {organization.name}/{team.name} requested by {requester.login} failed: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="GitHub is unavailable, please try again later")
