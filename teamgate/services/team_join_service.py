# -*- coding: utf-8 -*-
"""Location: ./teamgate/services/team_join_service.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Teamgate Contributors

Team Join Service.
Runs a team join submission through the approval pipeline:

1. Broad-access teams are joined directly.
2. Otherwise the request is validated, a reviewer is chosen among the
   eligible maintainers and a *pending* approval request is stored.
3. The issue tracker and the mail provider are notified (each optional), the
   request is *finalized*, and both mail fields are patched once the
   approver mail is sent.

Stages run strictly in sequence and hand a frozen ``PipelineState`` to the
next stage. The first fatal error aborts the submission; at that point the
stored request is either absent or still pending. Issue assignment failures
are soft and only show up in the ``JoinOutcome``.
"""

# Standard
import random
from typing import Any, Dict, List, Optional, Tuple

# Third-Party
from pydantic import BaseModel, ConfigDict, Field

# First-Party
from teamgate.config import APPROVAL_PROVIDER_KINDS, settings
from teamgate.observability import create_span, TelemetryClient
from teamgate.providers.github import WorkflowRepositoryNotConfigured
from teamgate.providers.mail import MailProvider
from teamgate.schemas import IssueTicket, MailMessage, Maintainer, OutcomeEntry, OutcomeStatus
from teamgate.services.approval_store import ApprovalStore
from teamgate.services.errors import (
    AlreadyTeamMemberError,
    ApprovalConfigurationError,
    ApprovalProviderError,
    IssueAssignmentError,
    JustificationRequiredError,
    MembershipProviderError,
    NoEligibleReviewerError,
)
from teamgate.services.logging_service import LoggingService
from teamgate.services.mail_address_service import MailAddressResolver, ResolutionPolicy
from teamgate.services.maintainer_service import MaintainerResolver
from teamgate.services.notification_service import MailRenderer, NotificationDispatcher

# Initialize logging
logging_service = LoggingService()
logger = logging_service.get_logger(__name__)

PLEASE_APPROVE_TEMPLATE = "membership_approvals/please_approve.html"
REQUEST_SUBMITTED_TEMPLATE = "membership_approvals/request_submitted.html"

PLEASE_APPROVE_EVENT = "TeamJoinPleaseApproveMail"
REQUEST_SUBMITTED_EVENT = "TeamJoinRequestSubmittedMail"
ALL_MEMBERS_SUCCESS_EVENT = "TeamJoinAllMembersTeamSuccess"
ALL_MEMBERS_FAILURE_EVENT = "TeamJoinAllMembersTeamFailure"


class JoinRequestContext(BaseModel):
    """Everything a submission needs, passed explicitly.

    Attributes:
        requester_account_id: Issue tracker account id
        requester_login: Issue tracker login
        requester_name: Display name
        requester_upn: Directory identity; resolved to the requester's mail address
        justification: Free text business justification
        organization: Organization handle
        team: Team handle
        correlation_id: Correlation ID of the HTTP request
        display_hostname: Host name the requester used, for review links
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    requester_account_id: Optional[str] = None
    requester_login: str
    requester_name: Optional[str] = None
    requester_upn: Optional[str] = None
    justification: Optional[str] = None
    organization: Any
    team: Any
    correlation_id: Optional[str] = None
    display_hostname: str = "localhost"


class ProviderSelection(BaseModel):
    """Approval channels in use for one submission, computed once at entry.

    Examples:
        >>> ProviderSelection(mail_in_use=True, issue_tracker_in_use=False).any_in_use
        True
        >>> ProviderSelection(mail_in_use=False, issue_tracker_in_use=False).any_in_use
        False
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    mail_in_use: bool
    issue_tracker_in_use: bool
    repository: Any = None

    @property
    def any_in_use(self) -> bool:
        """Whether at least one approval channel is in use.

        Returns:
            bool: True if mail or the issue tracker is in use
        """
        return self.mail_in_use or self.issue_tracker_in_use


class PipelineState(BaseModel):
    """Values produced by the pipeline stages so far."""

    model_config = ConfigDict(frozen=True)

    person_mail: Optional[str] = None
    maintainers: Tuple[Maintainer, ...] = ()
    assignee: Optional[str] = None
    approver_addresses: Tuple[str, ...] = ()
    record: Dict[str, Any] = Field(default_factory=dict)
    request_id: Optional[str] = None
    ticket: Optional[IssueTicket] = None

    def replace(self, **changes: Any) -> "PipelineState":
        """Return a copy with some fields changed.

        Args:
            **changes: Field values to change

        Returns:
            PipelineState: The new state

        Examples:
            >>> state = PipelineState()
            >>> state.replace(request_id="r1").request_id, state.request_id
            ('r1', None)
        """
        return self.model_copy(update=changes)


class JoinOutcome(BaseModel):
    """Per-submission log of what each stage did.

    Examples:
        >>> outcome = JoinOutcome()
        >>> outcome.record("issue_assignment", OutcomeStatus.SOFT_FAILURE, "not assignable")
        >>> outcome.soft_failures()[0].stage
        'issue_assignment'
    """

    entries: List[OutcomeEntry] = Field(default_factory=list)

    def record(self, stage: str, status: OutcomeStatus, detail: Optional[str] = None) -> None:
        """Append an entry.

        Args:
            stage: Stage name
            status: Stage result
            detail: Optional explanation
        """
        self.entries.append(OutcomeEntry(stage=stage, status=status, detail=detail))

    def soft_failures(self) -> List[OutcomeEntry]:
        """Entries of stages that failed without aborting the submission.

        Returns:
            List[OutcomeEntry]: Soft failures
        """
        return [entry for entry in self.entries if entry.status is OutcomeStatus.SOFT_FAILURE]


class JoinResult(BaseModel):
    """Terminal success of a submission."""

    redirect_url: str
    notice: str
    request_id: Optional[str] = None
    joined: bool = False
    outcome: List[OutcomeEntry] = Field(default_factory=list)


def build_site_url(display_hostname: str, allow_http: bool) -> str:
    """Root URL of this site as the requester reached it.

    Plain http is only used for ``localhost`` and only when allowed.

    Args:
        display_hostname: Host name of the request
        allow_http: Whether insecure local transport is allowed

    Returns:
        str: Site root with a trailing slash

    Examples:
        >>> build_site_url("localhost", True)
        'http://localhost/'
        >>> build_site_url("localhost", False)
        'https://localhost/'
        >>> build_site_url("repos.contoso.com", True)
        'https://repos.contoso.com/'
    """
    scheme = "http" if display_hostname == "localhost" and allow_http else "https"
    return f"{scheme}://{display_hostname}/"


class ApprovalOrchestrator:
    """Service running team join submissions.

    Attributes:
        store (ApprovalStore): Approval request persistence
        address_resolver (MailAddressResolver): Directory to mail address resolution
        maintainer_resolver (MaintainerResolver): Eligible maintainer lookup
        mail_provider (Optional[MailProvider]): Mail provider, None when not wired
        telemetry (TelemetryClient): Telemetry sink
        renderer (MailRenderer): Mail template renderer
        approval_providers (frozenset): Enabled approval channel kinds
        allow_http (bool): Whether review links may use http on localhost
        logging_version (str): Version tag embedded in mails
    """

    def __init__(
        self,
        store: ApprovalStore,
        address_resolver: MailAddressResolver,
        maintainer_resolver: Optional[MaintainerResolver] = None,
        mail_provider: Optional[MailProvider] = None,
        telemetry: Optional[TelemetryClient] = None,
        renderer: Optional[MailRenderer] = None,
        rng: Optional[random.Random] = None,
        approval_providers: Optional[set] = None,
        allow_http: Optional[bool] = None,
        logging_version: Optional[str] = None,
    ):
        """Initialize the orchestrator.

        Args:
            store: Approval request persistence
            address_resolver: Mail address resolver
            maintainer_resolver: Maintainer resolver (default: built on ``address_resolver``)
            mail_provider: Mail provider, None when mail is not wired
            telemetry: Telemetry sink
            renderer: Mail template renderer
            rng: Random source for reviewer selection
            approval_providers: Enabled approval channel kinds (default from settings)
            allow_http: Insecure local transport flag (default from settings)
            logging_version: Version tag for mails (default from settings)
        """
        self.store = store
        self.address_resolver = address_resolver
        self.maintainer_resolver = maintainer_resolver or MaintainerResolver(address_resolver)
        self.mail_provider = mail_provider
        self.telemetry = telemetry or TelemetryClient()
        self.renderer = renderer or MailRenderer()
        self.rng = rng or random.Random()
        self.approval_providers = frozenset(settings.approval_providers if approval_providers is None else approval_providers)
        self.allow_http = settings.allow_http if allow_http is None else allow_http
        self.logging_version = logging_version or settings.logging_version

    async def submit_join_request(self, context: JoinRequestContext) -> JoinResult:
        """Run a join submission to completion.

        Args:
            context: The submission

        Returns:
            JoinResult: Redirect target, user notice, request id and outcome log

        Raises:
            JoinValidationError: If the requester must fix the request
            ApprovalConfigurationError: If no approval channel is usable
            ApprovalProviderError: If an external service fails
        """
        team = context.team
        outcome = JoinOutcome()
        with create_span("team_join.submit", {"org": context.organization.name, "team": team.name, "correlation_id": context.correlation_id}):
            if context.organization.is_all_members_team(team):
                return await self._join_broad_access_team(context, outcome)

            if not (context.justification or "").strip():
                raise JustificationRequiredError()

            selection = self.select_providers(context.organization)
            dispatcher = NotificationDispatcher(self.mail_provider, selection.repository, self.renderer, self.telemetry)

            try:
                state = await self._resolve_requester(context, PipelineState())
                await self._check_not_member(context)
                state = await self._choose_reviewer(context, state)
                state = await self._resolve_approvers(state)
                state = await self._insert_pending(context, state, outcome)
                if selection.issue_tracker_in_use:
                    state = await self._create_ticket(context, state, dispatcher, outcome)
                await self._finalize(state, outcome)
                if selection.issue_tracker_in_use:
                    await self._assign_ticket(state, dispatcher, outcome)
                if selection.mail_in_use:
                    await self._mail_approvers(context, state, dispatcher, outcome)
                    await self._mail_requester(context, state, dispatcher, outcome)
            except ApprovalProviderError as e:
                logger.error(f"Join request by {context.requester_login} for team {team.name} failed: {e}")
                self.telemetry.track_exception(
                    e,
                    {
                        "eventName": "TeamJoinRequestFailure",
                        "org": context.organization.name,
                        "team": team.name,
                        "requester_login": context.requester_login,
                        "correlation_id": context.correlation_id,
                    },
                )
                raise

        logger.info(f"Join request {state.request_id} by {context.requester_login} for team {team.name} submitted")
        return JoinResult(
            redirect_url=context.organization.base_url,
            notice=f"Your request to join {team.name} has been submitted and will be reviewed by a team maintainer.",
            request_id=state.request_id,
            outcome=list(outcome.entries),
        )

    def select_providers(self, organization) -> ProviderSelection:
        """Decide which approval channels this submission uses.

        A missing workflow repository turns the issue tracker off for the
        organization instead of failing.

        Args:
            organization: Organization handle

        Returns:
            ProviderSelection: Channels in use

        Raises:
            ApprovalConfigurationError: If no channel is usable, or mail is enabled without a provider
        """
        kinds = self.approval_providers & APPROVAL_PROVIDER_KINDS
        if not kinds:
            raise ApprovalConfigurationError("No team join approval providers configured.")

        mail_in_use = "mail" in kinds
        if mail_in_use and self.mail_provider is None:
            raise ApprovalConfigurationError("No mail provider is enabled, yet this application is configured to use a mail provider.")

        repository = None
        issue_tracker_in_use = "issue_tracker" in kinds
        if issue_tracker_in_use:
            try:
                repository = organization.get_workflow_repository()
            except WorkflowRepositoryNotConfigured as e:
                logger.info(f"Issue tracker approvals disabled for {organization.name}: {e}")
                issue_tracker_in_use = False

        selection = ProviderSelection(mail_in_use=mail_in_use, issue_tracker_in_use=issue_tracker_in_use, repository=repository)
        if not selection.any_in_use:
            raise ApprovalConfigurationError(f"No usable team join approval provider for organization {organization.name}.")
        return selection

    async def _join_broad_access_team(self, context: JoinRequestContext, outcome: JoinOutcome) -> JoinResult:
        org_name = context.organization.name
        properties = {"org": org_name, "username": context.requester_login}
        try:
            await context.team.add_membership(context.requester_login, role="member")
        except Exception as e:
            self.telemetry.track_event(ALL_MEMBERS_FAILURE_EVENT, {**properties, "error": str(e)})
            error = MembershipProviderError(f"We had trouble adding you to the {org_name} organization. {context.requester_login}")
            self.telemetry.track_exception(error, {**properties, "eventName": ALL_MEMBERS_FAILURE_EVENT})
            raise error from e

        self.telemetry.track_event(ALL_MEMBERS_SUCCESS_EVENT, properties)
        outcome.record("all_members_team", OutcomeStatus.COMPLETED)
        return JoinResult(
            redirect_url=f"{context.organization.base_url}teams",
            notice=f"You have joined {context.team.name} team successfully",
            joined=True,
            outcome=list(outcome.entries),
        )

    async def _resolve_requester(self, context: JoinRequestContext, state: PipelineState) -> PipelineState:
        person_mail = await self.address_resolver.get_address_from_upn(context.requester_upn)
        return state.replace(person_mail=person_mail)

    async def _check_not_member(self, context: JoinRequestContext) -> None:
        try:
            is_member = await context.team.is_member(context.requester_login)
        except Exception as e:
            raise MembershipProviderError(f"Could not check membership of {context.requester_login} in team {context.team.name}: {e}") from e
        if is_member:
            raise AlreadyTeamMemberError(context.team.name)

    async def _choose_reviewer(self, context: JoinRequestContext, state: PipelineState) -> PipelineState:
        maintainers = await self.maintainer_resolver.list_eligible_maintainers(context.team)
        if not maintainers:
            raise NoEligibleReviewerError(f"Team {context.team.name} has no maintainer able to review join requests")

        record = {
            "request_type": "joinTeam",
            "requester_account_id": context.requester_account_id,
            "requester_login": context.requester_login,
            "requester_name": context.requester_name,
            "requester_email": context.requester_upn,
            "justification": context.justification,
            "org_id": getattr(context.organization, "id", None),
            "org_name": context.organization.name,
            "team_name": context.team.name,
            "correlation_id": context.correlation_id,
        }
        assignee = self.rng.choice(maintainers).login
        return state.replace(maintainers=tuple(maintainers), assignee=assignee, record=record)

    async def _resolve_approvers(self, state: PipelineState) -> PipelineState:
        maintainers = await self.maintainer_resolver.resolve_mail_addresses(list(state.maintainers), ResolutionPolicy.STRICT)
        addresses = tuple(maintainer.mail_address for maintainer in maintainers if maintainer.mail_address)
        return state.replace(maintainers=tuple(maintainers), approver_addresses=addresses)

    async def _insert_pending(self, context: JoinRequestContext, state: PipelineState, outcome: JoinOutcome) -> PipelineState:
        request_id = await self.store.insert_approval_request(context.team.id, state.record)
        outcome.record("store_pending", OutcomeStatus.COMPLETED, request_id)
        return state.replace(request_id=request_id)

    async def _create_ticket(self, context: JoinRequestContext, state: PipelineState, dispatcher: NotificationDispatcher, outcome: JoinOutcome) -> PipelineState:
        org_name = context.organization.name
        team_name = context.team.name
        login = context.requester_login
        mentions = ", ".join(f"@{maintainer.login}" for maintainer in state.maintainers)
        review_url = f"{build_site_url(context.display_hostname, self.allow_http)}approvals/{state.request_id}"
        title = f'Request to join team "{org_name}/{team_name}" by {login}'
        body = (
            f"A team join request has been submitted by {context.requester_name} ({context.requester_upn}, [{login}](https://github.com/{login})) "
            f'to join your "{team_name}" team in the "{org_name}" organization.\n\n'
            f"{mentions}: Can a team maintainer [review this request now]({review_url})?\n\n"
            "<em>If you use this issue to comment with the team maintainers, please understand that your comment will be visible by all members of the organization.</em>"
        )
        ticket = await dispatcher.create_ticket(title, body)
        outcome.record("issue_created", OutcomeStatus.COMPLETED, f"#{ticket.number}")
        return state.replace(ticket=ticket)

    async def _finalize(self, state: PipelineState, outcome: JoinOutcome) -> None:
        patch: Dict[str, Any] = {"active": True}
        if state.ticket is not None:
            patch["issue_tracker_ref_id"] = state.ticket.ref_id
            patch["issue_tracker_number"] = state.ticket.number
        await self.store.update_approval_request(state.request_id, patch)
        outcome.record("store_finalized", OutcomeStatus.COMPLETED)

    async def _assign_ticket(self, state: PipelineState, dispatcher: NotificationDispatcher, outcome: JoinOutcome) -> None:
        try:
            await dispatcher.assign_ticket(state.ticket.number, state.assignee)
        except IssueAssignmentError as e:
            logger.warning(f"Join request {state.request_id}: {e}")
            outcome.record("issue_assignment", OutcomeStatus.SOFT_FAILURE, str(e))
            return
        outcome.record("issue_assignment", OutcomeStatus.COMPLETED, state.assignee)

    def _mail_context(self, context: JoinRequestContext, state: PipelineState) -> Dict[str, Any]:
        site_url = build_site_url(context.display_hostname, self.allow_http)
        return {
            "correlation_id": context.correlation_id,
            "version": self.logging_version,
            "action_url": f"{site_url}approvals/{state.request_id}",
            "site_url": site_url,
            "approval_request": state.record,
            "team": context.team.name,
            "org": context.organization.name,
            "person_name": context.requester_name or context.requester_login,
            "person_mail": state.person_mail,
        }

    async def _mail_approvers(self, context: JoinRequestContext, state: PipelineState, dispatcher: NotificationDispatcher, outcome: JoinOutcome) -> None:
        team_name = context.team.name
        org_name = context.organization.name
        approvers = ", ".join(state.approver_addresses)
        mail_context = self._mail_context(context, state)
        content = dispatcher.render_mail(PLEASE_APPROVE_TEMPLATE, mail_context, PLEASE_APPROVE_EVENT)
        message = MailMessage(
            to=list(state.approver_addresses),
            subject=f"{mail_context['person_name']} wants to join your {team_name} team in the {org_name} GitHub org",
            content=content,
            reason=(
                f'You are receiving this e-mail because you are a team maintainer for the GitHub team "{team_name}" in the {org_name} organization. '
                f"To stop receiving these mails, you can remove your team maintainer status on GitHub. This mail was sent to: {approvers}"
            ),
            headline=f"{team_name} permission request",
            classification="action",
            service=settings.mail_service_name,
            correlation_id=context.correlation_id,
        )
        await dispatcher.send_mail(message, PLEASE_APPROVE_EVENT, {"content": mail_context})
        await self.store.update_approval_request(state.request_id, {"mail_sent_to_approvers": approvers, "mail_sent_to_requester": state.person_mail})
        outcome.record("approver_mail", OutcomeStatus.COMPLETED)

    async def _mail_requester(self, context: JoinRequestContext, state: PipelineState, dispatcher: NotificationDispatcher, outcome: JoinOutcome) -> None:
        team_name = context.team.name
        org_name = context.organization.name
        mail_context = self._mail_context(context, state)
        content = dispatcher.render_mail(REQUEST_SUBMITTED_TEMPLATE, mail_context, REQUEST_SUBMITTED_EVENT)
        message = MailMessage(
            to=[state.person_mail],
            subject=f'Your {org_name} "{team_name}" permission request has been submitted',
            content=content,
            reason=f"You are receiving this e-mail because you requested to join this team. This mail was sent to: {state.person_mail}",
            headline="Team request submitted",
            classification="information",
            service=settings.mail_service_name,
            correlation_id=context.correlation_id,
        )
        await dispatcher.send_mail(message, REQUEST_SUBMITTED_EVENT, {"content": mail_context})
        outcome.record("requester_mail", OutcomeStatus.COMPLETED)
