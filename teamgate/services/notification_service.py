# -*- coding: utf-8 -*-
"""Location: ./teamgate/services/notification_service.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Teamgate Contributors

Notification Service.
Fans join request notifications out to the issue tracker (an issue in the
organization's workflow repository) and to the mail provider. Every failure is
raised as a typed error; whether it is fatal is the caller's decision.

Mail telemetry uses one event prefix per kind of mail, e.g.
``TeamJoinPleaseApproveMail`` yields ``...Success``, ``...Failure`` and
``...RenderFailure`` events.
"""

# Standard
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

# Third-Party
from jinja2 import Environment, FileSystemLoader, select_autoescape, StrictUndefined, TemplateError

# First-Party
from teamgate.config import settings
from teamgate.observability import TelemetryClient
from teamgate.providers.mail import MailProvider, MailProviderError
from teamgate.schemas import IssueTicket, MailMessage, MailReceipt
from teamgate.services.errors import IssueAssignmentError, IssueCreationError, MailDeliveryError, MailRenderError, MalformedIssueResponseError
from teamgate.services.logging_service import LoggingService

# Initialize logging
logging_service = LoggingService()
logger = logging_service.get_logger(__name__)


class MailRenderer:
    """Render HTML mail bodies from Jinja2 templates.

    Examples:
        >>> renderer = MailRenderer()
        >>> "membership_approvals/please_approve.html" in renderer.environment.list_templates()
        True
    """

    def __init__(self, templates_dir: Optional[Union[str, Path]] = None):
        """Initialize the renderer.

        Args:
            templates_dir: Template root (default from settings)
        """
        self.environment = Environment(
            loader=FileSystemLoader(str(templates_dir or settings.templates_dir)),
            autoescape=select_autoescape(["html", "xml"]),
            undefined=StrictUndefined,
        )

    def render(self, template_name: str, context: Mapping[str, Any]) -> str:
        """Render a template.

        Args:
            template_name: Path of the template below the template root
            context: Template variables

        Returns:
            str: Rendered HTML

        Raises:
            TemplateError: If the template is missing or references an undefined variable
        """
        return self.environment.get_template(template_name).render(**context)


class NotificationDispatcher:
    """Service delivering join request notifications.

    Attributes:
        mail_provider (Optional[MailProvider]): Mail provider, None when mail is disabled
        repository: Workflow repository receiving issues, None when not in use
        renderer (MailRenderer): Template renderer
        telemetry (TelemetryClient): Telemetry sink
    """

    def __init__(self, mail_provider: Optional[MailProvider] = None, repository=None, renderer: Optional[MailRenderer] = None, telemetry: Optional[TelemetryClient] = None):
        """Initialize the dispatcher.

        Args:
            mail_provider: Mail provider
            repository: Workflow repository exposing ``create_issue`` and ``update_issue``
            renderer: Template renderer (default: templates from settings)
            telemetry: Telemetry sink
        """
        self.mail_provider = mail_provider
        self.repository = repository
        self.renderer = renderer or MailRenderer()
        self.telemetry = telemetry or TelemetryClient()

    async def create_ticket(self, title: str, body: str) -> IssueTicket:
        """Open a join request issue.

        Args:
            title: Issue title
            body: Markdown body

        Returns:
            IssueTicket: Id and number of the new issue

        Raises:
            IssueCreationError: If no repository is wired or the tracker refuses the issue
            MalformedIssueResponseError: If the tracker answers without an id or a number
        """
        if self.repository is None:
            raise IssueCreationError("No workflow repository is available for join request issues")
        try:
            issue = await self.repository.create_issue(title, body)
        except Exception as e:
            logger.error(f"Failed to create join request issue '{title}': {e}")
            raise IssueCreationError(f"An issue could not be created: {e}") from e

        issue = issue or {}
        if not issue.get("id") or not issue.get("number"):
            raise MalformedIssueResponseError("An issue could not be created. The response object representing the issue was malformed.")
        ticket = IssueTicket(ref_id=str(issue["id"]), number=str(issue["number"]))
        logger.info(f"Opened join request issue #{ticket.number}")
        return ticket

    async def assign_ticket(self, number: str, assignee: str) -> None:
        """Assign an issue to a reviewer.

        Args:
            number: Issue number
            assignee: Login of the reviewer

        Raises:
            IssueAssignmentError: If the tracker refuses the assignment
        """
        if self.repository is None:
            raise IssueAssignmentError("No workflow repository is available for join request issues")
        try:
            await self.repository.update_issue(number, {"assignee": assignee})
        except Exception as e:
            # Accounts added to the organization outside this service are not
            # collaborators of the workflow repository and cannot be assigned.
            raise IssueAssignmentError(f"Issue #{number} could not be assigned to {assignee}: {e}") from e

    def render_mail(self, template_name: str, context: Mapping[str, Any], event_prefix: Optional[str] = None) -> str:
        """Render a mail body.

        Args:
            template_name: Template path
            context: Template variables
            event_prefix: Telemetry event prefix of this kind of mail

        Returns:
            str: Rendered HTML

        Raises:
            MailRenderError: If rendering fails
        """
        try:
            return self.renderer.render(template_name, context)
        except TemplateError as e:
            self.telemetry.track_exception(e, {"eventName": f"{event_prefix or 'Mail'}RenderFailure", "template": template_name, "content": dict(context)})
            raise MailRenderError(f"Could not render {template_name}: {e}") from e

    async def send_mail(self, message: MailMessage, event_prefix: Optional[str] = None, properties: Optional[Mapping[str, Any]] = None) -> MailReceipt:
        """Send a rendered mail.

        Args:
            message: Rendered message
            event_prefix: Telemetry event prefix of this kind of mail
            properties: Extra telemetry properties

        Returns:
            MailReceipt: Provider receipt

        Raises:
            MailDeliveryError: If no provider is wired, there is no recipient, or delivery fails
        """
        prefix = event_prefix or "Mail"
        custom: Dict[str, Any] = dict(properties or {})
        try:
            if self.mail_provider is None:
                raise MailDeliveryError("No mail provider is enabled")
            if not message.to:
                raise MailDeliveryError(f"Mail '{message.subject}' has no recipients")
            try:
                receipt = await self.mail_provider.send_mail(message)
            except MailProviderError as e:
                raise MailDeliveryError(str(e)) from e
        except MailDeliveryError as e:
            custom["eventName"] = f"{prefix}Failure"
            self.telemetry.track_exception(e, custom)
            raise

        custom["receipt"] = receipt.model_dump()
        self.telemetry.track_event(f"{prefix}Success", custom)
        return receipt
