# -*- coding: utf-8 -*-
"""Location: ./teamgate/services/errors.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Teamgate Contributors

Team Join Errors.
Exceptions raised by the join request pipeline and its collaborators.

- ``JoinValidationError``: the requester can fix it; shown as-is, no telemetry.
- ``ApprovalConfigurationError``: the deployment is wrong; raised before any side effect.
- ``ApprovalProviderError``: an external service failed; fatal, reported to telemetry,
  the requester only sees a generic message.

Examples:
    >>> issubclass(AlreadyTeamMemberError, JoinValidationError)
    True
    >>> issubclass(MailDeliveryError, ApprovalProviderError)
    True
    >>> AlreadyTeamMemberError("core").user_message
    'You are already a member of the team core'
"""

# Standard
from typing import Optional


class JoinRequestError(Exception):
    """Base class for team join errors.

    Examples:
        >>> str(JoinRequestError("Test error"))
        'Test error'
    """


class JoinValidationError(JoinRequestError):
    """A request the requester must correct; safe to show verbatim.

    Args:
        message: User-facing message
        title: Optional headline for the error page
        detail: Optional longer explanation
        link: Optional follow-up link (url, title)
    """

    def __init__(self, message: str, title: Optional[str] = None, detail: Optional[str] = None, link: Optional[tuple] = None):
        """Initialize the error.

        Args:
            message: User-facing message
            title: Optional headline
            detail: Optional explanation
            link: Optional (url, title) pair
        """
        super().__init__(message)
        self.user_message = message
        self.title = title
        self.detail = detail
        self.link = link


class JustificationRequiredError(JoinValidationError):
    """Raised when a join request has no justification."""

    def __init__(self):
        """Initialize with the standard message."""
        super().__init__("You must include justification for your request.")


class AlreadyTeamMemberError(JoinValidationError):
    """Raised when the requester already belongs to the team."""

    def __init__(self, team_name: str, role: Optional[str] = None):
        """Initialize the error.

        Args:
            team_name: Team the requester tried to join
            role: Current membership role, when known
        """
        if role:
            message = f"You are already a {role} of the {team_name} team"
        else:
            message = f"You are already a member of the team {team_name}"
        super().__init__(message)
        self.team_name = team_name


class OrganizationMembershipRequiredError(JoinValidationError):
    """Raised when the requester has not joined (or accepted) the organization yet.

    Examples:
        >>> error = OrganizationMembershipRequiredError("contoso", "pending")
        >>> error.title
        'Please join the organization before joining this team'
        >>> error.link
        ('/contoso', 'Join the contoso organization')
    """

    def __init__(self, org_name: str, membership_state: Optional[str]):
        """Initialize the error.

        Args:
            org_name: Organization name
            membership_state: Current organization membership state ("pending" or None)
        """
        if membership_state == "pending":
            detail = "You have not accepted your membership yet, or do not have two-factor authentication enabled."
        else:
            detail = "After you join the organization, you can join this team."
        super().__init__(
            f"You are not a member of the {org_name} GitHub organization.",
            title="Please join the organization before joining this team",
            detail=detail,
            link=(f"/{org_name}", f"Join the {org_name} organization"),
        )


class ApprovalConfigurationError(JoinRequestError):
    """Raised when no usable approval provider is configured."""


class ApprovalProviderError(JoinRequestError):
    """Base class for fatal failures of an external collaborator."""


class AddressResolutionError(ApprovalProviderError):
    """Raised when a directory identifier cannot be resolved to a mail address.

    Examples:
        >>> AddressResolutionError("lookup failed", upn="a@contoso.com").upn
        'a@contoso.com'
    """

    def __init__(self, message: str, upn: Optional[str] = None):
        """Initialize the error.

        Args:
            message: Error description
            upn: Identifier that failed to resolve
        """
        super().__init__(message)
        self.upn = upn


class MembershipProviderError(ApprovalProviderError):
    """Raised when the organization or team membership service fails."""


class NoEligibleReviewerError(ApprovalProviderError):
    """Raised when a team has no maintainer able to review a join request."""


class IssueCreationError(ApprovalProviderError):
    """Raised when the workflow repository refuses to open the join issue."""


class MalformedIssueResponseError(ApprovalProviderError):
    """Raised when a created issue lacks its id or number."""


class ApprovalStoreError(ApprovalProviderError):
    """Raised when an approval request cannot be written."""


class ApprovalRequestNotFoundError(ApprovalStoreError):
    """Raised when patching an approval request that does not exist."""


class NotificationError(ApprovalProviderError):
    """Base class for mail notification failures."""


class MailRenderError(NotificationError):
    """Raised when a mail template cannot be rendered."""


class MailDeliveryError(NotificationError):
    """Raised when the mail provider fails to deliver a message."""


class IssueAssignmentError(JoinRequestError):
    """Raised when a join issue cannot be assigned; callers treat it as a soft failure."""
