# -*- coding: utf-8 -*-
"""Location: ./teamgate/schemas.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Teamgate Contributors

Teamgate Schema Definitions.
Pydantic models shared by the providers, the approval pipeline and the HTTP API.

Examples:
    >>> from teamgate.schemas import Maintainer, MaintainerLink
    >>> Maintainer(id="1", login="octocat").is_eligible()
    False
    >>> Maintainer(id="1", login="octocat", link=MaintainerLink(upn="octo@contoso.com")).is_eligible()
    True
"""

# Standard
from enum import Enum
from typing import List, Optional

# Third-Party
from pydantic import BaseModel, ConfigDict, Field, field_validator


class MaintainerLink(BaseModel):
    """Directory identity linked to an issue tracker account."""

    model_config = ConfigDict(frozen=True)

    upn: Optional[str] = None
    display_name: Optional[str] = None


class Maintainer(BaseModel):
    """A team maintainer as reported by the issue tracker.

    The link is attached from the account link table and may be missing.
    """

    id: str
    login: Optional[str] = None
    link: Optional[MaintainerLink] = None
    mail_address: Optional[str] = None

    def is_eligible(self) -> bool:
        """Check whether this maintainer can review join requests.

        Returns:
            bool: True when both the login and the link are present
        """
        return bool(self.login) and self.link is not None

    @property
    def upn(self) -> Optional[str]:
        """Directory identifier of the maintainer, if linked.

        Returns:
            Optional[str]: The UPN or None
        """
        return self.link.upn if self.link else None


class TeamRef(BaseModel):
    """Identity of a team inside an organization."""

    model_config = ConfigDict(frozen=True)

    id: str
    slug: str
    name: str


class IssueTicket(BaseModel):
    """Reference to an issue created in the workflow repository."""

    model_config = ConfigDict(frozen=True)

    ref_id: str
    number: str


class MailMessage(BaseModel):
    """A fully rendered mail ready for a mail provider.

    Examples:
        >>> MailMessage(to="a@example.com", subject="s", content="<p>x</p>").to
        ['a@example.com']
    """

    to: List[str]
    subject: str
    content: str
    reason: Optional[str] = None
    headline: Optional[str] = None
    classification: Optional[str] = None
    service: Optional[str] = None
    correlation_id: Optional[str] = None

    @field_validator("to", mode="before")
    @classmethod
    def _single_recipient_to_list(cls, value):
        """Accept a single address as a one-element recipient list.

        Args:
            value: Raw recipient value

        Returns:
            The recipient list
        """
        if isinstance(value, str):
            return [value]
        return value


class MailReceipt(BaseModel):
    """Provider acknowledgement for a sent mail."""

    provider: str
    message_id: Optional[str] = None
    accepted: List[str] = Field(default_factory=list)


class OutcomeStatus(str, Enum):
    """Result of a single pipeline stage."""

    COMPLETED = "completed"
    SKIPPED = "skipped"
    SOFT_FAILURE = "soft_failure"
    FAILED = "failed"


class OutcomeEntry(BaseModel):
    """One line of the per-request outcome log."""

    stage: str
    status: OutcomeStatus
    detail: Optional[str] = None


class JoinTeamRequest(BaseModel):
    """Body of a team join submission."""

    justification: Optional[str] = Field(default=None, max_length=4000, description="Business justification for joining the team")


class JoinResponse(BaseModel):
    """Result of a successful join submission."""

    redirect_url: str
    notice: str
    request_id: Optional[str] = None
    joined: bool = False
    outcome: List[OutcomeEntry] = Field(default_factory=list)


class MaintainerResponse(BaseModel):
    """Maintainer as shown on the join and overview pages."""

    login: Optional[str] = None
    display_name: Optional[str] = None
    mail_address: Optional[str] = None


class JoinPageResponse(BaseModel):
    """Data backing the join page of a team."""

    team: TeamRef
    allow_self_join: bool = False
    maintainers: List[MaintainerResponse] = Field(default_factory=list)


class TeamOverviewResponse(BaseModel):
    """Data backing the team overview page."""

    team: TeamRef
    org_name: str
    is_broad_access_team: bool = False
    maintainers: List[MaintainerResponse] = Field(default_factory=list)
