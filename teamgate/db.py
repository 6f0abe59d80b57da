# -*- coding: utf-8 -*-
"""Location: ./teamgate/db.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Teamgate Contributors

Teamgate Database Models.
Two tables back the join pipeline:
- ``approval_requests``: one row per submitted join request, patched as the
  issue, assignment and mails complete
- ``account_links``: issue tracker account to directory UPN, the link a
  maintainer needs before being asked to approve

Examples:
    >>> sqlite_connect_args("sqlite:///./teamgate.db")
    {'check_same_thread': False}
    >>> sqlite_connect_args("postgresql://db/teamgate")
    {}
"""

# Standard
from datetime import datetime, timezone
import logging
from typing import Any, Dict, Iterator, Optional
import uuid

# Third-Party
from sqlalchemy import Boolean, create_engine, DateTime, event, Index, make_url, String, Text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, Session, sessionmaker

# First-Party
from teamgate.config import settings

logger = logging.getLogger(__name__)

SQLITE_PRAGMAS = ("journal_mode=WAL", "busy_timeout=30000", "synchronous=NORMAL")


def sqlite_connect_args(database_url: str) -> Dict[str, Any]:
    """Driver arguments for ``database_url``.

    Args:
        database_url: SQLAlchemy URL

    Returns:
        Dict[str, Any]: Arguments for ``create_engine(connect_args=...)``
    """
    if make_url(database_url).get_backend_name() == "sqlite":
        # Sessions are opened in the request thread pool
        return {"check_same_thread": False}
    return {}


engine = create_engine(settings.database_url, pool_pre_ping=True, connect_args=sqlite_connect_args(settings.database_url))


def utc_now() -> datetime:
    """Timezone-aware now, used for every timestamp column.

    Returns:
        datetime: Current time in UTC

    Examples:
        >>> utc_now().utcoffset().total_seconds()
        0.0
    """
    return datetime.now(timezone.utc)


if engine.dialect.name == "sqlite":

    @event.listens_for(engine, "connect")
    def _apply_sqlite_pragmas(dbapi_conn, _connection_record):
        cursor = dbapi_conn.cursor()
        for pragma in SQLITE_PRAGMAS:
            cursor.execute(f"PRAGMA {pragma}")
        cursor.close()


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    """Declarative base of the teamgate tables."""


class ApprovalRequest(Base):
    """A request awaiting human approval.

    A join request is inserted as *pending* (inactive, no notification
    artifacts) and patched once to *finalized* after its issue exists, then
    annotated with mail bookkeeping once the approver mail is delivered.

    Attributes:
        id (str): Primary key UUID, generated on insert
        request_type (str): Kind of request, "joinTeam" for team joins
        active (bool): False while pending, True once finalized
        requester_account_id (str): Issue tracker account id of the requester
        requester_login (str): Issue tracker login of the requester
        requester_name (str): Display name of the requester
        requester_email (str): Corporate identity (UPN) of the requester
        justification (str): Business justification supplied by the requester
        requested_at (datetime): Creation timestamp
        org_id (str): Organization identifier
        org_name (str): Organization name
        team_id (str): Target team identifier
        team_name (str): Target team name
        issue_tracker_ref_id (str): Issue id, set when an issue was created
        issue_tracker_number (str): Issue number, set when an issue was created
        mail_sent_to_approvers (str): Comma-separated approver addresses mailed
        mail_sent_to_requester (str): Requester address mailed
        correlation_id (str): Correlation ID of the submitting HTTP request

    Examples:
        >>> request = ApprovalRequest(
        ...     request_type="joinTeam",
        ...     active=False,
        ...     requester_login="octocat",
        ...     justification="Working on the SDK",
        ...     org_name="contoso",
        ...     team_id="42",
        ...     team_name="sdk",
        ... )
        >>> request.active
        False
        >>> request.is_pending()
        True
    """

    __tablename__ = "approval_requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: uuid.uuid4().hex)
    request_type: Mapped[str] = mapped_column(String(50), default="joinTeam", nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Requester
    requester_account_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    requester_login: Mapped[str] = mapped_column(String(255), nullable=False)
    requester_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    requester_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    justification: Mapped[str] = mapped_column(Text, nullable=False)
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)

    # Target
    org_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    org_name: Mapped[str] = mapped_column(String(255), nullable=False)
    team_id: Mapped[str] = mapped_column(String(64), nullable=False)
    team_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Notification artifacts
    issue_tracker_ref_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    issue_tracker_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    mail_sent_to_approvers: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    mail_sent_to_requester: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    correlation_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    __table_args__ = (Index("idx_approval_requests_team_active", "team_id", "active"),)

    def __repr__(self) -> str:
        """String representation of the approval request.

        Returns:
            str: String representation of ApprovalRequest instance
        """
        return f"<ApprovalRequest(id='{self.id}', type='{self.request_type}', team_id='{self.team_id}', active={self.active})>"

    @property
    def requested_at_epoch_ms(self) -> Optional[int]:
        """Creation time as epoch milliseconds.

        Returns:
            Optional[int]: Milliseconds since the epoch, or None before insert

        Examples:
            >>> ApprovalRequest(requested_at=datetime(1970, 1, 1, 0, 0, 1, tzinfo=timezone.utc)).requested_at_epoch_ms
            1000
        """
        if self.requested_at is None:
            return None
        requested_at = self.requested_at
        if requested_at.tzinfo is None:
            requested_at = requested_at.replace(tzinfo=timezone.utc)
        return int(requested_at.timestamp() * 1000)

    def is_pending(self) -> bool:
        """Check whether the request is still in its pending state.

        Returns:
            bool: True while the request has not been finalized
        """
        return not self.active


class AccountLink(Base):
    """Link between an issue tracker account and a corporate directory identity.

    A maintainer whose account has a link is eligible to review join requests;
    the UPN is what the directory resolves to a deliverable mail address.

    Attributes:
        account_id (str): Issue tracker account id (primary key)
        login (str): Issue tracker login
        upn (str): Directory user principal name
        display_name (str): Directory display name
        created_at (datetime): When the link was created

    Examples:
        >>> link = AccountLink(account_id="1", login="octocat", upn="octocat@contoso.com")
        >>> link.upn
        'octocat@contoso.com'
    """

    __tablename__ = "account_links"

    account_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    login: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    upn: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)

    def __repr__(self) -> str:
        """String representation of the account link.

        Returns:
            str: String representation of AccountLink instance
        """
        return f"<AccountLink(account_id='{self.account_id}', login='{self.login}')>"


def get_db() -> Iterator[Session]:
    """FastAPI dependency yielding a session closed after the request.

    Yields:
        Session: Database session
    """
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def init_db() -> None:
    """Create missing tables.

    Raises:
        RuntimeError: If the database cannot be reached or the tables cannot be created
    """
    try:
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError as e:
        logger.error(f"Cannot create the approval tables: {e}")
        raise RuntimeError(f"Failed to initialize database: {e}") from e


if __name__ == "__main__":
    init_db()
