# -*- coding: utf-8 -*-
"""Location: ./teamgate/services/approval_store.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Teamgate Contributors

Approval Store.
Persistence of approval requests. The join pipeline inserts a pending record
once, then patches it by primary key; each write commits in its own
transaction. Only the columns listed in ``PATCHABLE_FIELDS`` can be patched.

Examples:
    >>> sorted(PATCHABLE_FIELDS)[:2]
    ['active', 'issue_tracker_number']
"""

# Standard
from typing import Any, Dict, List, Mapping, Optional

# Third-Party
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

# First-Party
from teamgate.db import ApprovalRequest
from teamgate.services.errors import ApprovalRequestNotFoundError, ApprovalStoreError
from teamgate.services.logging_service import LoggingService

# Initialize logging
logging_service = LoggingService()
logger = logging_service.get_logger(__name__)

INSERTABLE_FIELDS = frozenset(
    {
        "request_type",
        "requester_account_id",
        "requester_login",
        "requester_name",
        "requester_email",
        "justification",
        "requested_at",
        "org_id",
        "org_name",
        "team_name",
        "correlation_id",
    }
)

PATCHABLE_FIELDS = frozenset(
    {
        "active",
        "issue_tracker_ref_id",
        "issue_tracker_number",
        "mail_sent_to_approvers",
        "mail_sent_to_requester",
    }
)


class ApprovalStore:
    """Service for approval request persistence.

    Attributes:
        db (Session): SQLAlchemy database session

    Examples:
        >>> from unittest.mock import MagicMock
        >>> store = ApprovalStore(MagicMock())
        >>> store.db is not None
        True
    """

    def __init__(self, db: Session):
        """Initialize the store.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db

    def close(self) -> None:
        """Release the session."""
        self.db.close()

    async def insert_approval_request(self, team_id: str, record: Mapping[str, Any]) -> str:
        """Insert a pending approval request.

        The record is always written inactive and without notification
        artifacts, whatever ``record`` contains.

        Args:
            team_id: Target team id
            record: Request fields (requester, justification, org and team names)

        Returns:
            str: Id of the new request

        Raises:
            ApprovalStoreError: If the insert fails
        """
        values = {key: value for key, value in record.items() if key in INSERTABLE_FIELDS and value is not None}
        request = ApprovalRequest(team_id=team_id, active=False, **values)
        try:
            self.db.add(request)
            self.db.commit()
            self.db.refresh(request)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to insert approval request for team {team_id}: {e}")
            raise ApprovalStoreError(f"Failed to insert approval request for team {team_id}: {e}") from e

        logger.info(f"Inserted pending approval request {request.id} for team {team_id}")
        return request.id

    async def update_approval_request(self, request_id: str, patch: Mapping[str, Any]) -> ApprovalRequest:
        """Merge a partial update into an existing request.

        Args:
            request_id: Request id
            patch: Fields to set; keys outside ``PATCHABLE_FIELDS`` are rejected

        Returns:
            ApprovalRequest: The updated request

        Raises:
            ApprovalRequestNotFoundError: If the request does not exist
            ApprovalStoreError: If the patch names unknown fields or the update fails
        """
        unknown = set(patch) - PATCHABLE_FIELDS
        if unknown:
            raise ApprovalStoreError(f"Cannot patch fields {sorted(unknown)} of approval request {request_id}")

        try:
            request = self.db.get(ApprovalRequest, request_id)
            if request is None:
                raise ApprovalRequestNotFoundError(f"Approval request {request_id} not found")
            for key, value in patch.items():
                setattr(request, key, value)
            self.db.commit()
            self.db.refresh(request)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to update approval request {request_id}: {e}")
            raise ApprovalStoreError(f"Failed to update approval request {request_id}: {e}") from e

        logger.debug(f"Patched approval request {request_id}: {sorted(patch)}")
        return request

    async def get_approval_request(self, request_id: str) -> Optional[ApprovalRequest]:
        """Get an approval request by id.

        Args:
            request_id: Request id

        Returns:
            Optional[ApprovalRequest]: The request, or None if not found
        """
        return self.db.get(ApprovalRequest, request_id)

    async def list_active_requests(self, team_id: str) -> List[ApprovalRequest]:
        """List the finalized requests of a team awaiting a decision.

        Args:
            team_id: Team id

        Returns:
            List[ApprovalRequest]: Active requests, oldest first
        """
        query = select(ApprovalRequest).where(ApprovalRequest.team_id == team_id, ApprovalRequest.active.is_(True)).order_by(ApprovalRequest.requested_at)
        return list(self.db.execute(query).scalars().all())
