# -*- coding: utf-8 -*-
"""Location: ./tests/unit/teamgate/services/test_approval_store.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Teamgate Contributors

Tests for the approval store, against in-memory SQLite.
"""

# Standard
from unittest.mock import MagicMock

# Third-Party
import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

# First-Party
from teamgate.db import ApprovalRequest
from teamgate.services.approval_store import ApprovalStore
from teamgate.services.errors import ApprovalRequestNotFoundError, ApprovalStoreError


@pytest.fixture
def store(db_session):
    """Store bound to the in-memory database."""
    return ApprovalStore(db_session)


@pytest.fixture
def record():
    """A join request record as built by the pipeline."""
    return {
        "request_type": "joinTeam",
        "requester_account_id": "1001",
        "requester_login": "octocat",
        "requester_name": "Octo Cat",
        "requester_email": "octocat@corp",
        "justification": "Working on the SDK",
        "org_name": "contoso",
        "team_name": "sdk",
        "correlation_id": "corr-1",
    }


class TestApprovalStore:
    """Tests for ApprovalStore."""

    @pytest.mark.asyncio
    async def test_insert_creates_pending_request(self, store, record, db_session):
        """Inserted requests are pending with no notification artifacts."""
        request_id = await store.insert_approval_request("42", record)

        request = db_session.get(ApprovalRequest, request_id)
        assert request.team_id == "42"
        assert request.active is False
        assert request.is_pending()
        assert request.request_type == "joinTeam"
        assert request.requester_login == "octocat"
        assert request.issue_tracker_ref_id is None
        assert request.mail_sent_to_approvers is None
        assert request.requested_at_epoch_ms > 0

    @pytest.mark.asyncio
    async def test_insert_ignores_finalization_fields(self, store, record, db_session):
        """A record cannot smuggle in active state or issue references."""
        request_id = await store.insert_approval_request("42", {**record, "active": True, "issue_tracker_number": "7"})

        request = db_session.get(ApprovalRequest, request_id)
        assert request.active is False
        assert request.issue_tracker_number is None

    @pytest.mark.asyncio
    async def test_insert_generates_unique_ids(self, store, record):
        """Every insert gets its own id."""
        first = await store.insert_approval_request("42", record)
        second = await store.insert_approval_request("42", record)

        assert first != second

    @pytest.mark.asyncio
    async def test_update_merges_partial_patches(self, store, record):
        """Patches only touch the fields they name."""
        request_id = await store.insert_approval_request("42", record)

        await store.update_approval_request(request_id, {"active": True, "issue_tracker_ref_id": "900", "issue_tracker_number": "7"})
        request = await store.update_approval_request(request_id, {"mail_sent_to_approvers": "a@mail, b@mail"})

        assert request.active is True
        assert request.issue_tracker_number == "7"
        assert request.mail_sent_to_approvers == "a@mail, b@mail"
        assert request.justification == "Working on the SDK"

    @pytest.mark.asyncio
    async def test_update_unknown_request(self, store):
        """Patching a missing request raises ApprovalRequestNotFoundError."""
        with pytest.raises(ApprovalRequestNotFoundError):
            await store.update_approval_request("missing", {"active": True})

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_fields(self, store, record):
        """Only finalization and mail bookkeeping fields can be patched."""
        request_id = await store.insert_approval_request("42", record)

        with pytest.raises(ApprovalStoreError, match="justification"):
            await store.update_approval_request(request_id, {"justification": "changed"})

    @pytest.mark.asyncio
    async def test_insert_failure_rolls_back(self, record):
        """Database errors roll back and surface as ApprovalStoreError."""
        db = MagicMock(spec=Session)
        db.commit.side_effect = OperationalError("INSERT", {}, Exception("disk full"))
        store = ApprovalStore(db)

        with pytest.raises(ApprovalStoreError, match="disk full"):
            await store.insert_approval_request("42", record)

        db.rollback.assert_called_once()

    @pytest.mark.asyncio
    async def test_update_failure_rolls_back(self):
        """A failing commit on update rolls back."""
        db = MagicMock(spec=Session)
        db.get.return_value = ApprovalRequest(id="r1", team_id="42", active=False)
        db.commit.side_effect = OperationalError("UPDATE", {}, Exception("locked"))
        store = ApprovalStore(db)

        with pytest.raises(ApprovalStoreError):
            await store.update_approval_request("r1", {"active": True})

        db.rollback.assert_called_once()

    @pytest.mark.asyncio
    async def test_get_and_list_active_requests(self, store, record):
        """Only finalized requests of the team are listed as active."""
        pending_id = await store.insert_approval_request("42", record)
        active_id = await store.insert_approval_request("42", record)
        other_team_id = await store.insert_approval_request("43", record)
        await store.update_approval_request(active_id, {"active": True})
        await store.update_approval_request(other_team_id, {"active": True})

        active = await store.list_active_requests("42")

        assert [request.id for request in active] == [active_id]
        assert (await store.get_approval_request(pending_id)).active is False
        assert await store.get_approval_request("missing") is None

    def test_close_releases_the_session(self):
        """close() closes the session the store was built with."""
        db = MagicMock(spec=Session)

        ApprovalStore(db).close()

        db.close.assert_called_once()
