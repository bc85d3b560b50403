"""
Tests for the deployment status lifecycle.

Verifies:
- Transition table shape (ARCHIVED and side states are terminal)
- Client-side enforcement sends nothing on an invalid move
- The store's answer wins when it disagrees with the request
- complete / uncomplete shortcuts
"""

import httpx
import pytest

from missionops.exceptions import BusinessRuleError, InvalidTransitionError, NotFoundError
from missionops.schemas import DeploymentStatus
from missionops.services.lifecycle import ALLOWED_TRANSITIONS, is_allowed, next_allowed

S = DeploymentStatus


class TestTransitionTable:
    """The static table."""

    def test_archived_is_terminal(self):
        """Nothing follows ARCHIVED."""
        assert next_allowed(S.ARCHIVED) == []
        assert next_allowed("Archived") == []

    def test_no_status_leaves_archived(self):
        """No table entry offers a way out of ARCHIVED."""
        for target in S:
            assert not is_allowed(S.ARCHIVED, target)

    @pytest.mark.parametrize("status", [S.CANCELLED, S.DELAYED])
    def test_side_states_are_terminal(self, status):
        """Cancelled and delayed missions do not re-enter the flow."""
        assert next_allowed(status) == []

    def test_every_status_has_an_entry(self):
        """The table covers the whole enum."""
        assert set(ALLOWED_TRANSITIONS) == set(S)

    def test_main_flow(self):
        """Draft to archived is reachable one step at a time."""
        path = [S.DRAFT, S.SCHEDULED, S.ACTIVE, S.REVIEW, S.COMPLETED, S.ARCHIVED]
        for current, requested in zip(path, path[1:]):
            assert is_allowed(current, requested), f"{current} -> {requested}"

    def test_completed_can_reopen_for_review(self):
        """Uncomplete goes back to REVIEW."""
        assert is_allowed(S.COMPLETED, S.REVIEW)
        assert not is_allowed(S.COMPLETED, S.ACTIVE)


class TestLifecycleController:
    """Transitions against the in-memory store."""

    def test_walks_main_flow(self, ops, session, memory_store, deployment_id):
        """Each allowed step is written to the store and the caches."""
        for status in (S.ACTIVE, S.REVIEW, S.COMPLETED):
            updated = ops.lifecycle.transition(deployment_id, status)
            assert updated.status == status

        assert memory_store.deployments[deployment_id]["status"] == "Completed"
        assert session.deployment.status == S.COMPLETED
        assert ops.repository.list(status="Completed")[0].id == deployment_id

    def test_same_status_is_noop(self, fake_ops, fake_session, fake_store):
        """Re-selecting the current status sends nothing."""
        result = fake_ops.lifecycle.transition(fake_session.deployment, S.ACTIVE)
        assert result.status == S.ACTIVE
        assert fake_store.requests("PUT") == []

    def test_invalid_transition_sends_nothing(self, fake_ops, fake_session, fake_store):
        """An invalid move raises with the allowed targets and no request."""
        with pytest.raises(InvalidTransitionError) as exc_info:
            fake_ops.lifecycle.transition(fake_session.deployment, S.ARCHIVED)

        assert exc_info.value.current == "Active"
        assert "Review" in exc_info.value.allowed
        assert fake_store.requests("PUT") == []
        assert fake_session.deployment.status == S.ACTIVE

    def test_terminal_state_message(self, fake_ops, fake_session, fake_deployment):
        """A terminal state reports that nothing is allowed."""
        fake_deployment["status"] = "Cancelled"
        fake_ops.repository.reload()

        with pytest.raises(InvalidTransitionError, match="no transitions allowed"):
            fake_ops.lifecycle.transition(fake_session.deployment, S.ACTIVE)

    def test_store_enforces_when_client_does_not(self, ops, session, memory_store, deployment_id):
        """With local checks off the store's rejection is surfaced verbatim."""
        with pytest.raises(BusinessRuleError) as exc_info:
            ops.lifecycle.transition(deployment_id, S.ARCHIVED, enforce=False)

        assert exc_info.value.message.startswith("Invalid status transition from Scheduled to Archived")
        assert memory_store.deployments[deployment_id]["status"] == "Scheduled"
        assert session.deployment.status == S.SCHEDULED

    def test_reconciles_to_server_status(self, fake_ops, fake_session, fake_store, fake_deployment):
        """When the store answers with another status the caller gets the store's."""

        def downgrade(request, body):
            fake_deployment["status"] = "Delayed"
            return httpx.Response(200, json={"success": True, "data": dict(fake_deployment)})

        fake_store.handlers[("PUT", "/deployments/dep-1")] = downgrade

        updated = fake_ops.lifecycle.transition(fake_session.deployment, S.REVIEW)

        assert updated.status == S.DELAYED
        assert fake_session.deployment.status == S.DELAYED
        assert fake_ops.repository.list()[0].status == S.DELAYED

    def test_complete_and_uncomplete(self, fake_ops, fake_session, fake_store):
        """The shortcuts go ACTIVE -> COMPLETED -> REVIEW."""
        assert fake_ops.lifecycle.complete("dep-1").status == S.COMPLETED
        assert fake_ops.lifecycle.uncomplete("dep-1").status == S.REVIEW
        assert [body for _, _, body in fake_store.requests("PUT")] == [
            {"status": "Completed"},
            {"status": "Review"},
        ]

    def test_unknown_deployment(self, fake_ops, fake_session):
        """Transition by an id the repository does not know."""
        with pytest.raises(NotFoundError):
            fake_ops.lifecycle.transition("missing", S.ACTIVE)

    def test_controller_next_allowed(self, ops):
        """The controller exposes the table."""
        assert ops.lifecycle.next_allowed(S.REVIEW) == [S.COMPLETED, S.ACTIVE]
