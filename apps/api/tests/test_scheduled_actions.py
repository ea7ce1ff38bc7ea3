"""Tests for the scheduled action queue and the worker that drains it."""

from datetime import datetime, timedelta, timezone

import pytest

from clinicflow import worker
from clinicflow.db.enums import ScheduledActionStatus, ScheduledActionType
from clinicflow.db.models import Message, ScheduledAction
from clinicflow.jobs.registry import resolve_action_handler
from clinicflow.services import execution_service, scheduled_action_service
from clinicflow.services.errors import InvalidStateError
from clinicflow.services.message_senders import SendResult
from clinicflow.utils.datetime_utils import ensure_aware


def _past(minutes: int = 1) -> datetime:
    return datetime.now(timezone.utc) - timedelta(minutes=minutes)


@pytest.fixture
def failing_handler(monkeypatch):
    """Route every action to a handler that raises."""
    calls = []

    async def _boom(db, action):
        calls.append(action.id)
        raise RuntimeError("provider down")

    monkeypatch.setattr(worker, "resolve_action_handler", lambda _action: _boom)
    return calls


# =============================================================================
# Claiming
# =============================================================================

def test_due_actions_are_claimed_oldest_first(db, test_org):
    later = scheduled_action_service.schedule_action(
        db, test_org.id, ScheduledActionType.CONTINUE_WORKFLOW, {"n": 2}, scheduled_for=_past(1)
    )
    earlier = scheduled_action_service.schedule_action(
        db, test_org.id, ScheduledActionType.CONTINUE_WORKFLOW, {"n": 1}, scheduled_for=_past(5)
    )
    scheduled_action_service.schedule_action(
        db,
        test_org.id,
        ScheduledActionType.CONTINUE_WORKFLOW,
        {"n": 3},
        scheduled_for=datetime.now(timezone.utc) + timedelta(hours=1),
    )

    claimed = scheduled_action_service.claim_due_actions(db, limit=10)

    assert [a.id for a in claimed] == [earlier.id, later.id]
    for action in claimed:
        assert action.status == ScheduledActionStatus.RUNNING.value
        assert action.attempts == 1
        assert action.last_attempt_at is not None

    # Running actions are not claimed again
    assert scheduled_action_service.claim_due_actions(db, limit=10) == []


def test_retry_delay_doubles_and_caps():
    assert scheduled_action_service.retry_delay_seconds(1) == 300
    assert scheduled_action_service.retry_delay_seconds(2) == 600
    assert scheduled_action_service.retry_delay_seconds(3) == 1200
    assert scheduled_action_service.retry_delay_seconds(10) == 3600


def test_failed_attempts_retry_then_fail(db, test_org):
    action = scheduled_action_service.schedule_action(
        db,
        test_org.id,
        ScheduledActionType.PUBLISH_SOCIAL_POST,
        {"post_id": "x"},
        scheduled_for=_past(),
        max_attempts=2,
    )
    now = datetime.now(timezone.utc)

    [claimed] = scheduled_action_service.claim_due_actions(db, now=now)
    action = scheduled_action_service.mark_action_failed(db, claimed, "timeout", now=now)
    assert action.status == ScheduledActionStatus.RETRYING.value
    assert ensure_aware(action.scheduled_for) == now + timedelta(seconds=300)
    assert action.completed_at is None

    # Not due until the backoff elapses
    assert scheduled_action_service.claim_due_actions(db, now=now) == []

    [claimed] = scheduled_action_service.claim_due_actions(db, now=now + timedelta(seconds=301))
    assert claimed.attempts == 2
    action = scheduled_action_service.mark_action_failed(db, claimed, "timeout again", now=now)
    assert action.status == ScheduledActionStatus.FAILED.value
    assert action.error == "timeout again"
    assert action.completed_at is not None


# =============================================================================
# Management
# =============================================================================

def test_cancel_deletes_queued_action(db, test_org):
    action = scheduled_action_service.schedule_action(
        db, test_org.id, ScheduledActionType.CONTINUE_WORKFLOW, {}
    )
    scheduled_action_service.cancel_action(db, test_org.id, action.id)
    assert scheduled_action_service.get_action(db, test_org.id, action.id) is None


def test_running_action_cannot_be_cancelled(db, test_org):
    scheduled_action_service.schedule_action(
        db, test_org.id, ScheduledActionType.CONTINUE_WORKFLOW, {}, scheduled_for=_past()
    )
    [claimed] = scheduled_action_service.claim_due_actions(db)
    with pytest.raises(InvalidStateError):
        scheduled_action_service.cancel_action(db, test_org.id, claimed.id)


def test_reschedule_resets_attempts(db, test_org):
    action = scheduled_action_service.schedule_action(
        db, test_org.id, ScheduledActionType.CONTINUE_WORKFLOW, {}, scheduled_for=_past(), max_attempts=1
    )
    [claimed] = scheduled_action_service.claim_due_actions(db)
    scheduled_action_service.mark_action_failed(db, claimed, "boom")

    when = datetime.now(timezone.utc) + timedelta(days=1)
    action = scheduled_action_service.reschedule_action(db, test_org.id, action.id, when)

    assert action.status == ScheduledActionStatus.PENDING.value
    assert action.attempts == 0
    assert action.error is None
    assert action.completed_at is None


def test_stats_count_statuses_and_overdue(db, test_org, other_org):
    scheduled_action_service.schedule_action(
        db, test_org.id, ScheduledActionType.CONTINUE_WORKFLOW, {}, scheduled_for=_past(10)
    )
    scheduled_action_service.schedule_action(
        db,
        test_org.id,
        ScheduledActionType.CONTINUE_WORKFLOW,
        {},
        scheduled_for=datetime.now(timezone.utc) + timedelta(hours=1),
    )
    scheduled_action_service.schedule_action(
        db, other_org.id, ScheduledActionType.CONTINUE_WORKFLOW, {}, scheduled_for=_past(10)
    )

    stats = scheduled_action_service.get_action_stats(db, test_org.id)

    assert stats["total"] == 2
    assert stats["pending"] == 2
    assert stats["overdue"] == 1
    assert stats["failed"] == 0


# =============================================================================
# Worker
# =============================================================================

def test_unknown_action_has_no_handler():
    with pytest.raises(ValueError, match="Unknown scheduled action"):
        resolve_action_handler("send_fax")


@pytest.mark.asyncio
async def test_worker_records_handler_failure(db, test_org, failing_handler):
    action = scheduled_action_service.schedule_action(
        db, test_org.id, ScheduledActionType.CONTINUE_WORKFLOW, {}, scheduled_for=_past()
    )

    processed = await worker.run_due_actions(db)

    assert processed == 1
    assert failing_handler == [action.id]
    db.refresh(action)
    assert action.status == ScheduledActionStatus.RETRYING.value
    assert action.error == "provider down"
    assert action.attempts == 1


@pytest.mark.asyncio
async def test_worker_runs_enrolled_workflow(db, test_org, make_client, make_workflow, monkeypatch, senders):
    monkeypatch.setattr(
        "clinicflow.services.workflow_engine.default_senders", lambda: senders
    )
    client = make_client()
    workflow = make_workflow(
        blocks=[
            {"id": "tag", "type": "add_tag", "config": {"tag": "welcomed"}},
            {"id": "sms", "type": "send_sms", "config": {"message": "Welcome!"}},
        ]
    )
    execution = execution_service.enroll_client(db, test_org.id, workflow, client)

    processed = await worker.run_due_actions(db)

    assert processed == 1
    db.refresh(execution)
    assert execution.status == "completed"
    assert execution.actions_completed == [0, 1]
    action = db.query(ScheduledAction).one()
    assert action.status == ScheduledActionStatus.COMPLETED.value
    assert action.completed_at is not None
    assert len(senders.sms.sent) == 1


class _CrashOnceSender:
    """SMS sender whose second call raises, then behaves."""

    key = "crash-once"

    def __init__(self):
        self.bodies: list[str] = []

    async def send(self, to: str, body: str, subject: str | None = None) -> SendResult:
        self.bodies.append(body)
        if len(self.bodies) == 2:
            raise RuntimeError("provider connection reset")
        return SendResult(success=True, external_id=f"sms-{len(self.bodies)}")


@pytest.mark.asyncio
async def test_retried_workflow_resumes_after_last_committed_step(
    db, test_org, make_client, make_workflow, monkeypatch, senders
):
    sms = _CrashOnceSender()
    senders.sms = sms
    monkeypatch.setattr(
        "clinicflow.services.workflow_engine.default_senders", lambda: senders
    )
    client = make_client()
    workflow = make_workflow(
        blocks=[
            {"id": "first", "type": "send_sms", "config": {"message": "First"}},
            {"id": "second", "type": "send_sms", "config": {"message": "Second"}},
        ]
    )
    execution = execution_service.enroll_client(db, test_org.id, workflow, client)

    await worker.run_due_actions(db)

    action = db.query(ScheduledAction).one()
    assert action.status == ScheduledActionStatus.RETRYING.value
    db.refresh(execution)
    assert execution.actions_completed == [0]
    assert execution.current_block_id == "second"

    action.scheduled_for = _past()
    db.commit()
    await worker.run_due_actions(db)

    db.refresh(execution)
    assert execution.status == "completed"
    assert execution.actions_completed == [0, 1]
    assert sms.bodies == ["First", "Second", "Second"]
    bodies = [m.content for m in db.query(Message).filter(Message.client_id == client.id).all()]
    assert sorted(bodies) == ["First", "Second"]


# =============================================================================
# API
# =============================================================================

@pytest.mark.asyncio
async def test_api_stats_and_reschedule(authed_client, db, test_org):
    action = scheduled_action_service.schedule_action(
        db, test_org.id, ScheduledActionType.CONTINUE_WORKFLOW, {}, scheduled_for=_past()
    )

    res = await authed_client.get("/scheduled-actions/stats")
    assert res.status_code == 200
    assert res.json()["overdue"] == 1

    when = (datetime.now(timezone.utc) + timedelta(days=2)).isoformat()
    res = await authed_client.post(
        f"/scheduled-actions/{action.id}/reschedule", json={"scheduled_for": when}
    )
    assert res.status_code == 200
    assert res.json()["status"] == "pending"

    res = await authed_client.delete(f"/scheduled-actions/{action.id}")
    assert res.status_code == 200
    assert (await authed_client.get("/scheduled-actions")).json() == []
