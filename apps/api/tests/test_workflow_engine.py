"""Tests for the workflow engine (step execution, delays, branches)."""

from datetime import datetime, timedelta, timezone

import pytest

from clinicflow.db.enums import ExecutionLogStatus, ScheduledActionType, WorkflowExecutionStatus
from clinicflow.db.models import Appointment, ExecutionLog, Message, ScheduledAction
from clinicflow.services import execution_service, workflow_engine
from clinicflow.services.workflow_engine import StepError
from clinicflow.utils.datetime_utils import ensure_aware


def _logs(db, execution):
    return (
        db.query(ExecutionLog)
        .filter(ExecutionLog.execution_id == execution.id)
        .order_by(ExecutionLog.executed_at, ExecutionLog.id)
        .all()
    )


# =============================================================================
# Navigation & Helpers
# =============================================================================

def test_entry_block_skips_blocks_with_incoming_edges(make_workflow):
    workflow = make_workflow(
        blocks=[
            {"id": "b", "type": "add_tag", "config": {"tag": "x"}},
            {"id": "a", "type": "add_tag", "config": {"tag": "y"}},
        ],
        connections=[{"from": "a", "to": "b"}],
    )
    assert workflow_engine.entry_block_id(workflow) == "a"
    assert workflow_engine.next_block_id(workflow, "a") == "b"
    assert workflow_engine.next_block_id(workflow, "b") is None


def test_list_order_false_branch_ends_run(make_workflow):
    workflow = make_workflow(
        blocks=[
            {"id": "check", "type": "if", "config": {}},
            {"id": "after", "type": "add_tag", "config": {"tag": "x"}},
        ]
    )
    assert workflow_engine.next_block_id(workflow, "check", "true") == "after"
    assert workflow_engine.next_block_id(workflow, "check", "false") is None


def test_delay_until_units():
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert workflow_engine.delay_until({"value": 2, "unit": "hours"}, now) == now + timedelta(hours=2)
    assert workflow_engine.delay_until({"duration": 1, "unit": "months"}, now) == now + timedelta(days=30)
    assert workflow_engine.delay_until({"value": 3}, now) == now + timedelta(days=3)
    with pytest.raises(StepError):
        workflow_engine.delay_until({"value": 1, "unit": "fortnights"}, now)


def test_condition_on_tags_and_appointment_count(db, test_org, make_client):
    client = make_client(tags=["vip"])
    assert workflow_engine.evaluate_condition(
        db, client, {"field": "tags", "operator": "contains", "value": "vip"}
    )
    assert not workflow_engine.evaluate_condition(
        db, client, {"field": "tags", "operator": "not_contains", "value": "vip"}
    )

    db.add(
        Appointment(
            organization_id=test_org.id,
            client_id=client.id,
            scheduled_at=datetime.now(timezone.utc) - timedelta(days=10),
            appointment_type="Botox",
        )
    )
    db.commit()
    assert workflow_engine.evaluate_condition(
        db, client, {"field": "appointment_count", "operator": "greater_or_equal", "value": 1}
    )
    assert workflow_engine.evaluate_condition(
        db, client, {"field": "appointment_type", "operator": "contains", "value": "botox"}
    )
    assert workflow_engine.evaluate_condition(
        db, client, {"field": "last_appointment_date", "operator": "greater_than", "value": 7}
    )


def test_unknown_condition_field_is_a_step_error(db, make_client):
    with pytest.raises(StepError):
        workflow_engine.evaluate_condition(db, make_client(), {"field": "zodiac", "value": "leo"})


# =============================================================================
# Run Loop
# =============================================================================

@pytest.mark.asyncio
async def test_run_pauses_at_delay_and_resumes(db, test_org, make_client, make_workflow, senders):
    client = make_client(full_name="Maya Chen")
    workflow = make_workflow(
        blocks=[
            {"id": "sms", "type": "send_sms", "config": {"message": "Hi {{first_name}}!"}},
            {"id": "tag", "type": "add_tag", "config": {"tag": "welcomed"}},
            {"id": "wait", "type": "delay", "config": {"value": 2, "unit": "days"}},
            {"id": "email", "type": "send_email", "config": {"subject": "Hello", "message": "Still there?"}},
        ]
    )
    execution = execution_service.enroll_client(db, test_org.id, workflow, client)

    execution = await workflow_engine.run_execution(db, test_org.id, execution.id, senders=senders)

    assert execution.status == WorkflowExecutionStatus.RUNNING.value
    assert execution.actions_completed == [0, 1, 2]
    assert execution.next_execution_at is not None
    assert senders.sms.sent[0]["body"] == "Hi Maya!"
    db.refresh(client)
    assert client.tags == ["welcomed"]

    resume = next(a for a in db.query(ScheduledAction).all() if a.args.get("block_id") == "email")
    assert resume.action == ScheduledActionType.CONTINUE_WORKFLOW.value
    assert ensure_aware(resume.scheduled_for) > datetime.now(timezone.utc) + timedelta(days=1)
    assert _logs(db, execution)[-1].status == ExecutionLogStatus.WAITING.value

    execution = await workflow_engine.run_execution(
        db, test_org.id, execution.id, start_block_id="email", resuming=True, senders=senders
    )

    assert execution.status == WorkflowExecutionStatus.COMPLETED.value
    assert execution.actions_completed == [0, 1, 2, 3]
    assert execution.completed_at is not None
    assert senders.email.sent[0]["subject"] == "Hello"
    db.refresh(workflow)
    assert workflow.successful_runs == 1
    assert db.query(Message).filter(Message.client_id == client.id).count() == 2


@pytest.mark.asyncio
async def test_resume_after_trailing_delay_completes(db, test_org, make_client, make_workflow, senders):
    workflow = make_workflow(blocks=[{"id": "wait", "type": "delay", "config": {"value": 1}}])
    execution = execution_service.enroll_client(db, test_org.id, workflow, make_client())

    execution = await workflow_engine.run_execution(db, test_org.id, execution.id, senders=senders)
    assert execution.status == "running"

    execution = await workflow_engine.run_execution(
        db, test_org.id, execution.id, start_block_id=None, resuming=True, senders=senders
    )
    assert execution.status == "completed"


@pytest.mark.asyncio
async def test_if_block_follows_matching_branch(db, test_org, make_client, make_workflow, senders):
    workflow = make_workflow(
        blocks=[
            {"id": "check", "type": "if", "config": {"field": "tags", "operator": "contains", "value": "vip"}},
            {"id": "vip", "type": "add_tag", "config": {"tag": "vip-offer"}},
            {"id": "std", "type": "add_tag", "config": {"tag": "standard-offer"}},
        ],
        connections=[
            {"from": "check", "to": "vip", "branch": "true"},
            {"from": "check", "to": "std", "branch": "false"},
        ],
    )
    vip = make_client(tags=["vip"])
    regular = make_client()

    for client in (vip, regular):
        execution = execution_service.enroll_client(db, test_org.id, workflow, client)
        await workflow_engine.run_execution(db, test_org.id, execution.id, senders=senders)

    db.refresh(vip)
    db.refresh(regular)
    assert vip.tags == ["vip", "vip-offer"]
    assert regular.tags == ["standard-offer"]


@pytest.mark.asyncio
async def test_failed_step_marks_execution_failed(db, test_org, make_client, make_workflow, senders):
    workflow = make_workflow(
        blocks=[
            {"id": "sms", "type": "send_sms", "config": {"message": "Hello"}},
            {"id": "tag", "type": "add_tag", "config": {"tag": "never"}},
        ]
    )
    client = make_client(phones=[])
    execution = execution_service.enroll_client(db, test_org.id, workflow, client)

    execution = await workflow_engine.run_execution(db, test_org.id, execution.id, senders=senders)

    assert execution.status == WorkflowExecutionStatus.FAILED.value
    assert execution.error == "Client has no phone number"
    assert execution.completed_at is not None
    assert execution.actions_completed == []
    failed = [log for log in _logs(db, execution) if log.status == ExecutionLogStatus.FAILED.value]
    assert failed[0].step_id == "sms"
    db.refresh(workflow)
    assert workflow.failed_runs == 1
    db.refresh(client)
    assert client.tags == []


@pytest.mark.asyncio
async def test_provider_rejection_fails_the_step(db, test_org, make_client, make_workflow, senders):
    client = make_client(phones=["+15555550999"])
    senders.sms.fail_for.add("+15555550999")
    workflow = make_workflow(blocks=[{"id": "sms", "type": "send_sms", "config": {"message": "Hi"}}])
    execution = execution_service.enroll_client(db, test_org.id, workflow, client)

    execution = await workflow_engine.run_execution(db, test_org.id, execution.id, senders=senders)

    assert execution.status == "failed"
    assert "Provider rejected recipient" in execution.error
    message = db.query(Message).filter(Message.client_id == client.id).one()
    assert message.status == "failed"


@pytest.mark.asyncio
async def test_cancelled_execution_is_not_run(db, test_org, make_client, make_workflow, senders):
    workflow = make_workflow(blocks=[{"id": "tag", "type": "add_tag", "config": {"tag": "x"}}])
    client = make_client()
    execution = execution_service.enroll_client(db, test_org.id, workflow, client)
    execution_service.update_execution_status(
        db, test_org.id, execution.id, WorkflowExecutionStatus.CANCELLED
    )

    execution = await workflow_engine.run_execution(db, test_org.id, execution.id, senders=senders)

    assert execution.status == "cancelled"
    assert _logs(db, execution)[-1].status == ExecutionLogStatus.CANCELLED.value
    db.refresh(client)
    assert client.tags == []


@pytest.mark.asyncio
async def test_appointment_variables_render(db, test_org, make_client, make_workflow, senders):
    client = make_client(full_name="Lena Park")
    appointment = Appointment(
        organization_id=test_org.id,
        client_id=client.id,
        scheduled_at=datetime(2026, 3, 5, 14, 30, tzinfo=timezone.utc),
        appointment_type="Dermal Filler",
    )
    db.add(appointment)
    db.commit()
    workflow = make_workflow(
        blocks=[
            {
                "id": "sms",
                "type": "send_sms",
                "config": {"message": "{{first_name}}, your {{appointment_type}} is {{appointment_date}}"},
            }
        ]
    )
    execution = execution_service.enroll_client(
        db, test_org.id, workflow, client, context={"appointment_id": str(appointment.id)}
    )

    await workflow_engine.run_execution(db, test_org.id, execution.id, senders=senders)

    assert senders.sms.sent[0]["body"] == "Lena, your Dermal Filler is March 05, 2026"


# =============================================================================
# Dry Run
# =============================================================================

def test_dry_run_does_not_mutate(db, test_org, make_client, make_workflow):
    client = make_client(phones=[])
    workflow = make_workflow(
        blocks=[
            {"id": "tag", "type": "add_tag", "config": {"tag": "vip"}},
            {"id": "sms", "type": "send_sms", "config": {"message": "Hi"}},
            {"id": "wait", "type": "delay", "config": {"value": 1, "unit": "weeks"}},
        ]
    )

    steps = workflow_engine.dry_run_workflow(db, workflow, client)

    assert [s["outcome"] for s in steps] == ["would_add_tag", "error", "would_wait"]
    assert steps[1]["detail"] == "Client has no phone number"
    db.refresh(client)
    assert client.tags == []
    assert db.query(Message).count() == 0
