"""Workflow engine - runs an enrolled client through a workflow's blocks.

Blocks run one after another inside a single worker pass until the workflow
finishes, fails, or reaches a delay block. A delay queues a
continue_workflow action that resumes at the following block.

Block order: when the workflow has connections, the entry block is the first
block with no incoming edge and each step follows its outgoing edge ("if"
blocks follow the edge whose branch matches the result). Without
connections, blocks run in list order and a false "if" ends the run.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from clinicflow.core.structured_logging import build_log_context, mask_email, mask_phone
from clinicflow.db.enums import (
    DelayUnit,
    ExecutionLogStatus,
    MessageChannel,
    MessageStatus,
    ScheduledActionType,
    WorkflowExecutionStatus,
    WorkflowStepType,
)
from clinicflow.db.models import Appointment, Client, Message, Workflow, WorkflowExecution
from clinicflow.services import (
    client_service,
    execution_log_service,
    scheduled_action_service,
    template_service,
)
from clinicflow.services.errors import NotFoundError
from clinicflow.services.message_senders import Senders, default_senders
from clinicflow.utils.datetime_utils import ensure_aware, utcnow

logger = logging.getLogger(__name__)

MAX_STEPS_PER_RUN = 100

DELAY_UNITS: dict[str, timedelta] = {
    DelayUnit.SECONDS.value: timedelta(seconds=1),
    DelayUnit.MINUTES.value: timedelta(minutes=1),
    DelayUnit.HOURS.value: timedelta(hours=1),
    DelayUnit.DAYS.value: timedelta(days=1),
    DelayUnit.WEEKS.value: timedelta(weeks=1),
    DelayUnit.MONTHS.value: timedelta(days=30),
}


class StepError(Exception):
    """A block could not run for this client (missing data, provider rejection)."""


@dataclass
class StepOutcome:
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    branch: str | None = None
    wait_until: datetime | None = None


# =============================================================================
# Graph Navigation
# =============================================================================

def _block_index(workflow: Workflow) -> dict[str, int]:
    return {block["id"]: i for i, block in enumerate(workflow.blocks)}


def entry_block_id(workflow: Workflow) -> str | None:
    if not workflow.blocks:
        return None
    if workflow.connections:
        targets = {conn["to"] for conn in workflow.connections}
        for block in workflow.blocks:
            if block["id"] not in targets:
                return block["id"]
    return workflow.blocks[0]["id"]


def next_block_id(workflow: Workflow, block_id: str, branch: str | None = None) -> str | None:
    """The block to run after block_id, or None when the run is finished."""
    if workflow.connections:
        outgoing = [c for c in workflow.connections if c["from"] == block_id]
        if branch is not None:
            for conn in outgoing:
                if conn.get("branch") == branch:
                    return conn["to"]
            outgoing = [c for c in outgoing if not c.get("branch")]
        return outgoing[0]["to"] if outgoing else None

    if branch == "false":
        return None
    index = _block_index(workflow)[block_id]
    if index + 1 < len(workflow.blocks):
        return workflow.blocks[index + 1]["id"]
    return None


# =============================================================================
# Conditions
# =============================================================================

def _compare_number(actual: float, operator: str, expected: float) -> bool:
    if operator == "equals":
        return actual == expected
    if operator == "not_equals":
        return actual != expected
    if operator == "greater_than":
        return actual > expected
    if operator == "less_than":
        return actual < expected
    if operator == "greater_or_equal":
        return actual >= expected
    if operator == "less_or_equal":
        return actual <= expected
    raise StepError(f"Unsupported operator '{operator}' for numeric condition")


def _latest_appointment(db: Session, client: Client) -> Appointment | None:
    return (
        db.query(Appointment)
        .filter(Appointment.client_id == client.id)
        .order_by(Appointment.scheduled_at.desc())
        .first()
    )


def evaluate_condition(
    db: Session, client: Client, config: dict, appointment: Appointment | None = None
) -> bool:
    """Evaluate an "if" block's {field, operator, value} against the client."""
    field_name = config.get("field")
    operator = config.get("operator", "equals")
    expected = config.get("value")

    if field_name == "tags":
        has_tag = expected in (client.tags or [])
        if operator in ("contains", "equals"):
            return has_tag
        if operator in ("not_contains", "not_equals"):
            return not has_tag
        raise StepError(f"Unsupported operator '{operator}' for tags")

    if field_name == "client_status":
        if operator == "equals":
            return client.portal_status == expected
        if operator == "not_equals":
            return client.portal_status != expected
        raise StepError(f"Unsupported operator '{operator}' for client_status")

    if field_name == "appointment_type":
        appointment = appointment or _latest_appointment(db, client)
        actual = (appointment.appointment_type if appointment else "").lower()
        wanted = str(expected or "").lower()
        if operator == "equals":
            return actual == wanted
        if operator == "not_equals":
            return actual != wanted
        if operator == "contains":
            return wanted in actual
        if operator == "not_contains":
            return wanted not in actual
        raise StepError(f"Unsupported operator '{operator}' for appointment_type")

    if field_name == "appointment_count":
        count = (
            db.query(func.count(Appointment.id))
            .filter(Appointment.client_id == client.id)
            .scalar()
        )
        try:
            return _compare_number(count or 0, operator, float(expected))
        except (TypeError, ValueError):
            raise StepError("appointment_count condition needs a numeric value")

    if field_name == "last_appointment_date":
        appointment = _latest_appointment(db, client)
        if appointment is None:
            return False
        days_since = (utcnow() - ensure_aware(appointment.scheduled_at)).days
        try:
            return _compare_number(days_since, operator, float(expected))
        except (TypeError, ValueError):
            raise StepError("last_appointment_date condition needs a number of days")

    raise StepError(f"Unknown condition field '{field_name}'")


def delay_until(config: dict, now: datetime | None = None) -> datetime:
    """Resume time for a delay block. Unit defaults to days; a month counts as 30 days."""
    now = now or utcnow()
    value = config.get("value", config.get("duration", 1))
    unit = config.get("unit") or DelayUnit.DAYS.value
    if unit not in DELAY_UNITS:
        raise StepError(f"Unknown delay unit '{unit}'")
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise StepError("Delay value must be a number")
    return now + DELAY_UNITS[unit] * amount


# =============================================================================
# Step Execution
# =============================================================================

def _load_appointment(db: Session, execution: WorkflowExecution) -> Appointment | None:
    appointment_id = (execution.context or {}).get("appointment_id")
    if not appointment_id:
        return None
    return (
        db.query(Appointment)
        .filter(
            Appointment.id == UUID(str(appointment_id)),
            Appointment.organization_id == execution.organization_id,
        )
        .first()
    )


async def _send_message(
    db: Session,
    senders: Senders,
    client: Client,
    channel: MessageChannel,
    config: dict,
    appointment: Appointment | None,
) -> StepOutcome:
    if channel == MessageChannel.SMS:
        to = client.primary_phone
        if not to:
            raise StepError("Client has no phone number")
        masked = mask_phone(to)
    else:
        to = client.email
        if not to:
            raise StepError("Client has no email address")
        masked = mask_email(to)

    variables = template_service.build_variables(client, appointment)
    body = template_service.render(config.get("message") or config.get("content") or "", variables)
    if not body.strip():
        raise StepError("Message body is empty")
    subject = None
    if channel == MessageChannel.EMAIL:
        subject = template_service.render(config.get("subject") or "", variables)

    result = await senders.for_channel(channel.value).send(to, body, subject=subject)

    db.add(
        Message(
            organization_id=client.organization_id,
            client_id=client.id,
            channel=channel.value,
            subject=subject,
            content=body,
            status=MessageStatus.SENT.value if result.success else MessageStatus.FAILED.value,
            external_id=result.external_id,
            error_message=result.error,
            sent_at=utcnow() if result.success else None,
        )
    )
    if not result.success:
        db.commit()
        raise StepError(f"{channel.value.upper()} send failed: {result.error}")

    return StepOutcome(
        message=f"{channel.value.upper()} sent to {masked}",
        details={"external_id": result.external_id},
    )


async def execute_step(
    db: Session,
    block: dict,
    client: Client,
    senders: Senders,
    appointment: Appointment | None = None,
) -> StepOutcome:
    """Run a single block for a client."""
    step_type = block["type"]
    config = block.get("config") or {}

    if step_type == WorkflowStepType.SEND_SMS.value:
        return await _send_message(db, senders, client, MessageChannel.SMS, config, appointment)

    if step_type == WorkflowStepType.SEND_EMAIL.value:
        return await _send_message(db, senders, client, MessageChannel.EMAIL, config, appointment)

    if step_type == WorkflowStepType.ADD_TAG.value:
        tag = config.get("tag")
        if not tag:
            raise StepError("add_tag block has no tag")
        client_service.add_tag(db, client.organization_id, client.id, tag)
        return StepOutcome(message=f"Added tag '{tag}'", details={"tag": tag})

    if step_type == WorkflowStepType.REMOVE_TAG.value:
        if config.get("remove_all"):
            client_service.remove_tag(db, client.organization_id, client.id, remove_all=True)
            return StepOutcome(message="Removed all tags", details={"remove_all": True})
        tag = config.get("tag")
        if not tag:
            raise StepError("remove_tag block has no tag")
        client_service.remove_tag(db, client.organization_id, client.id, tag=tag)
        return StepOutcome(message=f"Removed tag '{tag}'", details={"tag": tag})

    if step_type == WorkflowStepType.DELAY.value:
        wait_until = delay_until(config)
        return StepOutcome(
            message=f"Waiting until {wait_until.isoformat()}",
            details={"resume_at": wait_until.isoformat()},
            wait_until=wait_until,
        )

    if step_type == WorkflowStepType.IF.value:
        result = evaluate_condition(db, client, config, appointment)
        branch = "true" if result else "false"
        return StepOutcome(
            message=f"Condition evaluated {branch}",
            details={"field": config.get("field"), "result": result},
            branch=branch,
        )

    raise StepError(f"Unknown step type '{step_type}'")


# =============================================================================
# Run Loop
# =============================================================================

def _finish(
    db: Session,
    execution: WorkflowExecution,
    status: WorkflowExecutionStatus,
    error: str | None = None,
) -> None:
    execution.status = status.value
    execution.completed_at = utcnow()
    execution.next_execution_at = None
    if error is not None:
        execution.error = error
    counter = (
        Workflow.successful_runs
        if status == WorkflowExecutionStatus.COMPLETED
        else Workflow.failed_runs
    )
    db.query(Workflow).filter(Workflow.id == execution.workflow_id).update(
        {counter: counter + 1}, synchronize_session=False
    )
    db.commit()


async def run_execution(
    db: Session,
    org_id: UUID,
    execution_id: UUID,
    start_block_id: str | None = None,
    resuming: bool = False,
    senders: Senders | None = None,
) -> WorkflowExecution:
    """
    Advance an execution as far as it can go in one pass.

    resuming=True means start_block_id came from a delay; a None block then
    means the delay was the last step and the run is complete. Once a step
    has committed, execution.current_block_id holds the next block to run and
    takes precedence over start_block_id, so a retried pass picks up after the
    last committed step.
    """
    execution = (
        db.query(WorkflowExecution)
        .filter(WorkflowExecution.id == execution_id, WorkflowExecution.organization_id == org_id)
        .first()
    )
    if not execution:
        raise NotFoundError("Execution", execution_id)
    log_extra = build_log_context(
        org_id=str(org_id),
        workflow_id=str(execution.workflow_id),
        execution_id=str(execution.id),
    )

    if execution.status != WorkflowExecutionStatus.RUNNING.value:
        execution_log_service.log_step(
            db,
            execution,
            step_id=start_block_id or "continuation",
            action="continue_workflow",
            status=ExecutionLogStatus.CANCELLED,
            message=f"Execution is {execution.status}; nothing to run",
        )
        logger.info("Execution %s is %s, skipping", execution.id, execution.status, extra=log_extra)
        return execution

    workflow = db.query(Workflow).filter(Workflow.id == execution.workflow_id).first()
    client = db.query(Client).filter(Client.id == execution.client_id).first()
    if workflow is None or client is None:
        _finish(db, execution, WorkflowExecutionStatus.FAILED, error="Workflow or client no longer exists")
        db.refresh(execution)
        return execution

    senders = senders or default_senders()
    appointment = _load_appointment(db, execution)
    index = _block_index(workflow)
    blocks = {block["id"]: block for block in workflow.blocks}
    if execution.actions_completed:
        block_id = execution.current_block_id
    else:
        block_id = start_block_id if resuming else (start_block_id or entry_block_id(workflow))
    execution.next_execution_at = None

    steps = 0
    while block_id is not None:
        steps += 1
        if steps > MAX_STEPS_PER_RUN:
            _finish(db, execution, WorkflowExecutionStatus.FAILED, error="Step limit exceeded")
            logger.warning("Execution %s exceeded the step limit", execution.id, extra=log_extra)
            db.refresh(execution)
            return execution

        block = blocks.get(block_id)
        if block is None:
            _finish(db, execution, WorkflowExecutionStatus.FAILED, error=f"Unknown block '{block_id}'")
            db.refresh(execution)
            return execution

        started = time.perf_counter()
        try:
            outcome = await execute_step(db, block, client, senders, appointment)
        except (StepError, ValueError) as exc:
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            execution_log_service.log_step(
                db,
                execution,
                step_id=block_id,
                action=block["type"],
                status=ExecutionLogStatus.FAILED,
                message=f"Step {block['type']} failed",
                error=str(exc),
                execution_time_ms=elapsed_ms,
                commit=False,
            )
            _finish(db, execution, WorkflowExecutionStatus.FAILED, error=str(exc))
            logger.warning(
                "Execution %s failed at block %s: %s", execution.id, block_id, exc, extra=log_extra
            )
            db.refresh(execution)
            return execution

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        waiting = outcome.wait_until is not None
        execution_log_service.log_step(
            db,
            execution,
            step_id=block_id,
            action=block["type"],
            status=ExecutionLogStatus.WAITING if waiting else ExecutionLogStatus.EXECUTED,
            message=outcome.message,
            details=outcome.details,
            execution_time_ms=elapsed_ms,
            commit=False,
        )
        execution.actions_completed = [*(execution.actions_completed or []), index[block_id]]
        following = next_block_id(workflow, block_id, outcome.branch)
        execution.current_block_id = following

        if waiting:
            scheduled_action_service.schedule_action(
                db,
                org_id=org_id,
                action=ScheduledActionType.CONTINUE_WORKFLOW,
                args={"execution_id": str(execution.id), "block_id": following},
                scheduled_for=outcome.wait_until,
                commit=False,
            )
            execution.next_execution_at = outcome.wait_until
            db.commit()
            db.refresh(execution)
            return execution

        db.commit()
        block_id = following

    _finish(db, execution, WorkflowExecutionStatus.COMPLETED)
    logger.info("Execution %s completed", execution.id, extra=log_extra)
    db.refresh(execution)
    return execution


# =============================================================================
# Dry Run
# =============================================================================

def _preview_block(db: Session, block: dict, client: Client, variables: dict) -> tuple[str, str | None]:
    step_type = block["type"]
    config = block.get("config") or {}

    if step_type in (WorkflowStepType.SEND_SMS.value, WorkflowStepType.SEND_EMAIL.value):
        is_sms = step_type == WorkflowStepType.SEND_SMS.value
        to = client.primary_phone if is_sms else client.email
        if not to:
            raise StepError("Client has no phone number" if is_sms else "Client has no email address")
        body = template_service.render(config.get("message") or config.get("content") or "", variables)
        target = mask_phone(to) if is_sms else mask_email(to)
        return "would_send", f"{target}: {body}"
    if step_type == WorkflowStepType.ADD_TAG.value:
        return "would_add_tag", config.get("tag")
    if step_type == WorkflowStepType.REMOVE_TAG.value:
        return "would_remove_tag", "all" if config.get("remove_all") else config.get("tag")
    if step_type == WorkflowStepType.DELAY.value:
        return "would_wait", delay_until(config).isoformat()
    if step_type == WorkflowStepType.IF.value:
        return ("true" if evaluate_condition(db, client, config) else "false"), config.get("field")
    raise StepError(f"Unknown step type '{step_type}'")


def dry_run_workflow(db: Session, workflow: Workflow, client: Client) -> list[dict]:
    """
    Describe what each block would do for a client without sending or mutating.

    Blocks are reported in list order; "if" blocks report their result.
    """
    variables = template_service.build_variables(client)
    steps = []
    for block in workflow.blocks:
        try:
            outcome, detail = _preview_block(db, block, client, variables)
        except StepError as exc:
            outcome, detail = "error", str(exc)
        steps.append(
            {"block_id": block["id"], "type": block["type"], "outcome": outcome, "detail": detail}
        )
    return steps
