"""Workflow execution service - client enrollment and execution bookkeeping."""

import logging
from datetime import timedelta
from uuid import UUID

from sqlalchemy.orm import Session

from clinicflow.core.structured_logging import build_log_context
from clinicflow.db.enums import (
    ExecutionLogStatus,
    ScheduledActionType,
    TERMINAL_EXECUTION_STATUSES,
    WorkflowExecutionStatus,
    WorkflowTriggerType,
)
from clinicflow.db.models import Client, ExecutionLog, Workflow, WorkflowExecution
from clinicflow.services import execution_log_service, scheduled_action_service
from clinicflow.services.errors import NotFoundError
from clinicflow.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

ENROLLMENT_STEP_ID = "enrollment"


def _is_terminal(status: WorkflowExecutionStatus) -> bool:
    return status in TERMINAL_EXECUTION_STATUSES


# =============================================================================
# Execution CRUD
# =============================================================================

def create_execution(
    db: Session,
    org_id: UUID,
    workflow_id: UUID,
    client_id: UUID,
    status: WorkflowExecutionStatus = WorkflowExecutionStatus.RUNNING,
    actions_completed: list[int] | None = None,
    error: str | None = None,
    enrollment_reason: str | None = None,
    context: dict | None = None,
    commit: bool = True,
) -> WorkflowExecution:
    """Insert an execution. Created directly in a terminal status, it is stamped complete too."""
    workflow = (
        db.query(Workflow.id)
        .filter(Workflow.id == workflow_id, Workflow.organization_id == org_id)
        .first()
    )
    if not workflow:
        raise NotFoundError("Workflow", workflow_id)
    client = (
        db.query(Client.id)
        .filter(Client.id == client_id, Client.organization_id == org_id)
        .first()
    )
    if not client:
        raise NotFoundError("Client", client_id)

    now = utcnow()
    execution = WorkflowExecution(
        organization_id=org_id,
        workflow_id=workflow_id,
        client_id=client_id,
        status=status.value,
        actions_completed=list(actions_completed or []),
        error=error,
        enrollment_reason=enrollment_reason,
        context=context or {},
        started_at=now,
        completed_at=now if _is_terminal(status) else None,
    )
    db.add(execution)
    if commit:
        db.commit()
        db.refresh(execution)
    else:
        db.flush()
    return execution


def get_execution(db: Session, org_id: UUID, execution_id: UUID) -> WorkflowExecution | None:
    return (
        db.query(WorkflowExecution)
        .filter(WorkflowExecution.id == execution_id, WorkflowExecution.organization_id == org_id)
        .first()
    )


def require_execution(db: Session, org_id: UUID, execution_id: UUID) -> WorkflowExecution:
    execution = get_execution(db, org_id, execution_id)
    if not execution:
        raise NotFoundError("Execution", execution_id)
    return execution


def update_execution_status(
    db: Session,
    org_id: UUID,
    execution_id: UUID,
    status: WorkflowExecutionStatus,
    actions_completed: list[int] | None = None,
    error: str | None = None,
) -> WorkflowExecution:
    """
    Set an execution's status.

    Terminal statuses stamp completed_at; moving back to running clears it.
    """
    execution = require_execution(db, org_id, execution_id)
    execution.status = status.value
    if actions_completed is not None:
        execution.actions_completed = list(actions_completed)
    if error is not None:
        execution.error = error
    if _is_terminal(status):
        execution.completed_at = utcnow()
        execution.next_execution_at = None
    else:
        execution.completed_at = None
    db.commit()
    db.refresh(execution)
    return execution


def add_completed_action(
    db: Session, org_id: UUID, execution_id: UUID, action_order: int
) -> WorkflowExecution:
    """
    Append a block order to actions_completed.

    The list is append-only and not de-duplicated: recording the same order
    twice stores it twice.
    """
    execution = require_execution(db, org_id, execution_id)
    # Reassign so the JSON column change is tracked
    execution.actions_completed = [*(execution.actions_completed or []), action_order]
    db.commit()
    db.refresh(execution)
    return execution


def list_executions(
    db: Session,
    org_id: UUID,
    workflow_id: UUID | None = None,
    client_id: UUID | None = None,
    status: WorkflowExecutionStatus | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[WorkflowExecution], int]:
    query = db.query(WorkflowExecution).filter(WorkflowExecution.organization_id == org_id)
    if workflow_id:
        query = query.filter(WorkflowExecution.workflow_id == workflow_id)
    if client_id:
        query = query.filter(WorkflowExecution.client_id == client_id)
    if status:
        query = query.filter(WorkflowExecution.status == status.value)
    total = query.count()
    items = (
        query.order_by(WorkflowExecution.started_at.desc()).offset(offset).limit(limit).all()
    )
    return items, total


def delete_execution(db: Session, org_id: UUID, execution_id: UUID) -> None:
    """Remove an execution and its step logs."""
    execution = require_execution(db, org_id, execution_id)
    db.query(ExecutionLog).filter(ExecutionLog.execution_id == execution.id).delete(
        synchronize_session=False
    )
    db.delete(execution)
    db.commit()


# =============================================================================
# Enrollment
# =============================================================================

def find_recent_enrollment(
    db: Session, workflow: Workflow, client_id: UUID
) -> WorkflowExecution | None:
    """Latest enrollment of the client inside the workflow's duplicate-prevention window."""
    window_start = utcnow() - timedelta(days=workflow.duplicate_prevention_days)
    return (
        db.query(WorkflowExecution)
        .filter(
            WorkflowExecution.workflow_id == workflow.id,
            WorkflowExecution.client_id == client_id,
            WorkflowExecution.started_at >= window_start,
        )
        .order_by(WorkflowExecution.started_at.desc())
        .first()
    )


def enroll_client(
    db: Session,
    org_id: UUID,
    workflow: Workflow,
    client: Client,
    reason: str | None = None,
    context: dict | None = None,
) -> WorkflowExecution | None:
    """
    Enroll a client into a workflow.

    Returns None when duplicate prevention skips the enrollment. Otherwise
    creates a running execution, logs the enrollment, bumps the workflow's
    run counter and queues a continue_workflow action so the worker runs
    the first step.
    """
    if workflow.organization_id != org_id or client.organization_id != org_id:
        raise NotFoundError("Workflow")

    if workflow.prevent_duplicates and find_recent_enrollment(db, workflow, client.id):
        logger.info(
            "Skipping duplicate enrollment for workflow %s",
            workflow.id,
            extra=build_log_context(org_id=str(org_id), workflow_id=str(workflow.id)),
        )
        return None

    execution = create_execution(
        db,
        org_id=org_id,
        workflow_id=workflow.id,
        client_id=client.id,
        enrollment_reason=reason,
        context=context,
        commit=False,
    )
    execution_log_service.log_step(
        db,
        execution,
        step_id=ENROLLMENT_STEP_ID,
        action="enroll_client",
        status=ExecutionLogStatus.EXECUTED,
        message=f"Client enrolled in workflow: {reason or 'manual enrollment'}",
        details={"trigger": workflow.trigger},
        commit=False,
    )
    db.query(Workflow).filter(Workflow.id == workflow.id).update(
        {Workflow.total_runs: Workflow.total_runs + 1, Workflow.last_run_at: utcnow()},
        synchronize_session=False,
    )
    scheduled_action_service.schedule_action(
        db,
        org_id=org_id,
        action=ScheduledActionType.CONTINUE_WORKFLOW,
        args={"execution_id": str(execution.id)},
        commit=False,
    )
    db.commit()
    db.refresh(execution)
    db.refresh(workflow)

    logger.info(
        "Enrolled client in workflow %s (execution=%s)",
        workflow.id,
        execution.id,
        extra=build_log_context(
            org_id=str(org_id), workflow_id=str(workflow.id), execution_id=str(execution.id)
        ),
    )
    return execution


def trigger_workflows(
    db: Session,
    org_id: UUID,
    trigger: WorkflowTriggerType,
    client: Client,
    reason: str | None = None,
    context: dict | None = None,
    extra_triggers: list[WorkflowTriggerType] | None = None,
) -> list[WorkflowExecution]:
    """Enroll the client in every enabled workflow listening for the trigger(s)."""
    triggers = [trigger.value, *(t.value for t in extra_triggers or [])]
    workflows = (
        db.query(Workflow)
        .filter(
            Workflow.organization_id == org_id,
            Workflow.is_enabled.is_(True),
            Workflow.trigger.in_(triggers),
        )
        .order_by(Workflow.created_at)
        .all()
    )
    executions = []
    for workflow in workflows:
        execution = enroll_client(
            db,
            org_id,
            workflow,
            client,
            reason=reason or f"Triggered by {workflow.trigger}",
            context=context,
        )
        if execution is not None:
            executions.append(execution)
    return executions
