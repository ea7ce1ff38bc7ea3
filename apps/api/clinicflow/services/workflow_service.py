"""Workflow service - CRUD and statistics for automation workflows."""

import logging
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from clinicflow.db.enums import WorkflowExecutionStatus, WorkflowStepType, WorkflowTriggerType
from clinicflow.db.models import ExecutionLog, Workflow, WorkflowDirectory, WorkflowExecution
from clinicflow.schemas.workflow import WorkflowConnection, WorkflowCreate, WorkflowUpdate
from clinicflow.services.errors import NotFoundError
from clinicflow.utils.datetime_utils import ensure_aware

logger = logging.getLogger(__name__)


# =============================================================================
# Validation
# =============================================================================

def _validate_graph(blocks: list[dict], connections: list[dict]) -> None:
    """Reject duplicate block ids and edges that point at unknown blocks."""
    block_ids = [b["id"] for b in blocks]
    if len(block_ids) != len(set(block_ids)):
        raise ValueError("Block ids must be unique")

    known = set(block_ids)
    block_types = {b["id"]: b["type"] for b in blocks}
    for conn in connections:
        if conn["from"] not in known or conn["to"] not in known:
            raise ValueError(
                f"Connection {conn['from']} -> {conn['to']} references an unknown block"
            )
        if conn.get("branch") and block_types[conn["from"]] != WorkflowStepType.IF.value:
            raise ValueError("Only 'if' blocks can have branch connections")

    for block in blocks:
        if block["type"] == WorkflowStepType.DELAY.value:
            value = block["config"].get("value", block["config"].get("duration", 1))
            if not isinstance(value, (int, float)) or value < 0:
                raise ValueError(f"Delay block {block['id']} needs a non-negative value")


def _dump_blocks(blocks) -> list[dict]:
    return [b.model_dump(mode="json") for b in blocks]


def _dump_connections(connections: list[WorkflowConnection]) -> list[dict]:
    return [c.model_dump(mode="json", by_alias=True) for c in connections]


def _require_directory(db: Session, org_id: UUID, directory_id: UUID) -> None:
    exists = (
        db.query(WorkflowDirectory.id)
        .filter(WorkflowDirectory.id == directory_id, WorkflowDirectory.organization_id == org_id)
        .first()
    )
    if not exists:
        raise NotFoundError("Directory", directory_id)


# =============================================================================
# CRUD
# =============================================================================

def create_workflow(db: Session, org_id: UUID, data: WorkflowCreate) -> Workflow:
    blocks = _dump_blocks(data.blocks)
    connections = _dump_connections(data.connections)
    _validate_graph(blocks, connections)
    if data.directory_id is not None:
        _require_directory(db, org_id, data.directory_id)

    workflow = Workflow(
        organization_id=org_id,
        name=data.name.strip(),
        description=data.description,
        trigger=data.trigger.value,
        is_enabled=data.is_enabled,
        blocks=blocks,
        connections=connections,
        directory_id=data.directory_id,
        prevent_duplicates=data.prevent_duplicates,
        duplicate_prevention_days=data.duplicate_prevention_days,
    )
    db.add(workflow)
    db.commit()
    db.refresh(workflow)
    logger.info("Created workflow %s (trigger=%s)", workflow.id, workflow.trigger)
    return workflow


def get_workflow(db: Session, workflow_id: UUID, org_id: UUID) -> Workflow | None:
    return (
        db.query(Workflow)
        .filter(Workflow.id == workflow_id, Workflow.organization_id == org_id)
        .first()
    )


def list_workflows(
    db: Session,
    org_id: UUID,
    enabled_only: bool = False,
    trigger: WorkflowTriggerType | None = None,
    directory_id: UUID | None = None,
) -> list[Workflow]:
    query = db.query(Workflow).filter(Workflow.organization_id == org_id)
    if enabled_only:
        query = query.filter(Workflow.is_enabled.is_(True))
    if trigger:
        query = query.filter(Workflow.trigger == trigger.value)
    if directory_id:
        query = query.filter(Workflow.directory_id == directory_id)
    return query.order_by(Workflow.created_at.desc()).all()


def update_workflow(db: Session, workflow: Workflow, data: WorkflowUpdate) -> Workflow:
    updates = data.model_dump(exclude_unset=True)

    blocks = _dump_blocks(data.blocks) if data.blocks is not None else list(workflow.blocks)
    connections = (
        _dump_connections(data.connections)
        if data.connections is not None
        else list(workflow.connections)
    )
    if "blocks" in updates or "connections" in updates:
        _validate_graph(blocks, connections)
        workflow.blocks = blocks
        workflow.connections = connections

    if updates.get("name") is not None:
        workflow.name = data.name.strip()
    if "description" in updates:
        workflow.description = data.description
    if data.trigger is not None:
        workflow.trigger = data.trigger.value
    for field in ("is_enabled", "prevent_duplicates", "duplicate_prevention_days"):
        if updates.get(field) is not None:
            setattr(workflow, field, updates[field])

    db.commit()
    db.refresh(workflow)
    return workflow


def delete_workflow(db: Session, workflow: Workflow) -> None:
    """Delete a workflow together with its executions and logs."""
    db.query(ExecutionLog).filter(ExecutionLog.workflow_id == workflow.id).delete(
        synchronize_session=False
    )
    db.query(WorkflowExecution).filter(WorkflowExecution.workflow_id == workflow.id).delete(
        synchronize_session=False
    )
    db.delete(workflow)
    db.commit()


def toggle_workflow(db: Session, workflow: Workflow) -> Workflow:
    workflow.is_enabled = not workflow.is_enabled
    db.commit()
    db.refresh(workflow)
    return workflow


def duplicate_workflow(db: Session, workflow: Workflow) -> Workflow:
    """Copy a workflow's definition. The copy starts disabled with fresh counters."""
    copy = Workflow(
        organization_id=workflow.organization_id,
        name=f"{workflow.name} (Copy)"[:100],
        description=workflow.description,
        trigger=workflow.trigger,
        is_enabled=False,
        blocks=[dict(b) for b in workflow.blocks],
        connections=[dict(c) for c in workflow.connections],
        directory_id=workflow.directory_id,
        prevent_duplicates=workflow.prevent_duplicates,
        duplicate_prevention_days=workflow.duplicate_prevention_days,
    )
    db.add(copy)
    db.commit()
    db.refresh(copy)
    return copy


# =============================================================================
# Statistics
# =============================================================================

def get_workflow_stats(db: Session, workflow: Workflow) -> dict:
    """Enrollment counts by status, success rate, and mean run time of finished runs."""
    rows = (
        db.query(WorkflowExecution.status, func.count(WorkflowExecution.id))
        .filter(WorkflowExecution.workflow_id == workflow.id)
        .group_by(WorkflowExecution.status)
        .all()
    )
    counts = {status: count for status, count in rows}
    total = sum(counts.values())
    completed = counts.get(WorkflowExecutionStatus.COMPLETED.value, 0)
    failed = counts.get(WorkflowExecutionStatus.FAILED.value, 0)

    finished = (
        db.query(WorkflowExecution.started_at, WorkflowExecution.completed_at)
        .filter(
            WorkflowExecution.workflow_id == workflow.id,
            WorkflowExecution.status == WorkflowExecutionStatus.COMPLETED.value,
            WorkflowExecution.completed_at.isnot(None),
        )
        .all()
    )
    durations = [
        (ensure_aware(done) - ensure_aware(start)).total_seconds() * 1000
        for start, done in finished
    ]

    return {
        "total_enrollments": total,
        "active_enrollments": counts.get(WorkflowExecutionStatus.RUNNING.value, 0),
        "completed_enrollments": completed,
        "failed_enrollments": failed,
        "cancelled_enrollments": counts.get(WorkflowExecutionStatus.CANCELLED.value, 0),
        "success_rate": round(completed / total * 100, 1) if total else 0.0,
        "avg_execution_time_ms": sum(durations) / len(durations) if durations else None,
    }
