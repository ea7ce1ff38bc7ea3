"""Execution log service - append-only history of workflow step attempts."""

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from clinicflow.db.enums import ExecutionLogStatus
from clinicflow.db.models import ExecutionLog, WorkflowExecution


def log_step(
    db: Session,
    execution: WorkflowExecution,
    step_id: str,
    action: str,
    status: ExecutionLogStatus,
    message: str | None = None,
    error: str | None = None,
    details: dict[str, Any] | None = None,
    execution_time_ms: int | None = None,
    commit: bool = True,
) -> ExecutionLog:
    entry = ExecutionLog(
        organization_id=execution.organization_id,
        workflow_id=execution.workflow_id,
        execution_id=execution.id,
        client_id=execution.client_id,
        step_id=step_id,
        action=action,
        status=status.value,
        message=message,
        error=error,
        details=details or {},
        execution_time_ms=execution_time_ms,
    )
    db.add(entry)
    if commit:
        db.commit()
        db.refresh(entry)
    else:
        db.flush()
    return entry


def list_logs(
    db: Session,
    org_id: UUID,
    workflow_id: UUID | None = None,
    execution_id: UUID | None = None,
    client_id: UUID | None = None,
    limit: int = 100,
) -> list[ExecutionLog]:
    """Most recent log rows first."""
    query = db.query(ExecutionLog).filter(ExecutionLog.organization_id == org_id)
    if workflow_id:
        query = query.filter(ExecutionLog.workflow_id == workflow_id)
    if execution_id:
        query = query.filter(ExecutionLog.execution_id == execution_id)
    if client_id:
        query = query.filter(ExecutionLog.client_id == client_id)
    return query.order_by(ExecutionLog.executed_at.desc()).limit(limit).all()
