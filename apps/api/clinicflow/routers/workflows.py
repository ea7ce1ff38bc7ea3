"""Workflow API router - REST endpoints for automation workflows."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from clinicflow.core.deps import get_db, get_request_context, require_csrf_header, require_roles
from clinicflow.db.enums import ROLES_CAN_MANAGE_AUTOMATION, WorkflowTriggerType
from clinicflow.schemas.auth import RequestContext
from clinicflow.schemas.workflow import (
    EnrollRequest,
    ExecutionLogRead,
    ExecutionRead,
    WorkflowCreate,
    WorkflowMoveRequest,
    WorkflowRead,
    WorkflowStats,
    WorkflowTestRequest,
    WorkflowTestResponse,
    WorkflowUpdate,
)
from clinicflow.services import (
    client_service,
    directory_service,
    execution_log_service,
    execution_service,
    workflow_engine,
    workflow_service,
)
from clinicflow.services.errors import NotFoundError

router = APIRouter(
    prefix="/workflows",
    tags=["Workflows"],
    dependencies=[Depends(require_roles(ROLES_CAN_MANAGE_AUTOMATION))],
)


def _get_workflow_or_404(db: Session, workflow_id: UUID, org_id: UUID):
    workflow = workflow_service.get_workflow(db, workflow_id, org_id)
    if not workflow:
        raise HTTPException(status_code=404, detail="Workflow not found")
    return workflow


# =============================================================================
# Workflow CRUD
# =============================================================================

@router.get("", response_model=list[WorkflowRead])
def list_workflows(
    enabled_only: bool = False,
    trigger: WorkflowTriggerType | None = None,
    directory_id: UUID | None = None,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return workflow_service.list_workflows(
        db,
        ctx.org_id,
        enabled_only=enabled_only,
        trigger=trigger,
        directory_id=directory_id,
    )


@router.post("", response_model=WorkflowRead, status_code=201, dependencies=[Depends(require_csrf_header)])
def create_workflow(
    data: WorkflowCreate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    try:
        return workflow_service.create_workflow(db, ctx.org_id, data)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.get("/{workflow_id}", response_model=WorkflowRead)
def get_workflow(
    workflow_id: UUID,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return _get_workflow_or_404(db, workflow_id, ctx.org_id)


@router.patch("/{workflow_id}", response_model=WorkflowRead, dependencies=[Depends(require_csrf_header)])
def update_workflow(
    workflow_id: UUID,
    data: WorkflowUpdate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    workflow = _get_workflow_or_404(db, workflow_id, ctx.org_id)
    try:
        return workflow_service.update_workflow(db, workflow, data)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.delete("/{workflow_id}", dependencies=[Depends(require_csrf_header)])
def delete_workflow(
    workflow_id: UUID,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    workflow = _get_workflow_or_404(db, workflow_id, ctx.org_id)
    workflow_service.delete_workflow(db, workflow)
    return {"message": "Workflow deleted"}


@router.post("/{workflow_id}/toggle", response_model=WorkflowRead, dependencies=[Depends(require_csrf_header)])
def toggle_workflow(
    workflow_id: UUID,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Toggle a workflow's enabled state."""
    workflow = _get_workflow_or_404(db, workflow_id, ctx.org_id)
    return workflow_service.toggle_workflow(db, workflow)


@router.post("/{workflow_id}/duplicate", response_model=WorkflowRead, status_code=201, dependencies=[Depends(require_csrf_header)])
def duplicate_workflow(
    workflow_id: UUID,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    workflow = _get_workflow_or_404(db, workflow_id, ctx.org_id)
    return workflow_service.duplicate_workflow(db, workflow)


@router.post("/{workflow_id}/move", response_model=WorkflowRead, dependencies=[Depends(require_csrf_header)])
def move_workflow(
    workflow_id: UUID,
    data: WorkflowMoveRequest,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Move a workflow into a directory (directory_id null = root)."""
    try:
        return directory_service.move_workflow_to_directory(
            db, ctx.org_id, workflow_id, data.directory_id
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/{workflow_id}/stats", response_model=WorkflowStats)
def get_workflow_stats(
    workflow_id: UUID,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    workflow = _get_workflow_or_404(db, workflow_id, ctx.org_id)
    return workflow_service.get_workflow_stats(db, workflow)


# =============================================================================
# Enrollment & Runs
# =============================================================================

@router.post("/{workflow_id}/enroll", response_model=ExecutionRead | None, dependencies=[Depends(require_csrf_header)])
def enroll_client(
    workflow_id: UUID,
    data: EnrollRequest,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """
    Manually enroll a client.

    Returns null when duplicate prevention skipped the enrollment.
    """
    workflow = _get_workflow_or_404(db, workflow_id, ctx.org_id)
    client = client_service.get_client(db, ctx.org_id, data.client_id)
    if not client:
        raise HTTPException(status_code=404, detail="Client not found")
    return execution_service.enroll_client(
        db, ctx.org_id, workflow, client, reason=data.reason or "Manual enrollment"
    )


@router.post("/{workflow_id}/test", response_model=WorkflowTestResponse)
def test_workflow(
    workflow_id: UUID,
    data: WorkflowTestRequest,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Dry-run every block against a client without sending anything."""
    workflow = _get_workflow_or_404(db, workflow_id, ctx.org_id)
    client = client_service.get_client(db, ctx.org_id, data.client_id)
    if not client:
        raise HTTPException(status_code=404, detail="Client not found")
    return {"steps": workflow_engine.dry_run_workflow(db, workflow, client)}


@router.get("/{workflow_id}/executions", response_model=list[ExecutionRead])
def list_workflow_executions(
    workflow_id: UUID,
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    _get_workflow_or_404(db, workflow_id, ctx.org_id)
    items, _ = execution_service.list_executions(
        db, ctx.org_id, workflow_id=workflow_id, limit=limit
    )
    return items


@router.get("/{workflow_id}/logs", response_model=list[ExecutionLogRead])
def list_workflow_logs(
    workflow_id: UUID,
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    _get_workflow_or_404(db, workflow_id, ctx.org_id)
    return execution_log_service.list_logs(db, ctx.org_id, workflow_id=workflow_id, limit=limit)
