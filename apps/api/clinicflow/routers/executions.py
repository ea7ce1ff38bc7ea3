"""Workflow execution API router."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from clinicflow.core.deps import get_db, get_request_context, require_csrf_header, require_roles
from clinicflow.db.enums import ROLES_CAN_MANAGE_AUTOMATION, WorkflowExecutionStatus
from clinicflow.schemas.auth import RequestContext
from clinicflow.schemas.workflow import (
    CompletedActionRequest,
    ExecutionCreate,
    ExecutionListResponse,
    ExecutionLogRead,
    ExecutionRead,
    ExecutionStatusUpdate,
)
from clinicflow.services import execution_log_service, execution_service
from clinicflow.services.errors import NotFoundError
from clinicflow.utils.pagination import PaginationParams, build_page, get_pagination

router = APIRouter(
    prefix="/workflow-executions",
    tags=["Workflow Executions"],
    dependencies=[Depends(require_roles(ROLES_CAN_MANAGE_AUTOMATION))],
)


@router.get("", response_model=ExecutionListResponse)
def list_executions(
    workflow_id: UUID | None = None,
    client_id: UUID | None = None,
    status: WorkflowExecutionStatus | None = None,
    pagination: PaginationParams = Depends(get_pagination),
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    items, total = execution_service.list_executions(
        db,
        ctx.org_id,
        workflow_id=workflow_id,
        client_id=client_id,
        status=status,
        limit=pagination.per_page,
        offset=pagination.offset,
    )
    return build_page(items, total, pagination)


@router.post("", response_model=ExecutionRead, status_code=201, dependencies=[Depends(require_csrf_header)])
def create_execution(
    data: ExecutionCreate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    try:
        return execution_service.create_execution(
            db,
            ctx.org_id,
            workflow_id=data.workflow_id,
            client_id=data.client_id,
            status=data.status,
            actions_completed=data.actions_completed,
            error=data.error,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/{execution_id}", response_model=ExecutionRead)
def get_execution(
    execution_id: UUID,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    execution = execution_service.get_execution(db, ctx.org_id, execution_id)
    if not execution:
        raise HTTPException(status_code=404, detail="Execution not found")
    return execution


@router.patch("/{execution_id}/status", response_model=ExecutionRead, dependencies=[Depends(require_csrf_header)])
def update_execution_status(
    execution_id: UUID,
    data: ExecutionStatusUpdate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    try:
        return execution_service.update_execution_status(
            db,
            ctx.org_id,
            execution_id,
            data.status,
            actions_completed=data.actions_completed,
            error=data.error,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{execution_id}/completed-actions", response_model=ExecutionRead, dependencies=[Depends(require_csrf_header)])
def add_completed_action(
    execution_id: UUID,
    data: CompletedActionRequest,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    try:
        return execution_service.add_completed_action(
            db, ctx.org_id, execution_id, data.action_order
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.delete("/{execution_id}", dependencies=[Depends(require_csrf_header)])
def delete_execution(
    execution_id: UUID,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    try:
        execution_service.delete_execution(db, ctx.org_id, execution_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"message": "Execution deleted"}


@router.get("/{execution_id}/logs", response_model=list[ExecutionLogRead])
def list_execution_logs(
    execution_id: UUID,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    if not execution_service.get_execution(db, ctx.org_id, execution_id):
        raise HTTPException(status_code=404, detail="Execution not found")
    return execution_log_service.list_logs(db, ctx.org_id, execution_id=execution_id)
