"""Scheduled actions API router - inspect and manage the action queue."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from clinicflow.core.deps import get_db, get_request_context, require_csrf_header, require_roles
from clinicflow.db.enums import ROLES_CAN_MANAGE_AUTOMATION, ScheduledActionStatus, ScheduledActionType
from clinicflow.schemas.auth import RequestContext
from clinicflow.schemas.scheduling import RescheduleRequest, ScheduledActionRead, ScheduledActionStats
from clinicflow.services import scheduled_action_service
from clinicflow.services.errors import InvalidStateError, NotFoundError

router = APIRouter(
    prefix="/scheduled-actions",
    tags=["Scheduled Actions"],
    dependencies=[Depends(require_roles(ROLES_CAN_MANAGE_AUTOMATION))],
)


@router.get("", response_model=list[ScheduledActionRead])
def list_scheduled_actions(
    status: ScheduledActionStatus | None = None,
    action: ScheduledActionType | None = None,
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return scheduled_action_service.list_scheduled_actions(
        db, ctx.org_id, status=status, action=action, limit=limit
    )


@router.get("/stats", response_model=ScheduledActionStats)
def get_stats(
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return scheduled_action_service.get_action_stats(db, ctx.org_id)


@router.delete("/{action_id}", dependencies=[Depends(require_csrf_header)])
def cancel_action(
    action_id: UUID,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    try:
        scheduled_action_service.cancel_action(db, ctx.org_id, action_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStateError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"message": "Scheduled action cancelled"}


@router.post("/{action_id}/reschedule", response_model=ScheduledActionRead, dependencies=[Depends(require_csrf_header)])
def reschedule_action(
    action_id: UUID,
    data: RescheduleRequest,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    try:
        return scheduled_action_service.reschedule_action(
            db, ctx.org_id, action_id, data.scheduled_for
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStateError as e:
        raise HTTPException(status_code=400, detail=str(e))
