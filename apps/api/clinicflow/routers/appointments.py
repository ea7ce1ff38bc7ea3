"""Appointments API router."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from clinicflow.core.deps import get_db, get_request_context, require_csrf_header
from clinicflow.db.enums import AppointmentStatus
from clinicflow.schemas.auth import RequestContext
from clinicflow.schemas.client import AppointmentCreate, AppointmentRead
from clinicflow.services import appointment_service
from clinicflow.services.errors import InvalidStateError, NotFoundError

router = APIRouter(prefix="/appointments", tags=["Appointments"])


@router.get("", response_model=list[AppointmentRead])
def list_appointments(
    client_id: UUID | None = None,
    status: AppointmentStatus | None = None,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return appointment_service.list_appointments(db, ctx.org_id, client_id=client_id, status=status)


@router.post("", response_model=AppointmentRead, status_code=201, dependencies=[Depends(require_csrf_header)])
def create_appointment(
    data: AppointmentCreate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Book an appointment. Fires appointment_scheduled workflows."""
    try:
        return appointment_service.create_appointment(db, ctx.org_id, data)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{appointment_id}/complete", response_model=AppointmentRead, dependencies=[Depends(require_csrf_header)])
def complete_appointment(
    appointment_id: UUID,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Mark completed. Fires appointment_completed and treatment-specific workflows."""
    try:
        return appointment_service.complete_appointment(db, ctx.org_id, appointment_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStateError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/{appointment_id}/cancel", response_model=AppointmentRead, dependencies=[Depends(require_csrf_header)])
def cancel_appointment(
    appointment_id: UUID,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    try:
        return appointment_service.cancel_appointment(db, ctx.org_id, appointment_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStateError as e:
        raise HTTPException(status_code=400, detail=str(e))
