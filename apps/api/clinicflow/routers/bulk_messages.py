"""Bulk messaging API router - campaigns and per-recipient delivery tracking."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from clinicflow.core.config import settings
from clinicflow.core.deps import get_db, get_request_context, require_csrf_header, require_roles
from clinicflow.core.rate_limit import limiter
from clinicflow.db.enums import ROLES_CAN_MANAGE_AUTOMATION, BulkMessageStatus, MessageStatus
from clinicflow.schemas.auth import RequestContext
from clinicflow.schemas.messaging import (
    BulkMessageCreate,
    BulkMessageRead,
    BulkMessageStatusUpdate,
    BulkSendRequest,
    RecipientRead,
    RecipientStatusUpdate,
)
from clinicflow.services import bulk_message_service
from clinicflow.services.errors import InvalidStateError, NotFoundError

router = APIRouter(
    prefix="/bulk-messages",
    tags=["Bulk Messages"],
    dependencies=[Depends(require_roles(ROLES_CAN_MANAGE_AUTOMATION))],
)


@router.get("", response_model=list[BulkMessageRead])
def list_bulk_messages(
    status: BulkMessageStatus | None = None,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return bulk_message_service.list_bulk_messages(db, ctx.org_id, status=status)


@router.post("", response_model=BulkMessageRead, status_code=201, dependencies=[Depends(require_csrf_header)])
def create_bulk_message(
    data: BulkMessageCreate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return bulk_message_service.create_bulk_message(db, ctx.org_id, data)


@router.get("/{bulk_message_id}", response_model=BulkMessageRead)
def get_bulk_message(
    bulk_message_id: UUID,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    bulk = bulk_message_service.get_bulk_message(db, ctx.org_id, bulk_message_id)
    if not bulk:
        raise HTTPException(status_code=404, detail="Bulk message not found")
    return bulk


@router.patch("/{bulk_message_id}/status", response_model=BulkMessageRead, dependencies=[Depends(require_csrf_header)])
def update_bulk_message_status(
    bulk_message_id: UUID,
    data: BulkMessageStatusUpdate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    try:
        return bulk_message_service.update_bulk_message_status(
            db, ctx.org_id, bulk_message_id, data.status
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.delete("/{bulk_message_id}", dependencies=[Depends(require_csrf_header)])
def delete_bulk_message(
    bulk_message_id: UUID,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    try:
        bulk_message_service.delete_bulk_message(db, ctx.org_id, bulk_message_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStateError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"message": "Bulk message deleted"}


@router.post("/{bulk_message_id}/send", response_model=BulkMessageRead)
@limiter.limit(f"{settings.RATE_LIMIT_SEND}/minute")
def send_bulk_message(
    request: Request,
    bulk_message_id: UUID,
    data: BulkSendRequest,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    _csrf: None = Depends(require_csrf_header),
):
    """
    Queue a campaign for the given clients.

    Creates one pending recipient per client and hands delivery to the worker.
    """
    try:
        return bulk_message_service.send_bulk_message(
            db, ctx.org_id, bulk_message_id, data.client_ids
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStateError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.get("/{bulk_message_id}/recipients", response_model=list[RecipientRead])
def list_recipients(
    bulk_message_id: UUID,
    status: MessageStatus | None = None,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    try:
        return bulk_message_service.get_recipients(db, ctx.org_id, bulk_message_id, status=status)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.patch("/recipients/{recipient_id}", response_model=RecipientRead, dependencies=[Depends(require_csrf_header)])
def update_recipient_status(
    recipient_id: UUID,
    data: RecipientStatusUpdate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Delivery callback: record a recipient's status and re-count the campaign."""
    try:
        return bulk_message_service.update_recipient_status(
            db,
            ctx.org_id,
            recipient_id,
            data.status,
            external_id=data.external_id,
            error_message=data.error_message,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
