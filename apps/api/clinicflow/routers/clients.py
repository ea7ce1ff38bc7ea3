"""Clients API router - client records and tags."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from clinicflow.core.deps import get_db, get_request_context, require_csrf_header
from clinicflow.db.enums import PortalStatus
from clinicflow.schemas.auth import RequestContext
from clinicflow.schemas.client import (
    ClientCreate,
    ClientListResponse,
    ClientRead,
    ClientUpdate,
    TagRequest,
)
from clinicflow.services import client_service
from clinicflow.services.errors import NotFoundError
from clinicflow.utils.pagination import PaginationParams, build_page, get_pagination

router = APIRouter(prefix="/clients", tags=["Clients"])


@router.get("", response_model=ClientListResponse)
def list_clients(
    search: str | None = Query(default=None, max_length=100),
    tag: str | None = None,
    portal_status: PortalStatus | None = None,
    pagination: PaginationParams = Depends(get_pagination),
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """List clients (newest first) with optional search and tag filters."""
    items, total = client_service.list_clients(
        db,
        ctx.org_id,
        search=search,
        tag=tag,
        portal_status=portal_status,
        limit=pagination.per_page,
        offset=pagination.offset,
    )
    return build_page(items, total, pagination)


@router.post("", response_model=ClientRead, status_code=201, dependencies=[Depends(require_csrf_header)])
def create_client(
    data: ClientCreate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Create a client. Enrolls them into enabled client_created workflows."""
    try:
        return client_service.create_client(db, ctx.org_id, data)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.get("/{client_id}", response_model=ClientRead)
def get_client(
    client_id: UUID,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    client = client_service.get_client(db, ctx.org_id, client_id)
    if not client:
        raise HTTPException(status_code=404, detail="Client not found")
    return client


@router.patch("/{client_id}", response_model=ClientRead, dependencies=[Depends(require_csrf_header)])
def update_client(
    client_id: UUID,
    data: ClientUpdate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    client = client_service.get_client(db, ctx.org_id, client_id)
    if not client:
        raise HTTPException(status_code=404, detail="Client not found")
    return client_service.update_client(db, client, data)


@router.delete("/{client_id}", dependencies=[Depends(require_csrf_header)])
def delete_client(
    client_id: UUID,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    client = client_service.get_client(db, ctx.org_id, client_id)
    if not client:
        raise HTTPException(status_code=404, detail="Client not found")
    client_service.delete_client(db, client)
    return {"message": "Client deleted"}


# =============================================================================
# Tags
# =============================================================================

@router.post("/{client_id}/tags", response_model=ClientRead, dependencies=[Depends(require_csrf_header)])
def add_tag(
    client_id: UUID,
    data: TagRequest,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    try:
        return client_service.add_tag(db, ctx.org_id, client_id, data.tag)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.delete("/{client_id}/tags", response_model=ClientRead, dependencies=[Depends(require_csrf_header)])
def remove_tag(
    client_id: UUID,
    tag: str | None = None,
    remove_all: bool = False,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Remove one tag (?tag=) or all tags (?remove_all=true)."""
    try:
        return client_service.remove_tag(db, ctx.org_id, client_id, tag=tag, remove_all=remove_all)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
