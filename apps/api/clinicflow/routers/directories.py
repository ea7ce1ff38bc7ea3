"""Workflow directory API router - folder tree for organizing workflows."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from clinicflow.core.deps import get_db, get_request_context, require_csrf_header, require_roles
from clinicflow.db.enums import ROLES_CAN_MANAGE_AUTOMATION
from clinicflow.schemas.auth import RequestContext
from clinicflow.schemas.workflow import (
    DirectoryCreate,
    DirectoryMoveRequest,
    DirectoryNode,
    DirectoryRead,
    DirectoryUpdate,
    WorkflowRead,
)
from clinicflow.services import directory_service
from clinicflow.services.errors import NotFoundError

router = APIRouter(
    prefix="/workflow-directories",
    tags=["Workflow Directories"],
    dependencies=[Depends(require_roles(ROLES_CAN_MANAGE_AUTOMATION))],
)


@router.get("", response_model=list[DirectoryNode])
def get_directory_tree(
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """The organization's directory forest, with nested children."""
    return directory_service.get_directory_tree(db, ctx.org_id)


@router.get("/root/workflows", response_model=list[WorkflowRead])
def list_root_workflows(
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Workflows that are not in any directory."""
    return directory_service.list_workflows_in_directory(db, ctx.org_id, None)


@router.post("", response_model=DirectoryRead, status_code=201, dependencies=[Depends(require_csrf_header)])
def create_directory(
    data: DirectoryCreate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    try:
        return directory_service.create_directory(
            db,
            ctx.org_id,
            name=data.name,
            parent_id=data.parent_id,
            color=data.color,
            description=data.description,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.get("/{directory_id}", response_model=DirectoryRead)
def get_directory(
    directory_id: UUID,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    directory = directory_service.get_directory(db, ctx.org_id, directory_id)
    if not directory:
        raise HTTPException(status_code=404, detail="Directory not found")
    return directory


@router.patch("/{directory_id}", response_model=DirectoryRead, dependencies=[Depends(require_csrf_header)])
def update_directory(
    directory_id: UUID,
    data: DirectoryUpdate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Patch a directory. Moving it under its own descendant is rejected."""
    kwargs = {"name": data.name, "description": data.description, "color": data.color}
    if "parent_id" in data.model_fields_set:
        kwargs["parent_id"] = data.parent_id
    try:
        return directory_service.update_directory(db, ctx.org_id, directory_id, **kwargs)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.post("/{directory_id}/move", response_model=DirectoryRead, dependencies=[Depends(require_csrf_header)])
def move_directory(
    directory_id: UUID,
    data: DirectoryMoveRequest,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Move a directory under another one (parent_id null = root)."""
    try:
        return directory_service.move_directory(db, ctx.org_id, directory_id, data.parent_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.delete("/{directory_id}", dependencies=[Depends(require_csrf_header)])
def delete_directory(
    directory_id: UUID,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Delete a directory; its workflows go to root and its children to its parent."""
    try:
        directory_service.delete_directory(db, ctx.org_id, directory_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"message": "Directory deleted"}


@router.get("/{directory_id}/workflows", response_model=list[WorkflowRead])
def list_directory_workflows(
    directory_id: UUID,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    if not directory_service.get_directory(db, ctx.org_id, directory_id):
        raise HTTPException(status_code=404, detail="Directory not found")
    return directory_service.list_workflows_in_directory(db, ctx.org_id, directory_id)
