"""Social posts API router."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from clinicflow.core.deps import get_db, get_request_context, require_csrf_header
from clinicflow.db.enums import SocialPostStatus
from clinicflow.schemas.auth import RequestContext
from clinicflow.schemas.scheduling import SocialPostCreate, SocialPostRead
from clinicflow.services import social_post_service
from clinicflow.services.errors import InvalidStateError, NotFoundError

router = APIRouter(prefix="/social-posts", tags=["Social Posts"])


@router.get("", response_model=list[SocialPostRead])
def list_posts(
    status: SocialPostStatus | None = None,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return social_post_service.list_posts(db, ctx.org_id, status=status)


@router.post("", response_model=SocialPostRead, status_code=201, dependencies=[Depends(require_csrf_header)])
def create_post(
    data: SocialPostCreate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Create a post; a future scheduled_for queues it for publishing."""
    return social_post_service.create_post(db, ctx.org_id, data)


@router.get("/{post_id}", response_model=SocialPostRead)
def get_post(
    post_id: UUID,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    post = social_post_service.get_post(db, ctx.org_id, post_id)
    if not post:
        raise HTTPException(status_code=404, detail="Post not found")
    return post


@router.post("/{post_id}/cancel", response_model=SocialPostRead, dependencies=[Depends(require_csrf_header)])
def cancel_post(
    post_id: UUID,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    try:
        return social_post_service.cancel_post(db, ctx.org_id, post_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStateError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/{post_id}/publish", response_model=SocialPostRead, dependencies=[Depends(require_csrf_header)])
async def publish_now(
    post_id: UUID,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Publish immediately instead of waiting for the scheduled time."""
    try:
        return await social_post_service.publish_post(db, ctx.org_id, post_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except social_post_service.PublishError as e:
        raise HTTPException(status_code=502, detail=str(e))
