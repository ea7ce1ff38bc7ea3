"""Social post service - scheduling and publishing posts to social platforms."""

import asyncio
import logging
import random
import uuid
from datetime import datetime
from typing import Awaitable, Callable
from uuid import UUID

from sqlalchemy.orm import Session

from clinicflow.core.config import settings
from clinicflow.db.enums import ScheduledActionType, SocialPostStatus
from clinicflow.db.models import SocialPost
from clinicflow.schemas.scheduling import SocialPostCreate
from clinicflow.services import scheduled_action_service
from clinicflow.services.errors import InvalidStateError, NotFoundError
from clinicflow.utils.datetime_utils import ensure_aware, utcnow

logger = logging.getLogger(__name__)

PUBLISH_FAILURE_RATE = 0.1
PUBLISH_MIN_DELAY_SECONDS = 1.0
PUBLISH_MAX_DELAY_SECONDS = 2.0
PUBLISH_MAX_ATTEMPTS = 3


class PublishError(Exception):
    """A platform rejected a post."""


# =============================================================================
# Platform Publisher (mock)
# =============================================================================

async def publish_to_platform(
    post_id: UUID,
    platform: str,
    rng: random.Random | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> dict:
    """
    Simulated platform publish.

    Waits 1-2 seconds and fails roughly one call in ten. rng and sleep are
    injectable so tests can run it deterministically.
    """
    rng = rng or random.Random()
    await sleep(rng.uniform(PUBLISH_MIN_DELAY_SECONDS, PUBLISH_MAX_DELAY_SECONDS))
    if rng.random() < PUBLISH_FAILURE_RATE:
        raise PublishError(f"Failed to publish to {platform}: API rate limit exceeded")
    return {
        "platform": platform,
        "status": "success",
        "external_post_id": f"{platform}_{uuid.uuid4().hex[:12]}",
        "published_at": utcnow().isoformat(),
    }


# =============================================================================
# Posts
# =============================================================================

def create_post(db: Session, org_id: UUID, data: SocialPostCreate, now: datetime | None = None) -> SocialPost:
    """
    Create a post.

    A future scheduled_for makes it scheduled and queues a
    publish_social_post action for that time; otherwise it is a draft.
    """
    now = ensure_aware(now) or utcnow()
    scheduled_for = ensure_aware(data.scheduled_for)
    is_scheduled = scheduled_for is not None and scheduled_for > now

    post = SocialPost(
        organization_id=org_id,
        title=data.title,
        content=data.content,
        hashtags=list(data.hashtags),
        target_platforms=[p.value for p in data.target_platforms],
        media_files=list(data.media_files),
        status=SocialPostStatus.SCHEDULED.value if is_scheduled else SocialPostStatus.DRAFT.value,
        scheduled_for=scheduled_for,
        timezone=data.timezone or settings.SOCIAL_DEFAULT_TIMEZONE,
        publishing_results=[],
    )
    db.add(post)
    db.flush()

    if is_scheduled:
        action = scheduled_action_service.schedule_action(
            db,
            org_id=org_id,
            action=ScheduledActionType.PUBLISH_SOCIAL_POST,
            args={"post_id": str(post.id)},
            scheduled_for=scheduled_for,
            max_attempts=PUBLISH_MAX_ATTEMPTS,
            commit=False,
        )
        post.scheduled_action_id = action.id

    db.commit()
    db.refresh(post)
    return post


def get_post(db: Session, org_id: UUID, post_id: UUID) -> SocialPost | None:
    return (
        db.query(SocialPost)
        .filter(SocialPost.id == post_id, SocialPost.organization_id == org_id)
        .first()
    )


def require_post(db: Session, org_id: UUID, post_id: UUID) -> SocialPost:
    post = get_post(db, org_id, post_id)
    if not post:
        raise NotFoundError("Post", post_id)
    return post


def list_posts(
    db: Session, org_id: UUID, status: SocialPostStatus | None = None, limit: int = 50
) -> list[SocialPost]:
    query = db.query(SocialPost).filter(SocialPost.organization_id == org_id)
    if status:
        query = query.filter(SocialPost.status == status.value)
    return query.order_by(SocialPost.created_at.desc()).limit(limit).all()


def update_post_status(
    db: Session,
    org_id: UUID,
    post_id: UUID,
    status: SocialPostStatus,
    error_message: str | None = None,
) -> SocialPost:
    post = require_post(db, org_id, post_id)
    post.status = status.value
    if error_message is not None:
        post.error_message = error_message
    if status == SocialPostStatus.PUBLISHED:
        post.published_at = utcnow()
    db.commit()
    db.refresh(post)
    return post


def cancel_post(db: Session, org_id: UUID, post_id: UUID) -> SocialPost:
    """Cancel a draft or scheduled post and drop its queued publish action."""
    post = require_post(db, org_id, post_id)
    if post.status not in (SocialPostStatus.DRAFT.value, SocialPostStatus.SCHEDULED.value):
        raise InvalidStateError(f"Cannot cancel a {post.status} post")

    if post.scheduled_action_id:
        action = scheduled_action_service.get_action(db, org_id, post.scheduled_action_id)
        if action is not None:
            scheduled_action_service.cancel_action(db, org_id, action.id)
        post.scheduled_action_id = None

    post.status = SocialPostStatus.CANCELLED.value
    db.commit()
    db.refresh(post)
    return post


async def publish_post(
    db: Session,
    org_id: UUID,
    post_id: UUID,
    publisher: Callable[[UUID, str], Awaitable[dict]] = publish_to_platform,
) -> SocialPost:
    """
    Publish a post to each of its target platforms.

    The post is published if at least one platform accepted it. When every
    platform fails it is marked failed and PublishError is raised so the
    scheduled action is retried.
    """
    post = require_post(db, org_id, post_id)
    if post.status == SocialPostStatus.CANCELLED.value:
        logger.info("Post %s was cancelled, skipping publish", post.id)
        return post
    if post.status == SocialPostStatus.PUBLISHED.value:
        return post

    post.status = SocialPostStatus.PUBLISHING.value
    db.commit()

    results = []
    for platform in post.target_platforms:
        try:
            results.append(await publisher(post.id, platform))
        except PublishError as exc:
            logger.warning("Publishing post %s to %s failed: %s", post.id, platform, exc)
            results.append(
                {
                    "platform": platform,
                    "status": "failed",
                    "error": str(exc),
                    "attempted_at": utcnow().isoformat(),
                }
            )

    post.publishing_results = [*(post.publishing_results or []), *results]
    succeeded = [r for r in results if r["status"] == "success"]
    if succeeded:
        post.status = SocialPostStatus.PUBLISHED.value
        post.published_at = utcnow()
        post.error_message = None
        db.commit()
        db.refresh(post)
        return post

    errors = "; ".join(r["error"] for r in results)
    post.status = SocialPostStatus.FAILED.value
    post.error_message = errors
    db.commit()
    raise PublishError(errors or "No target platforms")
