"""Social publishing scheduled-action handlers."""

from __future__ import annotations

from uuid import UUID

from clinicflow.services import social_post_service


async def process_publish_social_post(db, action) -> None:
    post_id = action.args.get("post_id")
    if not post_id:
        raise ValueError("Missing post_id in publish_social_post args")
    await social_post_service.publish_post(db, action.organization_id, UUID(post_id))
