"""SQLAlchemy ORM models for scheduled actions and social posts."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from clinicflow.db.base import Base
from clinicflow.db.enums import DEFAULT_SCHEDULED_ACTION_STATUS, SocialPostStatus
from clinicflow.db.types import JsonType
from clinicflow.utils.datetime_utils import utcnow


class ScheduledAction(Base):
    """
    Deferred unit of work drained by the worker.

    Used for: resuming delayed workflows, publishing social posts,
    dispatching bulk messages. Failed attempts are retried with backoff
    until max_attempts is reached.
    """

    __tablename__ = "scheduled_actions"
    __table_args__ = (
        Index("idx_scheduled_actions_due", "status", "scheduled_for"),
        Index("idx_scheduled_actions_org", "organization_id", "scheduled_for"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )

    action: Mapped[str] = mapped_column(String(50), nullable=False)
    args: Mapped[dict] = mapped_column(JsonType, default=dict, nullable=False)
    scheduled_for: Mapped[datetime] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_SCHEDULED_ACTION_STATUS.value, nullable=False
    )
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_attempts: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    last_attempt_at: Mapped[datetime | None] = mapped_column(nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)


class SocialPost(Base):
    """A social media post, optionally scheduled for later publishing."""

    __tablename__ = "social_posts"
    __table_args__ = (Index("idx_social_posts_org_status", "organization_id", "status"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )

    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    hashtags: Mapped[list] = mapped_column(JsonType, default=list, nullable=False)
    target_platforms: Mapped[list] = mapped_column(JsonType, default=list, nullable=False)
    media_files: Mapped[list] = mapped_column(JsonType, default=list, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), default=SocialPostStatus.DRAFT.value, nullable=False
    )
    scheduled_for: Mapped[datetime | None] = mapped_column(nullable=True)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False)
    scheduled_action_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    publishing_results: Mapped[list] = mapped_column(JsonType, default=list, nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )
    published_at: Mapped[datetime | None] = mapped_column(nullable=True)
