"""Pydantic schemas for scheduled actions and social posts."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from clinicflow.db.enums import ScheduledActionStatus, SocialPlatform, SocialPostStatus


# =============================================================================
# Scheduled Actions
# =============================================================================

class ScheduledActionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    action: str
    args: dict[str, Any]
    scheduled_for: datetime
    status: ScheduledActionStatus
    attempts: int
    max_attempts: int
    last_attempt_at: datetime | None
    error: str | None
    created_at: datetime
    completed_at: datetime | None


class RescheduleRequest(BaseModel):
    scheduled_for: datetime


class ScheduledActionStats(BaseModel):
    total: int
    pending: int
    running: int
    retrying: int
    completed: int
    failed: int
    overdue: int


# =============================================================================
# Social Posts
# =============================================================================

class SocialPostCreate(BaseModel):
    title: str | None = Field(default=None, max_length=255)
    content: str = Field(..., min_length=1)
    hashtags: list[str] = Field(default_factory=list)
    target_platforms: list[SocialPlatform] = Field(..., min_length=1)
    media_files: list[str] = Field(default_factory=list)
    scheduled_for: datetime | None = None
    timezone: str | None = None


class SocialPostRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str | None
    content: str
    hashtags: list[str]
    target_platforms: list[str]
    media_files: list[str]
    status: SocialPostStatus
    scheduled_for: datetime | None
    timezone: str
    publishing_results: list[dict[str, Any]]
    error_message: str | None
    created_at: datetime
    published_at: datetime | None
