"""Scheduled action and social post enums."""

from enum import Enum


class ScheduledActionType(str, Enum):
    """Handlers the worker can dispatch a scheduled action to."""

    CONTINUE_WORKFLOW = "continue_workflow"
    PUBLISH_SOCIAL_POST = "publish_social_post"
    DISPATCH_BULK_MESSAGE = "dispatch_bulk_message"


class ScheduledActionStatus(str, Enum):
    """
    State machine for scheduled actions.

    pending -> running -> completed
    running -> retrying (backoff) -> running ...
    running -> failed once attempts are exhausted
    """

    PENDING = "pending"
    RUNNING = "running"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"


class SocialPlatform(str, Enum):
    FACEBOOK = "facebook"
    INSTAGRAM = "instagram"
    TWITTER = "twitter"
    LINKEDIN = "linkedin"
    TIKTOK = "tiktok"


class SocialPostStatus(str, Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    PUBLISHING = "publishing"
    PUBLISHED = "published"
    FAILED = "failed"
    CANCELLED = "cancelled"


DEFAULT_SCHEDULED_ACTION_STATUS = ScheduledActionStatus.PENDING
DUE_ACTION_STATUSES = frozenset(
    {ScheduledActionStatus.PENDING, ScheduledActionStatus.RETRYING}
)
