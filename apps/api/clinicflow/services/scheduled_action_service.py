"""Scheduled action service - deferred work queue drained by the worker.

State machine:
    pending -> running -> completed
    running -> retrying (scheduled_for pushed out with exponential backoff)
    running -> failed (attempts exhausted)
"""

import logging
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from clinicflow.core.config import settings
from clinicflow.db.enums import DUE_ACTION_STATUSES, ScheduledActionStatus, ScheduledActionType
from clinicflow.db.models import ScheduledAction
from clinicflow.services.errors import InvalidStateError, NotFoundError
from clinicflow.utils.datetime_utils import ensure_aware, utcnow

logger = logging.getLogger(__name__)

_DUE_VALUES = [s.value for s in DUE_ACTION_STATUSES]


def retry_delay_seconds(attempts: int) -> int:
    """Backoff after the given number of failed attempts (1 -> base, 2 -> 2*base, ...)."""
    base = settings.SCHEDULED_ACTION_RETRY_BASE_SECONDS
    return min(settings.SCHEDULED_ACTION_RETRY_MAX_SECONDS, base * (2 ** max(attempts - 1, 0)))


# =============================================================================
# Scheduling
# =============================================================================

def schedule_action(
    db: Session,
    org_id: UUID,
    action: ScheduledActionType,
    args: dict,
    scheduled_for: datetime | None = None,
    max_attempts: int | None = None,
    commit: bool = True,
) -> ScheduledAction:
    """
    Queue an action. Runs as soon as the worker polls when scheduled_for is None.
    """
    if max_attempts is not None and max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    scheduled = ScheduledAction(
        organization_id=org_id,
        action=action.value,
        args=args,
        scheduled_for=ensure_aware(scheduled_for) or utcnow(),
        status=ScheduledActionStatus.PENDING.value,
        attempts=0,
        max_attempts=max_attempts or settings.SCHEDULED_ACTION_MAX_ATTEMPTS,
    )
    db.add(scheduled)
    if commit:
        db.commit()
        db.refresh(scheduled)
    else:
        db.flush()
    return scheduled


def get_action(db: Session, org_id: UUID, action_id: UUID) -> ScheduledAction | None:
    return (
        db.query(ScheduledAction)
        .filter(ScheduledAction.id == action_id, ScheduledAction.organization_id == org_id)
        .first()
    )


def list_scheduled_actions(
    db: Session,
    org_id: UUID,
    status: ScheduledActionStatus | None = None,
    action: ScheduledActionType | None = None,
    limit: int = 100,
) -> list[ScheduledAction]:
    query = db.query(ScheduledAction).filter(ScheduledAction.organization_id == org_id)
    if status:
        query = query.filter(ScheduledAction.status == status.value)
    if action:
        query = query.filter(ScheduledAction.action == action.value)
    return query.order_by(ScheduledAction.scheduled_for).limit(limit).all()


# =============================================================================
# Worker Claiming
# =============================================================================

def claim_due_actions(
    db: Session, limit: int = 10, now: datetime | None = None
) -> list[ScheduledAction]:
    """
    Claim due actions for this worker: mark them running and count the attempt.

    Uses FOR UPDATE SKIP LOCKED on PostgreSQL so concurrent workers never
    claim the same row.
    """
    now = ensure_aware(now) or utcnow()
    actions = (
        db.query(ScheduledAction)
        .filter(
            ScheduledAction.status.in_(_DUE_VALUES),
            ScheduledAction.scheduled_for <= now,
        )
        .order_by(ScheduledAction.scheduled_for)
        .limit(limit)
        .with_for_update(skip_locked=True)
        .all()
    )
    for action in actions:
        action.status = ScheduledActionStatus.RUNNING.value
        action.attempts += 1
        action.last_attempt_at = now
    db.commit()
    for action in actions:
        db.refresh(action)
    return actions


def mark_action_completed(db: Session, action: ScheduledAction) -> ScheduledAction:
    action.status = ScheduledActionStatus.COMPLETED.value
    action.completed_at = utcnow()
    action.error = None
    db.commit()
    db.refresh(action)
    return action


def mark_action_failed(
    db: Session, action: ScheduledAction, error: str, now: datetime | None = None
) -> ScheduledAction:
    """
    Record a failed attempt.

    While attempts < max_attempts the action moves to retrying and is pushed
    out by the backoff delay; otherwise it is permanently failed.
    """
    now = ensure_aware(now) or utcnow()
    action.error = error
    if action.attempts < action.max_attempts:
        action.status = ScheduledActionStatus.RETRYING.value
        action.scheduled_for = now + timedelta(seconds=retry_delay_seconds(action.attempts))
        logger.info(
            "Scheduled action %s attempt %s/%s failed, retrying at %s",
            action.id,
            action.attempts,
            action.max_attempts,
            action.scheduled_for.isoformat(),
        )
    else:
        action.status = ScheduledActionStatus.FAILED.value
        action.completed_at = now
        logger.warning(
            "Scheduled action %s failed permanently after %s attempts",
            action.id,
            action.attempts,
        )
    db.commit()
    db.refresh(action)
    return action


# =============================================================================
# Management
# =============================================================================

def cancel_action(db: Session, org_id: UUID, action_id: UUID) -> None:
    """Delete a queued action. A running action cannot be cancelled."""
    action = get_action(db, org_id, action_id)
    if not action:
        raise NotFoundError("Scheduled action", action_id)
    if action.status == ScheduledActionStatus.RUNNING.value:
        raise InvalidStateError("Cannot cancel a running action")
    db.delete(action)
    db.commit()


def reschedule_action(
    db: Session, org_id: UUID, action_id: UUID, scheduled_for: datetime
) -> ScheduledAction:
    """Move an action to a new time and reset its attempt budget."""
    action = get_action(db, org_id, action_id)
    if not action:
        raise NotFoundError("Scheduled action", action_id)
    if action.status == ScheduledActionStatus.RUNNING.value:
        raise InvalidStateError("Cannot reschedule a running action")

    action.scheduled_for = ensure_aware(scheduled_for)
    action.status = ScheduledActionStatus.PENDING.value
    action.attempts = 0
    action.error = None
    action.completed_at = None
    db.commit()
    db.refresh(action)
    return action


def get_action_stats(db: Session, org_id: UUID, now: datetime | None = None) -> dict:
    """Counts per status plus how many due actions are waiting past their time."""
    now = ensure_aware(now) or utcnow()
    rows = (
        db.query(ScheduledAction.status, func.count(ScheduledAction.id))
        .filter(ScheduledAction.organization_id == org_id)
        .group_by(ScheduledAction.status)
        .all()
    )
    counts = {status: count for status, count in rows}
    overdue = (
        db.query(func.count(ScheduledAction.id))
        .filter(
            ScheduledAction.organization_id == org_id,
            ScheduledAction.status.in_(_DUE_VALUES),
            ScheduledAction.scheduled_for < now,
        )
        .scalar()
    )
    stats = {s.value: counts.get(s.value, 0) for s in ScheduledActionStatus}
    stats["total"] = sum(counts.values())
    stats["overdue"] = overdue or 0
    return stats
