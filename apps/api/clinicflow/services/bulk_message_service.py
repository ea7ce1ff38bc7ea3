"""Bulk message service - one-to-many campaigns and recipient tracking."""

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from clinicflow.db.enums import (
    BulkMessageStatus,
    MessageChannel,
    MessageStatus,
    SENT_RECIPIENT_STATUSES,
    ScheduledActionType,
)
from clinicflow.db.models import BulkMessage, Client, Message, MessageRecipient
from clinicflow.schemas.messaging import BulkMessageCreate
from clinicflow.services import scheduled_action_service, template_service
from clinicflow.services.errors import InvalidStateError, NotFoundError
from clinicflow.services.message_senders import Senders, default_senders
from clinicflow.utils.datetime_utils import ensure_aware, utcnow

logger = logging.getLogger(__name__)

_SENT_VALUES = [s.value for s in SENT_RECIPIENT_STATUSES]


# =============================================================================
# Campaign CRUD
# =============================================================================

def create_bulk_message(db: Session, org_id: UUID, data: BulkMessageCreate) -> BulkMessage:
    """Create a draft, or a scheduled campaign when scheduled_for is given."""
    bulk = BulkMessage(
        organization_id=org_id,
        name=data.name.strip(),
        channel=data.channel.value,
        subject=data.subject,
        content=data.content,
        scheduled_for=ensure_aware(data.scheduled_for),
        status=(
            BulkMessageStatus.SCHEDULED.value
            if data.scheduled_for
            else BulkMessageStatus.DRAFT.value
        ),
    )
    db.add(bulk)
    db.commit()
    db.refresh(bulk)
    return bulk


def get_bulk_message(db: Session, org_id: UUID, bulk_message_id: UUID) -> BulkMessage | None:
    return (
        db.query(BulkMessage)
        .filter(BulkMessage.id == bulk_message_id, BulkMessage.organization_id == org_id)
        .first()
    )


def require_bulk_message(db: Session, org_id: UUID, bulk_message_id: UUID) -> BulkMessage:
    bulk = get_bulk_message(db, org_id, bulk_message_id)
    if not bulk:
        raise NotFoundError("Bulk message", bulk_message_id)
    return bulk


def list_bulk_messages(
    db: Session, org_id: UUID, status: BulkMessageStatus | None = None, limit: int = 50
) -> list[BulkMessage]:
    query = db.query(BulkMessage).filter(BulkMessage.organization_id == org_id)
    if status:
        query = query.filter(BulkMessage.status == status.value)
    return query.order_by(BulkMessage.created_at.desc()).limit(limit).all()


def update_bulk_message_status(
    db: Session, org_id: UUID, bulk_message_id: UUID, status: BulkMessageStatus
) -> BulkMessage:
    bulk = require_bulk_message(db, org_id, bulk_message_id)
    bulk.status = status.value
    db.commit()
    db.refresh(bulk)
    return bulk


def delete_bulk_message(db: Session, org_id: UUID, bulk_message_id: UUID) -> None:
    bulk = require_bulk_message(db, org_id, bulk_message_id)
    if bulk.status == BulkMessageStatus.SENDING.value:
        raise InvalidStateError("Cannot delete a bulk message while it is sending")
    db.delete(bulk)
    db.commit()


def get_recipients(
    db: Session,
    org_id: UUID,
    bulk_message_id: UUID,
    status: MessageStatus | None = None,
) -> list[MessageRecipient]:
    require_bulk_message(db, org_id, bulk_message_id)
    query = db.query(MessageRecipient).filter(
        MessageRecipient.bulk_message_id == bulk_message_id,
        MessageRecipient.organization_id == org_id,
    )
    if status:
        query = query.filter(MessageRecipient.status == status.value)
    return query.order_by(MessageRecipient.created_at).all()


# =============================================================================
# Sending
# =============================================================================

def send_bulk_message(
    db: Session,
    org_id: UUID,
    bulk_message_id: UUID,
    client_ids: list[UUID],
    dispatch_at: datetime | None = None,
) -> BulkMessage:
    """
    Start a campaign: status -> sending, one pending recipient per entry in
    client_ids (a repeated id gets a row per occurrence).

    Nothing is sent here; a dispatch_bulk_message action is queued for the
    worker (at dispatch_at, the campaign's scheduled_for, or now). An empty
    client_ids completes the campaign immediately with nothing queued.
    """
    bulk = require_bulk_message(db, org_id, bulk_message_id)
    if bulk.status not in (BulkMessageStatus.DRAFT.value, BulkMessageStatus.SCHEDULED.value):
        raise InvalidStateError(f"Cannot send a bulk message in status {bulk.status}")
    unique_ids = set(client_ids)
    found = {
        row[0]
        for row in db.query(Client.id)
        .filter(Client.organization_id == org_id, Client.id.in_(unique_ids))
        .all()
    }
    missing = [cid for cid in client_ids if cid not in found]
    if missing:
        raise NotFoundError("Client", missing[0])

    bulk.total_recipients = len(client_ids)
    bulk.sent_count = 0
    bulk.failed_count = 0
    if not client_ids:
        bulk.status = BulkMessageStatus.COMPLETED.value
        db.commit()
        db.refresh(bulk)
        logger.info("Bulk message %s has no recipients, completed", bulk.id)
        return bulk

    bulk.status = BulkMessageStatus.SENDING.value
    for client_id in client_ids:
        db.add(
            MessageRecipient(
                organization_id=org_id,
                bulk_message_id=bulk.id,
                client_id=client_id,
                channel=bulk.channel,
                status=MessageStatus.PENDING.value,
            )
        )
    scheduled_action_service.schedule_action(
        db,
        org_id=org_id,
        action=ScheduledActionType.DISPATCH_BULK_MESSAGE,
        args={"bulk_message_id": str(bulk.id)},
        scheduled_for=dispatch_at or bulk.scheduled_for,
        commit=False,
    )
    db.commit()
    db.refresh(bulk)
    logger.info("Bulk message %s queued for %s recipients", bulk.id, bulk.total_recipients)
    return bulk


def refresh_counts(db: Session, bulk: BulkMessage) -> BulkMessage:
    """
    Recompute sent/failed counters from recipient rows with one grouped count.

    The campaign completes once sent + failed covers every recipient.
    """
    rows = (
        db.query(MessageRecipient.status, func.count(MessageRecipient.id))
        .filter(MessageRecipient.bulk_message_id == bulk.id)
        .group_by(MessageRecipient.status)
        .all()
    )
    counts = {status: count for status, count in rows}
    bulk.sent_count = sum(counts.get(s, 0) for s in _SENT_VALUES)
    bulk.failed_count = counts.get(MessageStatus.FAILED.value, 0)
    if bulk.sent_count + bulk.failed_count >= bulk.total_recipients:
        bulk.status = BulkMessageStatus.COMPLETED.value
    else:
        bulk.status = BulkMessageStatus.SENDING.value
    return bulk


def update_recipient_status(
    db: Session,
    org_id: UUID,
    recipient_id: UUID,
    status: MessageStatus,
    external_id: str | None = None,
    error_message: str | None = None,
) -> MessageRecipient:
    """Record a delivery update and re-aggregate the parent's counters."""
    recipient = (
        db.query(MessageRecipient)
        .filter(MessageRecipient.id == recipient_id, MessageRecipient.organization_id == org_id)
        .first()
    )
    if not recipient:
        raise NotFoundError("Recipient", recipient_id)

    now = utcnow()
    recipient.status = status.value
    if external_id is not None:
        recipient.external_id = external_id
    if error_message is not None:
        recipient.error_message = error_message
    if status == MessageStatus.SENT:
        recipient.sent_at = now
    elif status == MessageStatus.DELIVERED:
        recipient.delivered_at = now
        if recipient.sent_at is None:
            recipient.sent_at = now
    db.flush()

    refresh_counts(db, recipient.bulk_message)
    db.commit()
    db.refresh(recipient)
    return recipient


async def dispatch_bulk_message(
    db: Session,
    org_id: UUID,
    bulk_message_id: UUID,
    senders: Senders | None = None,
) -> BulkMessage:
    """
    Send every pending recipient through the channel's sender.

    Each send is recorded in the client's message history and the
    recipient's status update re-aggregates the campaign counters.
    """
    bulk = require_bulk_message(db, org_id, bulk_message_id)
    senders = senders or default_senders()
    sender = senders.for_channel(bulk.channel)
    pending = get_recipients(db, org_id, bulk.id, status=MessageStatus.PENDING)

    for recipient in pending:
        client = db.query(Client).filter(Client.id == recipient.client_id).first()
        if bulk.channel == MessageChannel.SMS.value:
            to = client.primary_phone if client else None
        else:
            to = client.email if client else None
        if not to:
            missing = "phone number" if bulk.channel == MessageChannel.SMS.value else "email address"
            update_recipient_status(
                db,
                org_id,
                recipient.id,
                MessageStatus.FAILED,
                error_message=f"Client has no {missing}",
            )
            continue

        variables = template_service.build_variables(client)
        body = template_service.render(bulk.content, variables)
        subject = template_service.render(bulk.subject, variables) if bulk.subject else None
        result = await sender.send(to, body, subject=subject)

        db.add(
            Message(
                organization_id=org_id,
                client_id=client.id,
                channel=bulk.channel,
                subject=subject,
                content=body,
                status=MessageStatus.SENT.value if result.success else MessageStatus.FAILED.value,
                external_id=result.external_id,
                error_message=result.error,
                sent_at=utcnow() if result.success else None,
            )
        )
        update_recipient_status(
            db,
            org_id,
            recipient.id,
            MessageStatus.SENT if result.success else MessageStatus.FAILED,
            external_id=result.external_id,
            error_message=result.error,
        )

    db.refresh(bulk)
    logger.info(
        "Bulk message %s dispatched: sent=%s failed=%s total=%s",
        bulk.id,
        bulk.sent_count,
        bulk.failed_count,
        bulk.total_recipients,
    )
    return bulk
