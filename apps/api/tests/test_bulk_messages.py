"""Tests for bulk message campaigns and recipient tracking."""

import uuid

import pytest
from pydantic import ValidationError

from clinicflow import worker
from clinicflow.db.enums import MessageChannel, MessageStatus, ScheduledActionType
from clinicflow.db.models import Message, MessageRecipient, ScheduledAction
from clinicflow.schemas.messaging import BulkMessageCreate
from clinicflow.services import bulk_message_service
from clinicflow.services.errors import InvalidStateError, NotFoundError


def _sms_campaign(db, org_id, content="Hi {{first_name}}, 20% off this week!"):
    return bulk_message_service.create_bulk_message(
        db,
        org_id,
        BulkMessageCreate(name="Spring promo", channel=MessageChannel.SMS, content=content),
    )


def _recipients(db, bulk):
    return (
        db.query(MessageRecipient)
        .filter(MessageRecipient.bulk_message_id == bulk.id)
        .order_by(MessageRecipient.created_at, MessageRecipient.id)
        .all()
    )


# =============================================================================
# Create
# =============================================================================

def test_email_campaign_requires_subject():
    with pytest.raises(ValidationError):
        BulkMessageCreate(name="News", channel=MessageChannel.EMAIL, content="Hello")


def test_new_campaign_is_draft(db, test_org):
    bulk = _sms_campaign(db, test_org.id)
    assert bulk.status == "draft"
    assert bulk.total_recipients == 0


# =============================================================================
# Send
# =============================================================================

def test_send_creates_pending_recipients_and_queues_dispatch(db, test_org, make_client):
    c1 = make_client()
    c2 = make_client()
    bulk = _sms_campaign(db, test_org.id)

    bulk = bulk_message_service.send_bulk_message(db, test_org.id, bulk.id, [c1.id, c2.id])

    assert bulk.status == "sending"
    assert bulk.total_recipients == 2
    recipients = _recipients(db, bulk)
    assert len(recipients) == 2
    assert {r.status for r in recipients} == {"pending"}
    action = db.query(ScheduledAction).one()
    assert action.action == ScheduledActionType.DISPATCH_BULK_MESSAGE.value
    assert action.args == {"bulk_message_id": str(bulk.id)}


def test_send_counts_every_client_id_entry(db, test_org, make_client):
    c1 = make_client()
    bulk = _sms_campaign(db, test_org.id)
    bulk = bulk_message_service.send_bulk_message(db, test_org.id, bulk.id, [c1.id, c1.id])
    assert bulk.total_recipients == 2
    assert len(bulk_message_service.get_recipients(db, test_org.id, bulk.id)) == 2


def test_send_with_no_clients_completes(db, test_org):
    bulk = _sms_campaign(db, test_org.id)

    bulk = bulk_message_service.send_bulk_message(db, test_org.id, bulk.id, [])

    assert bulk.status == "completed"
    assert bulk.total_recipients == 0
    assert db.query(ScheduledAction).count() == 0


def test_send_rejects_foreign_client(db, test_org, other_org, make_client):
    foreign = make_client(org=other_org)
    bulk = _sms_campaign(db, test_org.id)
    with pytest.raises(NotFoundError):
        bulk_message_service.send_bulk_message(db, test_org.id, bulk.id, [foreign.id])
    db.refresh(bulk)
    assert bulk.status == "draft"


def test_send_twice_is_invalid(db, test_org, make_client):
    c1 = make_client()
    bulk = _sms_campaign(db, test_org.id)
    bulk_message_service.send_bulk_message(db, test_org.id, bulk.id, [c1.id])
    with pytest.raises(InvalidStateError):
        bulk_message_service.send_bulk_message(db, test_org.id, bulk.id, [c1.id])


def test_cannot_delete_while_sending(db, test_org, make_client):
    bulk = _sms_campaign(db, test_org.id)
    bulk_message_service.send_bulk_message(db, test_org.id, bulk.id, [make_client().id])
    with pytest.raises(InvalidStateError):
        bulk_message_service.delete_bulk_message(db, test_org.id, bulk.id)


# =============================================================================
# Recipient Tracking
# =============================================================================

def test_counts_follow_recipient_updates_until_complete(db, test_org, make_client):
    clients = [make_client() for _ in range(3)]
    bulk = _sms_campaign(db, test_org.id)
    bulk_message_service.send_bulk_message(db, test_org.id, bulk.id, [c.id for c in clients])
    r1, r2, r3 = _recipients(db, bulk)

    bulk_message_service.update_recipient_status(
        db, test_org.id, r1.id, MessageStatus.SENT, external_id="SM1"
    )
    db.refresh(bulk)
    assert (bulk.sent_count, bulk.failed_count, bulk.status) == (1, 0, "sending")

    bulk_message_service.update_recipient_status(
        db, test_org.id, r2.id, MessageStatus.FAILED, error_message="Undeliverable"
    )
    # Delivered counts as sent
    recipient = bulk_message_service.update_recipient_status(
        db, test_org.id, r3.id, MessageStatus.DELIVERED
    )

    db.refresh(bulk)
    assert bulk.sent_count == 2
    assert bulk.failed_count == 1
    assert bulk.sent_count + bulk.failed_count == bulk.total_recipients
    assert bulk.status == "completed"
    assert recipient.delivered_at is not None
    assert recipient.sent_at is not None


def test_unknown_recipient_is_not_found(db, test_org):
    with pytest.raises(NotFoundError):
        bulk_message_service.update_recipient_status(
            db, test_org.id, uuid.uuid4(), MessageStatus.SENT
        )


# =============================================================================
# Dispatch
# =============================================================================

@pytest.mark.asyncio
async def test_dispatch_sends_and_fails_missing_phone(db, test_org, make_client, senders):
    reachable = make_client(full_name="Ana Lopez", phones=["+15555550101"])
    unreachable = make_client(full_name="Bo Kim", phones=[])
    bulk = _sms_campaign(db, test_org.id)
    bulk_message_service.send_bulk_message(
        db, test_org.id, bulk.id, [reachable.id, unreachable.id]
    )

    bulk = await bulk_message_service.dispatch_bulk_message(
        db, test_org.id, bulk.id, senders=senders
    )

    assert bulk.status == "completed"
    assert (bulk.sent_count, bulk.failed_count) == (1, 1)
    assert senders.sms.sent == [
        {"to": "+15555550101", "body": "Hi Ana, 20% off this week!", "subject": None}
    ]
    failed = [r for r in _recipients(db, bulk) if r.status == "failed"]
    assert failed[0].client_id == unreachable.id
    assert failed[0].error_message == "Client has no phone number"
    history = db.query(Message).filter(Message.client_id == reachable.id).one()
    assert history.external_id == "sms-1"


@pytest.mark.asyncio
async def test_dispatch_records_provider_rejection(db, test_org, make_client, senders):
    client = make_client(phones=["+15555550199"])
    senders.sms.fail_for.add("+15555550199")
    bulk = _sms_campaign(db, test_org.id, content="Reminder")
    bulk_message_service.send_bulk_message(db, test_org.id, bulk.id, [client.id])

    bulk = await bulk_message_service.dispatch_bulk_message(
        db, test_org.id, bulk.id, senders=senders
    )

    assert bulk.failed_count == 1
    [recipient] = _recipients(db, bulk)
    assert recipient.error_message == "Provider rejected recipient"


# =============================================================================
# API
# =============================================================================

@pytest.mark.asyncio
async def test_api_create_send_and_list_recipients(authed_client, make_client):
    c1 = make_client()
    c2 = make_client()

    res = await authed_client.post(
        "/bulk-messages",
        json={"name": "Promo", "channel": "sms", "content": "Book now"},
    )
    assert res.status_code == 201
    bulk_id = res.json()["id"]

    res = await authed_client.post(
        f"/bulk-messages/{bulk_id}/send",
        json={"client_ids": [str(c1.id), str(c2.id)]},
    )
    assert res.status_code == 200
    assert res.json()["status"] == "sending"
    assert res.json()["total_recipients"] == 2

    res = await authed_client.get(f"/bulk-messages/{bulk_id}/recipients", params={"status": "pending"})
    assert len(res.json()) == 2

    res = await authed_client.delete(f"/bulk-messages/{bulk_id}")
    assert res.status_code == 400


@pytest.mark.asyncio
async def test_api_email_without_subject_is_422(authed_client):
    res = await authed_client.post(
        "/bulk-messages",
        json={"name": "News", "channel": "email", "content": "Hello"},
    )
    assert res.status_code == 422


@pytest.mark.asyncio
async def test_api_send_unknown_campaign_is_404(authed_client, make_client):
    res = await authed_client.post(
        f"/bulk-messages/{uuid.uuid4()}/send",
        json={"client_ids": [str(make_client().id)]},
    )
    assert res.status_code == 404


@pytest.mark.asyncio
async def test_worker_dispatches_queued_campaign(db, test_org, make_client, senders, monkeypatch):
    monkeypatch.setattr(bulk_message_service, "default_senders", lambda: senders)
    bulk = _sms_campaign(db, test_org.id)
    bulk_message_service.send_bulk_message(db, test_org.id, bulk.id, [make_client().id])

    assert await worker.run_due_actions(db) == 1

    db.refresh(bulk)
    assert bulk.status == "completed"
    assert bulk.sent_count == 1
    assert db.query(ScheduledAction).one().status == "completed"
