"""Tests for appointments and the workflow triggers they fire."""

from datetime import datetime, timedelta, timezone

import pytest

from clinicflow.db.enums import WorkflowTriggerType
from clinicflow.db.models import WorkflowExecution
from clinicflow.schemas.client import AppointmentCreate
from clinicflow.services import appointment_service
from clinicflow.services.appointment_service import treatment_trigger
from clinicflow.services.errors import InvalidStateError, NotFoundError


def _book(db, org_id, client, appointment_type="Botox - forehead"):
    return appointment_service.create_appointment(
        db,
        org_id,
        AppointmentCreate(
            client_id=client.id,
            scheduled_at=datetime.now(timezone.utc) + timedelta(days=2),
            appointment_type=appointment_type,
        ),
    )


def _enrolled_workflow_ids(db, client):
    return {
        e.workflow_id
        for e in db.query(WorkflowExecution).filter(WorkflowExecution.client_id == client.id).all()
    }


@pytest.mark.parametrize(
    "appointment_type, expected",
    [
        ("Morpheus8 Face", WorkflowTriggerType.MORPHEUS8),
        ("BOTOX touch-up", WorkflowTriggerType.TOXINS),
        ("Dysport", WorkflowTriggerType.TOXINS),
        ("Juvederm lips", WorkflowTriggerType.FILLER),
        ("Dermal filler", WorkflowTriggerType.FILLER),
        ("Initial consultation", WorkflowTriggerType.CONSULTATION),
        ("HydraFacial", None),
        ("", None),
    ],
)
def test_treatment_trigger_keywords(appointment_type, expected):
    assert treatment_trigger(appointment_type) == expected


def test_booking_fires_scheduled_workflows(db, test_org, make_client, make_workflow):
    client = make_client()
    reminder = make_workflow(trigger="appointment_scheduled")

    appointment = _book(db, test_org.id, client)

    assert appointment.status == "scheduled"
    execution = db.query(WorkflowExecution).one()
    assert execution.workflow_id == reminder.id
    assert execution.context == {"appointment_id": str(appointment.id)}


def test_completion_fires_completed_and_treatment_workflows(db, test_org, make_client, make_workflow):
    client = make_client()
    generic = make_workflow(trigger="appointment_completed")
    toxins = make_workflow(trigger="toxins")
    filler = make_workflow(trigger="filler")
    appointment = _book(db, test_org.id, client, appointment_type="Xeomin glabella")

    completed = appointment_service.complete_appointment(db, test_org.id, appointment.id)

    assert completed.status == "completed"
    assert completed.completed_at is not None
    enrolled = _enrolled_workflow_ids(db, client)
    assert generic.id in enrolled
    assert toxins.id in enrolled
    assert filler.id not in enrolled


def test_complete_twice_is_invalid(db, test_org, make_client):
    appointment = _book(db, test_org.id, make_client())
    appointment_service.complete_appointment(db, test_org.id, appointment.id)
    with pytest.raises(InvalidStateError):
        appointment_service.complete_appointment(db, test_org.id, appointment.id)


def test_completed_appointment_cannot_be_cancelled(db, test_org, make_client):
    appointment = _book(db, test_org.id, make_client())
    appointment_service.complete_appointment(db, test_org.id, appointment.id)
    with pytest.raises(InvalidStateError):
        appointment_service.cancel_appointment(db, test_org.id, appointment.id)


def test_booking_for_foreign_client_is_not_found(db, test_org, other_org, make_client):
    with pytest.raises(NotFoundError):
        _book(db, test_org.id, make_client(org=other_org))


@pytest.mark.asyncio
async def test_api_book_and_complete(authed_client, make_client):
    client = make_client()
    res = await authed_client.post(
        "/appointments",
        json={
            "client_id": str(client.id),
            "scheduled_at": "2026-11-02T15:00:00Z",
            "appointment_type": "Consultation",
        },
    )
    assert res.status_code == 201
    appointment_id = res.json()["id"]

    res = await authed_client.post(f"/appointments/{appointment_id}/complete")
    assert res.status_code == 200
    assert res.json()["status"] == "completed"

    res = await authed_client.post(f"/appointments/{appointment_id}/cancel")
    assert res.status_code == 400
