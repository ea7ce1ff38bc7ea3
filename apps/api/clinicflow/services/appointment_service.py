"""Appointment service - bookings and the workflow triggers they fire."""

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from clinicflow.db.enums import AppointmentStatus, WorkflowTriggerType
from clinicflow.db.models import Appointment
from clinicflow.schemas.client import AppointmentCreate
from clinicflow.services import client_service, execution_service
from clinicflow.services.errors import InvalidStateError, NotFoundError
from clinicflow.utils.datetime_utils import ensure_aware, utcnow

logger = logging.getLogger(__name__)

# Keyword -> treatment trigger, checked in order against the lowercased type
TREATMENT_KEYWORDS: list[tuple[tuple[str, ...], WorkflowTriggerType]] = [
    (("morpheus",), WorkflowTriggerType.MORPHEUS8),
    (("botox", "toxin", "neurotoxin", "dysport", "xeomin"), WorkflowTriggerType.TOXINS),
    (("filler", "dermal", "juvederm", "restylane"), WorkflowTriggerType.FILLER),
    (("consult",), WorkflowTriggerType.CONSULTATION),
]


def treatment_trigger(appointment_type: str) -> WorkflowTriggerType | None:
    """Map a free-text appointment type to its treatment trigger, if any."""
    lowered = (appointment_type or "").lower()
    for keywords, trigger in TREATMENT_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return trigger
    return None


def get_appointment(db: Session, org_id: UUID, appointment_id: UUID) -> Appointment | None:
    return (
        db.query(Appointment)
        .filter(Appointment.id == appointment_id, Appointment.organization_id == org_id)
        .first()
    )


def list_appointments(
    db: Session,
    org_id: UUID,
    client_id: UUID | None = None,
    status: AppointmentStatus | None = None,
    limit: int = 100,
) -> list[Appointment]:
    query = db.query(Appointment).filter(Appointment.organization_id == org_id)
    if client_id:
        query = query.filter(Appointment.client_id == client_id)
    if status:
        query = query.filter(Appointment.status == status.value)
    return query.order_by(Appointment.scheduled_at.desc()).limit(limit).all()


def create_appointment(db: Session, org_id: UUID, data: AppointmentCreate) -> Appointment:
    """Book an appointment and fire appointment_scheduled workflows."""
    client = client_service.require_client(db, org_id, data.client_id)
    appointment = Appointment(
        organization_id=org_id,
        client_id=client.id,
        scheduled_at=ensure_aware(data.scheduled_at),
        appointment_type=data.appointment_type.strip(),
        provider=data.provider,
        notes=data.notes,
        status=AppointmentStatus.SCHEDULED.value,
    )
    db.add(appointment)
    db.commit()
    db.refresh(appointment)

    execution_service.trigger_workflows(
        db,
        org_id=org_id,
        trigger=WorkflowTriggerType.APPOINTMENT_SCHEDULED,
        client=client,
        reason=f"Appointment scheduled: {appointment.appointment_type}",
        context={"appointment_id": str(appointment.id)},
    )
    return appointment


def complete_appointment(db: Session, org_id: UUID, appointment_id: UUID) -> Appointment:
    """
    Mark an appointment completed.

    Fires appointment_completed workflows plus the treatment-specific
    trigger derived from the appointment type.
    """
    appointment = get_appointment(db, org_id, appointment_id)
    if not appointment:
        raise NotFoundError("Appointment", appointment_id)
    if appointment.status != AppointmentStatus.SCHEDULED.value:
        raise InvalidStateError(f"Cannot complete a {appointment.status} appointment")

    appointment.status = AppointmentStatus.COMPLETED.value
    appointment.completed_at = utcnow()
    db.commit()
    db.refresh(appointment)

    treatment = treatment_trigger(appointment.appointment_type)
    execution_service.trigger_workflows(
        db,
        org_id=org_id,
        trigger=WorkflowTriggerType.APPOINTMENT_COMPLETED,
        client=appointment.client,
        reason=f"Appointment completed: {appointment.appointment_type}",
        context={"appointment_id": str(appointment.id)},
        extra_triggers=[treatment] if treatment else None,
    )
    return appointment


def cancel_appointment(db: Session, org_id: UUID, appointment_id: UUID) -> Appointment:
    appointment = get_appointment(db, org_id, appointment_id)
    if not appointment:
        raise NotFoundError("Appointment", appointment_id)
    if appointment.status == AppointmentStatus.COMPLETED.value:
        raise InvalidStateError("Cannot cancel a completed appointment")
    appointment.status = AppointmentStatus.CANCELLED.value
    db.commit()
    db.refresh(appointment)
    return appointment
