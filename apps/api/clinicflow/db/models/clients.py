"""SQLAlchemy ORM models for clients and appointments."""

from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import Date, ForeignKey, Index, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clinicflow.db.base import Base
from clinicflow.db.enums import DEFAULT_APPOINTMENT_STATUS, DEFAULT_PORTAL_STATUS
from clinicflow.db.types import JsonType
from clinicflow.utils.datetime_utils import utcnow


class Client(Base):
    """A patient/client of the clinic."""

    __tablename__ = "clients"
    __table_args__ = (
        Index("idx_clients_org_created", "organization_id", "created_at"),
        Index("idx_clients_org_email", "organization_id", "email"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )

    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    gender: Mapped[str | None] = mapped_column(String(20), nullable=True)
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)
    phones: Mapped[list] = mapped_column(JsonType, default=list, nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    tags: Mapped[list] = mapped_column(JsonType, default=list, nullable=False)
    referral_source: Mapped[str | None] = mapped_column(String(100), nullable=True)
    portal_status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_PORTAL_STATUS.value, nullable=False
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )

    appointments: Mapped[list["Appointment"]] = relationship(
        back_populates="client", cascade="all, delete-orphan", passive_deletes=True
    )

    @property
    def first_name(self) -> str:
        parts = self.full_name.split()
        return parts[0] if parts else ""

    @property
    def last_name(self) -> str:
        parts = self.full_name.split()
        return " ".join(parts[1:]) if len(parts) > 1 else ""

    @property
    def primary_phone(self) -> str | None:
        return self.phones[0] if self.phones else None


class Appointment(Base):
    """A booked treatment or consultation."""

    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointments_org_scheduled", "organization_id", "scheduled_at"),
        Index("idx_appointments_client", "client_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False
    )

    scheduled_at: Mapped[datetime] = mapped_column(nullable=False)
    appointment_type: Mapped[str] = mapped_column(String(100), nullable=False)
    provider: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_APPOINTMENT_STATUS.value, nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    client: Mapped["Client"] = relationship(back_populates="appointments")
