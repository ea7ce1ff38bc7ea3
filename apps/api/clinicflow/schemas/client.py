"""Pydantic schemas for clients and appointments."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from clinicflow.db.enums import AppointmentStatus, Gender, PortalStatus


# =============================================================================
# Clients
# =============================================================================

class ClientCreate(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=255)
    gender: Gender | None = None
    date_of_birth: date | None = None
    phones: list[str] = Field(default_factory=list)
    email: str | None = Field(default=None, max_length=255)
    tags: list[str] = Field(default_factory=list)
    referral_source: str | None = None
    portal_status: PortalStatus | None = None
    notes: str | None = None


class ClientUpdate(BaseModel):
    full_name: str | None = Field(default=None, min_length=1, max_length=255)
    gender: Gender | None = None
    date_of_birth: date | None = None
    phones: list[str] | None = None
    email: str | None = Field(default=None, max_length=255)
    referral_source: str | None = None
    portal_status: PortalStatus | None = None
    notes: str | None = None


class ClientRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    full_name: str
    gender: str | None
    date_of_birth: date | None
    phones: list[str]
    email: str | None
    tags: list[str]
    referral_source: str | None
    portal_status: str
    notes: str | None
    created_at: datetime
    updated_at: datetime


class ClientListResponse(BaseModel):
    items: list[ClientRead]
    total: int
    page: int
    per_page: int
    pages: int


class TagRequest(BaseModel):
    tag: str = Field(..., min_length=1, max_length=100)


# =============================================================================
# Appointments
# =============================================================================

class AppointmentCreate(BaseModel):
    client_id: UUID
    scheduled_at: datetime
    appointment_type: str = Field(..., min_length=1, max_length=100)
    provider: str | None = None
    notes: str | None = None


class AppointmentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    client_id: UUID
    scheduled_at: datetime
    appointment_type: str
    provider: str | None
    notes: str | None
    status: AppointmentStatus
    created_at: datetime
    completed_at: datetime | None
