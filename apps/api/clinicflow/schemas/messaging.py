"""Pydantic schemas for bulk messaging."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from clinicflow.db.enums import BulkMessageStatus, MessageChannel, MessageStatus


class BulkMessageCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    channel: MessageChannel
    subject: str | None = Field(default=None, max_length=255)
    content: str = Field(..., min_length=1)
    scheduled_for: datetime | None = None

    @model_validator(mode="after")
    def email_requires_subject(self):
        if self.channel == MessageChannel.EMAIL and not self.subject:
            raise ValueError("Email bulk messages require a subject")
        return self


class BulkMessageStatusUpdate(BaseModel):
    status: BulkMessageStatus


class BulkSendRequest(BaseModel):
    client_ids: list[UUID]


class RecipientStatusUpdate(BaseModel):
    status: MessageStatus
    external_id: str | None = None
    error_message: str | None = None


class BulkMessageRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    channel: MessageChannel
    subject: str | None
    content: str
    scheduled_for: datetime | None
    status: BulkMessageStatus
    total_recipients: int
    sent_count: int
    failed_count: int
    created_at: datetime
    updated_at: datetime


class RecipientRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    bulk_message_id: UUID
    client_id: UUID
    channel: MessageChannel
    status: MessageStatus
    external_id: str | None
    error_message: str | None
    sent_at: datetime | None
    delivered_at: datetime | None
