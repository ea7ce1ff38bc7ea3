"""Messaging enums (individual sends and bulk campaigns)."""

from enum import Enum


class MessageChannel(str, Enum):
    EMAIL = "email"
    SMS = "sms"


class MessageStatus(str, Enum):
    """Delivery state of an individual message or bulk recipient."""

    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"


class BulkMessageStatus(str, Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    SENDING = "sending"
    COMPLETED = "completed"
    FAILED = "failed"


# Recipient states counted toward sent_count
SENT_RECIPIENT_STATUSES = frozenset({MessageStatus.SENT, MessageStatus.DELIVERED})
