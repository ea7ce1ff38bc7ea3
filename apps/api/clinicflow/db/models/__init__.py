"""SQLAlchemy ORM models."""

from clinicflow.db.models.clients import Appointment, Client
from clinicflow.db.models.messaging import BulkMessage, Message, MessageRecipient
from clinicflow.db.models.organizations import Organization
from clinicflow.db.models.scheduling import ScheduledAction, SocialPost
from clinicflow.db.models.workflows import (
    ExecutionLog,
    Workflow,
    WorkflowDirectory,
    WorkflowExecution,
)

__all__ = [
    "Appointment",
    "BulkMessage",
    "Client",
    "ExecutionLog",
    "Message",
    "MessageRecipient",
    "Organization",
    "ScheduledAction",
    "SocialPost",
    "Workflow",
    "WorkflowDirectory",
    "WorkflowExecution",
]
