"""Enum definitions for application constants."""

from clinicflow.db.enums.auth import ROLES_CAN_MANAGE_AUTOMATION, Role
from clinicflow.db.enums.clients import (
    AppointmentStatus,
    DEFAULT_APPOINTMENT_STATUS,
    DEFAULT_PORTAL_STATUS,
    Gender,
    PortalStatus,
)
from clinicflow.db.enums.messaging import (
    BulkMessageStatus,
    MessageChannel,
    MessageStatus,
    SENT_RECIPIENT_STATUSES,
)
from clinicflow.db.enums.scheduling import (
    DEFAULT_SCHEDULED_ACTION_STATUS,
    DUE_ACTION_STATUSES,
    ScheduledActionStatus,
    ScheduledActionType,
    SocialPlatform,
    SocialPostStatus,
)
from clinicflow.db.enums.workflows import (
    DelayUnit,
    ExecutionLogStatus,
    TERMINAL_EXECUTION_STATUSES,
    WorkflowExecutionStatus,
    WorkflowStepType,
    WorkflowTriggerType,
)

__all__ = [
    "AppointmentStatus",
    "BulkMessageStatus",
    "DEFAULT_APPOINTMENT_STATUS",
    "DEFAULT_PORTAL_STATUS",
    "DEFAULT_SCHEDULED_ACTION_STATUS",
    "DUE_ACTION_STATUSES",
    "DelayUnit",
    "ExecutionLogStatus",
    "Gender",
    "MessageChannel",
    "MessageStatus",
    "PortalStatus",
    "ROLES_CAN_MANAGE_AUTOMATION",
    "Role",
    "SENT_RECIPIENT_STATUSES",
    "ScheduledActionStatus",
    "ScheduledActionType",
    "SocialPlatform",
    "SocialPostStatus",
    "TERMINAL_EXECUTION_STATUSES",
    "WorkflowExecutionStatus",
    "WorkflowStepType",
    "WorkflowTriggerType",
]
