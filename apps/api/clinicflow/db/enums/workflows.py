"""Workflow-related enums."""

from enum import Enum


class WorkflowTriggerType(str, Enum):
    """Events that can trigger a workflow."""

    CLIENT_CREATED = "client_created"
    APPOINTMENT_SCHEDULED = "appointment_scheduled"
    APPOINTMENT_COMPLETED = "appointment_completed"
    MANUAL = "manual"
    # Treatment-specific triggers (fired alongside appointment_completed)
    MORPHEUS8 = "morpheus8"
    TOXINS = "toxins"
    FILLER = "filler"
    CONSULTATION = "consultation"


class WorkflowStepType(str, Enum):
    """Block types a workflow can contain."""

    SEND_SMS = "send_sms"
    SEND_EMAIL = "send_email"
    ADD_TAG = "add_tag"
    REMOVE_TAG = "remove_tag"
    DELAY = "delay"
    IF = "if"


class DelayUnit(str, Enum):
    SECONDS = "seconds"
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"


class WorkflowExecutionStatus(str, Enum):
    """Status of a client's enrollment in a workflow."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ExecutionLogStatus(str, Enum):
    EXECUTED = "executed"
    FAILED = "failed"
    WAITING = "waiting"
    CANCELLED = "cancelled"


TERMINAL_EXECUTION_STATUSES = frozenset(
    {
        WorkflowExecutionStatus.COMPLETED,
        WorkflowExecutionStatus.FAILED,
        WorkflowExecutionStatus.CANCELLED,
    }
)
