"""Pydantic schemas for workflows, directories, executions and logs."""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from clinicflow.db.enums import (
    ExecutionLogStatus,
    WorkflowExecutionStatus,
    WorkflowStepType,
    WorkflowTriggerType,
)


# =============================================================================
# Blocks & Connections
# =============================================================================

class WorkflowBlock(BaseModel):
    """One step in a workflow. config keys depend on the step type."""
    id: str = Field(..., min_length=1, max_length=100)
    type: WorkflowStepType
    config: dict[str, Any] = Field(default_factory=dict)


class WorkflowConnection(BaseModel):
    """Edge between two blocks. branch is set on edges leaving an "if" block."""
    model_config = ConfigDict(populate_by_name=True)

    from_: str = Field(..., alias="from")
    to: str
    branch: Literal["true", "false"] | None = None


# =============================================================================
# Workflows
# =============================================================================

class WorkflowCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = None
    trigger: WorkflowTriggerType
    is_enabled: bool = True
    blocks: list[WorkflowBlock] = Field(default_factory=list)
    connections: list[WorkflowConnection] = Field(default_factory=list)
    directory_id: UUID | None = None
    prevent_duplicates: bool = True
    duplicate_prevention_days: int = Field(default=30, ge=0, le=3650)


class WorkflowUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    trigger: WorkflowTriggerType | None = None
    is_enabled: bool | None = None
    blocks: list[WorkflowBlock] | None = None
    connections: list[WorkflowConnection] | None = None
    prevent_duplicates: bool | None = None
    duplicate_prevention_days: int | None = Field(default=None, ge=0, le=3650)


class WorkflowRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None
    trigger: str
    is_enabled: bool
    blocks: list[dict[str, Any]]
    connections: list[dict[str, Any]]
    directory_id: UUID | None
    prevent_duplicates: bool
    duplicate_prevention_days: int
    total_runs: int
    successful_runs: int
    failed_runs: int
    last_run_at: datetime | None
    created_at: datetime
    updated_at: datetime


class WorkflowStats(BaseModel):
    total_enrollments: int
    active_enrollments: int
    completed_enrollments: int
    failed_enrollments: int
    cancelled_enrollments: int
    success_rate: float
    avg_execution_time_ms: float | None


class WorkflowMoveRequest(BaseModel):
    directory_id: UUID | None = None


class EnrollRequest(BaseModel):
    client_id: UUID
    reason: str | None = None


class WorkflowTestRequest(BaseModel):
    client_id: UUID


class WorkflowTestStep(BaseModel):
    block_id: str
    type: str
    outcome: str
    detail: str | None = None


class WorkflowTestResponse(BaseModel):
    steps: list[WorkflowTestStep]


# =============================================================================
# Directories
# =============================================================================

class DirectoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    parent_id: UUID | None = None
    color: str | None = Field(default=None, max_length=20)
    description: str | None = None


class DirectoryUpdate(BaseModel):
    """parent_id is only applied when present in the payload (null = root)."""
    name: str | None = Field(default=None, min_length=1, max_length=100)
    parent_id: UUID | None = None
    color: str | None = Field(default=None, max_length=20)
    description: str | None = None


class DirectoryMoveRequest(BaseModel):
    parent_id: UUID | None = None


class DirectoryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None
    color: str | None
    parent_id: UUID | None
    created_at: datetime


class DirectoryNode(BaseModel):
    id: UUID
    name: str
    description: str | None
    color: str | None
    parent_id: UUID | None
    workflow_count: int
    created_at: datetime
    children: list["DirectoryNode"] = Field(default_factory=list)


# =============================================================================
# Executions & Logs
# =============================================================================

class ExecutionCreate(BaseModel):
    workflow_id: UUID
    client_id: UUID
    status: WorkflowExecutionStatus = WorkflowExecutionStatus.RUNNING
    actions_completed: list[int] = Field(default_factory=list)
    error: str | None = None


class ExecutionStatusUpdate(BaseModel):
    status: WorkflowExecutionStatus
    actions_completed: list[int] | None = None
    error: str | None = None


class CompletedActionRequest(BaseModel):
    action_order: int = Field(..., ge=0)


class ExecutionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    workflow_id: UUID
    client_id: UUID
    status: WorkflowExecutionStatus
    actions_completed: list[int]
    error: str | None
    enrollment_reason: str | None
    started_at: datetime
    completed_at: datetime | None
    next_execution_at: datetime | None


class ExecutionListResponse(BaseModel):
    items: list[ExecutionRead]
    total: int
    page: int
    per_page: int
    pages: int


class ExecutionLogRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    workflow_id: UUID
    execution_id: UUID | None
    client_id: UUID
    step_id: str
    action: str
    status: ExecutionLogStatus
    message: str | None
    error: str | None
    details: dict[str, Any]
    execution_time_ms: int | None
    executed_at: datetime
