"""SQLAlchemy ORM models for workflow automation."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from clinicflow.db.base import Base
from clinicflow.db.enums import WorkflowExecutionStatus
from clinicflow.db.types import JsonType
from clinicflow.utils.datetime_utils import utcnow


class WorkflowDirectory(Base):
    """
    Folder used to organize workflows.

    Directories form a forest per organization: parent_id NULL means root,
    and a directory can never become its own ancestor.
    """

    __tablename__ = "workflow_directories"
    __table_args__ = (Index("idx_wf_dirs_org_parent", "organization_id", "parent_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    parent_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("workflow_directories.id", ondelete="SET NULL"), nullable=True
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    color: Mapped[str | None] = mapped_column(String(20), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )


class Workflow(Base):
    """
    Automation workflow definition.

    blocks is an ordered list of {id, type, config} steps; connections is a
    list of {from, to, branch} edges. When connections are empty the blocks
    run in list order.
    """

    __tablename__ = "workflows"
    __table_args__ = (
        Index("idx_workflows_org_trigger", "organization_id", "trigger", "is_enabled"),
        Index("idx_workflows_org_directory", "organization_id", "directory_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    directory_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("workflow_directories.id", ondelete="SET NULL"), nullable=True
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    trigger: Mapped[str] = mapped_column(String(50), nullable=False)
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    blocks: Mapped[list] = mapped_column(JsonType, default=list, nullable=False)
    connections: Mapped[list] = mapped_column(JsonType, default=list, nullable=False)

    # Enrollment rules
    prevent_duplicates: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    duplicate_prevention_days: Mapped[int] = mapped_column(Integer, default=30, nullable=False)

    # Run counters
    total_runs: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    successful_runs: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_runs: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_run_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )


class WorkflowExecution(Base):
    """
    A client's enrollment in a workflow.

    completed_at is set exactly when status is terminal. actions_completed
    holds the order of every executed block and is only ever appended to.
    """

    __tablename__ = "workflow_executions"
    __table_args__ = (
        Index("idx_wf_exec_workflow", "workflow_id", "started_at"),
        Index("idx_wf_exec_client", "organization_id", "client_id"),
        Index("idx_wf_exec_org_status", "organization_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    workflow_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("workflows.id", ondelete="CASCADE"), nullable=False
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False
    )

    status: Mapped[str] = mapped_column(
        String(20), default=WorkflowExecutionStatus.RUNNING.value, nullable=False
    )
    actions_completed: Mapped[list] = mapped_column(JsonType, default=list, nullable=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    enrollment_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    context: Mapped[dict] = mapped_column(JsonType, default=dict, nullable=False)
    # Next block to run once a step has committed; None after the last one
    current_block_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    started_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    next_execution_at: Mapped[datetime | None] = mapped_column(nullable=True)


class ExecutionLog(Base):
    """Append-only record of one workflow step attempt."""

    __tablename__ = "execution_logs"
    __table_args__ = (
        Index("idx_exec_logs_execution", "execution_id", "executed_at"),
        Index("idx_exec_logs_workflow", "organization_id", "workflow_id", "executed_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    workflow_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("workflows.id", ondelete="CASCADE"), nullable=False
    )
    execution_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("workflow_executions.id", ondelete="CASCADE"), nullable=True
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False
    )

    step_id: Mapped[str] = mapped_column(String(100), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    details: Mapped[dict] = mapped_column(JsonType, default=dict, nullable=False)
    execution_time_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    executed_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
