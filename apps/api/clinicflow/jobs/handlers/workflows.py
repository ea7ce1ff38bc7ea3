"""Workflow scheduled-action handlers."""

from __future__ import annotations

import logging
from uuid import UUID

from clinicflow.services import workflow_engine

logger = logging.getLogger(__name__)


async def process_continue_workflow(db, action) -> None:
    """
    Run (or resume) a workflow execution.

    Args:
        - execution_id: execution to advance
        - block_id: present when resuming after a delay; the block to start at
          (None when the delay was the last block)
    """
    execution_id = action.args.get("execution_id")
    if not execution_id:
        raise ValueError("Missing execution_id in continue_workflow args")

    resuming = "block_id" in action.args
    execution = await workflow_engine.run_execution(
        db,
        org_id=action.organization_id,
        execution_id=UUID(execution_id),
        start_block_id=action.args.get("block_id"),
        resuming=resuming,
    )
    logger.info("Execution %s advanced to status=%s", execution.id, execution.status)
