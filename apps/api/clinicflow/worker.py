"""
Background worker for draining scheduled actions.

Usage:
    python -m clinicflow.worker

The worker polls for due scheduled actions (pending, or retrying after a
backoff) and dispatches each to its registered handler. For production, run
this as a separate process or via clinicflow.worker_service.
"""

import asyncio
import logging
import os

from sqlalchemy.orm import Session

from clinicflow.core.config import settings
from clinicflow.core.structured_logging import build_log_context
from clinicflow.db.session import SessionLocal
from clinicflow.jobs.registry import resolve_action_handler
from clinicflow.services import scheduled_action_service

logger = logging.getLogger(__name__)

# Worker configuration
POLL_INTERVAL_SECONDS = settings.WORKER_POLL_INTERVAL
BATCH_SIZE = settings.WORKER_BATCH_SIZE


async def process_action(db: Session, action) -> None:
    """Process a single claimed action based on its type."""
    logger.info(
        "Processing scheduled action %s (action=%s, attempt=%s/%s)",
        action.id,
        action.action,
        action.attempts,
        action.max_attempts,
    )
    handler = resolve_action_handler(action.action)
    await handler(db, action)


async def run_due_actions(db: Session, limit: int = BATCH_SIZE) -> int:
    """
    Claim and run one batch of due actions.

    Returns the number of actions processed. Handler errors are recorded on
    the action (retrying or failed) and do not stop the batch.
    """
    actions = scheduled_action_service.claim_due_actions(db, limit=limit)
    if actions:
        logger.info("Found %s due scheduled actions", len(actions))

    for action in actions:
        try:
            await process_action(db, action)
        except Exception as e:
            db.rollback()
            scheduled_action_service.mark_action_failed(db, action, str(e) or type(e).__name__)
            logger.error(
                "Scheduled action %s failed: %s",
                action.id,
                type(e).__name__,
                extra=build_log_context(
                    org_id=str(action.organization_id), action_id=str(action.id)
                ),
            )
            continue
        scheduled_action_service.mark_action_completed(db, action)
        logger.info("Scheduled action %s completed", action.id)

    return len(actions)


async def worker_loop() -> None:
    """Main worker loop - polls for and processes due scheduled actions."""
    logger.info(
        "Worker starting (poll interval: %ss, batch size: %s)",
        POLL_INTERVAL_SECONDS,
        BATCH_SIZE,
    )
    if not settings.email_configured:
        logger.warning("RESEND_API_KEY not set - emails will be logged but not sent")
    if not settings.sms_configured:
        logger.warning("Twilio credentials not set - SMS will be logged but not sent")

    while True:
        with SessionLocal() as db:
            try:
                await run_due_actions(db)
            except Exception:
                logger.exception("Error in worker loop")
        await asyncio.sleep(POLL_INTERVAL_SECONDS)


def main() -> None:
    """Entry point for the worker."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    try:
        asyncio.run(worker_loop())
    except KeyboardInterrupt:
        logger.info("Worker shutting down")
    except Exception:
        logger.exception(
            "Worker crashed",
            extra=build_log_context(
                request_id=os.getenv("WORKER_INSTANCE_ID"),
                route="worker",
                method="background",
            ),
        )
        raise


if __name__ == "__main__":
    main()
