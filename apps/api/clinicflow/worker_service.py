"""HTTP entrypoint that runs the scheduled-action worker next to a health probe.

Container platforms that only start processes listening on a port run this
instead of `python -m clinicflow.worker`.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os

from fastapi import FastAPI

from clinicflow.worker import BATCH_SIZE, POLL_INTERVAL_SECONDS, worker_loop

logger = logging.getLogger(__name__)

app = FastAPI(title="Clinicflow Worker")
_worker_task: asyncio.Task | None = None


def worker_running() -> bool:
    return _worker_task is not None and not _worker_task.done()


@app.get("/health")
def health() -> dict:
    """Report whether the polling loop is alive (degraded once it has exited)."""
    return {
        "status": "ok" if worker_running() else "degraded",
        "worker_running": worker_running(),
        "poll_interval_seconds": POLL_INTERVAL_SECONDS,
        "batch_size": BATCH_SIZE,
    }


@app.on_event("startup")
async def _start_worker() -> None:
    global _worker_task
    _worker_task = asyncio.create_task(worker_loop())
    logger.info("Worker task started")


@app.on_event("shutdown")
async def _stop_worker() -> None:
    if _worker_task:
        _worker_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await _worker_task
        logger.info("Worker task stopped")


def main() -> None:
    import uvicorn

    port = int(os.getenv("PORT", "8080"))
    host = os.getenv("HOST", "0.0.0.0")
    uvicorn.run("clinicflow.worker_service:app", host=host, port=port)


if __name__ == "__main__":
    main()
