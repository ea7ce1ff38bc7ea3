"""Bulk messaging scheduled-action handlers."""

from __future__ import annotations

from uuid import UUID

from clinicflow.services import bulk_message_service


async def process_dispatch_bulk_message(db, action) -> None:
    bulk_message_id = action.args.get("bulk_message_id")
    if not bulk_message_id:
        raise ValueError("Missing bulk_message_id in dispatch_bulk_message args")
    await bulk_message_service.dispatch_bulk_message(
        db, action.organization_id, UUID(bulk_message_id)
    )
