"""Scheduled action handler registry."""

from __future__ import annotations

from typing import Awaitable, Callable, Mapping

from clinicflow.db.enums import ScheduledActionType
from clinicflow.jobs.handlers import messaging, social, workflows

ActionHandler = Callable[[object, object], Awaitable[None]]

ACTION_HANDLERS: Mapping[str, ActionHandler] = {
    ScheduledActionType.CONTINUE_WORKFLOW.value: workflows.process_continue_workflow,
    ScheduledActionType.PUBLISH_SOCIAL_POST.value: social.process_publish_social_post,
    ScheduledActionType.DISPATCH_BULK_MESSAGE.value: messaging.process_dispatch_bulk_message,
}


def resolve_action_handler(action: str) -> ActionHandler:
    handler = ACTION_HANDLERS.get(action)
    if not handler:
        raise ValueError(f"Unknown scheduled action: {action}")
    return handler
