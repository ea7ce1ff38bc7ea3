"""Structured logging helpers (PHI-safe)."""

from typing import Any


def build_log_context(
    *,
    user_id: str | None = None,
    org_id: str | None = None,
    request_id: str | None = None,
    route: str | None = None,
    method: str | None = None,
    workflow_id: str | None = None,
    execution_id: str | None = None,
    action_id: str | None = None,
) -> dict[str, Any]:
    """Return a PHI-safe log context dict."""
    context: dict[str, Any] = {}
    if user_id:
        context["user_id"] = user_id
    if org_id:
        context["org_id"] = org_id
    if request_id:
        context["request_id"] = request_id
    if route:
        context["route"] = route
    if method:
        context["method"] = method
    if workflow_id:
        context["workflow_id"] = workflow_id
    if execution_id:
        context["execution_id"] = execution_id
    if action_id:
        context["action_id"] = action_id
    return context


def mask_email(email: str | None) -> str:
    """Mask an email address for logs (keeps the first characters and domain)."""
    if not email:
        return ""
    local, _, domain = email.partition("@")
    prefix = local[:3] if local else ""
    return f"{prefix}...@{domain}" if domain else f"{prefix}..."


def mask_phone(phone: str | None) -> str:
    """Mask a phone number for logs (last four digits only)."""
    if not phone:
        return ""
    digits = [c for c in phone if c.isdigit()]
    return f"***{''.join(digits[-4:])}"
