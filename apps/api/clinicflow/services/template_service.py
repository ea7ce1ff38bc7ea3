"""Message template rendering for workflow and bulk sends."""

import re

from clinicflow.core.config import settings
from clinicflow.db.models import Appointment, Client

VARIABLE_PATTERN = re.compile(r"\{\{\s*([a-z_]+)\s*\}\}")


def build_variables(client: Client, appointment: Appointment | None = None) -> dict[str, str]:
    """Values available to {{variable}} placeholders."""
    variables = {
        "first_name": client.first_name,
        "last_name": client.last_name,
        "client_name": client.full_name,
        "phone": client.primary_phone or "",
        "email": client.email or "",
        "business_name": settings.BUSINESS_NAME,
        "business_phone": settings.BUSINESS_PHONE,
        "booking_link": settings.BOOKING_LINK,
        "google_review_link": settings.GOOGLE_REVIEW_LINK,
        "appointment_date": "",
        "appointment_time": "",
        "appointment_type": "",
    }
    if appointment is not None:
        variables["appointment_date"] = appointment.scheduled_at.strftime("%B %d, %Y")
        variables["appointment_time"] = appointment.scheduled_at.strftime("%I:%M %p").lstrip("0")
        variables["appointment_type"] = appointment.appointment_type
    return variables


def render(template: str, variables: dict[str, str]) -> str:
    """Replace known {{variables}}; unknown placeholders are left as written."""

    def _replace(match: re.Match) -> str:
        name = match.group(1)
        if name in variables:
            return variables[name]
        return match.group(0)

    return VARIABLE_PATTERN.sub(_replace, template)
