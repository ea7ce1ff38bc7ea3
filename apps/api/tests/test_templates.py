"""Tests for message template rendering."""

from datetime import datetime, timezone

from clinicflow.db.models import Appointment, Client
from clinicflow.services import template_service


def _client(**overrides):
    values = {"full_name": "Maya Rose Chen", "phones": ["+15555550123"], "email": "maya@example.com"}
    values.update(overrides)
    return Client(**values)


def test_client_variables():
    variables = template_service.build_variables(_client())
    assert variables["first_name"] == "Maya"
    assert variables["last_name"] == "Rose Chen"
    assert variables["client_name"] == "Maya Rose Chen"
    assert variables["phone"] == "+15555550123"
    assert variables["appointment_date"] == ""


def test_missing_contact_details_render_empty():
    variables = template_service.build_variables(_client(phones=[], email=None))
    assert variables["phone"] == ""
    assert variables["email"] == ""


def test_appointment_variables():
    appointment = Appointment(
        scheduled_at=datetime(2026, 7, 4, 9, 5, tzinfo=timezone.utc),
        appointment_type="Morpheus8",
    )
    variables = template_service.build_variables(_client(), appointment)
    assert variables["appointment_date"] == "July 04, 2026"
    assert variables["appointment_time"] == "9:05 AM"
    assert variables["appointment_type"] == "Morpheus8"


def test_render_replaces_known_and_keeps_unknown():
    rendered = template_service.render(
        "Hi {{ first_name }}, use code {{promo_code}}", {"first_name": "Maya"}
    )
    assert rendered == "Hi Maya, use code {{promo_code}}"


def test_render_repeated_placeholder():
    assert template_service.render("{{x_y}}-{{x_y}}", {"x_y": "1"}) == "1-1"
