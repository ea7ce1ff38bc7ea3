"""Outbound email/SMS senders + selection helpers.

Email goes through the Resend HTTP API and SMS through the Twilio REST API.
When a provider is not configured the dry-run sender logs instead of sending.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Protocol

import httpx

from clinicflow.core.config import settings
from clinicflow.core.structured_logging import mask_email, mask_phone
from clinicflow.services.http_service import DEFAULT_RETRY_STATUSES, request_with_retries

logger = logging.getLogger(__name__)

RESEND_SEND_URL = "https://api.resend.com/emails"
TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{account_sid}/Messages.json"
PROVIDER_MAX_ATTEMPTS = 3
PROVIDER_RETRY_BASE_DELAY = 0.5
PROVIDER_RETRY_MAX_DELAY = 4.0
PROVIDER_TIMEOUT_SECONDS = 20.0


@dataclass(frozen=True)
class SendResult:
    success: bool
    external_id: str | None = None
    error: str | None = None


class MessageSender(Protocol):
    key: str

    async def send(self, to: str, body: str, subject: str | None = None) -> SendResult:
        """Send a single message to one recipient."""


def _provider_error(provider: str, response: httpx.Response) -> str:
    detail = None
    try:
        data = response.json()
        if isinstance(data, dict):
            detail = data.get("message") or data.get("error")
    except ValueError:
        detail = None
    error_msg = f"{provider} API error: {response.status_code}"
    if detail:
        error_msg = f"{error_msg} ({detail})"
    return error_msg


class ResendEmailSender:
    key = "resend"

    def __init__(self, api_key: str, from_email: str):
        self.api_key = api_key
        self.from_email = from_email

    async def send(self, to: str, body: str, subject: str | None = None) -> SendResult:
        payload = {
            "from": self.from_email,
            "to": [to],
            "subject": subject or "",
            "html": body,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=PROVIDER_TIMEOUT_SECONDS) as client:

                async def request_fn() -> httpx.Response:
                    return await client.post(RESEND_SEND_URL, headers=headers, json=payload)

                response = await request_with_retries(
                    request_fn,
                    max_attempts=PROVIDER_MAX_ATTEMPTS,
                    base_delay=PROVIDER_RETRY_BASE_DELAY,
                    max_delay=PROVIDER_RETRY_MAX_DELAY,
                    retry_statuses=DEFAULT_RETRY_STATUSES,
                )
        except httpx.TimeoutException:
            return SendResult(success=False, error="Connection timeout")
        except httpx.HTTPError as e:
            logger.warning("Resend connection error: %s", e.__class__.__name__)
            return SendResult(success=False, error=f"Connection error: {e.__class__.__name__}")

        if 200 <= response.status_code < 300:
            message_id = response.json().get("id")
            logger.info("Email sent to %s message_id=%s", mask_email(to), message_id)
            return SendResult(success=True, external_id=message_id)

        return SendResult(success=False, error=_provider_error("Resend", response))


class TwilioSmsSender:
    key = "twilio"

    def __init__(self, account_sid: str, auth_token: str, from_number: str):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number

    async def send(self, to: str, body: str, subject: str | None = None) -> SendResult:
        url = TWILIO_MESSAGES_URL.format(account_sid=self.account_sid)
        data = {"To": to, "From": self.from_number, "Body": body}
        try:
            async with httpx.AsyncClient(timeout=PROVIDER_TIMEOUT_SECONDS) as client:

                async def request_fn() -> httpx.Response:
                    return await client.post(
                        url, auth=(self.account_sid, self.auth_token), data=data
                    )

                response = await request_with_retries(
                    request_fn,
                    max_attempts=PROVIDER_MAX_ATTEMPTS,
                    base_delay=PROVIDER_RETRY_BASE_DELAY,
                    max_delay=PROVIDER_RETRY_MAX_DELAY,
                )
        except httpx.TimeoutException:
            return SendResult(success=False, error="Connection timeout")
        except httpx.HTTPError as e:
            logger.warning("Twilio connection error: %s", e.__class__.__name__)
            return SendResult(success=False, error=f"Connection error: {e.__class__.__name__}")

        if 200 <= response.status_code < 300:
            sid = response.json().get("sid")
            logger.info("SMS sent to %s sid=%s", mask_phone(to), sid)
            return SendResult(success=True, external_id=sid)

        return SendResult(success=False, error=_provider_error("Twilio", response))


class DryRunSender:
    """Logs messages instead of sending them (provider not configured)."""

    key = "dry_run"

    def __init__(self, channel: str):
        self.channel = channel

    async def send(self, to: str, body: str, subject: str | None = None) -> SendResult:
        masked = mask_email(to) if self.channel == "email" else mask_phone(to)
        logger.info("[DRY RUN] %s send skipped for %s", self.channel, masked)
        return SendResult(success=True, external_id=f"dry-run-{uuid.uuid4().hex[:12]}")


def get_email_sender() -> MessageSender:
    if settings.email_configured:
        return ResendEmailSender(settings.RESEND_API_KEY, settings.EMAIL_FROM)
    return DryRunSender("email")


def get_sms_sender() -> MessageSender:
    if settings.sms_configured:
        return TwilioSmsSender(
            settings.TWILIO_ACCOUNT_SID,
            settings.TWILIO_AUTH_TOKEN,
            settings.TWILIO_FROM_NUMBER,
        )
    return DryRunSender("sms")


@dataclass
class Senders:
    """Channel -> sender bundle passed through the engine and dispatchers."""

    email: MessageSender
    sms: MessageSender

    def for_channel(self, channel: str) -> MessageSender:
        return self.sms if channel == "sms" else self.email


def default_senders() -> Senders:
    return Senders(email=get_email_sender(), sms=get_sms_sender())
