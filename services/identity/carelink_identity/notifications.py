"""
Identity service — notification sink.

Routes talk to a ``NotificationSink`` (``send(destination, message)``), never
to a provider.  The default ``ProviderNotifier`` sends to an email address
through SMTP/Brevo and to anything else (an E.164 phone number) through
Twilio.  Tests swap in a recording sink via ``create_app(notifier=...)``.

Delivery runs in FastAPI BackgroundTasks, after the code it carries has been
stored, and never raises.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from carelink_identity.auth.constants import OTPPurpose
from carelink_identity.config import Settings
from carelink_identity.email import send as email
from carelink_identity.sms import twilio

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Message:
    subject: str
    body: str


class NotificationSink(Protocol):
    async def send(self, destination: str, message: Message) -> None: ...


def is_email(destination: str) -> bool:
    return "@" in destination


def otp_message(code: str, purpose: OTPPurpose, ttl_seconds: int) -> Message:
    minutes = max(1, ttl_seconds // 60)
    if purpose == OTPPurpose.PASSWORD_RESET:
        return Message(
            subject="Your CareLink password reset code",
            body=(
                f"Your CareLink password reset code is {code}.\n\n"
                f"It expires in {minutes} minutes. If you did not ask to reset "
                "your password you can ignore this message."
            ),
        )
    return Message(
        subject="Verify your CareLink account",
        body=(
            f"Your CareLink verification code is {code}.\n\n"
            f"It expires in {minutes} minutes. Never share this code with anyone."
        ),
    )


class ProviderNotifier:
    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    async def send(self, destination: str, message: Message) -> None:
        if is_email(destination):
            delivered = await email.deliver(
                destination, message.subject, message.body, self._settings
            )
        else:
            delivered = await twilio.send_sms(destination, message.body, self._settings)
        if not delivered:
            logger.error("Notification %r was not delivered", message.subject)
