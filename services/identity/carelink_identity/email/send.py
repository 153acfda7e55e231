"""
Email delivery orchestrator — SMTP (primary) with Brevo (fallback).

``deliver`` never raises: it logs and returns False when every provider
failed, so an email outage never breaks the request that queued it.

Delivery order:
  1. SMTP        — if configured
  2. Brevo REST  — if SMTP fails or is not configured
"""
from __future__ import annotations

import html as _html
import logging

from carelink_identity.config import Settings
from carelink_identity.email import brevo, smtp

logger = logging.getLogger(__name__)


def render_html(text: str) -> str:
    paragraphs = (p.strip() for p in text.split("\n\n"))
    return "".join(
        f"<p>{_html.escape(p).replace(chr(10), '<br/>')}</p>" for p in paragraphs if p
    )


async def deliver(to_email: str, subject: str, text: str, settings: Settings) -> bool:
    """Try SMTP first, fall back to Brevo."""
    html = render_html(text)

    if smtp.is_configured(settings):
        if await smtp.deliver(to_email, subject, text, html, settings):
            return True
        logger.warning("SMTP failed for %s, falling back to Brevo", to_email)

    if brevo.is_configured(settings):
        if await brevo.deliver(to_email, subject, text, html, settings):
            return True
        logger.error("Brevo fallback also failed for %s", to_email)
        return False

    logger.warning("No email provider configured, skipping email to %s", to_email)
    return False
