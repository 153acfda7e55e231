import httpx
import pytest

from carelink_identity.email import brevo, send, smtp
from carelink_identity.notifications import (
    Message,
    OTPPurpose,
    ProviderNotifier,
    otp_message,
)
from carelink_identity.sms import twilio


def test_otp_messages_carry_code_and_lifetime() -> None:
    verify = otp_message("042917", OTPPurpose.EMAIL_VERIFICATION, 600)
    assert "042917" in verify.body
    assert "10 minutes" in verify.body
    reset = otp_message("042917", OTPPurpose.PASSWORD_RESET, 600)
    assert "reset" in reset.subject.lower()


def test_render_html_escapes() -> None:
    html = send.render_html("Hello <b>you</b>\n\nSecond")
    assert html == "<p>Hello &lt;b&gt;you&lt;/b&gt;</p><p>Second</p>"


def test_smtp_message_has_text_and_html(settings_factory) -> None:
    s = settings_factory(smtp_from_email="care@example.com", smtp_from_name="CareLink")
    msg = smtp.build_message("to@example.com", "Subject", "plain", "<p>plain</p>", s)
    assert msg["To"] == "to@example.com"
    assert msg["From"] == "CareLink <care@example.com>"
    types = [part.get_content_type() for part in msg.iter_parts()]
    assert types == ["text/plain", "text/html"]


@pytest.mark.asyncio
async def test_brevo_posts_payload(settings_factory) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"messageId": "x"})

    s = settings_factory(brevo_api_key="key-123")
    ok = await brevo.deliver(
        "to@example.com", "Subj", "text", "<p>text</p>", s, transport=httpx.MockTransport(handler)
    )
    assert ok is True
    assert seen[0].headers["api-key"] == "key-123"
    assert b"to@example.com" in seen[0].content


@pytest.mark.asyncio
async def test_brevo_failure_returns_false(settings_factory) -> None:
    s = settings_factory(brevo_api_key="key-123")
    transport = httpx.MockTransport(lambda request: httpx.Response(500, text="nope"))
    assert await brevo.deliver("to@example.com", "S", "t", "<p>t</p>", s, transport=transport) is False


@pytest.mark.asyncio
async def test_brevo_network_error_returns_false(settings_factory) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("down", request=request)

    s = settings_factory(brevo_api_key="key-123")
    transport = httpx.MockTransport(handler)
    assert await brevo.deliver("to@example.com", "S", "t", "<p>t</p>", s, transport=transport) is False


@pytest.mark.asyncio
async def test_twilio_sends_message(settings_factory) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"sid": "SM1"})

    s = settings_factory(
        twilio_account_sid="AC123", twilio_auth_token="tok", twilio_from_number="+15550001111"
    )
    ok = await twilio.send_sms(
        "+15550002222", "Your code is 123456", s, transport=httpx.MockTransport(handler)
    )
    assert ok is True
    assert seen[0].url.path == "/2010-04-01/Accounts/AC123/Messages.json"
    assert b"To=%2B15550002222" in seen[0].content


@pytest.mark.asyncio
async def test_unconfigured_providers_do_not_raise(settings) -> None:
    assert await send.deliver("to@example.com", "S", "t", settings) is False
    assert await twilio.send_sms("+15550002222", "t", settings) is False


@pytest.mark.asyncio
async def test_provider_notifier_routes_by_destination(settings, monkeypatch) -> None:
    calls: list[tuple[str, str]] = []

    async def fake_email(to_email, subject, text, s):
        calls.append(("email", to_email))
        return True

    async def fake_sms(phone, body, s):
        calls.append(("sms", phone))
        return True

    monkeypatch.setattr(send, "deliver", fake_email)
    monkeypatch.setattr(twilio, "send_sms", fake_sms)

    notifier = ProviderNotifier(settings)
    message = Message(subject="S", body="B")
    await notifier.send("someone@example.com", message)
    await notifier.send("+15550002222", message)
    assert calls == [("email", "someone@example.com"), ("sms", "+15550002222")]


@pytest.mark.asyncio
async def test_smtp_failure_falls_back_to_brevo(settings_factory, monkeypatch) -> None:
    s = settings_factory(
        smtp_host="smtp.test", smtp_username="u", smtp_from_email="care@example.com",
        brevo_api_key="key",
    )
    order: list[str] = []

    async def smtp_down(*args):
        order.append("smtp")
        return False

    async def brevo_up(*args):
        order.append("brevo")
        return True

    monkeypatch.setattr(smtp, "deliver", smtp_down)
    monkeypatch.setattr(brevo, "deliver", brevo_up)
    assert await send.deliver("to@example.com", "S", "t", s) is True
    assert order == ["smtp", "brevo"]
