"""
Notification transports, one per channel.

email: template render + SMTP. whatsapp: Twilio WhatsApp API.
Both simulate (log only) outside production so local runs never hit a provider.
"""

from __future__ import annotations

import asyncio
import logging
import re
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Any, Callable, Optional, Protocol

from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client

from app.core.config import Settings
from app.models.notification import (
    EmailPayload,
    NotificationChannel,
    WhatsAppPayload,
)
from app.services.email_templates import TemplateError, render_email_template
from app.utils.pii import log_recipient

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D")


class DeliveryError(RuntimeError):
    """A send attempt failed. The queue retries it."""


class PermanentDeliveryError(DeliveryError):
    """A send attempt failed in a way another attempt cannot fix."""


class NotificationTransport(Protocol):
    async def send(self, payload: Any) -> None: ...


@dataclass(frozen=True)
class SmtpConfig:
    host: str
    port: int
    user: Optional[str]
    password: Optional[str]
    use_tls: bool
    from_email: str


def send_email_via_smtp(
    *,
    smtp: SmtpConfig,
    to_email: str,
    subject: str,
    body_text: str,
    body_html: Optional[str] = None,
) -> None:
    msg = EmailMessage()
    msg["From"] = smtp.from_email
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body_text)
    if body_html:
        msg.add_alternative(body_html, subtype="html")

    context = ssl.create_default_context()

    # Port 465 uses implicit SSL (SMTP_SSL), port 587 uses STARTTLS
    if smtp.port == 465:
        server = smtplib.SMTP_SSL(smtp.host, smtp.port, timeout=20, context=context)
    else:
        server = smtplib.SMTP(smtp.host, smtp.port, timeout=20)
        if smtp.use_tls:
            server.starttls(context=context)
    try:
        if smtp.user and smtp.password:
            server.login(smtp.user, smtp.password)
        server.send_message(msg)
    finally:
        try:
            server.quit()
        except (smtplib.SMTPException, OSError):
            logger.debug("SMTP quit failed", exc_info=True)


class EmailTransport:
    def __init__(self, smtp: Optional[SmtpConfig], *, simulate: bool = False) -> None:
        self._smtp = smtp
        self._simulate = simulate

    async def send(self, payload: EmailPayload) -> None:
        try:
            rendered = render_email_template(payload.template, payload.data)
        except TemplateError as exc:
            raise PermanentDeliveryError(str(exc)) from exc

        subject = payload.subject or rendered.subject
        log_to = log_recipient(payload.to, channel="email")

        if self._smtp is None:
            if not self._simulate:
                raise DeliveryError("SMTP_NOT_CONFIGURED")
            logger.info("Email simulated: to=%s template=%s subject=%s", log_to, payload.template, subject)
            return

        try:
            await asyncio.to_thread(
                send_email_via_smtp,
                smtp=self._smtp,
                to_email=payload.to,
                subject=subject,
                body_text=rendered.text,
                body_html=rendered.html,
            )
        except smtplib.SMTPRecipientsRefused as exc:
            raise PermanentDeliveryError(f"Recipient refused: {log_to}") from exc
        except (smtplib.SMTPException, OSError) as exc:
            raise DeliveryError(f"SMTP error: {exc}") from exc
        logger.info("Email sent: to=%s template=%s", log_to, payload.template)


def normalize_whatsapp_number(raw: str, *, default_country_code: str = "91") -> str:
    """Return ``+<digits>`` or raise PermanentDeliveryError.

    Bare 10-digit numbers are treated as local and get the default country code.
    """
    value = (raw or "").strip()
    if value.startswith("whatsapp:"):
        value = value[len("whatsapp:"):]
    digits = _NON_DIGITS.sub("", value)
    if value.startswith("00"):
        digits = digits[2:]
    elif len(digits) == 11 and digits.startswith("0"):
        digits = digits[1:]
    if len(digits) == 10 and not value.startswith("+"):
        digits = f"{default_country_code}{digits}"
    if not 10 <= len(digits) <= 15 or digits.startswith("0"):
        raise PermanentDeliveryError("WHATSAPP_INVALID_NUMBER")
    return f"+{digits}"


class WhatsAppTransport:
    def __init__(
        self,
        *,
        account_sid: str = "",
        auth_token: str = "",
        from_number: str = "",
        enabled: bool = False,
        default_country_code: str = "91",
        client_factory: Callable[[str, str], Any] = Client,
    ) -> None:
        self._account_sid = account_sid
        self._auth_token = auth_token
        self._from_number = from_number
        self._enabled = enabled
        self._default_country_code = default_country_code
        self._client_factory = client_factory

    async def send(self, payload: WhatsAppPayload) -> None:
        to_phone = normalize_whatsapp_number(payload.to, default_country_code=self._default_country_code)
        message = (payload.message or "").strip()
        if not message:
            raise PermanentDeliveryError("WHATSAPP_MISSING_FIELDS")
        log_to = log_recipient(to_phone, channel="whatsapp")

        if not self._enabled:
            logger.info("WhatsApp simulated: to=%s type=%s chars=%s", log_to, payload.type, len(message))
            return

        if not self._from_number:
            raise DeliveryError("WHATSAPP_FROM_NUMBER_NOT_CONFIGURED")

        try:
            sid = await asyncio.to_thread(self._send_via_twilio, to_phone, message)
        except TwilioRestException as exc:
            if exc.status == 400:
                raise PermanentDeliveryError(f"Twilio rejected message: {exc.msg}") from exc
            raise DeliveryError(f"Twilio error {exc.status}: {exc.msg}") from exc
        logger.info("WhatsApp sent: to=%s sid=%s", log_to, sid)

    def _send_via_twilio(self, to_phone: str, message: str) -> str:
        from_number = self._from_number
        # Ensure whatsapp: prefix on both numbers
        if not from_number.startswith("whatsapp:"):
            from_number = f"whatsapp:{from_number}"
        client = self._client_factory(self._account_sid, self._auth_token)
        created = client.messages.create(to=f"whatsapp:{to_phone}", from_=from_number, body=message)
        return created.sid


def build_transports(settings: Settings) -> dict[NotificationChannel, NotificationTransport]:
    smtp = None
    if settings.smtp_configured:
        smtp = SmtpConfig(
            host=settings.smtp_host,
            port=settings.smtp_port,
            user=settings.smtp_user or None,
            password=settings.smtp_password or None,
            use_tls=settings.smtp_use_tls,
            from_email=settings.smtp_from_email,
        )
    return {
        NotificationChannel.EMAIL: EmailTransport(smtp, simulate=not settings.is_production),
        NotificationChannel.WHATSAPP: WhatsAppTransport(
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token,
            from_number=settings.twilio_whatsapp_from_number,
            enabled=settings.enable_whatsapp and settings.is_production,
            default_country_code=settings.whatsapp_default_country_code,
        ),
    }

