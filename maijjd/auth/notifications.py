"""
Maijjd - Notification Delivery

Email (SendGrid v3 API) and SMS (Twilio REST API) senders over
httpx.AsyncClient, plus the Notifier used by the authentication service.

When a provider is not configured the message is logged instead of sent
(development mode). Delivery is best-effort: the Notifier logs failures
and never propagates them, because the credential change that triggered
the message has already succeeded.
"""

from datetime import datetime
from typing import Optional

import httpx

from maijjd.config import settings
from maijjd.logging import get_logger


logger = get_logger(__name__)


class DeliveryError(Exception):
    """Raised when a provider rejects a message."""
    pass


def _redact(address: str) -> str:
    if "@" in address:
        local, domain = address.split("@", 1)
        return f"{local[:2]}***@{domain}"
    return f"***{address[-4:]}"


class EmailSender:
    """Transactional email through the SendGrid v3 mail/send endpoint."""

    BASE_URL = "https://api.sendgrid.com/v3"

    def __init__(
        self,
        api_key: str = "",
        from_email: str = "",
        from_name: str = "",
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.from_email = from_email
        self.from_name = from_name
        self._client = client

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.from_email)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.BASE_URL,
                timeout=30.0,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
            )
        return self._client

    async def send(self, to: str, subject: str, text: str, html: Optional[str] = None) -> None:
        if not self.is_configured:
            logger.info("email.dev_mode", to=_redact(to), subject=subject, body_preview=text[:200])
            return

        content = [{"type": "text/plain", "value": text}]
        if html:
            content.append({"type": "text/html", "value": html})
        payload = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": {"email": self.from_email, "name": self.from_name},
            "subject": subject,
            "content": content,
        }

        client = await self._get_client()
        response = await client.post("/mail/send", json=payload)
        if response.status_code >= 400:
            raise DeliveryError(f"SendGrid returned {response.status_code}")

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()


class SmsSender:
    """SMS through the Twilio Messages REST endpoint."""

    BASE_URL = "https://api.twilio.com/2010-04-01"

    def __init__(
        self,
        account_sid: str = "",
        auth_token: str = "",
        from_number: str = "",
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self._client = client

    @property
    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.BASE_URL,
                timeout=30.0,
                auth=(self.account_sid, self.auth_token),
            )
        return self._client

    async def send(self, to: str, body: str) -> None:
        if not self.is_configured:
            logger.info("sms.dev_mode", to=_redact(to), body_preview=body[:160])
            return

        client = await self._get_client()
        response = await client.post(
            f"/Accounts/{self.account_sid}/Messages.json",
            data={"To": to, "From": self.from_number, "Body": body},
        )
        if response.status_code >= 400:
            raise DeliveryError(f"Twilio returned {response.status_code}")

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()


class Notifier:
    """
    Composes verification and password-reset messages and dispatches
    them best-effort. Every public method returns True on delivery and
    False on a logged failure.
    """

    def __init__(self, email: EmailSender, sms: SmsSender):
        self.email = email
        self.sms = sms

    @classmethod
    def from_settings(cls) -> "Notifier":
        return cls(
            email=EmailSender(
                api_key=settings.SENDGRID_API_KEY,
                from_email=settings.MAIL_FROM_EMAIL,
                from_name=settings.MAIL_FROM_NAME,
            ),
            sms=SmsSender(
                account_sid=settings.TWILIO_ACCOUNT_SID,
                auth_token=settings.TWILIO_AUTH_TOKEN,
                from_number=settings.TWILIO_FROM_NUMBER,
            ),
        )

    async def _email(self, to: str, subject: str, text: str, html: Optional[str] = None) -> bool:
        try:
            await self.email.send(to, subject, text, html)
            return True
        except (httpx.HTTPError, DeliveryError) as e:
            logger.warning("notification.failed", channel="email", to=_redact(to), error=str(e))
            return False

    async def _sms(self, to: str, body: str) -> bool:
        try:
            await self.sms.send(to, body)
            return True
        except (httpx.HTTPError, DeliveryError) as e:
            logger.warning("notification.failed", channel="sms", to=_redact(to), error=str(e))
            return False

    async def send_verification_email(self, to: str, name: str, code: str, expires_at: datetime) -> bool:
        text = (
            f"Hi {name},\n\n"
            f"Your Maijjd verification code is {code}.\n\n"
            f"This code will expire in {settings.VERIFICATION_CODE_EXPIRE_MINUTES} minutes. "
            "If you didn't request this verification, please ignore this email."
        )
        html = (
            f"<p>Hi {name},</p>"
            f"<p>Your Maijjd verification code is <strong>{code}</strong>.</p>"
            f"<p>This code will expire in {settings.VERIFICATION_CODE_EXPIRE_MINUTES} minutes.</p>"
        )
        return await self._email(to, "Verify Your Maijjd Account", text, html)

    async def send_verification_sms(self, to: str, code: str) -> bool:
        body = (
            f"Your Maijjd verification code is {code}. "
            f"It expires in {settings.VERIFICATION_CODE_EXPIRE_MINUTES} minutes."
        )
        return await self._sms(to, body)

    async def send_password_reset(
        self,
        reset_url: str,
        *,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> bool:
        """Send the reset link by email when available, otherwise by SMS."""
        minutes = settings.RESET_TOKEN_EXPIRE_MINUTES
        if email:
            text = (
                "We received a request to reset your password.\n\n"
                f"Use this link to set a new password:\n{reset_url}\n\n"
                f"This link expires in {minutes} minutes. "
                "If you didn't request this, you can ignore this email."
            )
            html = (
                "<p>We received a request to reset your password.</p>"
                f'<p><a href="{reset_url}">Click here to reset your password</a></p>'
                f"<p>This link expires in {minutes} minutes.</p>"
            )
            return await self._email(email, "Reset your Maijjd password", text, html)
        if phone:
            return await self._sms(
                phone, f"Maijjd password reset: {reset_url} (expires in {minutes} minutes)"
            )
        return False

    async def close(self) -> None:
        await self.email.close()
        await self.sms.close()
