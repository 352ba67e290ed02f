"""
notify/email.py -- SMTP email sender.

Renders a subject and an HTML body per template with Jinja2 and delivers it
over SMTP (STARTTLS + login). smtplib is blocking, so delivery runs in a
worker thread via asyncio.to_thread.

Bodies are rendered with HTML autoescaping: values from the template data
(including user-supplied meta) cannot inject markup. Subjects are plain
text and rendered without escaping.

Usage:
    sender = EmailSender(
        smtp_host="smtp.example.com",
        smtp_port=587,
        username="mailer",
        password="...",
        from_email="no-reply@example.com",
    )
    service = AuthService(settings, ..., senders=[sender])
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
from collections.abc import Mapping
from email.message import EmailMessage

from jinja2 import Environment, StrictUndefined, TemplateError

from auth.exceptions import NotificationError
from notify.sender import Template

logger = logging.getLogger("passgate.notify.email")

DEFAULT_SUBJECTS: dict[Template, str] = {
    Template.SIGN_UP: "Confirm your signup",
    Template.RESET_PASSWORD: "Reset your password",
}

DEFAULT_BODIES: dict[Template, str] = {
    Template.SIGN_UP: """
<body style="padding: 30px;">
  <h2>Confirm your signup</h2>

  <p>Follow this link to confirm your user:</p>
  <p><a href="{{ baseURL }}/signup/verify/{{ code }}">Confirm your mail</a></p>
</body>
""",
    Template.RESET_PASSWORD: """
<body style="padding: 30px;">
  <h2>Reset Password</h2>

  <p>Follow this link to reset the password for your user:</p>
  <p><a href="{{ baseURL }}/reset/verify/{{ code }}">Reset Password</a></p>
</body>
""",
}


class EmailSender:
    """Send templated emails over SMTP."""

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int,
        username: str,
        password: str,
        from_email: str,
        subjects: Mapping[Template, str] | None = None,
        bodies: Mapping[Template, str] | None = None,
        timeout: float = 10.0,
    ):
        """
        Initialize with SMTP credentials and optional template overrides.

        Args:
            smtp_host: SMTP server hostname
            smtp_port: SMTP server port (587 for STARTTLS)
            username: SMTP login user
            password: SMTP login password
            from_email: Envelope and From: address
            subjects: Per-template subject overrides (Jinja2 source)
            bodies: Per-template HTML body overrides (Jinja2 source)
            timeout: Socket timeout in seconds

        Raises:
            ValueError: If any credential is empty, or a template does not compile
        """
        if not smtp_host:
            raise ValueError("smtp_host is required")
        if not smtp_port:
            raise ValueError("smtp_port is required")
        if not from_email:
            raise ValueError("from_email is required")
        if not username:
            raise ValueError("username is required")
        if not password:
            raise ValueError("password is required")

        self.smtp_host = smtp_host
        self.smtp_port = int(smtp_port)
        self.username = username
        self.password = password
        self.from_email = from_email
        self.timeout = timeout

        text_env = Environment(autoescape=False, undefined=StrictUndefined)
        html_env = Environment(autoescape=True, undefined=StrictUndefined)
        try:
            self._subjects = {
                kind: text_env.from_string(src) for kind, src in {**DEFAULT_SUBJECTS, **(subjects or {})}.items()
            }
            self._bodies = {
                kind: html_env.from_string(src) for kind, src in {**DEFAULT_BODIES, **(bodies or {})}.items()
            }
        except TemplateError as e:
            raise ValueError(f"invalid email template: {e}") from e

    def render(self, template: Template, data: Mapping[str, str]) -> tuple[str, str]:
        """
        Render subject and body for one recipient.

        Raises:
            KeyError: If no template is configured for this kind
            jinja2.TemplateError: If the data lacks a referenced variable
        """
        subject = self._subjects[template].render(dict(data)).strip()
        body = self._bodies[template].render(dict(data))
        return subject, body

    def build_message(self, template: Template, data: Mapping[str, str]) -> EmailMessage:
        """Build the full MIME message for one recipient."""
        to_email = data.get("email", "")
        if not to_email:
            raise ValueError("recipient data has no email")

        subject, body = self.render(template, data)
        msg = EmailMessage()
        msg["From"] = self.from_email
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.set_content(body, subtype="html")
        return msg

    async def send(self, template: Template, data: Mapping[str, str]) -> None:
        """
        Render and deliver one email.

        Raises:
            ValueError / KeyError / TemplateError: On rendering failures
            smtplib.SMTPException / OSError: On delivery failures
        """
        msg = self.build_message(template, data)
        await asyncio.to_thread(self._deliver, msg)
        logger.info("%s email sent to %s", template.value, msg["To"])

    async def send_bulk(self, template: Template, batch: list[dict[str, str]]) -> None:
        """
        Deliver to every recipient, then report all failures at once.

        Raises:
            NotificationError: If at least one recipient failed
        """
        errors: list[Exception] = []
        for data in batch:
            try:
                await self.send(template, data)
            except (ValueError, KeyError, TemplateError, smtplib.SMTPException, OSError) as e:
                logger.error("Email to %s failed: %s", data.get("email", "?"), e)
                errors.append(e)
        if errors:
            raise NotificationError(errors)

    def _deliver(self, msg: EmailMessage) -> None:
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as smtp:
            smtp.starttls()
            smtp.login(self.username, self.password)
            smtp.send_message(msg)
