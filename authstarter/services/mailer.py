import asyncio
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Awaitable, Optional, Protocol, Set

from starlette.concurrency import run_in_threadpool

from authstarter.core.config import Settings

logger = logging.getLogger(__name__)


def send_email(settings: Settings, to_email: str, subject: str, html: str, text: Optional[str] = None) -> None:
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = formataddr((settings.mail_from_name, settings.mail_from))
    msg["To"] = to_email
    if text:
        msg.attach(MIMEText(text, "plain", "utf-8"))
    msg.attach(MIMEText(html, "html", "utf-8"))

    # Add timeout to prevent indefinite hangs
    with smtplib.SMTP(settings.smtp_server, settings.smtp_port, timeout=30) as server:
        if settings.smtp_starttls:
            server.starttls()
        if settings.smtp_user:
            server.login(settings.smtp_user, settings.smtp_password)
        server.sendmail(settings.mail_from, [to_email], msg.as_string())


def _verification_html(app_name: str, link: str, token: str, minutes: int) -> str:
    return f'''<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8" />
    <title>Verify your email - {app_name}</title>
</head>
<body style="font-family: 'Segoe UI', Roboto, Helvetica, Arial, sans-serif; background-color: #f6f8fb; color: #333;">
    <div style="max-width: 600px; margin: 40px auto; background: #fff; border-radius: 12px; padding: 28px 32px;">
        <h2>Verify your email</h2>
        <p>Thanks for signing up to <strong>{app_name}</strong>. Confirm your address with the link below:</p>
        <p><a href="{link}">{link}</a></p>
        <p>Or paste this code into the app: <code>{token}</code></p>
        <p>The link expires in {minutes} minutes. If you didn't create an account, ignore this message.</p>
    </div>
</body>
</html>
'''


def _password_reset_html(app_name: str, link: str, token: str, minutes: int) -> str:
    return f'''<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8" />
    <title>Reset your password - {app_name}</title>
</head>
<body style="font-family: 'Segoe UI', Roboto, Helvetica, Arial, sans-serif; background-color: #f6f8fb; color: #333;">
    <div style="max-width: 600px; margin: 40px auto; background: #fff; border-radius: 12px; padding: 28px 32px;">
        <h2>Reset your password</h2>
        <p>We received a request to reset the password of your <strong>{app_name}</strong> account:</p>
        <p><a href="{link}">{link}</a></p>
        <p>Reset code: <code>{token}</code></p>
        <p>This link expires in {minutes} minutes. If you didn't ask for a reset, your password stays unchanged.</p>
    </div>
</body>
</html>
'''


class Mailer(Protocol):
    async def send_verification_email(self, to_email: str, token: str) -> None: ...

    async def send_password_reset_email(self, to_email: str, token: str) -> None: ...


class SmtpMailer:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    async def send_verification_email(self, to_email: str, token: str) -> None:
        s = self.settings
        link = f"{s.app_base_url}/verify-email?token={token}"
        html = _verification_html(s.app_name, link, token, s.email_verify_ttl_min)
        text = f"Verify your email: {link}\nCode: {token}\nExpires in {s.email_verify_ttl_min} minutes."
        await run_in_threadpool(send_email, s, to_email, "Verify your email address", html, text)
        logger.info("Verification email sent via SMTP", extra={"email_type": "verification"})

    async def send_password_reset_email(self, to_email: str, token: str) -> None:
        s = self.settings
        link = f"{s.app_base_url}/reset-password?token={token}"
        html = _password_reset_html(s.app_name, link, token, s.password_reset_ttl_min)
        text = f"Reset your password: {link}\nCode: {token}\nExpires in {s.password_reset_ttl_min} minutes."
        await run_in_threadpool(send_email, s, to_email, "Reset your password", html, text)
        logger.info("Password reset email sent via SMTP", extra={"email_type": "password-reset"})


class ConsoleMailer:
    """Development fallback: logs that a mail would go out. Never logs the token itself."""

    async def send_verification_email(self, to_email: str, token: str) -> None:
        logger.info(
            f"Email (console): verification email for {to_email} (token length {len(token)})",
            extra={"email_type": "verification"},
        )

    async def send_password_reset_email(self, to_email: str, token: str) -> None:
        logger.info(
            f"Email (console): password reset email for {to_email} (token length {len(token)})",
            extra={"email_type": "password-reset"},
        )


def build_mailer(settings: Settings) -> Mailer:
    if settings.smtp_configured:
        return SmtpMailer(settings)
    return ConsoleMailer()


class EmailDispatcher:
    """
    Fire-and-forget delivery: the caller never waits for the mail transport
    and delivery failures are only logged.
    """

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()

    def dispatch(self, send: Awaitable[None], email_type: str) -> None:
        task = asyncio.ensure_future(self._run(send, email_type))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @staticmethod
    async def _run(send: Awaitable[None], email_type: str) -> None:
        try:
            await send
        except Exception:
            logger.exception("Email dispatch failed", extra={"email_type": email_type})

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for in-flight deliveries (shutdown, tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
