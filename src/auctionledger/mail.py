"""Winner email delivery.

The ledger's notification gate is claimed before any of this runs; a
delivery failure here is reported but never retried automatically.
"""

import asyncio
import html
import smtplib
from email.mime.text import MIMEText
from typing import Optional, Protocol

import structlog

from .config import Settings
from .models import WinnerNotice

logger = structlog.get_logger()


class MailDeliveryError(Exception):
    """The mail transport could not deliver a message."""


class WinnerMailer(Protocol):
    async def send(self, to: str, subject: str, html_body: str) -> None:
        ...


def render_winner_email(
    notice: WinnerNotice,
    product_title: Optional[str] = None,
    product_image_url: Optional[str] = None,
    checkout_url: Optional[str] = None,
    currency: Optional[str] = None,
) -> tuple[str, str]:
    """Build the subject and HTML body congratulating the winner."""
    subject = f"You won the auction for {product_title or 'our product'}"

    title = html.escape(product_title or "the product")
    parts = [
        '<div style="font-family: Arial, sans-serif; font-size: 14px; color: #333;">',
        f"<h2>Congratulations, {html.escape(notice.winner_name)}!</h2>",
        f"<p>You are the highest bidder for <strong>{title}</strong>.</p>",
        f"<p>Your winning bid: <strong>{html.escape(currency or '')} {notice.amount:.2f}</strong></p>",
    ]
    if product_image_url:
        alt = html.escape(product_title or "Product")
        parts.append(
            f'<p><img src="{html.escape(product_image_url)}" alt="{alt}" style="max-width: 300px;"></p>'
        )
    if checkout_url:
        parts.append(
            f'<p><a href="{html.escape(checkout_url)}" style="display:inline-block;padding:10px 16px;'
            'background:#000;color:#fff;text-decoration:none;">Complete Your Purchase</a></p>'
        )
    parts.append("<p>If you have any questions, reply to this email.</p>")
    parts.append("</div>")
    return subject, "\n".join(parts)


class SmtpMailer:
    """Sends HTML mail through an SMTP relay."""

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        sender: str,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "SmtpMailer":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_user,
            password=settings.smtp_pass,
            sender=settings.auction_email_from,
            timeout=settings.smtp_timeout_seconds,
        )

    def build_message(self, to: str, subject: str, html_body: str) -> MIMEText:
        msg = MIMEText(html_body, "html", "utf-8")
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        return msg

    def _deliver(self, to: str, msg: MIMEText) -> None:
        # Port 465 is implicit TLS; anything else upgrades with STARTTLS.
        if self.port == 465:
            server = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        try:
            if self.port != 465:
                server.starttls()
            if self.username:
                server.login(self.username, self.password)
            server.sendmail(self.sender, [to], msg.as_string())
        finally:
            server.quit()

    async def send(self, to: str, subject: str, html_body: str) -> None:
        msg = self.build_message(to, subject, html_body)
        try:
            await asyncio.to_thread(self._deliver, to, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("smtp_send_failed", host=self.host, error=str(e))
            raise MailDeliveryError(str(e)) from e
        logger.info("smtp_sent", to=to[:3] + "...", subject=subject)
