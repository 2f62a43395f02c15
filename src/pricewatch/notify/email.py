from __future__ import annotations

import asyncio
import smtplib
import ssl
from dataclasses import dataclass, field
from email.mime.text import MIMEText
from typing import Optional

import structlog

from pricewatch.alerts.errors import NotifyError

log = structlog.get_logger("email")


@dataclass(slots=True)
class EmailConfig:
    smtp_host: str
    from_email: str
    to_emails: list[str] = field(default_factory=list)
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    # "starttls" (port 587), "ssl" (port 465) or "none"
    security: str = "starttls"
    subject_prefix: str = "[pricewatch]"
    timeout_s: float = 15.0


class EmailNotifier:
    """
    Plain-text SMTP delivery. One attempt per send; failures surface as
    NotifyError and are not retried here. smtplib blocks, so the exchange
    runs in a worker thread.
    """
    def __init__(self, cfg: EmailConfig):
        if not cfg.to_emails:
            raise ValueError("EmailConfig.to_emails must name at least one recipient")
        self.cfg = cfg

    def build_message(self, subject: str, body: str) -> MIMEText:
        msg = MIMEText(body, "plain", "utf-8")
        msg["Subject"] = f"{self.cfg.subject_prefix} {subject}".strip()
        msg["From"] = self.cfg.from_email
        msg["To"] = ", ".join(self.cfg.to_emails)
        return msg

    async def send(self, subject: str, body: str) -> None:
        msg = self.build_message(subject, body)
        try:
            await asyncio.to_thread(self._send_smtp, msg)
        except (smtplib.SMTPException, OSError, ValueError) as e:
            # ValueError covers credentials smtplib cannot encode (non-ASCII password)
            raise NotifyError(f"SMTP delivery via {self.cfg.smtp_host}:{self.cfg.smtp_port} failed: {e}") from e
        log.info("email_sent", recipients=len(self.cfg.to_emails), subject=msg["Subject"])

    def _send_smtp(self, msg: MIMEText) -> None:
        c = self.cfg
        if c.security == "ssl":
            context = ssl.create_default_context()
            server = smtplib.SMTP_SSL(c.smtp_host, c.smtp_port, timeout=c.timeout_s, context=context)
        else:
            server = smtplib.SMTP(c.smtp_host, c.smtp_port, timeout=c.timeout_s)
        with server:
            if c.security == "starttls":
                server.starttls(context=ssl.create_default_context())
            if c.smtp_username and c.smtp_password:
                server.login(c.smtp_username, c.smtp_password)
            server.send_message(msg, to_addrs=c.to_emails)
