# backend/app/clients/email_client.py
from __future__ import annotations

import logging
import smtplib
import time
from contextlib import contextmanager
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Iterator, Optional

from ..config import settings

log = logging.getLogger("keystone.email")


class EmailDeliveryError(RuntimeError):
    pass


class EmailAuthError(EmailDeliveryError):
    """Credentials rejected by the relay; retrying cannot help."""


class EmailClient:
    """SMTP client with bounded retries (Brevo relay by default)."""

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int,
        username: Optional[str],
        password: Optional[str],
        sender: str,
        use_ssl: bool = False,
        max_retries: int = 3,
        retry_delay: int = 3,
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.username = username
        self.password = password
        self.sender = sender
        self.use_ssl = use_ssl
        self.max_retries = max(1, int(max_retries))
        self.retry_delay = retry_delay

    @classmethod
    def from_settings(cls) -> "EmailClient":
        return cls(
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            sender=settings.email_from,
            use_ssl=settings.smtp_use_ssl,
            max_retries=settings.smtp_max_retries,
            retry_delay=settings.smtp_retry_delay_seconds,
        )

    @contextmanager
    def _connection(self) -> Iterator[smtplib.SMTP]:
        server: Optional[smtplib.SMTP] = None
        try:
            if self.use_ssl:
                server = smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, timeout=30)
            else:
                server = smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30)
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            yield server
        finally:
            if server is not None:
                try:
                    server.quit()
                except smtplib.SMTPException as e:
                    log.warning("error closing SMTP connection: %s", e)

    def build_message(self, to_email: str, subject: str, text_body: str, html_body: Optional[str] = None) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["From"] = self.sender
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.attach(MIMEText(text_body, "plain", "utf-8"))
        if html_body:
            msg.attach(MIMEText(html_body, "html", "utf-8"))
        return msg

    def send(self, to_email: str, subject: str, text_body: str, html_body: Optional[str] = None) -> None:
        msg = self.build_message(to_email, subject, text_body, html_body)

        last_error: Optional[Exception] = None
        for attempt in range(1, self.max_retries + 1):
            try:
                with self._connection() as server:
                    server.sendmail(self.sender, [to_email], msg.as_string())
                log.info("email sent", extra={"attempt": attempt})
                return
            except smtplib.SMTPAuthenticationError as e:
                # bad credentials will not fix themselves
                log.error("SMTP authentication failed: %s", e, extra={"attempt": attempt})
                raise EmailAuthError("SMTP authentication failed") from e
            except (smtplib.SMTPException, OSError) as e:
                last_error = e
                log.warning("email attempt %s/%s failed: %s", attempt, self.max_retries, e, extra={"attempt": attempt})
                if attempt < self.max_retries:
                    time.sleep(self.retry_delay)

        raise EmailDeliveryError(f"failed to send email after {self.max_retries} attempts") from last_error
