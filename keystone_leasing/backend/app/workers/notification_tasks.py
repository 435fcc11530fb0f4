# backend/app/workers/notification_tasks.py
from __future__ import annotations

import html
import logging
from typing import Optional

from ..clients.email_client import EmailAuthError, EmailClient, EmailDeliveryError
from ..config import settings
from .celery_app import celery_app

log = logging.getLogger("keystone.notifications.email")

_HTML_TEMPLATE = """\
<!DOCTYPE html>
<html lang="en">
<body style="font-family: 'Helvetica Neue', sans-serif; color: #222; background: #f5f5f5;">
  <div style="max-width: 600px; margin: 20px auto; background: #fff; border-radius: 12px; padding: 30px;">
    <p>Hi {name},</p>
    <h2 style="margin-top: 0;">{subject}</h2>
    <p>{message}</p>
    {cta}
  </div>
</body>
</html>
"""


def render_email(
    *, to_name: Optional[str], subject: str, message: str, action_url: Optional[str]
) -> tuple[str, str]:
    """Returns (text_body, html_body)."""
    name = to_name or "there"
    text_lines = [f"Hi {name},", "", message]
    if action_url:
        text_lines += ["", f"Open: {action_url}"]

    cta = ""
    if action_url:
        cta = (
            f'<p><a href="{html.escape(action_url, quote=True)}" '
            'style="display: inline-block; background: #222; color: #fff; padding: 12px 28px; '
            'border-radius: 25px; text-decoration: none;">View lease</a></p>'
        )
    html_body = _HTML_TEMPLATE.format(
        name=html.escape(name),
        subject=html.escape(subject),
        message=html.escape(message),
        cta=cta,
    )
    return "\n".join(text_lines), html_body


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=30,
    name="app.workers.notification_tasks.send_notification_email",
)
def send_notification_email(
    self,
    to_email: str,
    subject: str,
    message: str,
    to_name: Optional[str] = None,
    action_url: Optional[str] = None,
) -> dict:
    """
    Email leg of a notification. The in-app row already exists by the time
    this runs, so a delivery failure only costs the email.
    """
    if not settings.email_enabled:
        return {"ok": False, "reason": "email_disabled"}

    text_body, html_body = render_email(to_name=to_name, subject=subject, message=message, action_url=action_url)
    try:
        EmailClient.from_settings().send(to_email, subject, text_body, html_body)
    except EmailAuthError as e:
        log.error("notification email not sent: %s", e)
        return {"ok": False, "reason": "auth_failed"}
    except EmailDeliveryError as e:
        log.warning("notification email failed: %s", e)
        if self.request.retries < self.max_retries:
            raise self.retry(exc=e)
        return {"ok": False, "reason": "delivery_failed"}

    return {"ok": True}
