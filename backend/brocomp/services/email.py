"""Transactional email through the Resend HTTP API, plus HTML templates."""

import json
import logging
from datetime import UTC, datetime
from typing import Any, Literal

import httpx

from brocomp.core.config import settings
from brocomp.services.sanitize import escape_for_email

logger = logging.getLogger(__name__)

NotificationType = Literal["status_change", "admin_response"]

SEVERITY_EMOJI = {
    "critical": "🚨",
    "high": "⚠️",
    "medium": "⚡",
    "low": "ℹ️",
}

SEVERITY_COLOR = {
    "critical": "#dc2626",
    "high": "#ea580c",
}
DEFAULT_SEVERITY_COLOR = "#0ea5e9"


class EmailDeliveryError(Exception):
    """Raised when Resend rejects a message or cannot be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class ResendClient:
    """Minimal sync client for ``POST /emails`` (used from Celery workers)."""

    DEFAULT_TIMEOUT = httpx.Timeout(connect=10.0, read=30.0, write=10.0, pool=10.0)

    def __init__(
        self,
        api_key: str | None = None,
        api_url: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.api_key = api_key if api_key is not None else settings.resend_api_key
        self.api_url = api_url or settings.resend_api_url
        self._transport = transport

    def send(self, to: str, subject: str, html: str, from_: str) -> dict[str, Any]:
        if not self.api_key:
            raise EmailDeliveryError("Resend API key is not configured")

        payload = {"from": from_, "to": [to], "subject": subject, "html": html}
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            with httpx.Client(timeout=self.DEFAULT_TIMEOUT, transport=self._transport) as client:
                response = client.post(self.api_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise EmailDeliveryError(f"Resend request failed: {e}") from e

        if response.status_code >= 400:
            raise EmailDeliveryError(
                f"Resend API error: {response.text}",
                status_code=response.status_code,
            )
        logger.info(f"Email sent to {to}: {subject}")
        return response.json()


def notification_title(type_: NotificationType, tracking_id: str) -> str:
    if type_ == "status_change":
        return f"Complaint Status Updated - {tracking_id}"
    return f"New Response to Your Complaint - {tracking_id}"


def render_notification_email(
    type_: NotificationType,
    full_name: str,
    tracking_id: str,
    subject: str,
    message: str,
) -> tuple[str, str]:
    """Return (title, html) for a complaint notification."""
    title = notification_title(type_, tracking_id)
    link = f"{settings.frontend_url}/student/complaints/{escape_for_email(tracking_id)}"
    html = f"""<!DOCTYPE html>
<html>
  <head>
    <style>
      body {{ font-family: 'Inter', -apple-system, BlinkMacSystemFont, sans-serif; line-height: 1.6; color: #333; }}
      .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
      .header {{ background: #000; color: #fff; padding: 30px; text-align: center; border-radius: 8px 8px 0 0; }}
      .content {{ background: #fff; padding: 30px; border: 1px solid #e5e5e5; border-top: none; }}
      .button {{ display: inline-block; background: #000; color: #fff; padding: 12px 24px; text-decoration: none; border-radius: 6px; margin: 20px 0; }}
      .footer {{ text-align: center; padding: 20px; color: #666; font-size: 14px; }}
    </style>
  </head>
  <body>
    <div class="container">
      <div class="header"><h1>BroComp Support</h1></div>
      <div class="content">
        <h2>{escape_for_email(title)}</h2>
        <p>Hi {escape_for_email(full_name)},</p>
        <p><strong>{escape_for_email(subject)}</strong></p>
        <p>{escape_for_email(message)}</p>
        <a href="{link}" class="button">View Complaint Details</a>
      </div>
      <div class="footer">
        <p>You're receiving this email because you have a complaint with BroComp.</p>
        <p>Manage your notification preferences in your profile settings.</p>
      </div>
    </div>
  </body>
</html>
"""
    return title, html


def render_security_alert_email(
    alert_type: str,
    severity: str,
    details: str,
    user_id: str | None = None,
    ip_address: str | None = None,
    metadata: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> tuple[str, str]:
    """Return (subject, html) for a security alert."""
    emoji = SEVERITY_EMOJI.get(severity, "")
    color = SEVERITY_COLOR.get(severity, DEFAULT_SEVERITY_COLOR)
    subject = f"{emoji} BroComp Security Alert: {alert_type}"
    now = now or datetime.now(UTC)

    rows = [
        ("Event Type", escape_for_email(alert_type)),
        ("Severity", escape_for_email(severity.upper())),
        ("Details", escape_for_email(details)),
    ]
    if user_id:
        rows.append(("User ID", escape_for_email(user_id)))
    if ip_address:
        rows.append(("IP Address", escape_for_email(ip_address)))
    if metadata:
        rows.append(
            ("Additional Info", f"<pre>{escape_for_email(json.dumps(metadata, indent=2, default=str))}</pre>")
        )
    rows.append(("Time", now.isoformat()))
    body = "\n".join(
        f'<div class="detail-row"><span class="label">{label}:</span> '
        f'<span class="value">{value}</span></div>'
        for label, value in rows
    )

    html = f"""<!DOCTYPE html>
<html>
  <head>
    <style>
      body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
      .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
      .header {{ background: {color}; color: white; padding: 20px; border-radius: 8px 8px 0 0; }}
      .content {{ background: #f9fafb; padding: 20px; border: 1px solid #e5e7eb; border-radius: 0 0 8px 8px; }}
      .label {{ font-weight: bold; color: #6b7280; }}
      .footer {{ margin-top: 20px; font-size: 12px; color: #6b7280; }}
    </style>
  </head>
  <body>
    <div class="container">
      <div class="header"><h2>{emoji} Security Alert</h2><p>BroComp Security Monitoring</p></div>
      <div class="content">
{body}
        <div class="footer">
          <p>This is an automated security alert from BroComp. Please review the security dashboard for more details.</p>
        </div>
      </div>
    </div>
  </body>
</html>
"""
    return subject, html
