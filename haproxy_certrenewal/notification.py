"""
Notification system for certificate renewal events.

Supports multiple notification channels:
- Email via SendGrid API
- Microsoft Teams via incoming webhook
"""

import json
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, TYPE_CHECKING

import requests

from .logger import get_logger

if TYPE_CHECKING:
    from .config_loader import NotificationsConfig, EmailNotificationConfig, TeamsNotificationConfig


SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"


@dataclass
class NotificationContext:
    """Context data for a notification."""
    domain: str
    event: str  # "renewal" or "reload"
    status: str  # "SUCCESS" or "FAILED"
    names: List[str] = field(default_factory=list)
    reason: Optional[str] = None
    expiry_date: Optional[datetime] = None
    failure_reason: Optional[str] = None

    def placeholders(self) -> Dict[str, str]:
        """Values substituted into notification templates."""
        return {
            "domain": self.domain,
            "event": self.event,
            "status": self.status,
            "names": ", ".join(self.names) if self.names else "N/A",
            "reason": self.reason or "N/A",
            "expiry_date": (
                self.expiry_date.strftime("%Y-%m-%d %H:%M UTC") if self.expiry_date else "N/A"
            ),
            "failure_reason": self.failure_reason or "N/A",
            "theme_color": "28a745" if self.status == "SUCCESS" else "dc3545",
        }


def render_text(template: str, context: NotificationContext) -> str:
    """Replace ``{{name}}`` placeholders in a template string."""
    for key, value in context.placeholders().items():
        template = template.replace("{{" + key + "}}", value)
    return template


def _read_template(path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    logger = get_logger()
    try:
        with open(path, "r") as f:
            return f.read()
    except OSError as e:
        logger.warning(f"Notification template {path} unreadable ({e}), using default")
        return None


class NotificationSender(ABC):
    """Abstract base class for notification senders."""

    @abstractmethod
    def send(self, context: NotificationContext) -> bool:
        """
        Send a notification.

        Args:
            context: Notification context with certificate details

        Returns:
            True if notification was sent successfully, False otherwise
        """


class SendGridNotifier(NotificationSender):
    """Send email notifications via SendGrid API."""

    DEFAULT_TEMPLATE = """<!DOCTYPE html>
<html>
<body style="font-family: Arial, sans-serif;">
    <h2>HAProxy certificate {{event}} {{status}}</h2>
    <table>
        <tr><td>Domain</td><td>{{domain}}</td></tr>
        <tr><td>Names</td><td>{{names}}</td></tr>
        <tr><td>Reason</td><td>{{reason}}</td></tr>
        <tr><td>Previous expiry</td><td>{{expiry_date}}</td></tr>
        <tr><td>Failure reason</td><td>{{failure_reason}}</td></tr>
    </table>
</body>
</html>"""

    def __init__(self, config: "EmailNotificationConfig"):
        self.config = config
        self.api_key = os.environ.get("SENDGRID_API_KEY", "")
        self.logger = get_logger()
        self.template = _read_template(config.template_path) or self.DEFAULT_TEMPLATE

    def build_payload(self, context: NotificationContext) -> Dict[str, Any]:
        subject = f"{context.status}: HAProxy certificate {context.event} for {context.domain}"
        return {
            "personalizations": [
                {"to": [{"email": email} for email in self.config.to_emails]}
            ],
            "from": {"email": self.config.from_email},
            "subject": subject,
            "content": [
                {"type": "text/html", "value": render_text(self.template, context)}
            ],
        }

    def send(self, context: NotificationContext) -> bool:
        """Send email notification via SendGrid."""
        if not self.api_key:
            self.logger.warning("SENDGRID_API_KEY not set, skipping email notification")
            return False

        if not self.config.from_email or not self.config.to_emails:
            self.logger.warning("Email sender or recipients not configured, skipping email notification")
            return False

        try:
            response = requests.post(
                SENDGRID_URL,
                json=self.build_payload(context),
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=30,
            )
        except requests.RequestException as e:
            self.logger.error(f"Failed to send email notification: {e}")
            return False

        if response.status_code in (200, 202):
            self.logger.info(f"Email notification sent for {context.domain}")
            return True

        self.logger.error(f"SendGrid API error: {response.status_code} - {response.text}")
        return False


class TeamsWebhookNotifier(NotificationSender):
    """Send notifications to Microsoft Teams via incoming webhook."""

    DEFAULT_TEMPLATE = {
        "@type": "MessageCard",
        "@context": "http://schema.org/extensions",
        "themeColor": "{{theme_color}}",
        "summary": "HAProxy certificate {{event}} {{status}}",
        "sections": [
            {
                "activityTitle": "HAProxy certificate {{event}} {{status}}",
                "facts": [
                    {"name": "Domain", "value": "{{domain}}"},
                    {"name": "Names", "value": "{{names}}"},
                    {"name": "Reason", "value": "{{reason}}"},
                    {"name": "Previous expiry", "value": "{{expiry_date}}"},
                    {"name": "Failure reason", "value": "{{failure_reason}}"},
                ],
                "markdown": True,
            }
        ],
    }

    def __init__(self, config: "TeamsNotificationConfig"):
        self.config = config
        self.logger = get_logger()
        self.template = self.DEFAULT_TEMPLATE
        raw = _read_template(config.template_path)
        if raw is not None:
            try:
                self.template = json.loads(raw)
            except ValueError as e:
                self.logger.warning(f"Invalid Teams template {config.template_path}: {e}, using default")

    def build_payload(self, context: NotificationContext) -> Any:
        def replace_placeholders(obj):
            if isinstance(obj, str):
                return render_text(obj, context)
            elif isinstance(obj, dict):
                return {k: replace_placeholders(v) for k, v in obj.items()}
            elif isinstance(obj, list):
                return [replace_placeholders(item) for item in obj]
            return obj

        return replace_placeholders(self.template)

    def send(self, context: NotificationContext) -> bool:
        """Send notification to Teams via webhook."""
        webhook_url = os.environ.get("TEAMS_WEBHOOK_URL", "")
        if not webhook_url:
            self.logger.warning("TEAMS_WEBHOOK_URL environment variable not set, skipping Teams notification")
            return False

        try:
            response = requests.post(webhook_url, json=self.build_payload(context), timeout=30)
        except requests.RequestException as e:
            self.logger.error(f"Failed to send Teams notification: {e}")
            return False

        if response.status_code == 200:
            self.logger.info(f"Teams notification sent for {context.domain}")
            return True

        self.logger.error(f"Teams webhook error: {response.status_code} - {response.text}")
        return False


class NotificationManager:
    """
    Manages all notification channels.

    Notification failures are logged and never interrupt the renewal run.
    """

    def __init__(self, config: "NotificationsConfig"):
        self.config = config
        self.logger = get_logger()
        self.notifiers: List[NotificationSender] = []

        if config.email.enabled:
            self.notifiers.append(SendGridNotifier(config.email))
            self.logger.info("Email notifications enabled")

        if config.teams.enabled:
            self.notifiers.append(TeamsWebhookNotifier(config.teams))
            self.logger.info("Teams notifications enabled")

    def notify(self, context: NotificationContext) -> None:
        """
        Send notifications through all enabled channels.

        Args:
            context: Notification context with certificate details
        """
        for notifier in self.notifiers:
            try:
                notifier.send(context)
            except Exception as e:
                self.logger.error(f"Notification failed ({type(notifier).__name__}): {e}")

    def is_enabled(self) -> bool:
        """Check if any notification channel is enabled."""
        return len(self.notifiers) > 0
