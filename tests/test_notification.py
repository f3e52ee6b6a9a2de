"""Tests for renewal notifications."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import requests

from haproxy_certrenewal.config_loader import (
    EmailNotificationConfig,
    NotificationsConfig,
    TeamsNotificationConfig,
)
from haproxy_certrenewal.notification import (
    NotificationContext,
    NotificationManager,
    SendGridNotifier,
    TeamsWebhookNotifier,
)


def _context(status="SUCCESS"):
    return NotificationContext(
        domain="a.com",
        event="renewal",
        status=status,
        names=["a.com", "www.a.com"],
        reason="expiring-soon",
        failure_reason=None if status == "SUCCESS" else "exit 1",
    )


class TestTeamsWebhookNotifier:
    def test_payload_rendered(self):
        notifier = TeamsWebhookNotifier(TeamsNotificationConfig(enabled=True))
        payload = notifier.build_payload(_context("FAILED"))
        facts = {f["name"]: f["value"] for f in payload["sections"][0]["facts"]}
        assert payload["themeColor"] == "dc3545"
        assert facts["Domain"] == "a.com"
        assert facts["Names"] == "a.com, www.a.com"
        assert facts["Failure reason"] == "exit 1"

    def test_send_posts_to_webhook(self, monkeypatch):
        monkeypatch.setenv("TEAMS_WEBHOOK_URL", "https://hooks.example.com/x")
        notifier = TeamsWebhookNotifier(TeamsNotificationConfig(enabled=True))
        with patch("haproxy_certrenewal.notification.requests.post") as post:
            post.return_value = MagicMock(status_code=200)
            assert notifier.send(_context()) is True
        assert post.call_args[0][0] == "https://hooks.example.com/x"

    def test_send_without_webhook(self, monkeypatch):
        monkeypatch.delenv("TEAMS_WEBHOOK_URL", raising=False)
        notifier = TeamsWebhookNotifier(TeamsNotificationConfig(enabled=True))
        with patch("haproxy_certrenewal.notification.requests.post") as post:
            assert notifier.send(_context()) is False
        post.assert_not_called()


class TestSendGridNotifier:
    def test_request_error_reported(self, monkeypatch):
        monkeypatch.setenv("SENDGRID_API_KEY", "key")
        notifier = SendGridNotifier(EmailNotificationConfig(
            enabled=True, from_email="certs@example.com", to_emails=["ops@example.com"],
        ))
        with patch("haproxy_certrenewal.notification.requests.post",
                   side_effect=requests.ConnectionError("down")):
            assert notifier.send(_context()) is False

    def test_payload(self, monkeypatch):
        monkeypatch.setenv("SENDGRID_API_KEY", "key")
        notifier = SendGridNotifier(EmailNotificationConfig(
            enabled=True, from_email="certs@example.com", to_emails=["ops@example.com"],
        ))
        payload = notifier.build_payload(_context())
        assert payload["subject"] == "SUCCESS: HAProxy certificate renewal for a.com"
        assert "a.com, www.a.com" in payload["content"][0]["value"]


class TestNotificationManager:
    def test_disabled_by_default(self):
        assert NotificationManager(NotificationsConfig()).is_enabled() is False

    def test_sender_exception_does_not_escape(self):
        manager = NotificationManager(NotificationsConfig())
        broken = MagicMock()
        broken.send.side_effect = RuntimeError("boom")
        manager.notifiers.append(broken)
        manager.notify(_context())
        broken.send.assert_called_once()
