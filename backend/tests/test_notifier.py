"""Tests for Slack system notifications."""

import pytest
from unittest.mock import MagicMock, patch

from slack_sdk.errors import SlackApiError

from app.events import Alert, AlertKey, AlertKind, Severity
from app.notifier import NotificationPermission, SlackNotifier
from app.slack_blocks import format_alert_message


def slack_error(message="invalid_auth"):
    return SlackApiError(message, MagicMock(data={"ok": False, "error": message}))


@pytest.fixture
def notifier():
    """Create notifier with mocked Slack client."""
    with patch("app.notifier.WebClient"):
        n = SlackNotifier(token="xoxb-test", user_id="U123")
        n.client = MagicMock()
        return n


@pytest.fixture
def alert():
    return Alert(
        title="Critical task alert",
        body="Core switch down needs immediate attention",
        severity=Severity.CRITICAL,
        key=AlertKey(AlertKind.CRITICAL_IMMEDIATE, "crit-1"),
        task_title="Core switch down",
    )


class TestPermission:
    """Tests for the permission tri-state."""

    def test_starts_undecided(self, notifier):
        assert notifier.permission == NotificationPermission.DEFAULT

    def test_granted_when_auth_succeeds(self, notifier):
        assert notifier.request_permission() == NotificationPermission.GRANTED
        notifier.client.auth_test.assert_called_once()

    def test_denied_when_auth_fails(self, notifier):
        notifier.client.auth_test.side_effect = slack_error()

        assert notifier.request_permission() == NotificationPermission.DENIED

    def test_denied_without_credentials(self):
        with patch("app.notifier.WebClient"):
            n = SlackNotifier(token="", user_id="")

        assert n.request_permission() == NotificationPermission.DENIED

    def test_decided_only_once(self, notifier):
        notifier.request_permission()
        notifier.client.auth_test.side_effect = slack_error()

        assert notifier.request_permission() == NotificationPermission.GRANTED
        notifier.client.auth_test.assert_called_once()


class TestEmit:
    """Tests for SlackNotifier.emit."""

    def test_posts_dm_when_granted(self, notifier, alert):
        assert notifier.emit(alert) is True

        kwargs = notifier.client.chat_postMessage.call_args.kwargs
        assert kwargs["channel"] == "U123"
        assert "Core switch down" in kwargs["text"]
        assert kwargs["blocks"]

    def test_asks_for_permission_on_first_emit(self, notifier, alert):
        notifier.emit(alert)

        notifier.client.auth_test.assert_called_once()
        assert notifier.permission == NotificationPermission.GRANTED

    def test_skipped_when_denied(self, notifier, alert):
        notifier.permission = NotificationPermission.DENIED

        assert notifier.emit(alert) is False
        notifier.client.chat_postMessage.assert_not_called()

    def test_post_failure_returns_false(self, notifier, alert):
        notifier.permission = NotificationPermission.GRANTED
        notifier.client.chat_postMessage.side_effect = slack_error("channel_not_found")

        assert notifier.emit(alert) is False


class TestAlertMessageFormatting:
    """Tests for format_alert_message."""

    def test_critical_alert(self, alert):
        text, blocks = format_alert_message(alert)

        assert text.startswith("🚨")
        assert blocks[0]["type"] == "header"
        assert "Critical task alert" in blocks[0]["text"]["text"]
        assert blocks[1]["text"]["text"] == alert.body
        assert "Core switch down" in blocks[1]["fields"][0]["text"]
        assert "crit-1" in blocks[-1]["elements"][0]["text"]

    def test_scheduled_alert(self):
        alert = Alert(
            title="Scheduled task reminder",
            body="Rotate certs is scheduled for 14:30",
            severity=Severity.WARNING,
            key=AlertKey(AlertKind.SCHEDULED, "t1"),
        )
        text, _ = format_alert_message(alert)

        assert text.startswith("⏰")
        assert "14:30" in text

    def test_alert_without_task_has_no_footer(self):
        alert = Alert(title="Test", body="Body", severity=Severity.WARNING)
        _, blocks = format_alert_message(alert)

        assert [b["type"] for b in blocks] == ["header", "section"]
