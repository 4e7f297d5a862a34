"""System notifications via Slack.

Task alerts go to the in-app feed unconditionally; this module adds a Slack
DM on top when the workspace allows it. Permission works like a browser
notification prompt: undecided until the first check, then granted or
denied for the life of the notifier.
"""

import logging
from enum import Enum
from typing import Optional

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError

from .config import get_settings
from .events import Alert
from .slack_blocks import format_alert_message

logger = logging.getLogger(__name__)


class NotificationPermission(Enum):
    GRANTED = "granted"
    DENIED = "denied"
    DEFAULT = "default"  # not yet decided


class SlackNotifier:
    """Send task alerts as Slack direct messages."""

    def __init__(self, token: Optional[str] = None, user_id: Optional[str] = None):
        settings = get_settings()
        self.token = settings.slack_bot_token if token is None else token
        self.user_id = settings.slack_alert_user_id if user_id is None else user_id
        self.client = WebClient(token=self.token)
        self.permission = NotificationPermission.DEFAULT

    def request_permission(self) -> NotificationPermission:
        """Decide whether DMs can be sent, once.

        Returns:
            The (possibly unchanged) permission
        """
        if self.permission != NotificationPermission.DEFAULT:
            return self.permission

        if not self.token or not self.user_id:
            logger.info("Slack token or alert user not set - system notifications off")
            self.permission = NotificationPermission.DENIED
            return self.permission

        try:
            self.client.auth_test()
            self.permission = NotificationPermission.GRANTED
            logger.info("Slack notifications enabled")
        except SlackApiError as e:
            logger.warning(f"Slack auth failed, system notifications off: {e}")
            self.permission = NotificationPermission.DENIED

        return self.permission

    def emit(self, alert: Alert) -> bool:
        """Show an alert as a DM.

        Returns:
            True if the message was posted
        """
        if self.permission == NotificationPermission.DEFAULT:
            self.request_permission()

        if self.permission != NotificationPermission.GRANTED:
            logger.debug(f"Skipping system notification: {self.permission.value}")
            return False

        text, blocks = format_alert_message(alert)
        try:
            self.client.chat_postMessage(
                channel=self.user_id,
                text=text,
                blocks=blocks,
            )
            logger.info(f"Sent Slack alert for {alert.task_id}")
            return True
        except SlackApiError as e:
            logger.error(f"Failed to send Slack alert: {e}")
            return False
