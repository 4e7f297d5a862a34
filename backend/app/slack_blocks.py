"""Block Kit layout for alert DMs."""

from typing import Optional

from .events import Alert, Severity

SEVERITY_EMOJI = {
    Severity.CRITICAL: "🚨",
    Severity.WARNING: "⏰",
}


def _mrkdwn(text: str) -> dict:
    return {"type": "mrkdwn", "text": text}


def header(text: str) -> dict:
    return {
        "type": "header",
        "text": {"type": "plain_text", "text": text, "emoji": True},
    }


def section(text: str, fields: Optional[dict[str, str]] = None) -> dict:
    """Section with body text and optional two-column label/value fields."""
    block = {"type": "section", "text": _mrkdwn(text)}
    if fields:
        block["fields"] = [
            _mrkdwn(f"*{label}*\n{value}") for label, value in fields.items()
        ]
    return block


def divider() -> dict:
    return {"type": "divider"}


def context(*lines: str) -> dict:
    return {"type": "context", "elements": [_mrkdwn(line) for line in lines]}


def format_alert_message(alert: Alert) -> tuple[str, list[dict]]:
    """Format a task alert with Block Kit.

    Returns:
        Tuple of (text fallback, blocks)
    """
    emoji = SEVERITY_EMOJI.get(alert.severity, "🔔")
    text = f"{emoji} {alert.title}: {alert.body}"

    fields = {}
    if alert.task_title:
        fields["Task"] = alert.task_title
    fields["Severity"] = alert.severity.value

    blocks = [
        header(f"{emoji} {alert.title}"),
        section(alert.body, fields),
    ]
    if alert.task_id:
        blocks.extend(
            [
                divider(),
                context(f"Task `{alert.task_id}`", "`opsdesk tasks` for the full list"),
            ]
        )

    return text, blocks
