"""Channel-specific rendering of alerts."""

from __future__ import annotations

import html
from datetime import datetime, timezone
from typing import Any

from costlens.models.alert import Alert

SEVERITY_COLORS: dict[str, str] = {
    "critical": "#dc2626",
    "high": "#ea580c",
    "medium": "#d97706",
    "low": "#65a30d",
}
DEFAULT_COLOR = "#6b7280"


def severity_color(severity: Any) -> str:
    value = getattr(severity, "value", severity)
    return SEVERITY_COLORS.get(str(value).lower(), DEFAULT_COLOR)


def _sent_on(now: datetime | None) -> str:
    return (now or datetime.now(timezone.utc)).strftime("%Y-%m-%d %H:%M:%S UTC")


def render_email_html(alert: Alert, now: datetime | None = None) -> str:
    color = severity_color(alert.severity)
    lines = [
        '<div style="font-family: sans-serif; max-width: 600px;">',
        f'<h2 style="color: {color};">{html.escape(alert.title)}</h2>',
        f"<p>{html.escape(alert.message).replace(chr(10), '<br>')}</p>",
    ]
    for key, value in alert.metadata.items():
        lines.append(
            f"<p><strong>{html.escape(str(key))}:</strong> {html.escape(str(value))}</p>"
        )
    lines.append(
        f'<p style="color: {DEFAULT_COLOR}; font-size: 12px;">Sent on {_sent_on(now)}</p>'
    )
    lines.append("</div>")
    return "\n".join(lines)


def render_slack_blocks(alert: Alert, now: datetime | None = None) -> list[dict[str, Any]]:
    severity = getattr(alert.severity, "value", alert.severity)
    return [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": alert.title[:150]},
        },
        {
            "type": "section",
            "text": {"type": "mrkdwn", "text": alert.message},
        },
        {
            "type": "context",
            "elements": [
                {"type": "mrkdwn", "text": f"Severity: {str(severity).upper()}"},
                {"type": "mrkdwn", "text": f"Sent on {_sent_on(now)}"},
            ],
        },
    ]
