from .email_service import EmailService
from .formatting import render_email_html, render_slack_blocks, severity_color
from .in_app import InAppNotificationService
from .slack import SlackService

__all__ = [
    "EmailService",
    "SlackService",
    "InAppNotificationService",
    "render_email_html",
    "render_slack_blocks",
    "severity_color",
]
