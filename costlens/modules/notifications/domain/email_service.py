"""
Email Notification Service

Sends alert emails over SMTP. The blocking smtplib session runs in a worker
thread so the dispatcher's other channels are not held up.
"""

import asyncio
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import structlog

from costlens.models.alert import Alert, Channel
from costlens.modules.notifications.domain.formatting import render_email_html
from costlens.shared.core.exceptions import DeliveryError

logger = structlog.get_logger()


class EmailService:
    channel = Channel.EMAIL

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int,
        smtp_user: str | None,
        smtp_password: str | None,
        from_email: str,
        timeout_seconds: float = 10.0,
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.from_email = from_email
        self.timeout_seconds = timeout_seconds

    def _build_message(self, alert: Alert, recipient: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = f"[CostLens] {alert.title}"
        msg["From"] = self.from_email
        msg["To"] = recipient
        msg.attach(MIMEText(alert.message, "plain"))
        msg.attach(MIMEText(render_email_html(alert), "html"))
        return msg

    def _deliver(self, recipient: str, payload: str) -> None:
        with smtplib.SMTP(
            self.smtp_host, self.smtp_port, timeout=self.timeout_seconds
        ) as server:
            server.starttls()
            if self.smtp_user:
                server.login(self.smtp_user, self.smtp_password)
            server.sendmail(self.from_email, [recipient], payload)

    async def send(self, alert: Alert, target: str) -> None:
        """Send one alert email to `target`; raises DeliveryError on failure."""
        if not target:
            raise DeliveryError("No email recipient", channel=self.channel.value)

        msg = self._build_message(alert, target)
        try:
            await asyncio.to_thread(self._deliver, target, msg.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            raise DeliveryError(
                f"SMTP delivery failed: {exc}",
                channel=self.channel.value,
                details={"alert_id": alert.id},
            ) from exc

        logger.info("alert_email_sent", alert_id=alert.id, severity=alert.severity.value)
