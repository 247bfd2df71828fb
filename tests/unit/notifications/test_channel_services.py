from unittest.mock import ANY, AsyncMock, patch

import pytest
from slack_sdk.errors import SlackApiError

from costlens.models.alert import Alert, AlertType
from costlens.models.anomaly import Severity
from costlens.modules.notifications.domain import (
    EmailService,
    InAppNotificationService,
    SlackService,
)
from costlens.shared.core.exceptions import DeliveryError


@pytest.fixture
def alert():
    return Alert(
        user_id="user-1",
        type=AlertType.ANOMALY,
        severity=Severity.CRITICAL,
        title="Cost anomaly (critical) - AmazonEC2",
        message="Actual: $500.00\nExpected: $100.00",
        metadata={"service": "AmazonEC2", "deviation": 4.0},
    )


class TestEmailService:
    @pytest.fixture
    def email_service(self):
        return EmailService(
            smtp_host="smtp.example.com",
            smtp_port=587,
            smtp_user="user",
            smtp_password="password",
            from_email="alerts@costlens.io",
        )

    @pytest.mark.asyncio
    async def test_send_success(self, email_service, alert):
        with patch("smtplib.SMTP") as mock_smtp:
            mock_server = mock_smtp.return_value.__enter__.return_value

            await email_service.send(alert, "ops@example.com")

            mock_smtp.assert_called_once_with("smtp.example.com", 587, timeout=10.0)
            mock_server.starttls.assert_called_once()
            mock_server.login.assert_called_once_with("user", "password")
            mock_server.sendmail.assert_called_once_with(
                "alerts@costlens.io", ["ops@example.com"], ANY
            )
            payload = mock_server.sendmail.call_args.args[2]
            assert "text/html" in payload
            assert "[CostLens] Cost anomaly (critical) - AmazonEC2" in payload

    @pytest.mark.asyncio
    async def test_login_skipped_without_credentials(self, alert):
        service = EmailService(
            smtp_host="localhost",
            smtp_port=25,
            smtp_user=None,
            smtp_password=None,
            from_email="alerts@costlens.io",
        )
        with patch("smtplib.SMTP") as mock_smtp:
            await service.send(alert, "ops@example.com")

            mock_smtp.return_value.__enter__.return_value.login.assert_not_called()

    @pytest.mark.asyncio
    async def test_smtp_failure_raises_delivery_error(self, email_service, alert):
        with patch("smtplib.SMTP", side_effect=OSError("connection refused")):
            with pytest.raises(DeliveryError) as exc:
                await email_service.send(alert, "ops@example.com")

        assert exc.value.channel == "email"
        assert exc.value.details["alert_id"] == alert.id

    @pytest.mark.asyncio
    async def test_missing_recipient(self, email_service, alert):
        with patch("smtplib.SMTP") as mock_smtp:
            with pytest.raises(DeliveryError):
                await email_service.send(alert, "")
            mock_smtp.assert_not_called()


class TestSlackService:
    @pytest.fixture
    def slack_service(self):
        return SlackService(bot_token="xoxb-test", channel_id="C123")

    @pytest.mark.asyncio
    async def test_send_success(self, slack_service, alert):
        slack_service.client.chat_postMessage = AsyncMock()

        await slack_service.send(alert, "C-OPS")

        slack_service.client.chat_postMessage.assert_awaited_once()
        kwargs = slack_service.client.chat_postMessage.await_args.kwargs
        assert kwargs["channel"] == "C-OPS"
        assert kwargs["text"] == alert.title
        assert [b["type"] for b in kwargs["blocks"]] == ["header", "section", "context"]

    @pytest.mark.asyncio
    async def test_falls_back_to_default_channel(self, slack_service, alert):
        slack_service.client.chat_postMessage = AsyncMock()

        await slack_service.send(alert)

        assert slack_service.client.chat_postMessage.await_args.kwargs["channel"] == "C123"

    @pytest.mark.asyncio
    async def test_no_channel_configured(self, alert):
        service = SlackService(bot_token="xoxb-test")
        service.client.chat_postMessage = AsyncMock()

        with pytest.raises(DeliveryError):
            await service.send(alert)

        service.client.chat_postMessage.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retry_when_ratelimited(self, slack_service, alert):
        class MockSlackResponse(dict):
            def __init__(self, *args, **kwargs):
                super().__init__(*args, **kwargs)
                self.headers = {"Retry-After": "2"}
                self.status_code = 429

        error = SlackApiError(
            message="ratelimited",
            response=MockSlackResponse({"ok": False, "error": "ratelimited"}),
        )
        slack_service.client.chat_postMessage = AsyncMock(side_effect=[error, {"ok": True}])

        with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            await slack_service.send(alert, "C-OPS")

        assert slack_service.client.chat_postMessage.await_count == 2
        mock_sleep.assert_awaited_once_with(2)

    @pytest.mark.asyncio
    async def test_api_error_raises_delivery_error(self, slack_service, alert):
        class MockSlackResponse(dict):
            headers: dict = {}

        error = SlackApiError(
            message="channel_not_found",
            response=MockSlackResponse({"ok": False, "error": "channel_not_found"}),
        )
        slack_service.client.chat_postMessage = AsyncMock(side_effect=error)

        with pytest.raises(DeliveryError) as exc:
            await slack_service.send(alert, "C-GONE")

        assert exc.value.channel == "chat"
        assert "channel_not_found" in exc.value.message
        assert slack_service.client.chat_postMessage.await_count == 1


class TestInAppNotificationService:
    @pytest.mark.asyncio
    async def test_creates_unread_notification(self, notification_store, alert):
        service = InAppNotificationService(notification_store)

        await service.send(alert, "user-1")

        unread = await notification_store.list_unread("user-1")
        assert len(unread) == 1
        notification = unread[0]
        assert notification["title"] == alert.title
        assert notification["type"] == "anomaly"
        assert notification["severity"] == "critical"
        assert notification["metadata"]["alert_id"] == alert.id
        assert notification["metadata"]["service"] == "AmazonEC2"

    @pytest.mark.asyncio
    async def test_store_failure_raises_delivery_error(self, alert):
        store = AsyncMock()
        store.create_notification.side_effect = RuntimeError("db down")

        with pytest.raises(DeliveryError) as exc:
            await InAppNotificationService(store).send(alert, "user-1")

        assert exc.value.channel == "in_app"
