import structlog

from costlens.models.alert import Alert, Channel
from costlens.shared.core.exceptions import DeliveryError
from costlens.shared.db.stores import NotificationStore

logger = structlog.get_logger()


class InAppNotificationService:
    """Writes alerts into the user's in-app notification feed as unread."""

    channel = Channel.IN_APP

    def __init__(self, store: NotificationStore):
        self.store = store

    async def send(self, alert: Alert, target: str) -> None:
        try:
            notification_id = await self.store.create_notification(
                user_id=target,
                title=alert.title,
                message=alert.message,
                type=alert.type.value,
                severity=alert.severity.value,
                metadata={**alert.metadata, "alert_id": alert.id},
            )
        except Exception as exc:
            raise DeliveryError(
                f"In-app notification failed: {exc}",
                channel=self.channel.value,
                details={"alert_id": alert.id},
            ) from exc

        logger.info(
            "alert_in_app_created",
            alert_id=alert.id,
            notification_id=notification_id,
        )
