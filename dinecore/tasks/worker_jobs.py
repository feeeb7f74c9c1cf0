import structlog
import requests

from dinecore.core.config import settings

logger = structlog.get_logger(__name__)


def deliver_notification(event: str, payload: dict, url: str | None = None, timeout: int = 10) -> str:
    """POST one notification event to the notification service."""
    url = url if url is not None else settings.NOTIFICATION_WEBHOOK_URL
    if not url:
        logger.info("notification.skipped", event=event, reason="no NOTIFICATION_WEBHOOK_URL")
        return "skipped"
    resp = requests.post(url, json={"event": event, "payload": payload}, timeout=timeout)
    resp.raise_for_status()
    logger.info("notification.delivered", event=event, status=resp.status_code)
    return "sent"
