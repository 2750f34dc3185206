# backend/weaklink/notifications.py
import logging
from typing import Iterable

logger = logging.getLogger(__name__)

ALERT_TITLE = "Weak Link Alert"


def alert_body(actor_name: str, app_name: str) -> str:
    return f"{actor_name or 'Someone'} opened {app_name}"


class BreakNotifier:
    """Side channel for "user U opened app A". Delivery lives elsewhere."""

    def notify_break(self, event, actor_name: str, recipients: Iterable[int]) -> None:
        raise NotImplementedError


class LoggingNotifier(BreakNotifier):
    def notify_break(self, event, actor_name, recipients):
        recipients = list(recipients)
        if not recipients:
            return
        logger.info(
            "%s: %s -> users=%s",
            ALERT_TITLE, alert_body(actor_name, event.app_name), recipients,
        )


class RecordingNotifier(BreakNotifier):
    """Keeps what would have been sent. Handy for wiring checks and tests."""

    def __init__(self):
        self.sent = []

    def notify_break(self, event, actor_name, recipients):
        for user_id in recipients:
            self.sent.append((user_id, ALERT_TITLE, alert_body(actor_name, event.app_name)))
