"""
Notification delivery for appointment events.

Delivery is best-effort: callers send after the state change is committed,
and a failing notifier is logged and never propagated.
"""

import logging
from typing import Callable, Protocol

from sqlalchemy.orm import Session

from pawnder.core import clock
from pawnder.models.notification import Notification

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, user_id: int, title: str, message: str, notification_type: str) -> None:
        ...


class DatabaseNotifier:
    """Stores notifications as rows, each in its own short session."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def notify(self, user_id: int, title: str, message: str, notification_type: str) -> None:
        db = self.session_factory()
        try:
            db.add(
                Notification(
                    user_id=user_id,
                    title=title,
                    message=message,
                    type=notification_type,
                    is_read=False,
                    created_at=clock.now(),
                )
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


def send_notification(
    notifier: Notifier | None,
    user_id: int,
    title: str,
    message: str,
    notification_type: str,
) -> bool:
    """Deliver one notification; returns False instead of raising on failure."""
    if notifier is None:
        return False

    try:
        notifier.notify(user_id, title, message, notification_type)
        return True
    except Exception:
        logger.exception('Failed to send %s notification to user %s', notification_type, user_id)
        return False
