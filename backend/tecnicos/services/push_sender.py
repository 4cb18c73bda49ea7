import logging
import os
from threading import Lock
from typing import Any, Dict, List, Optional

from tecnicos.models import NotificationRecord

logger = logging.getLogger(__name__)

INVALID_TOKEN_MARKERS = ("registration token", "invalid argument", "not found")

# Android channels the mobile app registers, one per notification category.
CATEGORY_CHANNELS = {
    "booking": "bookings",
    "gamification": "rewards",
    "account": "account",
    "system": "general",
}
HIGH_PRIORITY_CATEGORIES = {"booking", "account"}


def notification_data(notification: NotificationRecord) -> Dict[str, str]:
    """Data payload for a push message; FCM only accepts string values."""
    data = {
        "notification_id": notification.id,
        "category": notification.category,
        "deep_link": notification.deep_link or "",
        "created_at": notification.created_at,
    }
    if notification.deep_link and notification.deep_link.startswith("/bookings/"):
        data["booking_id"] = notification.deep_link.rsplit("/", 1)[-1]
    return data


class PushSender:
    def __init__(self, credentials_path: Optional[str] = None):
        self._lock = Lock()
        self._credentials_path = (
            credentials_path
            if credentials_path is not None
            else os.getenv("FIREBASE_CREDENTIALS_PATH", "")
        ).strip()
        self._initialized = False
        self._enabled = False
        self._messaging = None

    @property
    def configured(self) -> bool:
        return bool(self._credentials_path)

    def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        with self._lock:
            if self._initialized:
                return
            if not self._credentials_path:
                self._initialized = True
                logger.info("Push delivery disabled: FIREBASE_CREDENTIALS_PATH not set")
                return
            try:
                import firebase_admin
                from firebase_admin import credentials, messaging
            except ImportError:
                self._initialized = True
                logger.exception("Push delivery disabled: firebase-admin is not installed")
                return

            try:
                cred = credentials.Certificate(self._credentials_path)
                if not firebase_admin._apps:  # pylint: disable=protected-access
                    firebase_admin.initialize_app(cred)
                self._messaging = messaging
                self._enabled = True
                logger.info("Push delivery initialized")
            except Exception:
                logger.exception("Push delivery disabled: Firebase init failed")
            finally:
                self._initialized = True

    def _build_message(self, tokens: List[str], notification: NotificationRecord) -> Any:
        messaging = self._messaging
        category = notification.category
        return messaging.MulticastMessage(
            notification=messaging.Notification(title=notification.title, body=notification.body),
            tokens=tokens,
            data=notification_data(notification),
            android=messaging.AndroidConfig(
                priority="high" if category in HIGH_PRIORITY_CATEGORIES else "normal",
                notification=messaging.AndroidNotification(channel_id=CATEGORY_CHANNELS.get(category, "general")),
            ),
            apns=messaging.APNSConfig(
                payload=messaging.APNSPayload(aps=messaging.Aps(sound="default", thread_id=category)),
            ),
        )

    def send(self, tokens: List[str], notification: NotificationRecord) -> List[str]:
        """Send one multicast message; returns the tokens Firebase rejected as invalid."""
        self._ensure_initialized()
        if not self._enabled or not tokens:
            return []
        assert self._messaging is not None
        try:
            batch = self._messaging.send_each_for_multicast(self._build_message(tokens, notification))
        except Exception:
            logger.exception("Push send failed for %d device(s)", len(tokens))
            return []
        invalid: List[str] = []
        for idx, response in enumerate(batch.responses):
            if response.success:
                continue
            error_text = str(response.exception).lower() if response.exception else ""
            if any(marker in error_text for marker in INVALID_TOKEN_MARKERS):
                invalid.append(tokens[idx])
        return invalid


push_sender = PushSender()
