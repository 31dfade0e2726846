"""User-facing alerts with per-key rate limiting."""

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)


class AlertChannel(ABC):
    """Delivers an alert to the user."""

    @abstractmethod
    def deliver(self, title: str, body: str):
        pass


class LoggingAlertChannel(AlertChannel):
    """Writes alerts to the log. Default channel on headless devices."""

    def deliver(self, title: str, body: str):
        logger.warning(f"ALERT: {title} - {body}")


class NotificationGate:
    """Decides whether an alert is delivered or suppressed.

    An alert with a rate limit is dropped if another alert under the same
    rate-limit key was delivered less than rate_limit_seconds ago.
    """

    def __init__(
        self,
        channel: AlertChannel,
        clock: Callable[[], float] = time.monotonic,
        history_size: int = 50,
    ):
        """Initialize the gate.

        Args:
            channel: Delivery channel
            clock: Monotonic time source in seconds
            history_size: Number of delivered alerts kept for history()
        """
        self.channel = channel
        self._clock = clock
        self._last_delivery: Dict[str, float] = {}
        self._history: Deque[Dict[str, Any]] = deque(maxlen=history_size)
        self._lock = threading.Lock()

    def notify(
        self,
        key: str,
        title: str,
        body: str,
        rate_limit_seconds: Optional[float] = None,
        rate_limit_key: Optional[str] = None,
    ) -> bool:
        """Deliver an alert unless it is rate limited.

        Args:
            key: Alert identifier
            title: Alert title
            body: Alert body
            rate_limit_seconds: Minimum spacing between deliveries (None for no limit)
            rate_limit_key: Key the limit is tracked under (defaults to key)

        Returns:
            True if the alert was delivered
        """
        limit_key = rate_limit_key or key
        now = self._clock()

        with self._lock:
            if rate_limit_seconds is not None:
                last = self._last_delivery.get(limit_key)
                if last is not None and now - last < rate_limit_seconds:
                    logger.debug(f"Alert {key} suppressed by rate limit ({limit_key})")
                    return False

            try:
                self.channel.deliver(title, body)
            except Exception as e:
                logger.error(f"Failed to deliver alert {key}: {e}")
                return False

            self._last_delivery[limit_key] = now
            self._history.append({
                "key": key,
                "title": title,
                "body": body,
                "delivered_at": datetime.utcnow().isoformat() + "Z",
            })

        logger.info(f"Alert delivered: {key}")
        return True

    def history(self) -> List[Dict[str, Any]]:
        """Recently delivered alerts, oldest first."""
        with self._lock:
            return list(self._history)
