from typing import Any, Callable, Dict, List
from logging_config import get_logger

logger = get_logger(__name__)

Callback = Callable[[Any], None]


class EventChannelRegistry:
    """Named publish/subscribe channels delivered synchronously in-process.

    Callbacks run on the publisher's stack in registration order. Registering the
    same callback twice means it runs twice per publish.
    """

    def __init__(self):
        self._channels: Dict[str, List[Callback]] = {}

    def subscribe(self, channel: str, callback: Callback):
        self._channels.setdefault(channel, []).append(callback)
        logger.debug(f"Subscribed to channel {channel} ({len(self._channels[channel])} subscribers)")

    def unsubscribe(self, channel: str, callback: Callback):
        callbacks = self._channels.get(channel)
        if not callbacks:
            return
        try:
            callbacks.remove(callback)
        except ValueError:
            logger.debug(f"Callback not registered on channel {channel}")
            return
        if not callbacks:
            del self._channels[channel]
        logger.debug(f"Unsubscribed from channel {channel}")

    def publish(self, channel: str, payload: Any) -> int:
        """Invoke every callback registered on ``channel``; returns how many ran."""
        # Snapshot so callbacks may (un)subscribe while we iterate
        callbacks = list(self._channels.get(channel, ()))
        for callback in callbacks:
            try:
                callback(payload)
            except Exception as e:
                logger.error(f"Subscriber on channel {channel} raised: {e}", exc_info=True)
        logger.debug(f"Published to channel {channel}, {len(callbacks)} subscribers")
        return len(callbacks)

    def clear(self):
        self._channels.clear()
        logger.debug("Cleared all event channels")
