# gymdesk/realtime/bus.py
"""
Role-channel publish/subscribe.

``NotificationBus`` delivers to subscribers connected to this process.
``RedisRelay`` fans events out through Redis pub/sub so every worker's bus
sees them; when Redis is not configured or not reachable the local bus is
used directly.
"""
from __future__ import annotations

import json
import logging
import threading
from typing import Any, Dict, Iterable, Optional, Protocol, Set

import redis

from gymdesk import config

logger = logging.getLogger(__name__)


class Subscriber(Protocol):
    def deliver(self, event: str, data: Dict[str, Any]) -> None: ...


class NotificationBus:
    def __init__(self):
        self._lock = threading.Lock()
        self._channels: Dict[str, Set[Subscriber]] = {}

    def join(self, subscriber: Subscriber, channel: str) -> None:
        with self._lock:
            self._channels.setdefault(channel, set()).add(subscriber)

    def leave(self, subscriber: Subscriber, channel: str) -> None:
        with self._lock:
            members = self._channels.get(channel)
            if members is not None:
                members.discard(subscriber)
                if not members:
                    del self._channels[channel]

    def drop(self, subscriber: Subscriber) -> None:
        with self._lock:
            for channel in [c for c, members in self._channels.items() if subscriber in members]:
                self._channels[channel].discard(subscriber)
                if not self._channels[channel]:
                    del self._channels[channel]

    def channels_of(self, subscriber: Subscriber) -> Set[str]:
        with self._lock:
            return {c for c, members in self._channels.items() if subscriber in members}

    def subscribers(self, channel: str) -> Set[Subscriber]:
        with self._lock:
            return set(self._channels.get(channel, ()))

    def deliver_local(self, channel: str, event: str, data: Dict[str, Any]) -> int:
        delivered = 0
        for subscriber in self.subscribers(channel):
            try:
                subscriber.deliver(event, data)
                delivered += 1
            except Exception:
                # a dead connection must not stop delivery to the others
                logger.exception("Delivery of %s to %s failed", event, channel)
        return delivered

    def publish(self, channel: str, event: str, data: Dict[str, Any]) -> int:
        return self.deliver_local(channel, event, data)

    def publish_many(self, channels: Iterable[str], event: str, data: Dict[str, Any]) -> None:
        for channel in channels:
            self.publish(channel, event, data)


class RedisRelay:
    """Publishes through Redis; a pattern subscription feeds the local bus."""

    def __init__(self, bus: NotificationBus, client: redis.Redis, prefix: str = config.REDIS_CHANNEL_PREFIX):
        self.bus = bus
        self.redis = client
        self.prefix = prefix
        self._pubsub = None
        self._thread = None

    def _key(self, channel: str) -> str:
        return f"{self.prefix}:{channel}"

    def start(self) -> None:
        self._pubsub = self.redis.pubsub(ignore_subscribe_messages=True)
        self._pubsub.psubscribe(**{f"{self.prefix}:*": self._on_message})
        self._thread = self._pubsub.run_in_thread(sleep_time=0.1, daemon=True)

    def stop(self) -> None:
        if self._thread is not None:
            self._thread.stop()
            self._thread = None
        if self._pubsub is not None:
            self._pubsub.close()
            self._pubsub = None

    def _on_message(self, message: Dict[str, Any]) -> None:
        channel = str(message.get("channel", ""))[len(self.prefix) + 1:]
        try:
            payload = json.loads(message.get("data") or "{}")
        except ValueError:
            logger.warning("Dropping malformed relay message on %s", message.get("channel"))
            return
        self.bus.deliver_local(channel, payload.get("event", ""), payload.get("data") or {})

    def publish(self, channel: str, event: str, data: Dict[str, Any]) -> int:
        try:
            return int(self.redis.publish(self._key(channel), json.dumps({"event": event, "data": data}, default=str)))
        except redis.RedisError:
            logger.warning("Redis publish failed for %s, delivering locally", channel, exc_info=True)
            return self.bus.deliver_local(channel, event, data)

    def publish_many(self, channels: Iterable[str], event: str, data: Dict[str, Any]) -> None:
        for channel in channels:
            self.publish(channel, event, data)


# =========================
# Process-wide singletons
# =========================
BUS = NotificationBus()
_PUBLISHER: Optional[Any] = None


def init_realtime(redis_url: str = "") -> Any:
    """Pick the publisher once per process: the Redis relay when reachable, else the local bus."""
    global _PUBLISHER
    if _PUBLISHER is not None:
        return _PUBLISHER
    url = redis_url or config.REDIS_URL
    if url:
        try:
            client = redis.from_url(
                url,
                decode_responses=True,
                socket_timeout=3,
                socket_connect_timeout=3,
                health_check_interval=30,
            )
            client.ping()
            relay = RedisRelay(BUS, client)
            relay.start()
            _PUBLISHER = relay
            logger.info("Realtime events relayed through Redis")
            return _PUBLISHER
        except redis.RedisError:
            logger.warning("Redis unavailable at %s, using in-process notifications", url)
    _PUBLISHER = BUS
    return _PUBLISHER


def get_publisher() -> Any:
    return _PUBLISHER if _PUBLISHER is not None else init_realtime()


def shutdown_realtime() -> None:
    global _PUBLISHER
    if isinstance(_PUBLISHER, RedisRelay):
        _PUBLISHER.stop()
    _PUBLISHER = None
