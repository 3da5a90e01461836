"""
Transports for the invalidation bus.

InMemoryTransport serves a single process. BroadcastTransport rides the
shared Broadcaster connection (Redis) so every worker sees every write.
Publishing is fire-and-forget on both: failures are logged, not raised,
because subscribers treat events as re-fetch hints only.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import asyncio
from collections import defaultdict
import json
import logging
from typing import Any, Callable, Dict, Optional, Set

from broadcaster import Broadcast

logger = logging.getLogger(__name__)

EventCallback = Callable[[Dict[str, Any]], None]
ErrorCallback = Callable[[BaseException], None]


class Listener(ABC):
    """Handle for one channel listen; close() releases the channel."""

    @abstractmethod
    async def close(self) -> None:
        ...


class EventTransport(ABC):
    @abstractmethod
    async def publish(self, channel: str, payload: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def listen(
        self, channel: str, callback: EventCallback, on_error: Optional[ErrorCallback] = None
    ) -> Listener:
        """
        Start delivering payloads for ``channel``; returns once the channel is live.

        Failures before that point are raised. A channel that drops afterwards
        is reported through ``on_error``.
        """

    async def close(self) -> None:
        return None


class _InMemoryListener(Listener):
    def __init__(self, transport: "InMemoryTransport", channel: str, callback: EventCallback):
        self._transport = transport
        self._channel = channel
        self._callback = callback

    async def close(self) -> None:
        self._transport._remove(self._channel, self._callback)


class InMemoryTransport(EventTransport):
    """Direct fan-out inside one event loop."""

    def __init__(self) -> None:
        self._listeners: Dict[str, Set[EventCallback]] = defaultdict(set)

    async def publish(self, channel: str, payload: Dict[str, Any]) -> None:
        for callback in list(self._listeners.get(channel, ())):
            try:
                callback(payload)
            except Exception:
                logger.exception("[BUS] Listener on %s failed", channel)

    async def listen(
        self, channel: str, callback: EventCallback, on_error: Optional[ErrorCallback] = None
    ) -> Listener:
        self._listeners[channel].add(callback)
        return _InMemoryListener(self, channel, callback)

    def _remove(self, channel: str, callback: EventCallback) -> None:
        callbacks = self._listeners.get(channel)
        if not callbacks:
            return
        callbacks.discard(callback)
        if not callbacks:
            del self._listeners[channel]

    def listener_count(self, channel: Optional[str] = None) -> int:
        if channel is not None:
            return len(self._listeners.get(channel, ()))
        return sum(len(callbacks) for callbacks in self._listeners.values())


class _BroadcastListener(Listener):
    def __init__(self, task: asyncio.Task, channel: str):
        self._task = task
        self._channel = channel

    async def close(self) -> None:
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        logger.debug("[BROADCAST] Released channel %s", self._channel)


class BroadcastTransport(EventTransport):
    """Fan-out across workers through a shared Broadcaster instance."""

    def __init__(self, broadcast: Broadcast):
        self._broadcast = broadcast

    async def publish(self, channel: str, payload: Dict[str, Any]) -> None:
        try:
            await self._broadcast.publish(channel=channel, message=json.dumps(payload))
        except Exception as exc:
            logger.error("[BROADCAST] Publish to %s failed: %s", channel, exc)

    async def listen(
        self, channel: str, callback: EventCallback, on_error: Optional[ErrorCallback] = None
    ) -> Listener:
        ready = asyncio.Event()
        failure: Dict[str, BaseException] = {}

        async def reader() -> None:
            try:
                async with self._broadcast.subscribe(channel=channel) as subscriber:
                    ready.set()
                    async for event in subscriber:
                        try:
                            payload = json.loads(event.message)
                        except json.JSONDecodeError as e:
                            logger.warning("[BROADCAST] Invalid JSON on %s: %s", channel, e)
                            continue
                        callback(payload)
                raise ConnectionError(f"Broadcast stream for {channel} ended")
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("[BROADCAST] Reader for %s stopped: %s", channel, exc)
                if not ready.is_set():
                    failure["error"] = exc
                    ready.set()
                elif on_error is not None:
                    on_error(exc)

        task = asyncio.create_task(reader())
        try:
            await ready.wait()
        except asyncio.CancelledError:
            task.cancel()
            raise
        if "error" in failure:
            raise ConnectionError(f"Subscribe to {channel} failed") from failure["error"]
        return _BroadcastListener(task, channel)
