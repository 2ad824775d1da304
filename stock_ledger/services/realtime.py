from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Set
from uuid import UUID

from starlette.websockets import WebSocket, WebSocketState

from stock_ledger.schemas.realtime import BalanceChangedEvent, WsEnvelope

logger = logging.getLogger(__name__)

Subscriber = Callable[[Sequence[BalanceChangedEvent]], Awaitable[None]]


class StockEventHub:
    """
    Transport-agnostic "balance changed" hook.

    Writers publish after their commit; subscribers (WebSocket fan-out, tests,
    cache invalidation) receive the batch of events of one commit. A failing
    subscriber is logged and never fails the write that already committed.
    """

    def __init__(self) -> None:
        self._subscribers: List[Subscriber] = []

    # PUBLIC_INTERFACE
    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """Register a subscriber; returns a callable that unregisters it."""
        self._subscribers.append(subscriber)

        def _unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return _unsubscribe

    # PUBLIC_INTERFACE
    async def publish(self, events: Sequence[BalanceChangedEvent]) -> None:
        """Deliver one commit's events to every subscriber."""
        if not events:
            return
        for subscriber in list(self._subscribers):
            try:
                await subscriber(events)
            except Exception:
                logger.exception("Balance-changed subscriber failed")


class BroadcastManager:
    """
    Simple in-process pub-sub manager for WebSocket topics.

    Topics:
      - stock                 every balance change
      - stock:{store_id}      changes of one store
    """

    def __init__(self) -> None:
        self._topics: Dict[str, Set[WebSocket]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._global_lock = asyncio.Lock()

    def _topic_lock(self, topic: str) -> asyncio.Lock:
        if topic not in self._locks:
            self._locks[topic] = asyncio.Lock()
        return self._locks[topic]

    # PUBLIC_INTERFACE
    def stock_topic(self, store_id: Optional[UUID | str] = None) -> str:
        """Return the topic name for all stores or a single store."""
        if store_id:
            return f"stock:{store_id}"
        return "stock"

    async def _ensure_topic(self, topic: str) -> None:
        async with self._global_lock:
            if topic not in self._topics:
                self._topics[topic] = set()

    def subscriber_count(self, topic: str) -> int:
        return len(self._topics.get(topic, ()))

    # PUBLIC_INTERFACE
    async def connect(self, topic: str, websocket: WebSocket) -> None:
        """Add an accepted websocket to the topic subscribers."""
        await self._ensure_topic(topic)
        async with self._topic_lock(topic):
            self._topics[topic].add(websocket)
            logger.info("WebSocket connected to topic=%s; subscribers=%d", topic, len(self._topics[topic]))

    # PUBLIC_INTERFACE
    async def disconnect(self, topic: str, websocket: WebSocket) -> None:
        """Remove websocket from topic subscribers."""
        if topic not in self._topics:
            return
        async with self._topic_lock(topic):
            self._topics[topic].discard(websocket)
            logger.info("WebSocket disconnected from topic=%s; subscribers=%d", topic, len(self._topics[topic]))

    # PUBLIC_INTERFACE
    async def broadcast(self, topic: str, message: dict) -> None:
        """Send a dict message to every subscriber of the topic, dropping dead sockets."""
        if topic not in self._topics:
            return
        async with self._topic_lock(topic):
            to_drop: list[WebSocket] = []
            for ws in list(self._topics[topic]):
                try:
                    if ws.application_state == WebSocketState.DISCONNECTED or ws.client_state == WebSocketState.DISCONNECTED:
                        to_drop.append(ws)
                        continue
                    await ws.send_json(message)
                except Exception:
                    logger.exception("Failed to send message to websocket; scheduling drop")
                    to_drop.append(ws)
            for ws in to_drop:
                self._topics[topic].discard(ws)

    # PUBLIC_INTERFACE
    async def publish_balance_changes(self, events: Sequence[BalanceChangedEvent]) -> None:
        """StockEventHub subscriber: push each event to the global and the store topic."""
        for event in events:
            env = WsEnvelope(
                type="stock.balance_changed",
                payload=event.model_dump(mode="json"),
                channel=str(event.store_id),
            )
            message = env.model_dump(mode="json")
            await self.broadcast(self.stock_topic(), message)
            await self.broadcast(self.stock_topic(event.store_id), message)


# Singleton instances
stock_events = StockEventHub()
broadcast_manager = BroadcastManager()
