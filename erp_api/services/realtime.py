"""
In-process fan-out of domain events to WebSocket subscribers.

Two fixed topics exist: ``production`` carries ``production_order.*`` events and
``inventory`` carries ``inventory.*`` events. Delivery is best effort; clients
treat an event as a hint to refetch, never as the source of truth.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Set
from uuid import UUID

from starlette.websockets import WebSocket, WebSocketState

from erp_api.schemas.realtime import WsEnvelope

logger = logging.getLogger(__name__)

TOPIC_PRODUCTION = "production"
TOPIC_INVENTORY = "inventory"
TOPICS = (TOPIC_PRODUCTION, TOPIC_INVENTORY)


def _is_closed(ws: WebSocket) -> bool:
    return WebSocketState.DISCONNECTED in (ws.application_state, ws.client_state)


class BroadcastManager:
    """Topic -> subscriber set registry guarded by one lock per topic."""

    def __init__(self) -> None:
        self._subscribers: Dict[str, Set[WebSocket]] = {topic: set() for topic in TOPICS}
        self._guards: Dict[str, asyncio.Lock] = {topic: asyncio.Lock() for topic in TOPICS}

    # PUBLIC_INTERFACE
    def topic_for(self, event_type: str) -> str:
        """Return the topic an event type is published on."""
        return TOPIC_INVENTORY if event_type.startswith("inventory.") else TOPIC_PRODUCTION

    # PUBLIC_INTERFACE
    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, ()))

    # PUBLIC_INTERFACE
    async def connect(self, topics: Iterable[str], websocket: WebSocket) -> None:
        """Subscribe an accepted websocket to each of the given topics."""
        for topic in topics:
            async with self._guards[topic]:
                self._subscribers[topic].add(websocket)
            logger.info("WebSocket subscribed topic=%s subscribers=%d", topic, self.subscriber_count(topic))

    # PUBLIC_INTERFACE
    async def disconnect(self, topics: Iterable[str], websocket: WebSocket) -> None:
        for topic in topics:
            if topic not in self._subscribers:
                continue
            async with self._guards[topic]:
                self._subscribers[topic].discard(websocket)
            logger.info("WebSocket unsubscribed topic=%s subscribers=%d", topic, self.subscriber_count(topic))

    # PUBLIC_INTERFACE
    async def broadcast(self, topic: str, message: Dict[str, Any]) -> int:
        """
        Send a JSON message to every live subscriber of the topic.

        Sockets that are closed or fail to send are unsubscribed. Returns the
        number of sockets the message reached.
        """
        delivered = 0
        async with self._guards[topic]:
            dead: List[WebSocket] = []
            for ws in list(self._subscribers[topic]):
                if _is_closed(ws):
                    dead.append(ws)
                    continue
                try:
                    await ws.send_json(message)
                    delivered += 1
                except Exception:
                    logger.warning("Dropping websocket on topic=%s after failed send", topic, exc_info=True)
                    dead.append(ws)
            self._subscribers[topic].difference_update(dead)
        return delivered

    # PUBLIC_INTERFACE
    async def publish(self, event_type: str, payload: Dict[str, Any], user_id: UUID | str | None = None) -> None:
        """Wrap payload in a WsEnvelope and broadcast it on the event's topic."""
        envelope = WsEnvelope(type=event_type, payload=payload, user_id=user_id)
        await self.broadcast(self.topic_for(event_type), envelope.model_dump(mode="json"))


broadcast_manager = BroadcastManager()
