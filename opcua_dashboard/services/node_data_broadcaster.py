from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Subscriber:
    websocket: WebSocket
    plc_nos: Set[int] = field(default_factory=set)

    def wants(self, plc_no: Any) -> bool:
        # No explicit subscription means "everything".
        return not self.plc_nos or plc_no in self.plc_nos


class NodeDataBroadcaster:
    """Thread-safe in-process WebSocket broadcaster for live node values.

    The value simulator runs on a scheduler thread, not in the asyncio event
    loop, so sends are scheduled via call_soon_threadsafe on the loop captured
    at startup.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop
        self._subs: Dict[int, Subscriber] = {}
        self._lock = asyncio.Lock()

    async def add(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._subs[id(websocket)] = Subscriber(websocket=websocket)

    async def remove(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._subs.pop(id(websocket), None)

    async def subscribe(self, websocket: WebSocket, plc_no: int) -> None:
        async with self._lock:
            sub = self._subs.get(id(websocket))
            if sub is not None:
                sub.plc_nos.add(plc_no)

    async def unsubscribe(self, websocket: WebSocket, plc_no: int) -> None:
        async with self._lock:
            sub = self._subs.get(id(websocket))
            if sub is not None:
                sub.plc_nos.discard(plc_no)

    @property
    def connection_count(self) -> int:
        return len(self._subs)

    def broadcast_nodes(self, nodes: List[Dict[str, Any]]) -> None:
        """Send a ``nodeDataUpdate`` to every client, filtered by its PLC subscriptions."""

        async def _send_all() -> None:
            async with self._lock:
                subs = list(self._subs.values())

            logger.debug("Broadcasting %d node values to %d clients", len(nodes), len(subs))
            dead: list[Subscriber] = []
            for s in subs:
                selected = [n for n in nodes if s.wants(n.get("plc_no"))]
                if not selected:
                    continue
                try:
                    await s.websocket.send_json({"type": "nodeDataUpdate", "nodes": selected})
                except Exception:
                    dead.append(s)

            if dead:
                async with self._lock:
                    for d in dead:
                        self._subs.pop(id(d.websocket), None)

        try:
            self._loop.call_soon_threadsafe(lambda: asyncio.create_task(_send_all()))
        except RuntimeError as e:
            logger.debug("Node data broadcast scheduling failed: %s", e)
