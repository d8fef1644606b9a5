from __future__ import annotations

import datetime as dt
import logging
import random
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from opcua_dashboard.db.models import OpcuaNode, utcnow

logger = logging.getLogger(__name__)

NUMERIC_TYPES = frozenset({"word", "dword", "int", "dint", "uint", "udint", "real", "lreal", "channel"})
BOOL_TYPES = frozenset({"bool"})


@dataclass
class NodeValue:
    value: Any
    timestamp: dt.datetime
    quality: str = "Good"


def _initial_value(node: OpcuaNode) -> Any:
    kind = (node.datatype or "").lower()
    raw = node.value
    if kind in BOOL_TYPES:
        return str(raw).strip().lower() in ("1", "true", "on")
    if kind in NUMERIC_TYPES:
        try:
            return float(raw) if raw not in (None, "") else 0.0
        except ValueError:
            return 0.0
    return raw or ""


class NodeValueSimulator:
    """Mock live values for stored OPC UA nodes.

    There is no OPC UA client behind this: BOOL nodes flip now and then,
    numeric nodes random-walk, everything else keeps its stored value.
    """

    def __init__(
        self,
        sessionmaker: Callable[[], Session],
        *,
        namespace_index: int = 2,
        flip_probability: float = 0.05,
        step: float = 2.5,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._sessionmaker = sessionmaker
        self._ns = namespace_index
        self._flip_probability = flip_probability
        self._step = step
        self._rng = rng or random.Random()
        self._values: Dict[int, NodeValue] = {}
        self._lock = threading.Lock()

    def node_id(self, node: OpcuaNode) -> str:
        return f"ns={self._ns};s={node.node_name}"

    def _current(self, node: OpcuaNode) -> NodeValue:
        cur = self._values.get(node.id)
        if cur is None:
            cur = NodeValue(value=_initial_value(node), timestamp=node.timestamp or utcnow())
            self._values[node.id] = cur
        return cur

    def _advance(self, node: OpcuaNode, cur: NodeValue, now: dt.datetime) -> NodeValue:
        kind = (node.datatype or "").lower()
        value = cur.value
        if kind in BOOL_TYPES:
            if self._rng.random() < self._flip_probability:
                value = not bool(value)
        elif kind in NUMERIC_TYPES:
            value = float(value) + (self._rng.random() - 0.5) * 2 * self._step
        return NodeValue(value=value, timestamp=now, quality=cur.quality)

    def to_node_data(self, node: OpcuaNode, cur: NodeValue) -> Dict[str, Any]:
        return {
            "node_id": self.node_id(node),
            "node_name": node.node_name,
            "plc_no": node.plc_no,
            "current_value": cur.value,
            "timestamp": cur.timestamp.isoformat(),
            "quality": cur.quality,
            "data_type": node.datatype,
        }

    def snapshot(self, db: Session, *, plc_no: Optional[int] = None) -> List[Dict[str, Any]]:
        q = db.query(OpcuaNode)
        if plc_no is not None:
            q = q.filter(OpcuaNode.plc_no == plc_no)
        nodes = q.order_by(OpcuaNode.id.asc()).all()
        with self._lock:
            return [self.to_node_data(n, self._current(n)) for n in nodes]

    def tick(self, now: Optional[dt.datetime] = None) -> List[Dict[str, Any]]:
        now = now or utcnow()
        with self._sessionmaker() as db:
            nodes = db.query(OpcuaNode).order_by(OpcuaNode.id.asc()).all()
        out: List[Dict[str, Any]] = []
        with self._lock:
            live = {n.id for n in nodes}
            for stale in [k for k in self._values if k not in live]:
                del self._values[stale]
            for n in nodes:
                nxt = self._advance(n, self._current(n), now)
                self._values[n.id] = nxt
                out.append(self.to_node_data(n, nxt))
        return out
