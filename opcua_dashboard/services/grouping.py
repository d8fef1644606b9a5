from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Sequence

from opcua_dashboard.services.normalization import NormalizedPLC, NormalizedVariable


@dataclass
class ServerGroup:
    server_url: str
    plcs: List[NormalizedPLC] = field(default_factory=list)

    @property
    def connected_count(self) -> int:
        return sum(1 for p in self.plcs if p.is_connected)

    @property
    def total_count(self) -> int:
        return len(self.plcs)

    @property
    def status(self) -> str:
        return "connected" if any(p.is_connected for p in self.plcs) else "disconnected"

    @property
    def last_updated(self) -> int:
        """Latest member ``last_checked`` as epoch milliseconds."""
        if not self.plcs:
            return 0
        return max(int(p.last_checked.timestamp() * 1000) for p in self.plcs)

    def to_dict(self, *, include_plcs: bool = True) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "serverUrl": self.server_url,
            "connectedCount": self.connected_count,
            "totalCount": self.total_count,
            "status": self.status,
            "lastUpdated": self.last_updated,
        }
        if include_plcs:
            out["plcs"] = [p.to_dict() for p in self.plcs]
        return out


def group_plcs_by_server(plcs: Iterable[NormalizedPLC]) -> List[ServerGroup]:
    # Exact string match on the URL; no normalization of case or trailing slashes.
    groups: Dict[str, ServerGroup] = {}
    for plc in plcs:
        groups.setdefault(plc.opcua_url, ServerGroup(server_url=plc.opcua_url)).plcs.append(plc)
    return list(groups.values())


def filter_variables(variables: Sequence[NormalizedVariable], query: str) -> List[NormalizedVariable]:
    if not (query or "").strip():
        return list(variables)
    q = query.lower()
    return [
        v
        for v in variables
        if q in v.plc_reg_add.lower() or q in v.opcua_reg_add.lower() or q in v.description.lower()
    ]
