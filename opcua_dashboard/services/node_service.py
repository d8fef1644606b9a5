from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.orm import Session

from opcua_dashboard.db.models import OpcuaNode, UserDescription, as_utc, utcnow
from opcua_dashboard.services.normalization import (
    BitFallback,
    DataKind,
    address_mappings_of,
    expand_bit_mappings,
    synthesize_fallback_bits,
)

_NODE_FIELDS = ("plc_no", "node_name", "description", "value", "datatype", "reg_add", "user_description")


def node_to_dict(node: OpcuaNode) -> Dict[str, Any]:
    return {
        "id": node.id,
        "plc_no": node.plc_no,
        "nodeName": node.node_name,
        "description": node.description,
        "value": node.value,
        "timestamp": as_utc(node.timestamp).isoformat() if node.timestamp else None,
        "datatype": node.datatype,
        "regAdd": node.reg_add,
        "userDescription": node.user_description,
    }


def description_to_dict(d: UserDescription) -> Dict[str, Any]:
    return {
        "id": d.id,
        "plc_id": d.plc_id,
        "node_id": d.node_id,
        "user_description": d.user_description,
        "created_at": as_utc(d.created_at).isoformat(),
        "updated_at": as_utc(d.updated_at).isoformat(),
    }


def node_rows_for(plc: Mapping[str, Any], *, bit_fallback: Optional[BitFallback] = None) -> List[Dict[str, Any]]:
    """Storage rows for one raw PLC entry.

    A mapping with declared bit mappings is stored as one BOOL node per bit,
    named ``{opcua_reg_add}_{NN}``, whatever its data type; the register
    itself gets no row. Non-bool registers matched by ``bit_fallback`` get
    synthesized bits the same way. Everything else is a single node with its
    declared data type.
    """
    rows: List[Dict[str, Any]] = []
    for m in address_mappings_of(plc):
        name = str(m.get("opcua_reg_add") or "")
        bits = expand_bit_mappings(m)
        if (
            not bits
            and bit_fallback is not None
            and DataKind.from_data_type(m.get("data_type")) is not DataKind.BOOL
            and bit_fallback.applies_to(m)
        ):
            bits = synthesize_fallback_bits(m, bit_fallback)
        if not bits:
            rows.append(
                {
                    "node_name": name,
                    "description": str(m.get("description") or ""),
                    "datatype": str(m.get("data_type") or ""),
                    "reg_add": str(m.get("plc_reg_add") or ""),
                }
            )
            continue
        for bit in bits:
            rows.append(
                {
                    "node_name": f"{name}_{(bit.bit_position or 0):02d}",
                    "description": bit.description,
                    "datatype": "BOOL",
                    "reg_add": bit.plc_reg_add,
                }
            )
    return rows


@dataclass
class NodeService:
    # ---------------- OPC UA nodes ----------------
    def list_nodes(self, db: Session, *, plc_no: Optional[int] = None) -> list[OpcuaNode]:
        q = db.query(OpcuaNode)
        if plc_no is not None:
            q = q.filter(OpcuaNode.plc_no == plc_no)
        return q.order_by(OpcuaNode.id.asc()).all()

    def count_for_plc_no(self, db: Session, plc_no: int) -> int:
        return db.query(OpcuaNode).filter(OpcuaNode.plc_no == plc_no).count()

    def get_node(self, db: Session, node_id: int) -> Optional[OpcuaNode]:
        return db.query(OpcuaNode).filter(OpcuaNode.id == node_id).one_or_none()

    def add_nodes(self, db: Session, *, plc_no: int, rows: List[Dict[str, Any]]) -> list[OpcuaNode]:
        """Stage node rows without committing."""
        now = utcnow()
        nodes = [
            OpcuaNode(
                plc_no=plc_no,
                node_name=r["node_name"],
                description=r["description"],
                value="",
                timestamp=now,
                datatype=r["datatype"],
                reg_add=r["reg_add"],
                user_description="",
            )
            for r in rows
        ]
        db.add_all(nodes)
        db.flush()
        return nodes

    def create_node(self, db: Session, data: Dict[str, Any]) -> OpcuaNode:
        node = OpcuaNode(**{k: data.get(k) for k in _NODE_FIELDS})
        node.timestamp = data.get("timestamp") or utcnow()
        db.add(node)
        db.commit()
        db.refresh(node)
        return node

    def update_node(self, db: Session, node: OpcuaNode, *, patch: Dict[str, Any]) -> OpcuaNode:
        for key in _NODE_FIELDS:
            if key in patch and patch[key] is not None:
                setattr(node, key, patch[key])
        if patch.get("timestamp") is not None:
            node.timestamp = patch["timestamp"]
        db.add(node)
        db.commit()
        db.refresh(node)
        return node

    def delete_node(self, db: Session, node: OpcuaNode) -> None:
        db.delete(node)
        db.commit()

    # ---------------- User descriptions ----------------
    def get_description(self, db: Session, plc_id: str, node_id: str) -> Optional[UserDescription]:
        return (
            db.query(UserDescription)
            .filter(UserDescription.plc_id == plc_id, UserDescription.node_id == node_id)
            .one_or_none()
        )

    def list_descriptions(self, db: Session, plc_id: str) -> list[UserDescription]:
        return (
            db.query(UserDescription)
            .filter(UserDescription.plc_id == plc_id)
            .order_by(UserDescription.id.asc())
            .all()
        )

    def save_description(self, db: Session, plc_id: str, node_id: str, text: str) -> UserDescription:
        entry = self.get_description(db, plc_id, node_id)
        if entry is None:
            entry = UserDescription(plc_id=plc_id, node_id=node_id, user_description=text)
        else:
            entry.user_description = text
            entry.updated_at = utcnow()
        db.add(entry)
        db.commit()
        db.refresh(entry)
        return entry
