from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from opcua_dashboard.db.models import OpcuaNode, PLCRecord, as_utc, utcnow
from opcua_dashboard.services.normalization import (
    PLC_STATUSES,
    NormalizedPLC,
    NormalizedVariable,
    denormalize_plc,
    find_orphans,
    normalize_plc,
)

logger = logging.getLogger(__name__)


class DuplicatePLCError(ValueError):
    """A PLC with the same IP and OPC UA URL (or nodes for the same plc_no) already exists."""

    def __init__(
        self,
        message: str,
        *,
        existing: Optional[PLCRecord] = None,
        existing_nodes_count: int = 0,
        error: str = "PLC already exists",
    ) -> None:
        super().__init__(message)
        self.existing = existing
        self.existing_nodes_count = existing_nodes_count
        self.error = error


def plc_to_dict(plc: PLCRecord) -> Dict[str, Any]:
    return {
        "id": plc.id,
        "plc_name": plc.plc_name,
        "plc_no": plc.plc_no,
        "plc_ip": plc.plc_ip,
        "opcua_url": plc.opcua_url,
        "status": plc.status,
        "is_connected": bool(plc.is_connected),
        "last_checked": as_utc(plc.last_checked).isoformat() if plc.last_checked else None,
        "created_at": as_utc(plc.created_at).isoformat() if plc.created_at else None,
        "address_mappings": list(plc.address_mappings or []),
    }


def raw_config_of(plc: PLCRecord) -> Dict[str, Any]:
    return {
        "plc_name": plc.plc_name,
        "plc_no": plc.plc_no,
        "plc_ip": plc.plc_ip,
        "opcua_url": plc.opcua_url,
        "address_mappings": list(plc.address_mappings or []),
    }


@dataclass
class PLCService:
    """CRUD over stored PLC configurations plus their normalized views."""

    def list_plcs(self, db: Session) -> list[PLCRecord]:
        return db.query(PLCRecord).order_by(PLCRecord.id.asc()).all()

    def get_plc(self, db: Session, plc_id: int) -> Optional[PLCRecord]:
        return db.query(PLCRecord).filter(PLCRecord.id == plc_id).one_or_none()

    def get_by_ip_and_url(self, db: Session, plc_ip: str, opcua_url: str) -> Optional[PLCRecord]:
        return (
            db.query(PLCRecord)
            .filter(PLCRecord.plc_ip == plc_ip, PLCRecord.opcua_url == opcua_url)
            .first()
        )

    def add_plc(self, db: Session, config: Dict[str, Any]) -> PLCRecord:
        """Stage a PLC row without committing; callers own the transaction."""
        existing = self.get_by_ip_and_url(db, config["plc_ip"], config["opcua_url"])
        if existing:
            raise DuplicatePLCError(
                f"PLC with IP {config['plc_ip']} and OPC UA URL {config['opcua_url']} already exists.",
                existing=existing,
            )
        now = utcnow()
        plc = PLCRecord(
            plc_name=config["plc_name"],
            plc_ip=config["plc_ip"],
            plc_no=int(config.get("plc_no") or 1),
            opcua_url=config["opcua_url"],
            status="maintenance",
            is_connected=False,
            last_checked=now,
            created_at=now,
            address_mappings=list(config.get("address_mappings") or []),
        )
        db.add(plc)
        db.flush()
        return plc

    def create_plc(self, db: Session, config: Dict[str, Any]) -> PLCRecord:
        plc = self.add_plc(db, config)
        db.commit()
        db.refresh(plc)
        logger.info("Created PLC id=%s name=%s plc_no=%s", plc.id, plc.plc_name, plc.plc_no)
        return plc

    def update_plc(self, db: Session, plc: PLCRecord, *, patch: Dict[str, Any]) -> PLCRecord:
        for key in ("plc_name", "plc_ip", "opcua_url"):
            if key in patch and patch[key] is not None:
                setattr(plc, key, str(patch[key]).strip())
        if patch.get("plc_no") is not None:
            plc.plc_no = int(patch["plc_no"])
        if patch.get("status") is not None:
            status = str(patch["status"]).strip().lower()
            if status not in PLC_STATUSES:
                raise ValueError("invalid status")
            plc.status = status
        if patch.get("is_connected") is not None:
            plc.is_connected = bool(patch["is_connected"])
        if patch.get("address_mappings") is not None:
            plc.address_mappings = list(patch["address_mappings"])
        plc.last_checked = utcnow()
        db.add(plc)
        db.commit()
        db.refresh(plc)
        return plc

    def set_connection(self, db: Session, plc: PLCRecord, *, connected: bool) -> PLCRecord:
        plc.is_connected = connected
        plc.status = "active" if connected else "maintenance"
        plc.last_checked = utcnow()
        db.add(plc)
        db.commit()
        db.refresh(plc)
        logger.info("PLC id=%s %s", plc.id, "connected" if connected else "disconnected")
        return plc

    def delete_plc(self, db: Session, plc: PLCRecord) -> int:
        """Delete a PLC and every OPC UA node sharing its plc_no. Returns deleted node count."""
        deleted = (
            db.query(OpcuaNode)
            .filter(OpcuaNode.plc_no == plc.plc_no)
            .delete(synchronize_session=False)
        )
        db.delete(plc)
        db.commit()
        logger.info("Deleted PLC id=%s and %s nodes", plc.id, deleted)
        return int(deleted or 0)

    def delete_by_plc_no(self, db: Session, plc_no: int) -> tuple[int, bool]:
        deleted_nodes = (
            db.query(OpcuaNode)
            .filter(OpcuaNode.plc_no == plc_no)
            .delete(synchronize_session=False)
        )
        deleted_plcs = (
            db.query(PLCRecord)
            .filter(PLCRecord.plc_no == plc_no)
            .delete(synchronize_session=False)
        )
        db.commit()
        logger.info("Deleted PLC No %s: %s nodes, %s PLC rows", plc_no, deleted_nodes, deleted_plcs)
        return int(deleted_nodes or 0), bool(deleted_plcs)

    # ---------------- Normalized views ----------------
    def normalized(self, plc: PLCRecord) -> NormalizedPLC:
        return normalize_plc(
            raw_config_of(plc),
            plc_id=str(plc.id),
            status=plc.status,
            is_connected=bool(plc.is_connected),
            last_checked=as_utc(plc.last_checked),
            created_at=as_utc(plc.created_at),
        )

    def normalized_all(self, db: Session) -> List[NormalizedPLC]:
        return [self.normalized(p) for p in self.list_plcs(db)]

    def replace_variables(self, db: Session, plc: PLCRecord, variables: Sequence[NormalizedVariable]) -> PLCRecord:
        """Store a UI-edited variable list back in the flat address-mapping shape."""
        orphans = find_orphans(variables)
        if orphans:
            raise ValueError(f"variables reference unknown parents: {', '.join(sorted({o.parent_id or '' for o in orphans}))}")
        current = self.normalized(plc)
        current.variables = list(variables)
        raw = denormalize_plc(current)
        # The stored shape must normalize again before it replaces the old one.
        normalize_plc(raw, plc_id=str(plc.id))
        plc.address_mappings = raw["address_mappings"]
        db.add(plc)
        db.commit()
        db.refresh(plc)
        return plc
