from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

from sqlalchemy.orm import Session

from opcua_dashboard.db.models import OpcuaNode
from opcua_dashboard.services.node_service import NodeService, node_rows_for
from opcua_dashboard.services.normalization import BitFallback, NormalizedPLC, normalize_plc_config
from opcua_dashboard.services.plc_service import DuplicatePLCError, PLCService

logger = logging.getLogger(__name__)


@dataclass
class UploadResult:
    plcs: List[NormalizedPLC] = field(default_factory=list)
    nodes: List[OpcuaNode] = field(default_factory=list)

    @property
    def total_created(self) -> int:
        return len(self.nodes)


@dataclass
class UploadService:
    """Turns a validated upload document into stored PLCs and OPC UA nodes."""

    plc_service: PLCService
    node_service: NodeService
    bit_fallback: Optional[BitFallback] = None

    def check_duplicates(self, db: Session, plcs: List[Mapping[str, Any]]) -> None:
        """Reject the whole upload before anything is written."""
        seen_targets: Set[Tuple[str, str]] = set()
        seen_numbers: Set[int] = set()
        for plc in plcs:
            plc_no = int(plc.get("plc_no") or 1)
            target = (plc["plc_ip"], plc["opcua_url"])
            if target in seen_targets or plc_no in seen_numbers:
                raise DuplicatePLCError(
                    f"PLC with IP {plc['plc_ip']} and OPC UA URL {plc['opcua_url']} (PLC No. {plc_no}) "
                    "appears more than once in the uploaded file.",
                    error="Duplicate PLC in upload",
                )
            seen_targets.add(target)
            seen_numbers.add(plc_no)

            existing = self.plc_service.get_by_ip_and_url(db, plc["plc_ip"], plc["opcua_url"])
            if existing:
                nodes_count = self.node_service.count_for_plc_no(db, plc_no)
                suffix = f" with {nodes_count} nodes" if nodes_count else ""
                raise DuplicatePLCError(
                    f"PLC with IP {plc['plc_ip']} and OPC UA URL {plc['opcua_url']} already exists in the database"
                    f"{suffix}. Please delete the existing PLC first and then re-upload.",
                    existing=existing,
                    existing_nodes_count=nodes_count,
                )
            nodes_count = self.node_service.count_for_plc_no(db, plc_no)
            if nodes_count:
                raise DuplicatePLCError(
                    f"Nodes for PLC No. {plc_no} already exist in the database ({nodes_count} nodes). "
                    "Please delete the existing nodes first.",
                    existing_nodes_count=nodes_count,
                    error="Nodes already exist",
                )

    def import_document(self, db: Session, doc: Mapping[str, Any]) -> UploadResult:
        normalized = normalize_plc_config(doc, bit_fallback=self.bit_fallback)
        raw_plcs: List[Dict[str, Any]] = list(doc["plcs"])
        logger.info("Upload contains %d PLCs", len(raw_plcs))

        self.check_duplicates(db, raw_plcs)

        result = UploadResult(plcs=normalized)
        try:
            for raw, plc in zip(raw_plcs, normalized):
                record = self.plc_service.add_plc(db, raw)
                plc.id = str(record.id)
                rows = node_rows_for(raw, bit_fallback=self.bit_fallback)
                logger.debug("PLC %s (No %s): %d mappings -> %d nodes", plc.plc_name, record.plc_no, len(raw.get("address_mappings") or []), len(rows))
                result.nodes.extend(self.node_service.add_nodes(db, plc_no=record.plc_no, rows=rows))
            db.commit()
        except Exception:
            db.rollback()
            raise

        for node in result.nodes:
            db.refresh(node)
        logger.info("Upload completed: %d nodes created", result.total_created)
        return result
