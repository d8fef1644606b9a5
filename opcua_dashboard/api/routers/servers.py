from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from opcua_dashboard.api.deps import get_db, get_plc_service
from opcua_dashboard.services.grouping import group_plcs_by_server
from opcua_dashboard.services.plc_service import PLCService

router = APIRouter(prefix="/api/servers", tags=["servers"])


@router.get("/status")
def server_statuses(db: Session = Depends(get_db), svc: PLCService = Depends(get_plc_service)):
    out = []
    for group in group_plcs_by_server(svc.normalized_all(db)):
        out.append(
            {
                "opcua_url": group.server_url,
                "is_connected": group.status == "connected",
                "status": "active" if group.status == "connected" else "inactive",
                "last_update": group.last_updated,
                "node_count": sum(p.register_count for p in group.plcs),
            }
        )
    return out


@router.get("/groups")
def server_groups(db: Session = Depends(get_db), svc: PLCService = Depends(get_plc_service)):
    return [g.to_dict() for g in group_plcs_by_server(svc.normalized_all(db))]
