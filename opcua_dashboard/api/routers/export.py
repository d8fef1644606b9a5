from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from opcua_dashboard.api.deps import get_db, get_plc_service, get_simulator
from opcua_dashboard.services.export_service import export_filename, node_data_csv
from opcua_dashboard.services.node_value_simulator import NodeValueSimulator
from opcua_dashboard.services.plc_service import PLCService

router = APIRouter(prefix="/api/export", tags=["export"])


@router.get("/csv")
def export_csv(
    plcId: Optional[int] = None,
    db: Session = Depends(get_db),
    plcs: PLCService = Depends(get_plc_service),
    simulator: NodeValueSimulator = Depends(get_simulator),
):
    plc_no = None
    if plcId is not None:
        plc = plcs.get_plc(db, plcId)
        if not plc:
            raise HTTPException(status_code=404, detail="PLC not found")
        plc_no = plc.plc_no

    content = node_data_csv(simulator.snapshot(db, plc_no=plc_no))
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{export_filename("node_data")}"'},
    )
