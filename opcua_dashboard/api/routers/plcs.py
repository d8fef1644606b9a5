from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from opcua_dashboard.api.deps import get_db, get_node_service, get_plc_service, get_simulator
from opcua_dashboard.api.schemas import DescriptionIn, PLCPatch, RawPLCConfigIn, VariablesIn
from opcua_dashboard.db.models import PLCRecord
from opcua_dashboard.services.export_service import export_filename, variables_csv
from opcua_dashboard.services.grouping import filter_variables
from opcua_dashboard.services.node_service import NodeService, description_to_dict
from opcua_dashboard.services.node_value_simulator import NodeValueSimulator
from opcua_dashboard.services.normalization import NormalizedVariable, denormalize_plc
from opcua_dashboard.services.plc_service import DuplicatePLCError, PLCService, plc_to_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/plcs", tags=["plcs"])


def _get_or_404(db: Session, svc: PLCService, plc_id: int) -> PLCRecord:
    plc = svc.get_plc(db, plc_id)
    if not plc:
        raise HTTPException(status_code=404, detail="PLC not found")
    return plc


def _conflict(e: DuplicatePLCError, *, action: str) -> HTTPException:
    return HTTPException(
        status_code=409,
        detail={
            "error": "PLC already exists",
            "message": str(e),
            "existing_plc": plc_to_dict(e.existing) if e.existing else None,
            "action_required": action,
        },
    )


@router.get("")
def list_plcs(db: Session = Depends(get_db), svc: PLCService = Depends(get_plc_service)):
    return [plc_to_dict(p) for p in svc.list_plcs(db)]


@router.post("", status_code=201)
def create_plc(
    req: RawPLCConfigIn,
    db: Session = Depends(get_db),
    svc: PLCService = Depends(get_plc_service),
):
    try:
        plc = svc.create_plc(db, req.to_raw())
    except DuplicatePLCError as e:
        db.rollback()
        logger.warning("Duplicate PLC detected by IP and URL: %s %s", req.plc_ip, req.opcua_url)
        raise _conflict(e, action="use_different_ip_or_url")
    return plc_to_dict(plc)


# Registered before "/{plc_id}" so the literal segment wins.
@router.delete("/by-number/{plc_no}")
def delete_plc_by_number(
    plc_no: str,
    db: Session = Depends(get_db),
    svc: PLCService = Depends(get_plc_service),
):
    try:
        number = int(plc_no)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid PLC number")

    deleted_nodes, plc_deleted = svc.delete_by_plc_no(db, number)
    if not deleted_nodes and not plc_deleted:
        raise HTTPException(status_code=404, detail="PLC not found")
    return {
        "success": True,
        "message": f"Successfully deleted PLC No. {number} and all {deleted_nodes} associated nodes",
        "plc_no": number,
        "deleted_nodes_count": deleted_nodes,
        "plc_deleted": plc_deleted,
    }


@router.get("/{plc_id}")
def get_plc(plc_id: int, db: Session = Depends(get_db), svc: PLCService = Depends(get_plc_service)):
    return plc_to_dict(_get_or_404(db, svc, plc_id))


@router.put("/{plc_id}")
def update_plc(
    plc_id: int,
    req: PLCPatch,
    db: Session = Depends(get_db),
    svc: PLCService = Depends(get_plc_service),
):
    plc = _get_or_404(db, svc, plc_id)
    try:
        plc = svc.update_plc(db, plc, patch=req.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return plc_to_dict(plc)


@router.delete("/{plc_id}", status_code=204)
def delete_plc(plc_id: int, db: Session = Depends(get_db), svc: PLCService = Depends(get_plc_service)):
    svc.delete_plc(db, _get_or_404(db, svc, plc_id))
    return Response(status_code=204)


@router.post("/{plc_id}/connect")
def connect_plc(plc_id: int, db: Session = Depends(get_db), svc: PLCService = Depends(get_plc_service)):
    return plc_to_dict(svc.set_connection(db, _get_or_404(db, svc, plc_id), connected=True))


@router.post("/{plc_id}/disconnect")
def disconnect_plc(plc_id: int, db: Session = Depends(get_db), svc: PLCService = Depends(get_plc_service)):
    return plc_to_dict(svc.set_connection(db, _get_or_404(db, svc, plc_id), connected=False))


@router.get("/{plc_id}/normalized")
def get_normalized_plc(
    plc_id: int,
    q: Optional[str] = None,
    db: Session = Depends(get_db),
    svc: PLCService = Depends(get_plc_service),
):
    normalized = svc.normalized(_get_or_404(db, svc, plc_id))
    if q:
        return normalized.to_dict(variables=filter_variables(normalized.variables, q))
    return normalized.to_dict()


@router.put("/{plc_id}/variables")
def replace_variables(
    plc_id: int,
    req: VariablesIn,
    db: Session = Depends(get_db),
    svc: PLCService = Depends(get_plc_service),
):
    plc = _get_or_404(db, svc, plc_id)
    try:
        variables = [NormalizedVariable.from_dict(v) for v in req.variables]
    except (KeyError, TypeError, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid variable: {e}")
    try:
        plc = svc.replace_variables(db, plc, variables)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return svc.normalized(plc).to_dict()


@router.get("/{plc_id}/config")
def get_plc_config(plc_id: int, db: Session = Depends(get_db), svc: PLCService = Depends(get_plc_service)):
    return denormalize_plc(svc.normalized(_get_or_404(db, svc, plc_id)))


@router.get("/{plc_id}/variables.csv")
def export_variables_csv(
    plc_id: int,
    q: Optional[str] = None,
    db: Session = Depends(get_db),
    svc: PLCService = Depends(get_plc_service),
):
    normalized = svc.normalized(_get_or_404(db, svc, plc_id))
    content = variables_csv(filter_variables(normalized.variables, q or ""))
    filename = export_filename(f"variables_plc{normalized.plc_no}")
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/{plc_id}/data")
def get_node_data(
    plc_id: int,
    db: Session = Depends(get_db),
    svc: PLCService = Depends(get_plc_service),
    simulator: NodeValueSimulator = Depends(get_simulator),
):
    plc = _get_or_404(db, svc, plc_id)
    return simulator.snapshot(db, plc_no=plc.plc_no)


# ----------------
# User descriptions
# ----------------


@router.get("/{plc_id}/descriptions")
def list_descriptions(plc_id: str, db: Session = Depends(get_db), nodes: NodeService = Depends(get_node_service)):
    return [description_to_dict(d) for d in nodes.list_descriptions(db, plc_id)]


@router.get("/{plc_id}/descriptions/{node_id}")
def get_description(
    plc_id: str,
    node_id: str,
    db: Session = Depends(get_db),
    nodes: NodeService = Depends(get_node_service),
):
    entry = nodes.get_description(db, plc_id, node_id)
    if not entry:
        raise HTTPException(status_code=404, detail="User description not found")
    return description_to_dict(entry)


@router.post("/{plc_id}/descriptions/{node_id}")
def save_description(
    plc_id: str,
    node_id: str,
    req: DescriptionIn,
    db: Session = Depends(get_db),
    nodes: NodeService = Depends(get_node_service),
):
    if not isinstance(req.description, str):
        raise HTTPException(status_code=400, detail="Description must be a string")
    return description_to_dict(nodes.save_description(db, plc_id, node_id, req.description))
