from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from opcua_dashboard.api.deps import get_db, get_node_service
from opcua_dashboard.api.schemas import OpcuaNodeIn, OpcuaNodePatch
from opcua_dashboard.db.models import OpcuaNode
from opcua_dashboard.services.node_service import NodeService, node_to_dict

router = APIRouter(prefix="/api/opcua-nodes", tags=["opcua-nodes"])


def _parse_id(raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid node ID")


def _get_or_404(db: Session, svc: NodeService, raw_id: str) -> OpcuaNode:
    node = svc.get_node(db, _parse_id(raw_id))
    if not node:
        raise HTTPException(status_code=404, detail="OPC UA node not found")
    return node


@router.get("")
def list_nodes(
    plc_no: Optional[str] = None,
    db: Session = Depends(get_db),
    svc: NodeService = Depends(get_node_service),
):
    # A non-numeric plc_no falls back to the full list.
    number: Optional[int] = None
    if plc_no:
        try:
            number = int(plc_no)
        except ValueError:
            number = None
    return [node_to_dict(n) for n in svc.list_nodes(db, plc_no=number)]


@router.get("/{node_id}")
def get_node(node_id: str, db: Session = Depends(get_db), svc: NodeService = Depends(get_node_service)):
    return node_to_dict(_get_or_404(db, svc, node_id))


@router.post("", status_code=201)
def create_node(req: OpcuaNodeIn, db: Session = Depends(get_db), svc: NodeService = Depends(get_node_service)):
    return node_to_dict(svc.create_node(db, req.to_row()))


@router.put("/{node_id}")
def update_node(
    node_id: str,
    req: OpcuaNodePatch,
    db: Session = Depends(get_db),
    svc: NodeService = Depends(get_node_service),
):
    node = _get_or_404(db, svc, node_id)
    return node_to_dict(svc.update_node(db, node, patch=req.to_patch()))


@router.delete("/{node_id}", status_code=204)
def delete_node(node_id: str, db: Session = Depends(get_db), svc: NodeService = Depends(get_node_service)):
    svc.delete_node(db, _get_or_404(db, svc, node_id))
    return Response(status_code=204)
