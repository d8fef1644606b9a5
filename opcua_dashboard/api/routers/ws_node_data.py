from __future__ import annotations

import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from opcua_dashboard.services.plc_service import plc_to_dict

logger = logging.getLogger(__name__)

router = APIRouter(tags=["live"])


def _plc_no(msg: dict) -> Optional[int]:
    raw: Any = msg.get("plcNo", msg.get("plc_no"))
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


@router.websocket("/ws/node-data")
async def ws_node_data(websocket: WebSocket):
    await websocket.accept()

    state = websocket.app.state
    broadcaster = getattr(state, "node_broadcaster", None)
    simulator = getattr(state, "node_simulator", None)
    if not broadcaster or not simulator:
        await websocket.close(code=1011)
        return

    await broadcaster.add(websocket)
    logger.info("Live data client connected")

    try:
        with state.db_sessionmaker() as db:
            plcs = [plc_to_dict(p) for p in state.plc_service.list_plcs(db)]
            snapshot = simulator.snapshot(db)
        await websocket.send_json({"type": "plcs", "plcs": plcs})
        await websocket.send_json({"type": "nodeData", "nodes": snapshot})

        while True:
            text = await websocket.receive_text()
            try:
                msg = json.loads(text)
            except json.JSONDecodeError:
                await websocket.send_json({"type": "error", "detail": "invalid JSON"})
                continue
            if not isinstance(msg, dict):
                await websocket.send_json({"type": "error", "detail": "expected an object"})
                continue

            kind = msg.get("type")
            plc_no = _plc_no(msg)
            if kind in ("subscribePLC", "unsubscribePLC") and plc_no is None:
                await websocket.send_json({"type": "error", "detail": "plcNo is required"})
            elif kind == "subscribePLC":
                await broadcaster.subscribe(websocket, plc_no)
                logger.debug("Client subscribed to PLC %s", plc_no)
                await websocket.send_json({"type": "subscribed", "plcNo": plc_no})
            elif kind == "unsubscribePLC":
                await broadcaster.unsubscribe(websocket, plc_no)
                logger.debug("Client unsubscribed from PLC %s", plc_no)
                await websocket.send_json({"type": "unsubscribed", "plcNo": plc_no})
            else:
                await websocket.send_json({"type": "error", "detail": f"unsupported message type: {kind}"})
    except WebSocketDisconnect:
        pass
    finally:
        await broadcaster.remove(websocket)
        logger.info("Live data client disconnected")
