from __future__ import annotations

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import ValidationError
from sqlalchemy.orm import Session

from opcua_dashboard.api.deps import get_db, get_settings, get_upload_service
from opcua_dashboard.api.errors import jsonable_issues
from opcua_dashboard.api.schemas import RawDocumentIn
from opcua_dashboard.core.settings import Settings
from opcua_dashboard.services.node_service import node_to_dict
from opcua_dashboard.services.plc_service import DuplicatePLCError, plc_to_dict
from opcua_dashboard.services.upload_service import UploadService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/upload", tags=["upload"])


@router.post("/json")
async def upload_json(
    jsonFile: Optional[UploadFile] = File(default=None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    uploads: UploadService = Depends(get_upload_service),
):
    if jsonFile is None:
        raise HTTPException(status_code=400, detail="No file uploaded")

    content = await jsonFile.read(settings.max_upload_bytes + 1)
    if len(content) > settings.max_upload_bytes:
        raise HTTPException(status_code=413, detail="Uploaded file too large")
    logger.info("JSON upload received: %s (%d bytes)", jsonFile.filename, len(content))

    try:
        doc = json.loads(content.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.info("Rejected upload, invalid JSON: %s", e)
        raise HTTPException(status_code=400, detail="Invalid JSON format")

    if not isinstance(doc, dict) or not isinstance(doc.get("plcs"), list):
        raise HTTPException(status_code=400, detail="Invalid JSON structure: missing 'plcs' array")

    try:
        validated = RawDocumentIn.model_validate(doc)
    except ValidationError as e:
        raise HTTPException(
            status_code=400,
            detail={"error": "Invalid PLC configuration", "issues": jsonable_issues(e.errors())},
        )

    try:
        result = uploads.import_document(db, validated.to_raw())
    except DuplicatePLCError as e:
        raise HTTPException(
            status_code=409,
            detail={
                "error": e.error,
                "message": str(e),
                "existing_plc": (
                    {**plc_to_dict(e.existing), "existing_nodes_count": e.existing_nodes_count}
                    if e.existing
                    else None
                ),
                "existing_nodes_count": e.existing_nodes_count,
                "action_required": "delete_and_reupload",
            },
        )

    return {
        "success": True,
        "message": f"Successfully created {result.total_created} OPC UA nodes in database",
        "totalCreated": result.total_created,
        "nodes": [node_to_dict(n) for n in result.nodes],
        "plcs": [
            {k: v for k, v in p.to_dict().items() if k != "variables"}
            for p in result.plcs
        ],
    }
