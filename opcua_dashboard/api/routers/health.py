from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from opcua_dashboard.api.deps import get_db

router = APIRouter(tags=["health"])


@router.get("/health")
def health(request: Request, db: Session = Depends(get_db)):
    db_ok = True
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        db_ok = False

    broadcaster = getattr(request.app.state, "node_broadcaster", None)
    return {
        "status": "ok",
        "db": {"ok": db_ok},
        "live": {"clients": broadcaster.connection_count if broadcaster else 0},
    }
