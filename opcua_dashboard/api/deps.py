from __future__ import annotations

from fastapi import Request
from sqlalchemy.orm import Session

from opcua_dashboard.core.settings import Settings
from opcua_dashboard.services.node_service import NodeService
from opcua_dashboard.services.node_value_simulator import NodeValueSimulator
from opcua_dashboard.services.plc_service import PLCService
from opcua_dashboard.services.upload_service import UploadService


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_db(request: Request):
    SessionLocal = request.app.state.db_sessionmaker
    db: Session = SessionLocal()  # type: ignore
    try:
        yield db
    finally:
        db.close()


def get_plc_service(request: Request) -> PLCService:
    return request.app.state.plc_service


def get_node_service(request: Request) -> NodeService:
    return request.app.state.node_service


def get_upload_service(request: Request) -> UploadService:
    return request.app.state.upload_service


def get_simulator(request: Request) -> NodeValueSimulator:
    return request.app.state.node_simulator
