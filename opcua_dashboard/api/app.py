from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from opcua_dashboard.api.errors import register_error_handlers
from opcua_dashboard.api.routers import export, health, opcua_nodes, plcs, servers, upload, ws_node_data
from opcua_dashboard.core.settings import Settings
from opcua_dashboard.db.base import Base
from opcua_dashboard.db.session import create_engine_and_sessionmaker
from opcua_dashboard.services.node_data_broadcaster import NodeDataBroadcaster
from opcua_dashboard.services.node_service import NodeService
from opcua_dashboard.services.node_value_simulator import NodeValueSimulator
from opcua_dashboard.services.normalization import BitFallback
from opcua_dashboard.services.plc_service import PLCService
from opcua_dashboard.services.upload_service import UploadService

logger = logging.getLogger(__name__)


def bit_fallback_from(settings: Settings) -> BitFallback | None:
    if not settings.bit_fallback_enabled:
        return None
    return BitFallback(suffixes=tuple(settings.bit_fallback_suffixes), bit_count=settings.bit_fallback_count)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting OPC UA dashboard...")

        app.state.settings = settings

        # --- DB ---
        db_rt = create_engine_and_sessionmaker(settings.database_url, echo=settings.db_echo)
        app.state.db_engine = db_rt.engine
        app.state.db_sessionmaker = db_rt.SessionLocal
        if settings.auto_create_db:
            Base.metadata.create_all(bind=db_rt.engine)

        # --- Services ---
        app.state.plc_service = PLCService()
        app.state.node_service = NodeService()
        app.state.upload_service = UploadService(
            plc_service=app.state.plc_service,
            node_service=app.state.node_service,
            bit_fallback=bit_fallback_from(settings),
        )

        # --- Live values ---
        loop = asyncio.get_running_loop()
        app.state.node_broadcaster = NodeDataBroadcaster(loop)
        app.state.node_simulator = NodeValueSimulator(
            db_rt.SessionLocal,
            namespace_index=settings.opcua_namespace_index,
        )

        app.state.scheduler = None
        if settings.enable_live_simulation:
            sched = BackgroundScheduler(timezone="UTC")

            def _publish_values():
                try:
                    nodes = app.state.node_simulator.tick()
                except Exception:
                    logger.exception("Live value simulation tick failed")
                    return
                if nodes:
                    app.state.node_broadcaster.broadcast_nodes(nodes)

            sched.add_job(
                _publish_values,
                "interval",
                seconds=max(0.2, float(settings.live_update_interval_s)),
                id="live_values",
                max_instances=1,
                coalesce=True,
            )
            sched.start()
            app.state.scheduler = sched

        try:
            yield
        finally:
            logger.info("Shutting down OPC UA dashboard...")
            if app.state.scheduler:
                app.state.scheduler.shutdown(wait=False)
            db_rt.engine.dispose()
            logger.info("OPC UA dashboard shutdown complete.")

    is_dev = settings.env.lower() in ("dev", "development", "local")
    app = FastAPI(
        title="OPC UA PLC Dashboard",
        lifespan=lifespan,
        docs_url="/docs" if is_dev else None,
        redoc_url="/redoc" if is_dev else None,
        openapi_url="/openapi.json" if is_dev else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins or [],
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    register_error_handlers(app)

    app.include_router(health.router)
    app.include_router(plcs.router)
    app.include_router(upload.router)
    app.include_router(opcua_nodes.router)
    app.include_router(servers.router)
    app.include_router(export.router)
    app.include_router(ws_node_data.router)

    return app
