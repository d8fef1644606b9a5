"""Entrypoint: ``uvicorn main:app`` or ``python main.py``."""

import logging
import os

from opcua_dashboard.api.app import create_app
from opcua_dashboard.core.settings import Settings

settings = Settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = create_app(settings)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "5000")),
        log_level=settings.log_level.lower(),
    )
