import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from web.backend.routers import chart

logger = logging.getLogger("mandala.api")


def create_app() -> FastAPI:
    app = FastAPI(title="Mandala Chart API", version="1.0")

    raw_origins = os.getenv("MANDALA_ALLOWED_ORIGINS", "*")
    allow_origins = [o.strip() for o in raw_origins.split(",") if o.strip()]
    allow_credentials = "*" not in allow_origins

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check():
        return {"status": "ok", "service": "Mandala Chart"}

    app.include_router(chart.router, prefix="/api/v1/chart", tags=["chart"])
    logger.info("Mandala Chart API ready")

    return app


app = create_app()
