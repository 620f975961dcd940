from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Sequence

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.logging import logger
from app.routers.planning import router as planning_router
from app.routers.visits import router as visits_router
from core.settings import get_settings
from db.session import engine


settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Planning defaults: max %s visits/day, non-working weekdays %s, batch delay %ss",
        settings.planning_max_visits_per_day,
        settings.planning_non_working_weekdays,
        settings.planning_batch_delay_seconds,
    )
    yield
    await engine.dispose()


def create_app(allowed_origins: Sequence[str] | None = None) -> FastAPI:
    """Build the planning API.

    Args:
        allowed_origins: CORS origins of the planning dashboard. Local
            development origins are used when omitted.

    Returns:
        FastAPI application with the visit and planning routers mounted.
    """
    app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(
            allowed_origins or ["http://localhost:3000", "http://127.0.0.1:3000"]
        ),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(visits_router, prefix="/visits", tags=["visits"])
    app.include_router(planning_router, prefix="/planning", tags=["planning"])

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
