from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from assessment_engine.api.router import router
from assessment_engine.api.routes.sessions import shutdown_attempt_service
from assessment_engine.core.config import settings
from assessment_engine.core.logging import configure_logging

configure_logging(settings.log_level, session_level=settings.session_log_level)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    yield
    # live attempts hold timers and clients; release them before the loop goes away
    await shutdown_attempt_service()


app = FastAPI(
    title="Assessment Session Engine",
    version="0.1.0",
    debug=settings.debug,
    lifespan=lifespan,
)

app.include_router(router)


@app.get("/health", tags=["meta"])
async def health() -> dict[str, str]:
    return {"status": "ok", "env": settings.env}
