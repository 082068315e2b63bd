from fastapi import APIRouter

from assessment_engine.api.routes.sessions import router as sessions_router

router = APIRouter(prefix="/api/v1")

router.include_router(sessions_router)
