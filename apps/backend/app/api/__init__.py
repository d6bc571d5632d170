"""API routes package."""

from fastapi import APIRouter

from app.api.detection import router as detection_router
from app.api.evaluation import router as evaluation_router

api_router = APIRouter()

api_router.include_router(detection_router)
api_router.include_router(evaluation_router)
