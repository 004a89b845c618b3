from fastapi import APIRouter

from app.api.routes import batches, detection, health

api_router = APIRouter()

api_router.include_router(batches.router, prefix="/batches", tags=["Batches"])
api_router.include_router(detection.router, prefix="/detection", tags=["Detection"])
api_router.include_router(health.router, prefix="", tags=["Health"])
