"""
Tubely API v1 router aggregation.

Routers:
- videos: video record lookup and thumbnail/video uploads
"""

from fastapi import APIRouter

from tubely.api.v1.videos import router as videos_router


api_router = APIRouter()

api_router.include_router(videos_router, prefix="/videos", tags=["videos"])


__all__ = ["api_router"]
