from fastapi import APIRouter

from .jobs import router as jobs_router
from .uploads import router as uploads_router
from .tracker import router as tracker_router

api_router = APIRouter()

api_router.include_router(jobs_router, prefix="/jobs", tags=["Upload Jobs"])
api_router.include_router(uploads_router, prefix="/uploads", tags=["Uploads"])
api_router.include_router(tracker_router, prefix="/uploads", tags=["SDV Tracker"])
