from fastapi import APIRouter

from healthlog.api.analysis import router as analysis_router

api_router = APIRouter()

# API routes at /api/*
api_router.include_router(analysis_router, prefix="/api", tags=["analysis"])
