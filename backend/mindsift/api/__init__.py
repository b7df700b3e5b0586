"""
API routes initialization.

This module aggregates all API routers and provides a single router
to include in the main application.
"""

from fastapi import APIRouter

from mindsift.api.routes import chat, videos

# Create main API router
api_router = APIRouter()

# Include video ingestion routes
api_router.include_router(videos.router)

# Include chat routes
api_router.include_router(chat.router)
