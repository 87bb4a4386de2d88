from fastapi import APIRouter
from app.api.v1.endpoints import grounded_analyses

# Create API router
api_router = APIRouter()

# Include routers
api_router.include_router(grounded_analyses.router, prefix="", tags=["Clause Grounding"])

__all__ = ["api_router"]
