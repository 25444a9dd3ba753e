"""
API routes module.
"""

from job_engine.api.routes.health import router as health_router
from job_engine.api.routes.jobs import router as jobs_router

__all__ = ["jobs_router", "health_router"]
