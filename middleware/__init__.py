"""
Middleware package for FastAPI application.
"""
from .guard_pipeline import RequestGuardPipeline, build_pipeline
from .security_middleware import RequestGuardMiddleware

__all__ = ["RequestGuardMiddleware", "RequestGuardPipeline", "build_pipeline"]
