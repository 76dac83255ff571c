"""API module - FastAPI application and endpoints."""

from .app import Services, build_services, close_services, create_app

__all__ = ["Services", "build_services", "close_services", "create_app"]
