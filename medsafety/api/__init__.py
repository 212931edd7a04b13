# API Package
from .safety_routes import router as safety_router

__all__ = ['safety_router']
