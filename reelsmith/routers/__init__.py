"""Routers package initialization"""
from .generate import router as generate_router
from .events import router as events_router

__all__ = ["generate_router", "events_router"]
