"""Alert Engine - API Routers"""
from .triggers import router as triggers_router
from .alerts import router as alerts_router
from .scheduler import router as scheduler_router

__all__ = [
    "triggers_router",
    "alerts_router",
    "scheduler_router",
]
