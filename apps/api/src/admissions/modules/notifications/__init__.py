"""Notifications module - in-app notifications and user consents."""

from .consents_router import router as consents_router
from .router import router

__all__ = ["consents_router", "router"]
