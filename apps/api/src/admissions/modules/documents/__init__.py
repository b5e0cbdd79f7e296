"""Documents module - application document uploads and verification."""

from .router import router

__all__ = ["router"]
