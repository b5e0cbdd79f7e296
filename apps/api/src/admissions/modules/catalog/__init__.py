"""Catalog module - programs and intakes."""

from .router import router

__all__ = ["router"]
