"""
Applications Module

Student applications to MIHAS and KATC programs and their review workflow.
"""

from .admin_router import router as admin_router
from .router import router

__all__ = ["admin_router", "router"]
