"""Audit module - system audit log."""

from .router import router
from .service import log_audit_event

__all__ = ["log_audit_event", "router"]
