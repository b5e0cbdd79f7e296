"""
Model registry.

Importing this module registers every table on ``Base.metadata``; Alembic
and anything else that needs the full schema import it.
"""

from admissions.core.database import Base
from admissions.core.rate_limit import RateLimitRecord
from admissions.modules.applications.models import Application, ApplicationStatusHistory
from admissions.modules.audit.models import AuditLogEntry
from admissions.modules.catalog.models import Intake, Program
from admissions.modules.documents.models import Document
from admissions.modules.notifications.models import Notification, UserConsent
from admissions.modules.users.models import User, UserPermission, UserRoleAssignment

__all__ = [
    "Application",
    "ApplicationStatusHistory",
    "AuditLogEntry",
    "Base",
    "Document",
    "Intake",
    "Notification",
    "Program",
    "RateLimitRecord",
    "User",
    "UserConsent",
    "UserPermission",
    "UserRoleAssignment",
]
