from fastapi import APIRouter

from admissions.modules.applications import admin_router as admin_applications_router
from admissions.modules.applications import router as applications_router
from admissions.modules.audit import router as audit_router
from admissions.modules.auth import router as auth_router
from admissions.modules.catalog import router as catalog_router
from admissions.modules.documents import router as documents_router
from admissions.modules.notifications import consents_router
from admissions.modules.notifications import router as notifications_router
from admissions.modules.users.admin_router import router as admin_users_router

api_router = APIRouter()

api_router.include_router(auth_router, prefix="/auth", tags=["Authentication"])

api_router.include_router(applications_router, prefix="/applications", tags=["Applications"])

api_router.include_router(documents_router, prefix="/documents", tags=["Documents"])

api_router.include_router(
    notifications_router, prefix="/notifications", tags=["Notifications"]
)

api_router.include_router(consents_router, prefix="/user-consents", tags=["User Consents"])

api_router.include_router(catalog_router, prefix="/catalog", tags=["Catalog"])

api_router.include_router(
    admin_applications_router,
    prefix="/admin/applications",
    tags=["Admin - Applications"],
)

api_router.include_router(admin_users_router, prefix="/admin/users", tags=["Admin - Users"])

api_router.include_router(audit_router, prefix="/admin/audit-log", tags=["Admin - Audit Log"])
