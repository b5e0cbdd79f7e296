"""Document database operations."""

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Document, VerificationStatus


async def create(
    db: AsyncSession,
    *,
    application_id: UUID,
    uploaded_by: UUID,
    document_type: str,
    document_name: str,
    storage_path: str,
    mime_type: str,
    size_bytes: int,
    checksum: str,
) -> Document:
    document = Document(
        application_id=application_id,
        uploaded_by=uploaded_by,
        document_type=document_type,
        document_name=document_name,
        storage_path=storage_path,
        mime_type=mime_type,
        size_bytes=size_bytes,
        checksum=checksum,
        system_generated=False,
        verification_status=VerificationStatus.PENDING,
    )
    db.add(document)
    await db.commit()
    await db.refresh(document)
    return document


async def get_by_id(db: AsyncSession, id: UUID) -> Document | None:
    return await db.get(Document, id)


async def list_for_application(db: AsyncSession, application_id: UUID) -> list[Document]:
    result = await db.execute(
        select(Document)
        .where(Document.application_id == application_id)
        .order_by(Document.created_at)
    )
    return list(result.scalars().all())


async def set_verification(
    db: AsyncSession,
    document: Document,
    status: VerificationStatus,
    verified_by: UUID,
    notes: str | None = None,
) -> Document:
    document.verification_status = status
    document.verified_by = verified_by
    document.verified_at = datetime.now(UTC)
    document.verification_notes = notes
    await db.commit()
    await db.refresh(document)
    return document
