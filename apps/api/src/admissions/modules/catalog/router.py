"""
Catalog Router

- GET  /catalog/programs - Active programs (optionally by institution)
- POST /catalog/programs - Create program (admin)
- GET  /catalog/intakes  - Active intakes (optionally open ones only)
- POST /catalog/intakes  - Create intake (admin)
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from admissions.core.auth import CurrentUser, get_current_user, require_permission
from admissions.core.database import get_db
from admissions.modules.applications.models import Institution
from admissions.modules.audit.service import log_audit_event

from . import repository
from .schemas import (
    IntakeCreate,
    IntakeListResponse,
    IntakeResponse,
    ProgramCreate,
    ProgramListResponse,
    ProgramResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/programs", response_model=ProgramListResponse)
async def list_programs(
    institution: Institution | None = Query(None),
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(get_current_user),
) -> ProgramListResponse:
    programs = await repository.list_programs(db, institution)
    return ProgramListResponse(programs=[ProgramResponse.model_validate(p) for p in programs])


@router.post("/programs", response_model=ProgramResponse, status_code=status.HTTP_201_CREATED)
async def create_program(
    data: ProgramCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_permission("catalog:manage")),
) -> ProgramResponse:
    if await repository.get_program_by_code(db, data.code):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "error": "DUPLICATE_PROGRAM",
                "message": f"A program with code {data.code} already exists.",
            },
        )

    program = await repository.create_program(db, data)
    logger.info(f"Admin {admin.id} created program {program.code}")

    await log_audit_event(
        db,
        request=request,
        action="catalog.program.create",
        actor=admin,
        target_table="programs",
        target_id=program.id,
        target_label=program.name,
    )
    return ProgramResponse.model_validate(program)


@router.get("/intakes", response_model=IntakeListResponse)
async def list_intakes(
    open_only: bool = Query(False, description="Only intakes whose deadline has not passed"),
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(get_current_user),
) -> IntakeListResponse:
    intakes = await repository.list_intakes(db, open_only=open_only)
    return IntakeListResponse(intakes=[IntakeResponse.model_validate(i) for i in intakes])


@router.post("/intakes", response_model=IntakeResponse, status_code=status.HTTP_201_CREATED)
async def create_intake(
    data: IntakeCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_permission("catalog:manage")),
) -> IntakeResponse:
    intake = await repository.create_intake(db, data)
    logger.info(f"Admin {admin.id} created intake {intake.name}")

    await log_audit_event(
        db,
        request=request,
        action="catalog.intake.create",
        actor=admin,
        target_table="intakes",
        target_id=intake.id,
        target_label=intake.name,
    )
    return IntakeResponse.model_validate(intake)
