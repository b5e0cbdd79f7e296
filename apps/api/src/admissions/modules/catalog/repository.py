"""Catalog database operations."""

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from admissions.modules.applications.models import Institution

from .models import Intake, Program
from .schemas import IntakeCreate, ProgramCreate


async def list_programs(db: AsyncSession, institution: Institution | None = None) -> list[Program]:
    stmt = select(Program).where(Program.is_active == True)  # noqa: E712
    if institution:
        stmt = stmt.where(Program.institution == institution)
    result = await db.execute(stmt.order_by(Program.name))
    return list(result.scalars().all())


async def get_program(db: AsyncSession, program_id: UUID) -> Program | None:
    return await db.get(Program, program_id)


async def get_program_by_code(db: AsyncSession, code: str) -> Program | None:
    result = await db.execute(select(Program).where(Program.code == code))
    return result.scalar_one_or_none()


async def create_program(db: AsyncSession, data: ProgramCreate) -> Program:
    program = Program(**data.model_dump())
    db.add(program)
    await db.commit()
    await db.refresh(program)
    return program


async def list_intakes(db: AsyncSession, open_only: bool = False) -> list[Intake]:
    stmt = select(Intake).where(Intake.is_active == True)  # noqa: E712
    result = await db.execute(stmt.order_by(Intake.start_date.desc()))
    intakes = list(result.scalars().all())
    if open_only:
        today = date.today()
        intakes = [i for i in intakes if i.application_deadline >= today]
    return intakes


async def get_intake(db: AsyncSession, intake_id: UUID) -> Intake | None:
    return await db.get(Intake, intake_id)


async def create_intake(db: AsyncSession, data: IntakeCreate) -> Intake:
    intake = Intake(**data.model_dump())
    db.add(intake)
    await db.commit()
    await db.refresh(intake)
    return intake
