"""Catalog schemas."""

from datetime import date
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from admissions.modules.applications.models import Institution


class ProgramCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    code: str = Field(..., min_length=1, max_length=20)
    institution: Institution
    description: str | None = Field(None, max_length=2000)
    duration_years: int | None = Field(None, ge=1, le=10)


class ProgramResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    code: str
    institution: Institution
    description: str | None = None
    duration_years: int | None = None
    is_active: bool


class IntakeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    year: int = Field(..., ge=2000, le=2100)
    start_date: date
    application_deadline: date
    total_capacity: int | None = Field(None, ge=1)

    @model_validator(mode="after")
    def validate_dates(self) -> "IntakeCreate":
        if self.application_deadline > self.start_date:
            raise ValueError("application_deadline must be on or before start_date")
        return self


class IntakeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    year: int
    start_date: date
    application_deadline: date
    total_capacity: int | None = None
    is_active: bool


class ProgramListResponse(BaseModel):
    programs: list[ProgramResponse]


class IntakeListResponse(BaseModel):
    intakes: list[IntakeResponse]
