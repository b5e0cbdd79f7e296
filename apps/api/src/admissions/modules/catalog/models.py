"""
Catalog Models

Programs offered by each institution and the intakes applications target.
"""

from datetime import date

from sqlalchemy import Boolean, Date, Enum, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from admissions.modules.applications.models import Institution
from admissions.modules.shared import BaseModel


class Program(BaseModel):
    """A program of study."""

    __tablename__ = "programs"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    institution: Mapped[Institution] = mapped_column(
        Enum(Institution, name="institution"), nullable=False
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_years: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Intake(BaseModel):
    """An admission round with an application deadline."""

    __tablename__ = "intakes"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    application_deadline: Mapped[date] = mapped_column(Date, nullable=False)
    total_capacity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
