"""Application number generation: ``<MIHAS|KATC><year><5 digits>``."""

import re
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime

from admissions.modules.applications.models import Institution

APPLICATION_NUMBER_PATTERN = re.compile(r"^(MIHAS|KATC)(\d{4})(\d{5})$")


@dataclass(frozen=True)
class ParsedApplicationNumber:
    institution: Institution
    year: int
    sequence: int


def generate_application_number(institution: Institution | str, year: int | None = None) -> str:
    """
    Generate a random application number for ``institution``.

    Raises:
        ValueError: If the institution is not MIHAS or KATC
    """
    institution = Institution(institution)
    year = year or datetime.now(UTC).year
    sequence = 10000 + secrets.randbelow(90000)
    return f"{institution.value}{year}{sequence}"


def validate_application_number(value: str) -> bool:
    return bool(APPLICATION_NUMBER_PATTERN.match(value or ""))


def parse_application_number(value: str) -> ParsedApplicationNumber | None:
    match = APPLICATION_NUMBER_PATTERN.match(value or "")
    if not match:
        return None
    return ParsedApplicationNumber(
        institution=Institution(match.group(1)),
        year=int(match.group(2)),
        sequence=int(match.group(3)),
    )
