"""
Application Slip

Builds the slip for a submitted application and renders it as a standalone
HTML page the applicant can print or keep.
"""

from datetime import UTC, datetime
from html import escape

from sqlalchemy.ext.asyncio import AsyncSession

from admissions.modules.catalog import repository as catalog_repository

from .models import Application
from .schemas import ApplicationSlip
from .transitions import get_status_label

INSTITUTION_NAMES = {
    "MIHAS": "Mukuba Institute of Health and Applied Sciences",
    "KATC": "Kalulushi Training Centre",
}


async def build_slip(db: AsyncSession, application: Application) -> ApplicationSlip:
    program = None
    if application.program_id:
        program = await catalog_repository.get_program(db, application.program_id)
    intake = None
    if application.intake_id:
        intake = await catalog_repository.get_intake(db, application.intake_id)

    return ApplicationSlip(
        application_id=application.id,
        application_number=application.application_number,
        status=application.status,
        status_label=get_status_label(application.status),
        institution=application.institution,
        full_name=application.full_name,
        email=application.email,
        phone=application.phone,
        program_name=program.name if program else None,
        intake_name=intake.name if intake else None,
        submitted_at=application.submitted_at,
        generated_at=datetime.now(UTC),
    )


def _format_date(value: datetime | None) -> str:
    if value is None:
        return "N/A"
    return f"{value.day} {value.strftime('%B %Y')}"


def slip_filename(slip: ApplicationSlip) -> str:
    return f"application-slip-{slip.application_number}.html"


def render_slip_html(slip: ApplicationSlip) -> str:
    institution = INSTITUTION_NAMES.get(slip.institution.value, slip.institution.value)
    rows = [
        ("Application Number", slip.application_number),
        ("Status", slip.status_label),
        ("Submitted", _format_date(slip.submitted_at)),
        ("Full Name", slip.full_name),
        ("Email", slip.email),
        ("Phone", slip.phone or "N/A"),
        ("Institution", institution),
        ("Program", slip.program_name or "N/A"),
        ("Intake", slip.intake_name or "N/A"),
    ]
    table = "\n".join(
        f'            <tr><th>{escape(label)}</th><td>{escape(str(value))}</td></tr>'
        for label, value in rows
    )

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>Application Slip - {escape(slip.application_number)}</title>
    <style>
        body {{ font-family: Arial, sans-serif; max-width: 800px; margin: 0 auto; padding: 20px; color: #1f2937; }}
        .header {{ text-align: center; border-bottom: 2px solid #1a365d; padding-bottom: 16px; margin-bottom: 24px; }}
        .title {{ font-size: 24px; font-weight: bold; color: #1a365d; }}
        table {{ width: 100%; border-collapse: collapse; }}
        th {{ text-align: left; width: 200px; padding: 8px; }}
        td {{ padding: 8px; border-bottom: 1px solid #e5e7eb; }}
        .footer {{ margin-top: 40px; text-align: center; font-size: 12px; color: #6b7280; }}
        @media print {{ body {{ margin: 0; }} }}
    </style>
</head>
<body>
    <div class="header">
        <div class="title">{escape(institution)}</div>
        <div>Official Application Slip</div>
    </div>
    <table>
{table}
    </table>
    <div class="footer">
        <p>Generated on {_format_date(slip.generated_at)}. Keep this slip for your records.</p>
    </div>
</body>
</html>
"""
