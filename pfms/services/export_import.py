"""XLSX export of event registrations and athlete import/template."""
from __future__ import annotations

import io
import re
import unicodedata
import zipfile
from datetime import date, datetime
from typing import Any, BinaryIO

import openpyxl
from openpyxl.styles import Font, PatternFill
from openpyxl.utils.exceptions import InvalidFileException
from flask import current_app

from pfms.blueprints.common.scoping import alive_query, get_alive_or_404
from pfms.errors import NotFoundError, PFMSError, ValidationError
from pfms.models import Event, Gender, Registration, RegistrationStatus, Team, Tournament
from pfms.services.audit import log_admin_action
from pfms.services.crud import AthleteService
from pfms.services.eligibility import label_for, resolve_athlete_division

XLSX_MIMETYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'

STATUS_LABELS = {
    RegistrationStatus.PENDING: "Pendiente",
    RegistrationStatus.APPROVED: "Aprobada",
    RegistrationStatus.REJECTED: "Rechazada",
}

REGISTRATION_COLUMNS = [
    'Atleta',
    'DNI',
    'Equipo',
    'Género',
    'Año Nacimiento',
    'División',
    'Categoría de Peso',
    'Modalidad',
    'Equipamiento',
    'Estado Inscripción',
    'Sentadilla Best (Kg)',
    'Banca Best (Kg)',
    'Despegue Best (Kg)',
    'Total Estimado',
    'Fecha Inscripción',
]

# Athlete import sheet header -> Athlete attribute
ATHLETE_IMPORT_COLUMNS = {
    'Nombre Completo': 'full_name',
    'DNI': 'dni',
    'Año de Nacimiento': 'birth_year',
    'Género (M/F)': 'gender',
    'Sentadilla Best (Kg)': 'squat_best_kg',
    'Banca Best (Kg)': 'bench_best_kg',
    'Despegue Best (Kg)': 'deadlift_best_kg',
}

TEMPLATE_EXAMPLE_ROW = ['Juan Pérez', '12345678', 1995, 'M', 100, 80, 120]


def _write_header(sheet, columns: list[str]) -> None:
    header_fill = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
    header_font = Font(bold=True, color="FFFFFF")
    for col_idx, title in enumerate(columns, start=1):
        cell = sheet.cell(row=1, column=col_idx, value=title)
        cell.fill = header_fill
        cell.font = header_font


def _autosize(sheet) -> None:
    for column in sheet.columns:
        max_length = max(len(str(cell.value)) if cell.value is not None else 0 for cell in column)
        sheet.column_dimensions[column[0].column_letter].width = min(max_length + 2, 50)


def _to_bytes(workbook) -> bytes:
    output = io.BytesIO()
    workbook.save(output)
    output.seek(0)
    return output.read()


def safe_filename_part(name: str, max_length: int = 50) -> str:
    """ASCII-only, underscore separated fragment suitable for a file name."""
    ascii_name = unicodedata.normalize('NFD', name).encode('ascii', 'ignore').decode('ascii')
    return re.sub(r'[^a-zA-Z0-9]', '_', ascii_name)[:max_length]


def registrations_filename(event: Event, today: date | None = None) -> str:
    today = today or date.today()
    return f"Inscripciones_{safe_filename_part(event.name)}_{today.isoformat()}.xlsx"


# ============================================================================
# REGISTRATION EXPORT
# ============================================================================

def registration_rows(event_id: str, year: int) -> list[list[Any]]:
    """Spreadsheet rows for every alive registration of an event, newest first."""
    event = get_alive_or_404(Event, event_id)
    tournaments = alive_query(Tournament).filter_by(event_id=event.id).all()
    if not tournaments:
        raise NotFoundError("No tournaments found for this event")

    registrations = (
        alive_query(Registration)
        .filter(Registration.tournament_id.in_([t.id for t in tournaments]))
        .order_by(Registration.created_at.desc())
        .all()
    )

    rows = []
    for reg in registrations:
        athlete = reg.athlete
        tournament = reg.tournament
        division = resolve_athlete_division(tournament.division, athlete.birth_year, year)
        created_at = reg.created_at
        rows.append([
            athlete.full_name,
            athlete.dni,
            reg.team.display_name if reg.team else '-',
            label_for(athlete.gender),
            athlete.birth_year,
            label_for(division),
            label_for(reg.weight_class),
            label_for(tournament.modality),
            label_for(tournament.equipment),
            STATUS_LABELS[reg.status],
            athlete.squat_best_kg or 0,
            athlete.bench_best_kg or 0,
            athlete.deadlift_best_kg or 0,
            athlete.estimated_total_kg,
            created_at.strftime('%d/%m/%Y %H:%M') if isinstance(created_at, datetime) else '',
        ])
    return rows


def export_registrations_xlsx(event_id: str, year: int) -> tuple[bytes, str]:
    """
    Build the registrations workbook for an event.

    Args:
        event_id: Event to export
        year: Reference year used for the athlete division column

    Returns:
        (xlsx bytes, download filename)
    """
    event = get_alive_or_404(Event, event_id)
    rows = registration_rows(event.id, year)

    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.title = 'Inscripciones'

    _write_header(sheet, REGISTRATION_COLUMNS)
    for row_idx, row in enumerate(rows, start=2):
        for col_idx, value in enumerate(row, start=1):
            sheet.cell(row=row_idx, column=col_idx, value=value)
    _autosize(sheet)

    current_app.logger.info(f"Exported {len(rows)} registrations for event {event.id}")
    return _to_bytes(workbook), registrations_filename(event)


# ============================================================================
# ATHLETE IMPORT
# ============================================================================

def athlete_template_xlsx() -> bytes:
    """Empty athlete import sheet with one example row."""
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.title = 'Atletas'

    _write_header(sheet, list(ATHLETE_IMPORT_COLUMNS))
    for col_idx, value in enumerate(TEMPLATE_EXAMPLE_ROW, start=1):
        sheet.cell(row=2, column=col_idx, value=value)
    _autosize(sheet)
    return _to_bytes(workbook)


def _number(value: Any) -> float:
    if value is None or value == '':
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return float('nan')


def _text(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value if value is not None else '').strip()


def parse_athlete_row(row: dict[str, Any], row_num: int, year: int) -> dict[str, Any]:
    """Validate one sheet row; raises ValidationError naming the row."""
    full_name = _text(row.get('Nombre Completo'))
    dni = _text(row.get('DNI'))
    gender = _text(row.get('Género (M/F)')).upper()

    if len(full_name) < 3:
        raise ValidationError(f"Fila {row_num}: Nombre completo inválido (mínimo 3 caracteres)")
    if len(dni) < 6:
        raise ValidationError(f"Fila {row_num}: DNI inválido (mínimo 6 caracteres)")

    try:
        birth_year = int(row.get('Año de Nacimiento'))
    except (TypeError, ValueError):
        birth_year = 0
    if birth_year < 1900 or birth_year > year:
        raise ValidationError(f"Fila {row_num}: Año de nacimiento inválido")

    if gender not in ('M', 'F'):
        raise ValidationError(f"Fila {row_num}: Género inválido (debe ser M o F)")

    lifts = {
        'squat_best_kg': _number(row.get('Sentadilla Best (Kg)')),
        'bench_best_kg': _number(row.get('Banca Best (Kg)')),
        'deadlift_best_kg': _number(row.get('Despegue Best (Kg)')),
    }
    if any(v != v or v < 0 for v in lifts.values()):
        raise ValidationError(f"Fila {row_num}: Los valores de peso no pueden ser negativos")

    return {
        'full_name': full_name,
        'dni': dni,
        'birth_year': birth_year,
        'gender': Gender(gender),
        **lifts,
    }


def read_athlete_sheet(file: BinaryIO, max_rows: int) -> list[tuple[int, dict[str, Any]]]:
    """Rows of the first worksheet keyed by header, with their sheet row number."""
    try:
        workbook = openpyxl.load_workbook(file, read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as e:
        raise ValidationError("The uploaded file is not a valid .xlsx workbook") from e

    sheet = workbook.worksheets[0] if workbook.worksheets else None
    if sheet is None:
        raise ValidationError("Empty workbook")

    rows = sheet.iter_rows(values_only=True)
    headers = next(rows, None)
    if not headers:
        raise ValidationError("No data found in file")
    headers = [str(h).strip() if h is not None else '' for h in headers]

    data = []
    for row_num, values in enumerate(rows, start=2):
        if values is None or all(v is None or v == '' for v in values):
            continue
        data.append((row_num, dict(zip(headers, values))))
        if len(data) > max_rows:
            raise ValidationError(f"The file exceeds the limit of {max_rows} athletes")
    workbook.close()

    if not data:
        raise ValidationError("No data found in file")
    return data


def import_athletes(team: Team, file: BinaryIO, year: int, user: Any = None) -> dict[str, Any]:
    """
    Create athletes for a team from an uploaded sheet.

    Invalid rows and DNIs already on the team are reported, valid rows are
    inserted. When no row is valid a ValidationError carries the row errors.

    Returns:
        dict with inserted, total, validation_errors and insert_errors
    """
    max_rows = current_app.config.get('MAX_IMPORT_ROWS', 500)
    rows = read_athlete_sheet(file, max_rows)

    valid: list[dict[str, Any]] = []
    validation_errors: list[str] = []
    for row_num, row in rows:
        try:
            valid.append(parse_athlete_row(row, row_num, year))
        except ValidationError as e:
            validation_errors.append(e.message)

    if validation_errors and not valid:
        raise ValidationError("Validation errors: " + "; ".join(validation_errors))

    service = AthleteService(team)
    inserted = 0
    insert_errors: list[str] = []
    for data in valid:
        try:
            service.create(data, user, skip_log=True)
            inserted += 1
        except PFMSError as e:
            insert_errors.append(f"{data['full_name']} (DNI: {data['dni']}): {e.message}")

    current_app.logger.info(
        f"Team {team.id} imported {inserted}/{len(rows)} athletes "
        f"({len(validation_errors)} invalid, {len(insert_errors)} rejected)"
    )
    if inserted:
        log_admin_action(user, "athlete_bulk_imported", "athlete", metadata={'team_id': team.id, 'count': inserted})

    return {
        'inserted': inserted,
        'total': len(rows),
        'validation_errors': validation_errors,
        'insert_errors': insert_errors,
    }


__all__ = [
    'XLSX_MIMETYPE',
    'REGISTRATION_COLUMNS',
    'ATHLETE_IMPORT_COLUMNS',
    'safe_filename_part',
    'registrations_filename',
    'registration_rows',
    'export_registrations_xlsx',
    'athlete_template_xlsx',
    'parse_athlete_row',
    'read_athlete_sheet',
    'import_athletes',
]
