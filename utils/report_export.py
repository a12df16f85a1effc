"""Flatten operatives into CSV reports with selectable column sets."""
from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from models import Operative
from utils.text import strip_accents

BOM = "\ufeff"
EMPTY = "N/A"
NO_TIME = "--"


@dataclass(frozen=True)
class ExportColumn:
    header: str
    extract: Callable[[Operative], object]


def _conclusion_value(operative: Operative, field: str, default: object = 0) -> object:
    conclusion = operative.conclusion
    if conclusion is None:
        return default
    value = getattr(conclusion, field)
    return default if value in (None, "") else value


def _meeting_value(operative: Operative, field: str, default: object) -> object:
    conclusion = operative.conclusion
    if conclusion is None or not conclusion.has_reunion_details:
        return default
    value = getattr(conclusion, field)
    return default if value in (None, "") else value


def _concluded_time(operative: Operative, default: str) -> str:
    if operative.conclusion is None or operative.conclusion.concluded_at is None:
        return default
    return operative.conclusion.concluded_at.strftime("%H:%M")


def _coordinates(operative: Operative) -> str:
    if operative.latitude is None or operative.longitude is None:
        return EMPTY
    return f"{operative.latitude},{operative.longitude}"


def _coordinates_fixed(operative: Operative) -> str:
    if operative.latitude is None or operative.longitude is None:
        return EMPTY
    return f"{operative.latitude:.6f}, {operative.longitude:.6f}"


def _colonies(operative: Operative) -> str:
    covered = operative.conclusion.colonies_covered if operative.conclusion else None
    return "; ".join(covered) if covered else operative.colony


def _reason(operative: Operative) -> object:
    conclusion = operative.conclusion
    if conclusion is None:
        return NO_TIME
    return conclusion.detention_reason or conclusion.crime_type or NO_TIME


def units_detail(operative: Operative) -> str:
    return " | ".join(
        f"[UNIT: {unit.unit_number} - IN CHARGE: {unit.in_charge} ({unit.rank}) - PERSONNEL: {unit.personnel_count}]"
        for unit in operative.units
    )


def corporations_detail(operative: Operative) -> str:
    return " | ".join(
        f"[CORP: {corp.name} - UNIT: {corp.unit_number or EMPTY} - IN CHARGE: {corp.in_charge or EMPTY}"
        f" - UNITS: {corp.unit_count} - PERSONNEL: {corp.personnel_count}]"
        for corp in operative.corporations
    )


COMPLETE_COLUMNS: tuple[ExportColumn, ...] = (
    ExportColumn("ID", lambda op: op.id),
    ExportColumn("TYPE", lambda op: op.operative_type),
    ExportColumn("MEETING_TOPIC", lambda op: op.meeting_topic or EMPTY),
    ExportColumn("STATUS", lambda op: op.status),
    ExportColumn("DATE", lambda op: op.start_date),
    ExportColumn("START", lambda op: op.start_time),
    ExportColumn("CLOSE", lambda op: _concluded_time(op, NO_TIME)),
    ExportColumn("REGION", lambda op: op.region),
    ExportColumn("QUADRANT", lambda op: op.quadrant),
    ExportColumn("COLONY", lambda op: op.colony),
    ExportColumn("STREET", lambda op: op.street),
    ExportColumn("COORDINATES", _coordinates),
    ExportColumn("RESULT", lambda op: _conclusion_value(op, "result", EMPTY)),
    ExportColumn("DETAINEES", lambda op: _conclusion_value(op, "detainees_count")),
    ExportColumn("REASON_OR_CRIME", _reason),
    ExportColumn("COLONIES_COVERED", _colonies),
    ExportColumn("PUBLIC_TRANSPORT", lambda op: _conclusion_value(op, "public_transport_checked")),
    ExportColumn("PRIVATE_VEHICLES", lambda op: _conclusion_value(op, "private_vehicles_checked")),
    ExportColumn("MOTORCYCLES", lambda op: _conclusion_value(op, "motorcycles_checked")),
    ExportColumn("PEOPLE", lambda op: _conclusion_value(op, "people_checked")),
    ExportColumn("NEIGHBORHOOD_REPRESENTATIVE", lambda op: _meeting_value(op, "representative_name", NO_TIME)),
    ExportColumn("NEIGHBORHOOD_PHONE", lambda op: _meeting_value(op, "representative_phone", NO_TIME)),
    ExportColumn("NEIGHBORHOOD_PARTICIPANTS", lambda op: _meeting_value(op, "participant_count", 0)),
    ExportColumn("NEIGHBORHOOD_PETITIONS", lambda op: _meeting_value(op, "petitions", NO_TIME)),
    ExportColumn("UNITS_DETAIL", units_detail),
    ExportColumn("EXTERNAL_SUPPORT_DETAIL", corporations_detail),
)

AUDIT_COLUMNS: tuple[ExportColumn, ...] = (
    ExportColumn("ID", lambda op: op.id),
    ExportColumn("TYPE", lambda op: op.operative_type),
    ExportColumn("DETAILED_STATUS", lambda op: _conclusion_value(op, "result", "IN PROGRESS")),
    ExportColumn("STATUS", lambda op: op.status),
    ExportColumn("DATE", lambda op: op.started_at.strftime("%d/%m/%Y")),
    ExportColumn("START_TIME", lambda op: op.start_time),
    ExportColumn("CLOSE_TIME", lambda op: _concluded_time(op, "--:--")),
    ExportColumn("REGION", lambda op: op.region),
    ExportColumn("QUADRANT", lambda op: op.quadrant),
    ExportColumn("COLONY", lambda op: op.colony),
    ExportColumn("STREET", lambda op: op.street),
    ExportColumn("COORDINATES", _coordinates_fixed),
    ExportColumn("REPRESENTATIVE", lambda op: _meeting_value(op, "representative_name", "")),
    ExportColumn("REPRESENTATIVE_PHONE", lambda op: _meeting_value(op, "representative_phone", "")),
    ExportColumn("PARTICIPANTS", lambda op: _meeting_value(op, "participant_count", "")),
    ExportColumn("PEOPLE_CHECKED", lambda op: _conclusion_value(op, "people_checked")),
    ExportColumn("PUBLIC_TRANSPORT_CHECKED", lambda op: _conclusion_value(op, "public_transport_checked")),
    ExportColumn("PRIVATE_VEHICLES_CHECKED", lambda op: _conclusion_value(op, "private_vehicles_checked")),
    ExportColumn("MOTORCYCLES_CHECKED", lambda op: _conclusion_value(op, "motorcycles_checked")),
    ExportColumn("DETAINEES", lambda op: _conclusion_value(op, "detainees_count")),
    ExportColumn("NEIGHBORHOOD_PETITIONS", lambda op: str(_meeting_value(op, "petitions", "")).replace("\n", " ")),
)

COLUMN_SETS: Dict[str, tuple[ExportColumn, ...]] = {
    "complete": COMPLETE_COLUMNS,
    "audit": AUDIT_COLUMNS,
}


class ExportError(ValueError):
    """Raised for an unknown column set or column name."""


def resolve_columns(flavor: str = "complete", names: Optional[Sequence[str]] = None) -> tuple[ExportColumn, ...]:
    columns = COLUMN_SETS.get((flavor or "complete").lower())
    if columns is None:
        raise ExportError(f"Unknown export flavor '{flavor}'")
    if not names:
        return columns
    by_header = {column.header: column for column in columns}
    picked: List[ExportColumn] = []
    for name in names:
        header = name.strip().upper()
        if not header:
            continue
        if header not in by_header:
            raise ExportError(f"Unknown column '{name}'")
        picked.append(by_header[header])
    if not picked:
        raise ExportError("No columns selected")
    return tuple(picked)


def _cell(value: object) -> str:
    if value is None:
        return ""
    return strip_accents(str(value)).strip()


def build_operatives_csv(operatives: Iterable[Operative], columns: Sequence[ExportColumn] = COMPLETE_COLUMNS) -> str:
    """Render a BOM-prefixed CSV where every field is quoted and accents are removed."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow([column.header for column in columns])
    for operative in operatives:
        writer.writerow([_cell(column.extract(operative)) for column in columns])
    return BOM + buffer.getvalue().rstrip("\n")


def export_filename(flavor: str, start: str, end: str) -> str:
    label = "COMPLETE" if flavor == "complete" else "AUDIT"
    return f"OPERATIVES_{label}_{start}_TO_{end}.csv"
