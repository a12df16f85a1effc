"""Operative lifecycle: registration, conclusion, and deletion."""
from __future__ import annotations

from datetime import datetime
from typing import Any, List, Mapping, Optional

from flask import current_app
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from extensions import db
from models import (
    RESULT_TYPES,
    SHIFTS,
    DailySequence,
    Operative,
    OperativeConclusion,
    OperativeCorporation,
    OperativeUnit,
    Role,
    User,
)
from utils.catalogs import CatalogStore, get_catalog_store
from utils.text import digits_only, normalize_text

DEFAULT_UNIT_TYPE = "PATRULLA"
DETERRENCE = "DETERRENCE"
COUNTER_FIELDS = (
    "public_transport_checked",
    "private_vehicles_checked",
    "motorcycles_checked",
    "people_checked",
)


class OperativeValidationError(Exception):
    """Raised when operative input is incomplete or inconsistent."""


class OperativeNotFound(Exception):
    """Raised when an operative id does not resolve to a record."""


def is_meeting_type(operative_type: Optional[str], marker: Optional[str] = None) -> bool:
    marker = normalize_text(marker or current_app.config.get("MEETING_TYPE_MARKER", "REUNION VECINAL"))
    return bool(marker) and marker in normalize_text(operative_type)


def can_choose_region(user: User) -> bool:
    """Users outside these roles register operatives only in their assigned region."""
    return user.role_enum in (Role.ADMIN, Role.MUNICIPALITY_CHIEF) or bool(user.is_municipality_wide)


def _required(data: Mapping, field: str, label: str) -> str:
    value = normalize_text(data.get(field))
    if not value:
        raise OperativeValidationError(f"{label} is required")
    return value


def _non_negative_int(value: Any, label: str, default: int = 0) -> int:
    if value is None or value == "":
        return default
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise OperativeValidationError(f"{label} must be a whole number") from exc
    if number < 0:
        raise OperativeValidationError(f"{label} cannot be negative")
    return number


def _coordinate(value: Any, label: str, bound: float) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise OperativeValidationError(f"{label} must be numeric") from exc
    if abs(number) > bound:
        raise OperativeValidationError(f"{label} is out of range")
    return number


def _from_catalog(catalogs: CatalogStore, key: str, value: Any, label: str) -> str:
    text = normalize_text(value)
    if not text:
        raise OperativeValidationError(f"{label} is required")
    if not catalogs.contains(key, text):
        raise OperativeValidationError(f"{label} {text} is not in the catalog")
    return text


# -------- id generation --------


def _bump_sequence(day_key: str) -> Optional[int]:
    result = db.session.execute(
        update(DailySequence)
        .where(DailySequence.day_key == day_key)
        .values(last_value=DailySequence.last_value + 1)
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        return None
    return db.session.execute(select(DailySequence.last_value).where(DailySequence.day_key == day_key)).scalar_one()


def next_operative_id(moment: datetime) -> str:
    """Reserve the next id for the calendar day of ``moment``: ``OP`` + YYMMDD + sequence.

    The counter row is incremented in place so two writers never read the same
    value. The first id of a day creates the row, seeded with the number of
    ids that already carry the day prefix.
    """
    day_key = moment.strftime("%y%m%d")
    prefix = f"OP{day_key}"
    for _ in range(3):
        value = _bump_sequence(day_key)
        if value is not None:
            return f"{prefix}{value:02d}"
        existing = db.session.query(Operative.id).filter(Operative.id.like(f"{prefix}%")).count()
        try:
            with db.session.begin_nested():
                db.session.add(DailySequence(day_key=day_key, last_value=existing + 1))
            return f"{prefix}{existing + 1:02d}"
        except IntegrityError:
            # Another writer created the row first; increment theirs.
            continue
    raise SQLAlchemyError(f"Could not reserve an operative id for {day_key}")


# -------- creation --------


def _build_units(items: Any, catalogs: CatalogStore) -> List[OperativeUnit]:
    if not isinstance(items, list) or not items:
        raise OperativeValidationError("At least one unit is required")
    units = []
    for position, item in enumerate(items):
        if not isinstance(item, Mapping):
            raise OperativeValidationError("Unit entries must be objects")
        units.append(
            OperativeUnit(
                position=position,
                unit_type=normalize_text(item.get("type") or item.get("unit_type")) or DEFAULT_UNIT_TYPE,
                unit_number=_required(item, "unit_number", "Unit number"),
                in_charge=_required(item, "in_charge", "Officer in charge"),
                rank=_from_catalog(catalogs, "ranks", item.get("rank"), "Rank"),
                personnel_count=_non_negative_int(item.get("personnel_count"), "Personnel count"),
                phone=digits_only(item.get("phone")) or None,
            )
        )
    return units


def _build_corporations(items: Any, catalogs: CatalogStore) -> List[OperativeCorporation]:
    if items in (None, ""):
        return []
    if not isinstance(items, list):
        raise OperativeValidationError("Corporations must be a list")
    corporations = []
    for position, item in enumerate(items):
        if not isinstance(item, Mapping):
            raise OperativeValidationError("Corporation entries must be objects")
        corporations.append(
            OperativeCorporation(
                position=position,
                name=_from_catalog(catalogs, "corporations", item.get("name"), "Corporation"),
                unit_number=normalize_text(item.get("unit_number")) or None,
                in_charge=normalize_text(item.get("in_charge")) or None,
                unit_count=_non_negative_int(item.get("unit_count"), "Unit count", default=1),
                personnel_count=_non_negative_int(item.get("personnel_count"), "Personnel count", default=1),
            )
        )
    return corporations


def _resolve_type(data: Mapping, catalogs: CatalogStore) -> str:
    other_marker = normalize_text(current_app.config.get("OTHER_TYPE_MARKER", "OTRO OPERATIVO"))
    operative_type = normalize_text(data.get("type"))
    if not operative_type:
        raise OperativeValidationError("Operative type is required")
    if operative_type == other_marker:
        custom = normalize_text(data.get("custom_type"))
        if not custom:
            raise OperativeValidationError("Describe the operative type")
        return custom
    return _from_catalog(catalogs, "operative_types", operative_type, "Operative type")


def create_operative(
    data: Mapping,
    user: User,
    catalogs: Optional[CatalogStore] = None,
    now: Optional[datetime] = None,
) -> Operative:
    catalogs = catalogs or get_catalog_store()
    now = now or datetime.now()

    operative_type = _resolve_type(data, catalogs)
    meeting_topic = None
    if is_meeting_type(operative_type):
        meeting_topic = _from_catalog(catalogs, "meeting_topics", data.get("meeting_topic"), "Meeting topic")

    location = data.get("location") if isinstance(data.get("location"), Mapping) else data
    region = normalize_text(data.get("region"))
    if not can_choose_region(user) and user.assigned_region:
        region = normalize_text(user.assigned_region)
    if not region:
        raise OperativeValidationError("Region is required")

    shift = normalize_text(data.get("shift")) or SHIFTS[0]
    if shift not in SHIFTS:
        raise OperativeValidationError(f"Shift must be one of {', '.join(SHIFTS)}")

    operative = Operative(
        operative_type=operative_type,
        meeting_topic=meeting_topic,
        started_at=now.replace(second=0, microsecond=0),
        status="ACTIVE",
        region=region,
        quadrant=_required(data, "quadrant", "Quadrant"),
        shift=shift,
        latitude=_coordinate(location.get("latitude"), "Latitude", 90),
        longitude=_coordinate(location.get("longitude"), "Longitude", 180),
        colony=_required(location, "colony", "Colony"),
        street=_required(location, "street", "Street"),
        corner=normalize_text(location.get("corner")) or None,
        created_by=user.id,
    )
    operative.units = _build_units(data.get("units"), catalogs)
    operative.corporations = _build_corporations(data.get("corporations"), catalogs)

    operative.id = next_operative_id(now)
    db.session.add(operative)
    db.session.flush()

    current_app.logger.info(
        "operative_created",
        extra={"operative_id": operative.id, "region": operative.region, "user_id": user.id, "units": len(operative.units)},
    )
    return operative


# -------- conclusion --------


def get_operative(operative_id: str) -> Operative:
    operative = db.session.get(Operative, operative_id)
    if operative is None:
        raise OperativeNotFound(f"Operative {operative_id} not found")
    return operative


def _default_location(operative: Operative) -> str:
    parts = [operative.street, operative.corner, operative.colony]
    return ", ".join(part for part in parts if part)


def _covered_colonies(operative: Operative, values: Any, catalogs: CatalogStore) -> List[str]:
    if values in (None, ""):
        return [operative.colony]
    if not isinstance(values, list):
        raise OperativeValidationError("Covered colonies must be a list")
    allowed = set(catalogs.colonies_for_region(operative.region))
    allowed.add(operative.colony)
    covered: List[str] = []
    for value in values:
        colony = normalize_text(value)
        if not colony or colony in covered:
            continue
        if colony not in allowed:
            raise OperativeValidationError(f"Colony {colony} does not belong to {operative.region}")
        covered.append(colony)
    return covered or [operative.colony]


def _incident(data: Mapping, result: str, catalogs: CatalogStore) -> Optional[str]:
    key = "faults" if result == "DETAINED_TO_CIVIC_JUDGE" else "crimes"
    reason = normalize_text(data.get("reason"))
    if not reason:
        return None
    if reason == normalize_text(current_app.config.get("OTHER_REASON_MARKER", "OTRO")):
        reason = normalize_text(data.get("other_reason"))
        if not reason:
            raise OperativeValidationError("Describe the reason")
        return reason
    return _from_catalog(catalogs, key, reason, "Reason")


def conclude_operative(
    operative_id: str,
    data: Mapping,
    user: User,
    catalogs: Optional[CatalogStore] = None,
    now: Optional[datetime] = None,
) -> Operative:
    """Close an active operative with its outcome.

    Meetings always close as deterrence with zeroed counters and require the
    representative's details. Other operatives record detainees and a reason
    only when the result is not deterrence; the reason lands in
    ``detention_reason`` or ``crime_type`` depending on the result.
    """
    catalogs = catalogs or get_catalog_store()
    operative = get_operative(operative_id)
    if operative.status == "CONCLUDED":
        raise OperativeValidationError(f"Operative {operative.id} is already concluded")

    meeting = is_meeting_type(operative.operative_type)
    conclusion = OperativeConclusion(
        location=normalize_text(data.get("location")) or _default_location(operative),
        colonies_covered=_covered_colonies(operative, data.get("colonies_covered"), catalogs),
        concluded_at=(now or datetime.now()).replace(microsecond=0),
    )

    if meeting:
        for field in COUNTER_FIELDS:
            setattr(conclusion, field, 0)
        conclusion.result = DETERRENCE
        details = data.get("reunion_details") if isinstance(data.get("reunion_details"), Mapping) else data
        conclusion.representative_name = _required(details, "representative_name", "Representative name")
        conclusion.representative_phone = digits_only(details.get("phone") or details.get("representative_phone"))
        if not conclusion.representative_phone:
            raise OperativeValidationError("Representative phone is required")
        conclusion.participant_count = _non_negative_int(details.get("participant_count"), "Participant count")
        if conclusion.participant_count < 1:
            raise OperativeValidationError("Participant count must be at least 1")
        conclusion.petitions = _required(details, "petitions", "Petitions")
    else:
        for field in COUNTER_FIELDS:
            setattr(conclusion, field, _non_negative_int(data.get(field), field.replace("_", " ").capitalize()))
        result = normalize_text(data.get("result")) or DETERRENCE
        if result not in RESULT_TYPES:
            raise OperativeValidationError(f"Result must be one of {', '.join(RESULT_TYPES)}")
        conclusion.result = result
        if result != DETERRENCE:
            conclusion.detainees_count = _non_negative_int(data.get("detainees_count"), "Detainees count")
            incident = _incident(data, result, catalogs)
            if result == "DETAINED_TO_CIVIC_JUDGE":
                conclusion.detention_reason = incident
            else:
                conclusion.crime_type = incident

    operative.conclusion = conclusion
    operative.status = "CONCLUDED"
    db.session.add(operative)
    db.session.flush()

    current_app.logger.info(
        "operative_concluded",
        extra={"operative_id": operative.id, "result": conclusion.result, "user_id": user.id},
    )
    return operative


def delete_operative(operative_id: str, user: User) -> None:
    if not user.is_admin:
        raise OperativeValidationError("Only administrators can delete operatives")
    operative = get_operative(operative_id)
    db.session.delete(operative)
    db.session.flush()
    current_app.logger.info("operative_deleted", extra={"operative_id": operative_id, "user_id": user.id})
