"""Role-based scoping of operative records plus the composable list filters."""
from __future__ import annotations

import enum
from datetime import date, datetime, time, timedelta
from typing import Dict, Optional, Tuple

from flask import current_app
from sqlalchemy import or_

from models import Operative, Role, User
from utils.text import normalize_text


class VisibilityScope(str, enum.Enum):
    ALL = "ALL"
    REGION = "REGION"
    OWN = "OWN"


ROLE_SCOPES: Dict[Role, VisibilityScope] = {
    Role.ADMIN: VisibilityScope.ALL,
    Role.DIRECTOR: VisibilityScope.ALL,
    Role.ANALYST: VisibilityScope.ALL,
    Role.REGIONAL: VisibilityScope.REGION,
    Role.SHIFT_CHIEF: VisibilityScope.REGION,
    Role.MUNICIPALITY_CHIEF: VisibilityScope.REGION,
    Role.QUADRANT_CHIEF: VisibilityScope.OWN,
    Role.PATROL_OFFICER: VisibilityScope.OWN,
}

EXPORT_ROLES = frozenset({Role.ADMIN, Role.DIRECTOR, Role.ANALYST})
CATALOG_ADMIN_ROLES = frozenset({Role.ADMIN, Role.ANALYST})


def scope_for(user: User) -> VisibilityScope:
    scope = ROLE_SCOPES[user.role_enum]
    # Regional roles without a region, or flagged municipality-wide, see everything.
    if scope is VisibilityScope.REGION and (user.is_municipality_wide or not user.assigned_region):
        return VisibilityScope.ALL
    return scope


def scope_operatives(query, user: User):
    scope = scope_for(user)
    if scope is VisibilityScope.REGION:
        return query.filter(Operative.region == normalize_text(user.assigned_region))
    if scope is VisibilityScope.OWN:
        return query.filter(Operative.created_by == user.id)
    return query


def can_view(operative: Operative, user: User) -> bool:
    scope = scope_for(user)
    if scope is VisibilityScope.REGION:
        return operative.region == normalize_text(user.assigned_region)
    if scope is VisibilityScope.OWN:
        return operative.created_by == user.id
    return True


def visible_operatives(user: User):
    return scope_operatives(Operative.query, user).order_by(Operative.started_at.desc(), Operative.id.desc())


# -------- composable filters --------


def shift_window(now: Optional[datetime] = None, cutoff_hour: Optional[int] = None) -> Tuple[datetime, datetime]:
    """Bounds of the operational day containing ``now``.

    The day starts at ``cutoff_hour``; before that hour the window still
    belongs to the previous calendar day.
    """
    now = now or datetime.now()
    if cutoff_hour is None:
        cutoff_hour = int(current_app.config.get("DASHBOARD_DAY_CUTOFF_HOUR", 9))
    start = datetime.combine(now.date(), time(hour=cutoff_hour))
    if now < start:
        start -= timedelta(days=1)
    return start, start + timedelta(days=1)


def filter_current_shift(query, now: Optional[datetime] = None, cutoff_hour: Optional[int] = None):
    start, end = shift_window(now, cutoff_hour)
    return query.filter(Operative.started_at >= start, Operative.started_at < end)


def filter_search(query, term: Optional[str]):
    needle = normalize_text(term)
    if not needle:
        return query
    return query.filter(
        or_(
            Operative.id.contains(needle, autoescape=True),
            Operative.region.contains(needle, autoescape=True),
            Operative.operative_type.contains(needle, autoescape=True),
            Operative.colony.contains(needle, autoescape=True),
        )
    )


def filter_status(query, status: Optional[str]):
    value = normalize_text(status)
    if not value:
        return query
    return query.filter(Operative.status == value)


EXPORT_CUTOFF_KEYS = {
    "complete": "COMPLETE_EXPORT_CUTOFF_HOUR",
    "audit": "AUDIT_EXPORT_CUTOFF_HOUR",
}


def export_cutoff_hour(flavor: str) -> int:
    """Hour at which the operational day starts for an export flavor; midnight when unconfigured."""
    key = EXPORT_CUTOFF_KEYS.get((flavor or "").lower())
    if key is None:
        return 0
    return int(current_app.config.get(key, 0))


def export_range(start: date, end: date, cutoff_hour: int = 0) -> Tuple[datetime, datetime]:
    """Half-open range from ``start`` at the cutoff hour to the day after ``end`` at the same hour.

    With the default cutoff of midnight both dates are inclusive calendar days.
    """
    if end < start:
        raise ValueError("End date is before start date")
    lower = datetime.combine(start, time(hour=cutoff_hour))
    upper = datetime.combine(end + timedelta(days=1), time(hour=cutoff_hour))
    return lower, upper


def filter_date_range(query, start: date, end: date, cutoff_hour: int = 0):
    lower, upper = export_range(start, end, cutoff_hour)
    return query.filter(Operative.started_at >= lower, Operative.started_at < upper)
