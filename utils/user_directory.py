"""User account management: admin CRUD plus bulk CSV import/merge and export."""
from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from extensions import db
from models import REGIONLESS_ROLES, Role, User, generate_uuid
from utils.security import generate_token
from utils.text import normalize_text, parse_flag

IMPORT_COLUMNS: tuple[str, ...] = (
    "ID",
    "FULL_NAME",
    "USERNAME",
    "PASSWORD",
    "ROLE",
    "ASSIGNED_REGION",
    "IS_MUNICIPALITY_WIDE",
    "PHONE",
    "PAYROLL_NUMBER",
)

MISSING_SENTINEL = "N/A"

# Labels used by earlier spreadsheets of the same roster.
ROLE_ALIASES: Dict[str, Role] = {
    "ANALISTA": Role.ANALYST,
    "JEFE_DE_TURNO": Role.SHIFT_CHIEF,
    "JEFE_AGRUPAMIENTO": Role.MUNICIPALITY_CHIEF,
    "JEFE_DE_CUADRANTE": Role.QUADRANT_CHIEF,
    "PATRULLERO": Role.PATROL_OFFICER,
}

_MERGE_FIELDS = ("full_name", "username", "role", "assigned_region", "is_municipality_wide", "phone", "payroll_number")


class UserDirectoryError(Exception):
    """Raised when a user account change is rejected."""


class UserNotFound(UserDirectoryError):
    """Raised when a user id does not resolve to an account."""


@dataclass
class ImportSummary:
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0

    @property
    def has_changes(self) -> bool:
        return bool(self.inserted or self.updated)

    def to_dict(self) -> dict:
        return {
            "outcome": "APPLIED" if self.has_changes else "NO_CHANGES",
            "inserted": self.inserted,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "skipped": self.skipped,
        }


def parse_role(value) -> Optional[Role]:
    label = normalize_text(value).replace(" ", "_")
    if not label:
        return None
    if label in ROLE_ALIASES:
        return ROLE_ALIASES[label]
    try:
        return Role(label)
    except ValueError:
        return None


def _optional(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.upper() == MISSING_SENTINEL:
        return None
    return text


def _region_for(role: Role, region: Optional[str]) -> Optional[str]:
    if role in REGIONLESS_ROLES:
        return None
    return normalize_text(region) or None


def _username_taken(username: str, exclude_id: Optional[str] = None) -> bool:
    query = User.query.filter(User.username == username)
    if exclude_id:
        query = query.filter(User.id != exclude_id)
    return db.session.query(query.exists()).scalar()


def create_user(data: Mapping) -> User:
    full_name = normalize_text(data.get("full_name"))
    username = (data.get("username") or "").strip()
    password = data.get("password") or ""
    if not full_name or not username or not password:
        raise UserDirectoryError("Full name, username and password are required")
    role = parse_role(data.get("role") or Role.PATROL_OFFICER.value)
    if role is None:
        raise UserDirectoryError("Invalid role selected")
    if _username_taken(username):
        raise UserDirectoryError(f"Username {username} is already in use")

    user = User(
        id=generate_uuid(),
        full_name=full_name,
        username=username,
        role=role.value,
        assigned_region=_region_for(role, data.get("assigned_region")),
        is_municipality_wide=parse_flag(data.get("is_municipality_wide")),
        phone=_optional(data.get("phone")),
        payroll_number=_optional(data.get("payroll_number")),
        is_active=True,
    )
    user.set_password(password)
    db.session.add(user)
    db.session.flush()
    current_app.logger.info("user_created", extra={"user_id": user.id, "role": user.role})
    return user


def update_user(user_id: str, changes: Mapping) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise UserNotFound(f"User {user_id} not found")

    if "full_name" in changes:
        full_name = normalize_text(changes.get("full_name"))
        if not full_name:
            raise UserDirectoryError("Full name cannot be empty")
        user.full_name = full_name
    if "username" in changes:
        username = (changes.get("username") or "").strip()
        if not username:
            raise UserDirectoryError("Username cannot be empty")
        if _username_taken(username, exclude_id=user.id):
            raise UserDirectoryError(f"Username {username} is already in use")
        user.username = username
    if "role" in changes:
        role = parse_role(changes.get("role"))
        if role is None:
            raise UserDirectoryError("Invalid role selected")
        user.role = role.value
    if "assigned_region" in changes or "role" in changes:
        region = changes.get("assigned_region", user.assigned_region)
        user.assigned_region = _region_for(user.role_enum, region)
    if "is_municipality_wide" in changes:
        user.is_municipality_wide = parse_flag(changes.get("is_municipality_wide"))
    if "phone" in changes:
        user.phone = _optional(changes.get("phone"))
    if "payroll_number" in changes:
        user.payroll_number = _optional(changes.get("payroll_number"))
    if "is_active" in changes:
        user.is_active = parse_flag(changes.get("is_active"))
    if changes.get("password"):
        user.set_password(changes["password"])

    db.session.add(user)
    db.session.flush()
    current_app.logger.info("user_updated", extra={"user_id": user.id, "fields": sorted(changes.keys())})
    return user


def delete_user(user_id: str, acting_user: User) -> None:
    user = db.session.get(User, user_id)
    if not user:
        raise UserNotFound(f"User {user_id} not found")
    if user.id == acting_user.id:
        raise UserDirectoryError("You cannot delete your own account")
    if user.is_admin and User.query.filter_by(role=Role.ADMIN.value).count() <= 1:
        raise UserDirectoryError("The last administrator account cannot be deleted")
    db.session.delete(user)
    db.session.flush()
    current_app.logger.info("user_deleted", extra={"user_id": user_id, "by": acting_user.id})


def change_password(user: User, current_password: str, new_password: str) -> None:
    if not user.check_password(current_password):
        raise UserDirectoryError("Current password is incorrect")
    if not new_password or not new_password.strip():
        raise UserDirectoryError("New password cannot be empty")
    user.set_password(new_password)
    db.session.add(user)


# -------- bulk import / export --------


def parse_user_rows(text: str) -> List[List[str]]:
    """Split CSV text into data rows; the header row and blank lines are dropped."""
    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")))
    rows = [row for row in reader if any(cell.strip() for cell in row)]
    if rows and normalize_text(rows[0][0]) == IMPORT_COLUMNS[0]:
        rows = rows[1:]
    return rows


def _row_to_record(row: Sequence[str]) -> Optional[dict]:
    if len(row) < 5:
        return None
    cells = [cell.strip() for cell in row] + [""] * (len(IMPORT_COLUMNS) - len(row))
    full_name = normalize_text(_optional(cells[1]))
    username = _optional(cells[2])
    role = parse_role(_optional(cells[4]))
    if not full_name or not username or role is None:
        return None
    return {
        "id": _optional(cells[0]),
        "full_name": full_name,
        "username": username,
        "password": _optional(cells[3]),
        "role": role.value,
        "assigned_region": _region_for(role, _optional(cells[5])),
        "is_municipality_wide": parse_flag(cells[6]),
        "phone": _optional(cells[7]),
        "payroll_number": _optional(cells[8]),
    }


def _find_match(record: dict) -> Optional[User]:
    conditions = [User.username == record["username"]]
    if record["id"]:
        match = db.session.get(User, record["id"])
        if match:
            return match
        conditions.append(User.id == record["id"])
    return User.query.filter(or_(*conditions)).first()


def _differences(user: User, record: dict) -> Dict[str, object]:
    changes = {}
    for field in _MERGE_FIELDS:
        current = getattr(user, field)
        if field == "is_municipality_wide":
            current = bool(current)
        if current != record[field]:
            changes[field] = record[field]
    if record["password"] and not user.check_password(record["password"]):
        changes["password"] = record["password"]
    return changes


def import_users(rows: Iterable[Sequence[str]]) -> ImportSummary:
    """Merge roster rows into the directory.

    A row matches an existing account by id or username. Matching rows with
    at least one differing field overwrite the account; identical rows are
    left alone. Unmatched rows become new accounts. Rows with fewer than five
    columns or without username, full name or a known role are skipped.
    """
    summary = ImportSummary()
    for row in rows:
        record = _row_to_record(row)
        if record is None:
            summary.skipped += 1
            continue

        existing = _find_match(record)
        if existing is None:
            user = User(
                id=record["id"] or generate_uuid(),
                full_name=record["full_name"],
                username=record["username"],
                role=record["role"],
                assigned_region=record["assigned_region"],
                is_municipality_wide=record["is_municipality_wide"],
                phone=record["phone"],
                payroll_number=record["payroll_number"],
                is_active=True,
            )
            # Accounts imported without a password cannot log in until an admin sets one.
            user.set_password(record["password"] or generate_token(24))
            db.session.add(user)
            db.session.flush()
            summary.inserted += 1
            continue

        changes = _differences(existing, record)
        if not changes:
            summary.unchanged += 1
            continue
        if "username" in changes and _username_taken(record["username"], exclude_id=existing.id):
            summary.skipped += 1
            continue
        password = changes.pop("password", None)
        for field, value in changes.items():
            setattr(existing, field, value)
        if password:
            existing.set_password(password)
        db.session.add(existing)
        db.session.flush()
        summary.updated += 1

    current_app.logger.info("user_import_processed", extra=summary.to_dict())
    return summary


def import_users_csv(text: str) -> ImportSummary:
    try:
        return import_users(parse_user_rows(text))
    except IntegrityError as exc:
        raise UserDirectoryError("Import conflicts with existing accounts") from exc


def export_users_csv(users: Iterable[User]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(IMPORT_COLUMNS)
    for user in users:
        writer.writerow(
            [
                user.id,
                user.full_name,
                user.username,
                MISSING_SENTINEL,
                user.role,
                user.assigned_region or MISSING_SENTINEL,
                "TRUE" if user.is_municipality_wide else "FALSE",
                user.phone or MISSING_SENTINEL,
                user.payroll_number or MISSING_SENTINEL,
            ]
        )
    return "\ufeff" + buffer.getvalue()
