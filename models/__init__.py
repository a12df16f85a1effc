"""Core data models for accounts, audit trails, catalogs, and patrol operatives."""
import enum
import uuid
from datetime import datetime

from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

from extensions import db


def generate_uuid() -> str:
	return str(uuid.uuid4())


def _in_clause(values) -> str:
	return ",".join(f"'{value}'" for value in values)


class Role(str, enum.Enum):
	ADMIN = "ADMIN"
	DIRECTOR = "DIRECTOR"
	ANALYST = "ANALYST"
	REGIONAL = "REGIONAL"
	SHIFT_CHIEF = "SHIFT_CHIEF"
	MUNICIPALITY_CHIEF = "MUNICIPALITY_CHIEF"
	QUADRANT_CHIEF = "QUADRANT_CHIEF"
	PATROL_OFFICER = "PATROL_OFFICER"


USER_ROLES: tuple[str, ...] = tuple(role.value for role in Role)

# Roles that never carry an assigned region.
REGIONLESS_ROLES: frozenset[Role] = frozenset({Role.ADMIN, Role.DIRECTOR, Role.ANALYST})

OPERATIVE_STATUSES: tuple[str, ...] = (
	"ACTIVE",
	"CONCLUDED",
)

SHIFTS: tuple[str, ...] = (
	"FIRST",
	"SECOND",
	"DAILY",
)

RESULT_TYPES: tuple[str, ...] = (
	"DETERRENCE",
	"DETAINED_TO_CIVIC_JUDGE",
	"REFERRED_TO_PROSECUTOR",
)

STRING_CATALOG_KEYS: tuple[str, ...] = (
	"operative_types",
	"corporations",
	"crimes",
	"faults",
	"ranks",
	"meeting_topics",
)

COLONY_CATALOG_KEY = "colonies"

CATALOG_KEYS: tuple[str, ...] = STRING_CATALOG_KEYS + (COLONY_CATALOG_KEY,)


class User(UserMixin, db.Model):
	__tablename__ = "users"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	full_name = db.Column(db.String(150), nullable=False)
	username = db.Column(db.String(80), unique=True, nullable=False, index=True)
	password_hash = db.Column(db.String(255), nullable=False)
	role = db.Column(db.String(30), nullable=False, default=Role.PATROL_OFFICER.value, index=True)
	assigned_region = db.Column(db.String(80), nullable=True, index=True)
	is_municipality_wide = db.Column(db.Boolean, default=False, nullable=False)
	phone = db.Column(db.String(20), nullable=True)
	payroll_number = db.Column(db.String(40), nullable=True)
	is_active = db.Column(db.Boolean, default=True, nullable=False)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
	last_login_at = db.Column(db.DateTime, nullable=True)

	__table_args__ = (
		db.CheckConstraint(f"role IN ({_in_clause(USER_ROLES)})", name="ck_user_role_valid"),
	)

	audit_logs = db.relationship("AuditLog", back_populates="user", lazy="dynamic")

	def set_password(self, password: str) -> None:
		self.password_hash = generate_password_hash(password, method="pbkdf2:sha256", salt_length=16)

	def check_password(self, password: str) -> bool:
		if not password:
			return False
		return check_password_hash(self.password_hash, password)

	@property
	def role_enum(self) -> Role:
		return Role(self.role)

	@property
	def is_admin(self) -> bool:
		return self.role == Role.ADMIN.value

	@property
	def active(self) -> bool:  # Flask-Login compatibility alias
		return self.is_active

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"full_name": self.full_name,
			"username": self.username,
			"role": self.role,
			"assigned_region": self.assigned_region,
			"is_municipality_wide": bool(self.is_municipality_wide),
			"phone": self.phone,
			"payroll_number": self.payroll_number,
			"is_active": bool(self.is_active),
		}


class AuditLog(db.Model):
	__tablename__ = "audit_logs"

	id = db.Column(db.Integer, primary_key=True)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
	action_type = db.Column(db.String(50), nullable=False)
	ip_address = db.Column(db.String(64), nullable=True)
	user_agent = db.Column(db.String(255), nullable=True)
	context_entity = db.Column(db.String(120), nullable=True)
	timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

	user = db.relationship("User", back_populates="audit_logs")


class CatalogDocument(db.Model):
	"""One whole-list document per catalog key; every change rewrites ``value``."""

	__tablename__ = "catalog_documents"

	catalog_key = db.Column(db.String(50), primary_key=True)
	value = db.Column(db.JSON, nullable=False, default=list)
	updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
	updated_by = db.Column(db.String(36), nullable=True)

	__table_args__ = (
		db.CheckConstraint(f"catalog_key IN ({_in_clause(CATALOG_KEYS)})", name="ck_catalog_document_key"),
	)


class DailySequence(db.Model):
	__tablename__ = "daily_sequences"

	day_key = db.Column(db.String(6), primary_key=True)  # YYMMDD
	last_value = db.Column(db.Integer, nullable=False, default=0)


class Operative(db.Model):
	__tablename__ = "operatives"

	id = db.Column(db.String(20), primary_key=True)
	operative_type = db.Column(db.String(150), nullable=False, index=True)
	meeting_topic = db.Column(db.String(150), nullable=True)
	started_at = db.Column(db.DateTime, nullable=False, index=True)
	status = db.Column(db.String(12), nullable=False, default="ACTIVE", index=True)
	region = db.Column(db.String(80), nullable=False, index=True)
	quadrant = db.Column(db.String(20), nullable=False)
	shift = db.Column(db.String(10), nullable=False, default="FIRST")
	latitude = db.Column(db.Float, nullable=True)
	longitude = db.Column(db.Float, nullable=True)
	colony = db.Column(db.String(255), nullable=False, index=True)
	street = db.Column(db.String(255), nullable=False)
	corner = db.Column(db.String(255), nullable=True)
	# Plain id rather than a foreign key: records outlive the accounts that created them.
	created_by = db.Column(db.String(36), nullable=False, index=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

	__table_args__ = (
		db.CheckConstraint(f"status IN ({_in_clause(OPERATIVE_STATUSES)})", name="ck_operative_status"),
		db.CheckConstraint(f"shift IN ({_in_clause(SHIFTS)})", name="ck_operative_shift"),
	)

	units = db.relationship(
		"OperativeUnit",
		back_populates="operative",
		order_by="OperativeUnit.position",
		cascade="all, delete-orphan",
	)
	corporations = db.relationship(
		"OperativeCorporation",
		back_populates="operative",
		order_by="OperativeCorporation.position",
		cascade="all, delete-orphan",
	)
	conclusion = db.relationship(
		"OperativeConclusion",
		back_populates="operative",
		uselist=False,
		cascade="all, delete-orphan",
	)

	@property
	def start_date(self) -> str:
		return self.started_at.strftime("%Y-%m-%d")

	@property
	def start_time(self) -> str:
		return self.started_at.strftime("%H:%M")

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"type": self.operative_type,
			"meeting_topic": self.meeting_topic,
			"start_date": self.start_date,
			"start_time": self.start_time,
			"status": self.status,
			"region": self.region,
			"quadrant": self.quadrant,
			"shift": self.shift,
			"location": {
				"latitude": self.latitude,
				"longitude": self.longitude,
				"colony": self.colony,
				"street": self.street,
				"corner": self.corner,
			},
			"units": [unit.to_dict() for unit in self.units],
			"corporations": [corp.to_dict() for corp in self.corporations],
			"conclusion": self.conclusion.to_dict() if self.conclusion else None,
			"created_by": self.created_by,
		}


class OperativeUnit(db.Model):
	__tablename__ = "operative_units"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	operative_id = db.Column(db.String(20), db.ForeignKey("operatives.id", ondelete="CASCADE"), nullable=False, index=True)
	position = db.Column(db.Integer, nullable=False, default=0)
	unit_type = db.Column(db.String(60), nullable=False, default="PATRULLA")
	unit_number = db.Column(db.String(60), nullable=False)
	in_charge = db.Column(db.String(150), nullable=False)
	rank = db.Column(db.String(80), nullable=False)
	personnel_count = db.Column(db.Integer, nullable=False, default=0)
	phone = db.Column(db.String(10), nullable=True)

	__table_args__ = (
		db.CheckConstraint("personnel_count >= 0", name="ck_operative_unit_personnel"),
	)

	operative = db.relationship("Operative", back_populates="units")

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"type": self.unit_type,
			"unit_number": self.unit_number,
			"in_charge": self.in_charge,
			"rank": self.rank,
			"personnel_count": self.personnel_count,
			"phone": self.phone,
		}


class OperativeCorporation(db.Model):
	__tablename__ = "operative_corporations"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	operative_id = db.Column(db.String(20), db.ForeignKey("operatives.id", ondelete="CASCADE"), nullable=False, index=True)
	position = db.Column(db.Integer, nullable=False, default=0)
	name = db.Column(db.String(150), nullable=False)
	unit_number = db.Column(db.String(60), nullable=True)
	in_charge = db.Column(db.String(150), nullable=True)
	unit_count = db.Column(db.Integer, nullable=False, default=1)
	personnel_count = db.Column(db.Integer, nullable=False, default=1)

	__table_args__ = (
		db.CheckConstraint("unit_count >= 0 AND personnel_count >= 0", name="ck_operative_corporation_counts"),
	)

	operative = db.relationship("Operative", back_populates="corporations")

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"name": self.name,
			"unit_number": self.unit_number,
			"in_charge": self.in_charge,
			"unit_count": self.unit_count,
			"personnel_count": self.personnel_count,
		}


class OperativeConclusion(db.Model):
	__tablename__ = "operative_conclusions"

	id = db.Column(db.Integer, primary_key=True)
	operative_id = db.Column(
		db.String(20), db.ForeignKey("operatives.id", ondelete="CASCADE"), nullable=False, unique=True, index=True
	)
	location = db.Column(db.String(500), nullable=False)
	colonies_covered = db.Column(db.JSON, nullable=False, default=list)
	public_transport_checked = db.Column(db.Integer, nullable=False, default=0)
	private_vehicles_checked = db.Column(db.Integer, nullable=False, default=0)
	motorcycles_checked = db.Column(db.Integer, nullable=False, default=0)
	people_checked = db.Column(db.Integer, nullable=False, default=0)
	result = db.Column(db.String(40), nullable=False, index=True)
	detainees_count = db.Column(db.Integer, nullable=True)
	detention_reason = db.Column(db.String(255), nullable=True)
	crime_type = db.Column(db.String(255), nullable=True)
	representative_name = db.Column(db.String(150), nullable=True)
	representative_phone = db.Column(db.String(10), nullable=True)
	participant_count = db.Column(db.Integer, nullable=True)
	petitions = db.Column(db.Text, nullable=True)
	concluded_at = db.Column(db.DateTime, default=datetime.now, nullable=False)

	__table_args__ = (
		db.CheckConstraint(f"result IN ({_in_clause(RESULT_TYPES)})", name="ck_operative_conclusion_result"),
		db.CheckConstraint(
			"public_transport_checked >= 0 AND private_vehicles_checked >= 0 "
			"AND motorcycles_checked >= 0 AND people_checked >= 0",
			name="ck_operative_conclusion_counters",
		),
		db.CheckConstraint(
			"detention_reason IS NULL OR crime_type IS NULL",
			name="ck_operative_conclusion_reason_exclusive",
		),
	)

	operative = db.relationship("Operative", back_populates="conclusion")

	@property
	def has_reunion_details(self) -> bool:
		return bool(self.representative_name)

	def to_dict(self) -> dict:
		reunion = None
		if self.has_reunion_details:
			reunion = {
				"representative_name": self.representative_name,
				"phone": self.representative_phone,
				"participant_count": self.participant_count,
				"petitions": self.petitions,
			}
		return {
			"location": self.location,
			"colonies_covered": list(self.colonies_covered or []),
			"public_transport_checked": self.public_transport_checked,
			"private_vehicles_checked": self.private_vehicles_checked,
			"motorcycles_checked": self.motorcycles_checked,
			"people_checked": self.people_checked,
			"result": self.result,
			"detainees_count": self.detainees_count,
			"detention_reason": self.detention_reason,
			"crime_type": self.crime_type,
			"reunion_details": reunion,
			"concluded_at": self.concluded_at.strftime("%H:%M") if self.concluded_at else None,
			"concluded_on": self.concluded_at.strftime("%Y-%m-%d") if self.concluded_at else None,
		}
