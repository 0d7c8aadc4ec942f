"""
SQLAlchemy models defining the database schema for the Barangay Management
System.

Each model corresponds to a table.  Managed records (residents, households,
officials and so on) use opaque UUID string identifiers; users keep integer
ids because Flask-Login stores them in the session.
"""
import uuid

from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from .extensions import db
from .time_utils import utcnow


GENDERS = ("Male", "Female")
RESIDENT_STATUSES = ("Active", "Inactive", "Deceased", "Moved Out")
OFFICIAL_STATUSES = ("Active", "Inactive")
ORDINANCE_STATUSES = ("Active", "Amended", "Repealed")
ACTIVITY_TYPES = ("Community Service", "Meeting", "Festival", "Sports", "Health Program", "Training", "Other")
ACTIVITY_STATUSES = ("Scheduled", "Ongoing", "Completed", "Cancelled")
REPORT_TYPES = ("Incident", "Complaint", "Request", "Concern", "Feedback")
REPORT_PRIORITIES = ("Low", "Medium", "High", "Critical")
REPORT_STATUSES = ("Pending", "In Progress", "Resolved", "Closed")
CERTIFICATE_TYPES = (
    "barangay_clearance",
    "certificate_of_residency",
    "certificate_of_indigency",
    "business_permit",
    "good_moral",
    "first_time_job_seeker",
)
CERTIFICATE_STATUSES = ("Active", "Expired", "Revoked")
DOCUMENT_CATEGORIES = (
    "resolution",
    "memorandum",
    "ordinance",
    "report",
    "financial",
    "legal",
    "correspondence",
    "other",
)
USER_ROLES = ("admin", "staff", "viewer")


def new_id() -> str:
    return str(uuid.uuid4())


class TimestampMixin:
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class Household(TimestampMixin, db.Model):
    """
    A dwelling unit that zero or more residents belong to.  Residents carry
    a denormalised copy of `house_number`, kept in sync by the membership
    reconciler.
    """

    __tablename__ = "households"
    __table_args__ = (db.Index("ix_households_house_number", "house_number"),)

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    house_number = db.Column(db.String(50), nullable=False)
    purok = db.Column(db.String(100), nullable=True)
    street_address = db.Column(db.String(255), nullable=True)
    has_electricity = db.Column(db.Boolean, nullable=False, default=False, server_default="false")
    has_water = db.Column(db.Boolean, nullable=False, default=False, server_default="false")
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)

    residents = db.relationship("Resident", back_populates="household", order_by="Resident.last_name")

    def __repr__(self):
        return f"<Household {self.house_number}>"


class Resident(TimestampMixin, db.Model):
    """
    A person living in the barangay.  `household_id` is null unless the
    resident is a declared member of a household.
    """

    __tablename__ = "residents"
    __table_args__ = (
        db.Index("ix_residents_last_name", "last_name"),
        db.Index("ix_residents_household_id", "household_id"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    first_name = db.Column(db.String(100), nullable=False)
    middle_name = db.Column(db.String(100), nullable=True)
    last_name = db.Column(db.String(100), nullable=False)
    date_of_birth = db.Column(db.Date, nullable=False)
    gender = db.Column(db.String(10), nullable=False)
    household_id = db.Column(db.String(36), db.ForeignKey("households.id", ondelete="SET NULL"), nullable=True)
    house_number = db.Column(db.String(50), nullable=True)
    purok = db.Column(db.String(100), nullable=True)
    street_address = db.Column(db.String(255), nullable=True)
    phone_number = db.Column(db.String(20), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    barangay_id_number = db.Column(db.String(50), nullable=True)
    is_senior_citizen = db.Column(db.Boolean, nullable=False, default=False, server_default="false")
    is_pwd = db.Column(db.Boolean, nullable=False, default=False, server_default="false")
    is_indigenous = db.Column(db.Boolean, nullable=False, default=False, server_default="false")
    status = db.Column(db.String(20), nullable=False, default="Active", server_default="Active")

    household = db.relationship("Household", back_populates="residents")
    official_terms = db.relationship("Official", back_populates="resident")
    certificates = db.relationship("Certificate", back_populates="resident")

    @property
    def full_name(self) -> str:
        parts = [self.first_name, self.middle_name, self.last_name]
        return " ".join(p for p in parts if p)

    def __repr__(self):
        return f"<Resident {self.last_name}, {self.first_name}>"


class Official(TimestampMixin, db.Model):
    """A barangay official: a resident holding a position for a term."""

    __tablename__ = "officials"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    resident_id = db.Column(db.String(36), db.ForeignKey("residents.id"), nullable=False)
    position = db.Column(db.String(100), nullable=False)
    term_start = db.Column(db.Date, nullable=False)
    term_end = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="Active", server_default="Active")

    resident = db.relationship("Resident", back_populates="official_terms")

    def __repr__(self):
        return f"<Official {self.position}>"


class Ordinance(TimestampMixin, db.Model):
    __tablename__ = "ordinances"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    ordinance_number = db.Column(db.String(50), nullable=False, unique=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    content = db.Column(db.Text, nullable=True)
    date_enacted = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(20), nullable=False, default="Active", server_default="Active")

    def __repr__(self):
        return f"<Ordinance {self.ordinance_number}>"


class Activity(TimestampMixin, db.Model):
    __tablename__ = "activities"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    activity_type = db.Column(db.String(50), nullable=False)
    activity_date = db.Column(db.Date, nullable=False)
    location = db.Column(db.String(255), nullable=True)
    organizer = db.Column(db.String(255), nullable=True)
    participants_count = db.Column(db.Integer, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="Scheduled", server_default="Scheduled")

    def __repr__(self):
        return f"<Activity {self.title}>"


class Report(TimestampMixin, db.Model):
    """An incident, complaint or request logged at the barangay hall."""

    __tablename__ = "reports"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    report_type = db.Column(db.String(50), nullable=False)
    reported_by = db.Column(db.String(255), nullable=True)
    location = db.Column(db.String(255), nullable=True)
    priority = db.Column(db.String(20), nullable=False, default="Medium", server_default="Medium")
    status = db.Column(db.String(20), nullable=False, default="Pending", server_default="Pending")
    reported_date = db.Column(db.DateTime, nullable=False, default=utcnow)

    def __repr__(self):
        return f"<Report {self.title}>"


class Certificate(TimestampMixin, db.Model):
    __tablename__ = "certificates"
    __table_args__ = (db.Index("ix_certificates_resident_id", "resident_id"),)

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    certificate_number = db.Column(db.String(30), nullable=False, unique=True)
    certificate_type = db.Column(db.String(50), nullable=False)
    resident_id = db.Column(db.String(36), db.ForeignKey("residents.id", ondelete="SET NULL"), nullable=True)
    purpose = db.Column(db.Text, nullable=True)
    issued_by = db.Column(db.String(255), nullable=True)
    issued_date = db.Column(db.Date, nullable=False)
    valid_until = db.Column(db.Date, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="Active", server_default="Active")

    resident = db.relationship("Resident", back_populates="certificates")

    @property
    def type_label(self) -> str:
        return " ".join(word.capitalize() for word in self.certificate_type.split("_"))

    def __repr__(self):
        return f"<Certificate {self.certificate_number}>"


class Document(TimestampMixin, db.Model):
    """
    An uploaded barangay document.  New versions of a document point at
    their predecessor through `parent_document_id`.
    """

    __tablename__ = "documents"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(30), nullable=False)
    document_number = db.Column(db.String(50), nullable=True)
    file_name = db.Column(db.String(255), nullable=False)
    file_path = db.Column(db.String(255), nullable=False)
    file_size = db.Column(db.Integer, nullable=True)
    file_type = db.Column(db.String(100), nullable=True)
    version = db.Column(db.Integer, nullable=False, default=1, server_default="1")
    parent_document_id = db.Column(db.String(36), db.ForeignKey("documents.id", ondelete="SET NULL"), nullable=True)
    is_archived = db.Column(db.Boolean, nullable=False, default=False, server_default="false")
    uploaded_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    uploaded_by = db.relationship("User")
    parent = db.relationship("Document", remote_side=[id])

    def __repr__(self):
        return f"<Document {self.title} v{self.version}>"


class BarangayInfo(TimestampMixin, db.Model):
    """Single-row table holding the barangay's own details."""

    __tablename__ = "barangay_info"

    id = db.Column(db.Integer, primary_key=True)
    barangay_name = db.Column(db.String(255), nullable=False)
    barangay_code = db.Column(db.String(50), nullable=True)
    municipality = db.Column(db.String(255), nullable=True)
    province = db.Column(db.String(255), nullable=True)
    region = db.Column(db.String(255), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    phone_number = db.Column(db.String(30), nullable=True)
    email = db.Column(db.String(255), nullable=True)

    def __repr__(self):
        return f"<BarangayInfo {self.barangay_name}>"


class User(UserMixin, db.Model):
    """
    A user of the system.  `role` is one of admin, staff or viewer; viewers
    can browse records but not change them.
    """

    __tablename__ = "users"
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(150), nullable=False, unique=True)
    email = db.Column(db.String(255), nullable=False, unique=True)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default="viewer")
    full_name = db.Column(db.String(255), nullable=True)
    position = db.Column(db.String(100), nullable=True)
    phone_number = db.Column(db.String(30), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    @property
    def can_edit(self) -> bool:
        return self.role in ("admin", "staff")

    def __repr__(self):
        return f"<User {self.username}>"


class TransactionLog(db.Model):
    """
    Audit trail.  Records actions performed by users such as creating or
    deleting records; shown on the dashboard and the security audit page.
    """

    __tablename__ = "transaction_logs"
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action = db.Column(db.String(255), nullable=False)
    entity_type = db.Column(db.String(50), nullable=True)
    entity_id = db.Column(db.String(36), nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    meta = db.Column(db.JSON, nullable=True)
    timestamp = db.Column(db.DateTime, default=utcnow, nullable=False)

    user = db.relationship("User")

    def __repr__(self):
        return f"<TransactionLog {self.id} - {self.action}>"


class LoginAttempt(db.Model):
    """Tracks login attempts for rate limiting and audit."""

    __tablename__ = "login_attempts"
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(150), nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)
    success = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<LoginAttempt {self.id} {'success' if self.success else 'fail'}>"
