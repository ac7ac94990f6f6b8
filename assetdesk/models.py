# assetdesk/models.py
from __future__ import annotations

import enum
import re
from datetime import datetime, timezone

import sqlalchemy as sa
from flask_login import UserMixin
from sqlalchemy import Enum as SAEnum

from .extensions import db


# DB columns are "timestamp without time zone"; app code standardizes on naive UTC.
def utcnow_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _enum_column(enum_cls, name: str):
    return SAEnum(
        enum_cls,
        name=name,
        values_callable=lambda enum_cls: [e.value for e in enum_cls],
        native_enum=False,
        validate_strings=True,
    )


# Partial unique indexes: uniqueness only applies to non-deleted rows.
_ACTIVE_ROWS = sa.text("deleted_at IS NULL")


def _active_unique_index(name: str, *columns: str) -> sa.Index:
    return db.Index(
        name,
        *columns,
        unique=True,
        postgresql_where=_ACTIVE_ROWS,
        sqlite_where=_ACTIVE_ROWS,
    )


class _Labelled(enum.Enum):
    """Enum whose members carry a human label used for display, filters and exports."""

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()

    @classmethod
    def parse(cls, raw):
        """Accept a member, its value or its label (case-insensitive)."""
        if isinstance(raw, cls):
            return raw
        text = str(raw or "").strip().lower()
        for member in cls:
            if text in (member.value, member.label.lower()):
                return member
        raise ValueError(f"'{raw}' is not a valid {cls.__name__}.")


# =========================================================
# Enums
# =========================================================
class UserStatus(_Labelled):
    ACTIVE = "active"
    DISABLED = "disabled"
    ON_VACATION = "on_vacation"
    PENDING_APPROVAL = "pending_approval"


class AssetStatus(_Labelled):
    IN_USE = "in_use"
    IN_STORAGE = "in_storage"
    UNDER_REPAIR = "under_repair"
    DISPOSED = "disposed"
    LOST = "lost"


class LicenseType(_Labelled):
    OEM = "oem"
    RETAIL = "retail"
    VOLUME_MAK = "volume_mak"
    VOLUME_KMS = "volume_kms"
    SUBSCRIPTION_USER = "subscription_user"
    SUBSCRIPTION_DEVICE = "subscription_device"
    CONCURRENT = "concurrent"
    FREEWARE = "freeware"
    OPEN_SOURCE = "open_source"
    OTHER = "other"

    @property
    def label(self) -> str:
        return _LICENSE_TYPE_LABELS.get(self.value) or super().label


_LICENSE_TYPE_LABELS = {
    "oem": "OEM",
    "volume_mak": "Volume (MAK)",
    "volume_kms": "Volume (KMS)",
    "subscription_user": "Subscription (per user)",
    "subscription_device": "Subscription (per device)",
}


class MovementType(_Labelled):
    INTERNAL = "internal"
    EXTERNAL = "external"
    DISPOSAL = "disposal"

    @classmethod
    def parse(cls, raw):
        legacy = _LEGACY_MOVEMENT_TYPES.get(str(raw or "").strip().lower())
        if legacy is not None:
            return cls(legacy)
        return super().parse(raw)

    @classmethod
    def from_legacy_notes(cls, notes: str | None):
        """
        Older transfer rows encoded the type inside free-text notes
        ("Tipo de movimiento: Interna."). Only used to read/backfill those rows.
        """
        m = _LEGACY_NOTES_RE.search(notes or "")
        if not m:
            return None
        try:
            return cls.parse(m.group(1))
        except ValueError:
            return None


_LEGACY_MOVEMENT_TYPES = {
    "interna": "internal",
    "externa": "external",
    "dar de baja": "disposal",
}
_LEGACY_NOTES_RE = re.compile(r"Tipo de movimiento:\s*([^.\n]+)", re.IGNORECASE)


class DocumentSubject(_Labelled):
    """Kinds of records a Document can be attached to."""

    ASSET = "asset"
    SOFTWARE_LICENSE = "software_license"
    USER = "user"
    COMPANY = "company"
    ASSET_TRANSFER = "asset_transfer"

    @property
    def model(self):
        return DOCUMENT_SUBJECT_MODELS[self]


# =========================================================
# Shared columns
# =========================================================
class TimestampMixin:
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive)


class SoftDeleteMixin(TimestampMixin):
    deleted_at = db.Column(db.DateTime, nullable=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


# =========================================================
# Roles
# =========================================================
user_roles = db.Table(
    "user_roles",
    db.Column("user_id", db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    db.Column("role_id", db.Integer, db.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)


class Role(db.Model):
    __tablename__ = "roles"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False, unique=True)
    description = db.Column(db.String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<Role {self.id} {self.name}>"


# =========================================================
# Sections / Locations
# =========================================================
class Section(SoftDeleteMixin, db.Model):
    __tablename__ = "sections"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    management_level = db.Column(db.Integer, nullable=True)
    email = db.Column(db.String(150), nullable=True)

    parent_section_id = db.Column(db.Integer, db.ForeignKey("sections.id"), nullable=True, index=True)
    parent_section = db.relationship("Section", remote_side=[id], lazy="select")

    __table_args__ = (
        _active_unique_index("uq_sections_name_active", "name"),
    )

    def __repr__(self) -> str:
        return f"<Section {self.id} {self.name}>"


class Location(SoftDeleteMixin, db.Model):
    __tablename__ = "locations"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text, nullable=True)

    section_id = db.Column(db.Integer, db.ForeignKey("sections.id"), nullable=False, index=True)
    section = db.relationship("Section", foreign_keys=[section_id], lazy="joined")

    __table_args__ = (
        _active_unique_index("uq_locations_section_name_active", "section_id", "name"),
    )

    def __repr__(self) -> str:
        return f"<Location {self.id} {self.name}>"


# =========================================================
# Companies (suppliers)
# =========================================================
class Company(SoftDeleteMixin, db.Model):
    __tablename__ = "companies"

    id = db.Column(db.Integer, primary_key=True)
    tax_id = db.Column(db.String(50), nullable=False)
    legal_name = db.Column(db.String(255), nullable=False)
    trade_name = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(150), nullable=True)
    phone_number = db.Column(db.String(50), nullable=True)

    __table_args__ = (
        _active_unique_index("uq_companies_tax_id_active", "tax_id"),
    )

    @property
    def display_name(self) -> str:
        return self.trade_name or self.legal_name

    def __repr__(self) -> str:
        return f"<Company {self.id} {self.tax_id}>"


# =========================================================
# Users
# =========================================================
class User(UserMixin, SoftDeleteMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(150), nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)

    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    national_id = db.Column(db.String(30), nullable=True)
    birth_date = db.Column(db.Date, nullable=True)
    avatar_url = db.Column(db.String(500), nullable=True)

    status = db.Column(_enum_column(UserStatus, "user_status"), nullable=False, default=UserStatus.ACTIVE)

    section_id = db.Column(db.Integer, db.ForeignKey("sections.id"), nullable=True, index=True)
    section = db.relationship("Section", foreign_keys=[section_id], lazy="joined")

    roles = db.relationship("Role", secondary=user_roles, lazy="selectin", order_by="Role.name")

    last_login_at = db.Column(db.DateTime, nullable=True)

    __table_args__ = (
        _active_unique_index("uq_users_email_active", "email"),
        _active_unique_index("uq_users_national_id_active", "national_id"),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_active(self) -> bool:
        # Flask-Login refuses sessions for inactive users
        return self.deleted_at is None and self.status != UserStatus.DISABLED

    @property
    def role_names(self) -> list[str]:
        return [r.name for r in self.roles]

    def has_role(self, *names: str) -> bool:
        return any(r.name in names for r in self.roles)

    def __repr__(self) -> str:
        return f"<User {self.id} {self.email}>"


# =========================================================
# Assets
# =========================================================
class Asset(SoftDeleteMixin, db.Model):
    __tablename__ = "assets"

    id = db.Column(db.Integer, primary_key=True)

    inventory_code = db.Column(db.String(200), nullable=False)
    serial_number = db.Column(db.String(100), nullable=True)
    product_name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)

    status = db.Column(_enum_column(AssetStatus, "asset_status"), nullable=False, default=AssetStatus.IN_STORAGE)

    current_section_id = db.Column(db.Integer, db.ForeignKey("sections.id"), nullable=True, index=True)
    current_section = db.relationship("Section", foreign_keys=[current_section_id], lazy="joined")

    current_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)
    current_location = db.relationship("Location", foreign_keys=[current_location_id], lazy="joined")

    supplier_company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=True, index=True)
    supplier_company = db.relationship("Company", foreign_keys=[supplier_company_id], lazy="joined")

    purchase_date = db.Column(db.Date, nullable=True)
    invoice_number = db.Column(db.String(50), nullable=True)
    warranty_expiry_date = db.Column(db.Date, nullable=True)
    acquisition_procedure = db.Column(db.String(200), nullable=True)
    image_url = db.Column(db.String(500), nullable=True)

    __table_args__ = (
        _active_unique_index("uq_assets_inventory_code_active", "inventory_code"),
        _active_unique_index("uq_assets_serial_number_active", "serial_number"),
        db.Index("ix_assets_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<Asset {self.id} {self.inventory_code}>"


class AssetTransfer(db.Model):
    """
    Movement record. Immutable once written, except the receipt fields
    (received_by_user_id, received_date, signature_image_url).
    """

    __tablename__ = "asset_transfers"

    RECEIPT_FIELDS = ("received_by_user_id", "received_date", "signature_image_url")

    id = db.Column(db.Integer, primary_key=True)

    asset_id = db.Column(db.Integer, db.ForeignKey("assets.id"), nullable=False, index=True)
    asset = db.relationship("Asset", foreign_keys=[asset_id], lazy="joined")

    transfer_date = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    movement_type = db.Column(
        _enum_column(MovementType, "movement_type"),
        nullable=False,
        default=MovementType.INTERNAL,
    )

    from_section_id = db.Column(db.Integer, db.ForeignKey("sections.id"), nullable=True)
    from_section = db.relationship("Section", foreign_keys=[from_section_id], lazy="joined")
    to_section_id = db.Column(db.Integer, db.ForeignKey("sections.id"), nullable=True)
    to_section = db.relationship("Section", foreign_keys=[to_section_id], lazy="joined")

    from_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True)
    from_location = db.relationship("Location", foreign_keys=[from_location_id], lazy="joined")
    to_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True)
    to_location = db.relationship("Location", foreign_keys=[to_location_id], lazy="joined")

    from_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    from_user = db.relationship("User", foreign_keys=[from_user_id], lazy="joined")
    to_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    to_user = db.relationship("User", foreign_keys=[to_user_id], lazy="joined")

    authorized_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    authorized_by = db.relationship("User", foreign_keys=[authorized_by_user_id], lazy="joined")
    received_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    received_by = db.relationship("User", foreign_keys=[received_by_user_id], lazy="joined")

    received_date = db.Column(db.DateTime, nullable=True)
    transfer_reason = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    signature_image_url = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    __table_args__ = (
        db.Index("ix_asset_transfers_asset_date", "asset_id", "transfer_date"),
    )

    def __repr__(self) -> str:
        return f"<AssetTransfer {self.id} asset={self.asset_id} {self.movement_type}>"


# =========================================================
# Software licenses
# =========================================================
class SoftwareLicense(SoftDeleteMixin, db.Model):
    __tablename__ = "software_licenses"

    id = db.Column(db.Integer, primary_key=True)

    software_name = db.Column(db.String(255), nullable=False)
    software_version = db.Column(db.String(100), nullable=True)
    license_key = db.Column(db.String(500), nullable=True)
    license_type = db.Column(_enum_column(LicenseType, "license_type"), nullable=False, default=LicenseType.OTHER)
    seats = db.Column(db.Integer, nullable=False, default=1)

    purchase_date = db.Column(db.Date, nullable=True)
    purchase_cost = db.Column(db.Numeric(12, 2), nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)

    supplier_company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=True, index=True)
    supplier_company = db.relationship("Company", foreign_keys=[supplier_company_id], lazy="joined")

    invoice_number = db.Column(db.String(50), nullable=True)

    assigned_to_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    assigned_to_user = db.relationship("User", foreign_keys=[assigned_to_user_id], lazy="joined")

    notes = db.Column(db.Text, nullable=True)

    assignments = db.relationship(
        "AssetLicenseAssignment",
        back_populates="software_license",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        _active_unique_index("uq_software_licenses_key_active", "license_key"),
        db.CheckConstraint("seats >= 1", name="ck_software_licenses_seats"),
        db.CheckConstraint("purchase_cost IS NULL OR purchase_cost >= 0", name="ck_software_licenses_cost"),
    )

    @property
    def asset_ids(self) -> list[int]:
        return sorted(a.asset_id for a in self.assignments)

    def __repr__(self) -> str:
        return f"<SoftwareLicense {self.id} {self.software_name}>"


class AssetLicenseAssignment(db.Model):
    __tablename__ = "asset_software_license_assignments"

    id = db.Column(db.Integer, primary_key=True)

    asset_id = db.Column(db.Integer, db.ForeignKey("assets.id", ondelete="CASCADE"), nullable=False, index=True)
    asset = db.relationship("Asset", foreign_keys=[asset_id], lazy="joined")

    software_license_id = db.Column(
        db.Integer,
        db.ForeignKey("software_licenses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    software_license = db.relationship("SoftwareLicense", back_populates="assignments")

    installation_date = db.Column(db.Date, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    __table_args__ = (
        db.UniqueConstraint("asset_id", "software_license_id", name="uq_asset_license_assignment"),
    )


# =========================================================
# Documents (attachments)
# =========================================================
class Document(SoftDeleteMixin, db.Model):
    __tablename__ = "documents"

    id = db.Column(db.Integer, primary_key=True)

    subject_type = db.Column(_enum_column(DocumentSubject, "document_subject"), nullable=False)
    subject_id = db.Column(db.Integer, nullable=False)

    document_category = db.Column(db.String(50), nullable=False, default="invoice_purchase")
    description = db.Column(db.Text, nullable=True)

    original_filename = db.Column(db.String(255), nullable=False)
    storage_key = db.Column(db.String(500), nullable=False)
    mime_type = db.Column(db.String(100), nullable=False)
    file_size_bytes = db.Column(db.Integer, nullable=False)
    file_sha256 = db.Column(db.String(64), nullable=False)

    uploaded_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    uploaded_by = db.relationship("User", foreign_keys=[uploaded_by_user_id], lazy="joined")

    __table_args__ = (
        db.Index("ix_documents_subject", "subject_type", "subject_id"),
    )

    def __repr__(self) -> str:
        return f"<Document {self.id} {self.subject_type} {self.subject_id}>"


# Every DocumentSubject member must map to a model.
DOCUMENT_SUBJECT_MODELS = {
    DocumentSubject.ASSET: Asset,
    DocumentSubject.SOFTWARE_LICENSE: SoftwareLicense,
    DocumentSubject.USER: User,
    DocumentSubject.COMPANY: Company,
    DocumentSubject.ASSET_TRANSFER: AssetTransfer,
}

_unmapped = set(DocumentSubject) - set(DOCUMENT_SUBJECT_MODELS)
if _unmapped:
    raise RuntimeError(f"DocumentSubject members without a model: {sorted(m.value for m in _unmapped)}")
