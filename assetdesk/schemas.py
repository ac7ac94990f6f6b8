# assetdesk/schemas.py
"""
Request payload schemas.

Create schemas enforce required fields; update schemas are partial (only the
keys actually sent are applied). Uniqueness and foreign-key checks need the
database and live in the write path, not here.
"""
from __future__ import annotations

import re
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Annotated, Any, ClassVar, Optional, TypeVar

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    EmailStr,
    Field,
    StringConstraints,
    ValidationError,
    field_validator,
    model_validator,
)

from .errors import ValidationFailed
from .models import AssetStatus, DocumentSubject, LicenseType, MovementType, UserStatus

_ISO_DAY = re.compile(r"^\d{4}-\d{2}-\d{2}$")

PASSWORD_MIN_LENGTH = 8


# =========================================================
# Field helpers
# =========================================================
def _blank_to_none(v: Any) -> Any:
    if isinstance(v, str) and not v.strip():
        return None
    return v


def _parse_day(v: Any) -> Any:
    v = _blank_to_none(v)
    if v is None or (isinstance(v, date) and not isinstance(v, datetime)):
        return v
    if isinstance(v, str) and _ISO_DAY.match(v.strip()):
        try:
            return date.fromisoformat(v.strip())
        except ValueError as exc:
            raise ValueError("Not a valid calendar date.") from exc
    raise ValueError("Date must use the YYYY-MM-DD format.")


def _parse_timestamp(v: Any) -> Any:
    v = _blank_to_none(v)
    if v is None or isinstance(v, datetime):
        return v
    if isinstance(v, str):
        text = v.strip()
        if _ISO_DAY.match(text):
            return datetime.fromisoformat(text)
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValueError("Use an ISO date-time (YYYY-MM-DDTHH:MM).") from exc
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed
    raise ValueError("Use an ISO date-time (YYYY-MM-DDTHH:MM).")


def _enum_parser(enum_cls):
    def parse(v: Any) -> Any:
        v = _blank_to_none(v)
        if v is None:
            return v
        try:
            return enum_cls.parse(v)
        except ValueError as exc:
            allowed = ", ".join(m.value for m in enum_cls)
            raise ValueError(f"Must be one of: {allowed}.") from exc

    return parse


Day = Annotated[Optional[date], BeforeValidator(_parse_day)]
Timestamp = Annotated[Optional[datetime], BeforeValidator(_parse_timestamp)]
OptStr = Annotated[Optional[str], BeforeValidator(_blank_to_none)]
OptEmail = Annotated[Optional[EmailStr], BeforeValidator(_blank_to_none)]
RowId = Annotated[int, Field(gt=0)]
OptId = Annotated[Optional[RowId], BeforeValidator(_blank_to_none)]


def opt_text(max_length: int, *, min_length: int | None = None):
    """Optional text; blank becomes None and length limits only apply to real strings."""
    inner = Annotated[str, StringConstraints(min_length=min_length, max_length=max_length)]
    return Annotated[Optional[inner], BeforeValidator(_blank_to_none)]


AssetStatusField = Annotated[AssetStatus, BeforeValidator(_enum_parser(AssetStatus))]
LicenseTypeField = Annotated[LicenseType, BeforeValidator(_enum_parser(LicenseType))]
MovementTypeField = Annotated[MovementType, BeforeValidator(_enum_parser(MovementType))]
UserStatusField = Annotated[UserStatus, BeforeValidator(_enum_parser(UserStatus))]
SubjectField = Annotated[DocumentSubject, BeforeValidator(_enum_parser(DocumentSubject))]


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


class Schema(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore", populate_by_name=True)

    # Keys that may be omitted on update but never sent as null.
    NOT_NULLABLE: ClassVar[tuple[str, ...]] = ()

    @model_validator(mode="after")
    def _reject_nulls(self):
        for name in self.NOT_NULLABLE:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be empty.")
        return self

    def changes(self) -> dict[str, Any]:
        """Only the fields the client actually sent."""
        return self.model_dump(exclude_unset=True)


# =========================================================
# Assets
# =========================================================
class _AssetFields(Schema):
    description: OptStr = None
    current_location_id: OptId = None
    supplier_company_id: OptId = None
    purchase_date: Day = None
    invoice_number: opt_text(50) = None
    warranty_expiry_date: Day = None
    acquisition_procedure: opt_text(200) = None
    image_url: opt_text(500) = None


class AssetCreate(_AssetFields):
    product_name: str = Field(min_length=1, max_length=100)
    serial_number: opt_text(100) = None
    inventory_code: str = Field(min_length=1, max_length=200)
    current_section_id: int = Field(gt=0)
    status: AssetStatusField = AssetStatus.IN_STORAGE


class AssetUpdate(_AssetFields):
    NOT_NULLABLE: ClassVar[tuple[str, ...]] = ("product_name", "inventory_code", "status")

    product_name: opt_text(100, min_length=1) = None
    serial_number: opt_text(100) = None
    inventory_code: opt_text(200, min_length=1) = None
    current_section_id: OptId = None
    status: Optional[AssetStatusField] = None


class AssetCommonData(_AssetFields):
    product_name: str = Field(min_length=1, max_length=100)
    inventory_code: str = Field(min_length=1, max_length=190)
    current_section_id: int = Field(gt=0)
    status: AssetStatusField = AssetStatus.IN_STORAGE


class AssetBatchCreate(Schema):
    common: AssetCommonData = Field(validation_alias=_alias("common", "commonData", "common_data"))
    serial_numbers: list[Annotated[str, Field(min_length=1, max_length=100)]] = Field(min_length=1)

    @field_validator("serial_numbers")
    @classmethod
    def _distinct_serials(cls, v: list[str]) -> list[str]:
        cleaned = [s.strip() for s in v]
        if len(set(cleaned)) != len(cleaned):
            raise ValueError("Serial numbers must not repeat.")
        return cleaned


class AssetMove(Schema):
    movement_type: MovementTypeField = Field(validation_alias=_alias("movement_type", "tipo_ubicacion"))
    to_section_id: OptId = None
    to_location_id: OptId = None
    from_user_id: OptId = None
    to_user_id: OptId = None
    received_by_user_id: OptId = None
    transfer_date: Timestamp = None
    received_date: Timestamp = None
    transfer_reason: OptStr = None
    notes: OptStr = None
    signature_image_url: opt_text(500) = None

    @model_validator(mode="after")
    def _destination(self):
        if self.movement_type != MovementType.DISPOSAL and self.to_section_id is None:
            raise ValueError("to_section_id is required unless the asset is being disposed of.")
        if self.to_location_id is not None and self.to_section_id is None:
            raise ValueError("to_location_id needs a to_section_id.")
        if self.received_date and self.transfer_date and self.received_date < self.transfer_date:
            raise ValueError("received_date cannot be before transfer_date.")
        return self


class TransferReceipt(Schema):
    received_by_user_id: OptId = None
    received_date: Timestamp = None
    signature_image_url: opt_text(500) = None


# =========================================================
# Software licenses
# =========================================================
class _LicenseFields(Schema):
    software_version: opt_text(100) = None
    license_key: opt_text(500) = None
    purchase_date: Day = None
    purchase_cost: Optional[Annotated[Decimal, Field(ge=0, max_digits=12, decimal_places=2)]] = None
    expiry_date: Day = None
    supplier_company_id: OptId = None
    invoice_number: opt_text(50) = None
    assigned_to_user_id: OptId = None
    notes: OptStr = None
    assign_to_asset_ids: Optional[list[RowId]] = None

    @field_validator("purchase_cost", mode="before")
    @classmethod
    def _blank_cost(cls, v):
        return _blank_to_none(v)

    @model_validator(mode="after")
    def _dates_in_order(self):
        if self.purchase_date and self.expiry_date and self.expiry_date < self.purchase_date:
            raise ValueError("expiry_date cannot be before purchase_date.")
        return self


class LicenseCreate(_LicenseFields):
    software_name: str = Field(min_length=1, max_length=255)
    license_type: LicenseTypeField
    seats: int = Field(1, ge=1)


class LicenseUpdate(_LicenseFields):
    NOT_NULLABLE: ClassVar[tuple[str, ...]] = ("software_name", "license_type", "seats")

    software_name: opt_text(255, min_length=1) = None
    license_type: Optional[LicenseTypeField] = None
    seats: Optional[Annotated[int, Field(ge=1)]] = None


# =========================================================
# Users
# =========================================================
class _PasswordPair(Schema):
    password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=128)
    confirm_password: str = Field(validation_alias=_alias("confirm_password", "confirmPassword"))

    @model_validator(mode="after")
    def _passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match.")
        return self


class UserCreate(_PasswordPair):
    first_name: str = Field(min_length=1, max_length=100, validation_alias=_alias("first_name", "firstName"))
    last_name: str = Field(min_length=1, max_length=100, validation_alias=_alias("last_name", "lastName"))
    email: EmailStr
    national_id: opt_text(30) = None
    birth_date: Day = None
    section_id: OptId = None
    role_ids: list[RowId] = Field(default_factory=list)
    status: UserStatusField = UserStatus.ACTIVE
    avatar_url: opt_text(500) = None


class UserUpdate(Schema):
    NOT_NULLABLE: ClassVar[tuple[str, ...]] = ("first_name", "last_name", "email", "status")

    first_name: opt_text(100, min_length=1) = Field(None, validation_alias=_alias("first_name", "firstName"))
    last_name: opt_text(100, min_length=1) = Field(None, validation_alias=_alias("last_name", "lastName"))
    email: OptEmail = None
    national_id: opt_text(30) = None
    birth_date: Day = None
    section_id: OptId = None
    role_ids: Optional[list[RowId]] = None
    status: Optional[UserStatusField] = None
    avatar_url: opt_text(500) = None


class ProfileUpdate(Schema):
    NOT_NULLABLE: ClassVar[tuple[str, ...]] = ("first_name", "last_name")

    first_name: opt_text(100, min_length=1) = Field(None, validation_alias=_alias("first_name", "firstName"))
    last_name: opt_text(100, min_length=1) = Field(None, validation_alias=_alias("last_name", "lastName"))
    avatar_url: opt_text(500) = None


class PasswordChange(Schema):
    current_password: str = Field(min_length=1, validation_alias=_alias("current_password", "currentPassword"))
    new_password: str = Field(
        min_length=PASSWORD_MIN_LENGTH,
        max_length=128,
        validation_alias=_alias("new_password", "newPassword"),
    )
    confirm_password: str = Field(validation_alias=_alias("confirm_password", "confirmPassword"))

    @model_validator(mode="after")
    def _confirm(self):
        if self.new_password != self.confirm_password:
            raise ValueError("New password and confirmation do not match.")
        if self.new_password == self.current_password:
            raise ValueError("New password must be different from the current password.")
        return self


class LoginPayload(Schema):
    email: str = Field(min_length=1, max_length=150)
    password: str = Field(min_length=1, max_length=128)


# =========================================================
# Places
# =========================================================
class SectionCreate(Schema):
    name: str = Field(min_length=1, max_length=150)
    management_level: Optional[Annotated[int, Field(ge=0)]] = None
    email: OptEmail = None
    parent_section_id: OptId = None


class SectionUpdate(Schema):
    NOT_NULLABLE: ClassVar[tuple[str, ...]] = ("name",)

    name: opt_text(150, min_length=1) = None
    management_level: Optional[Annotated[int, Field(ge=0)]] = None
    email: OptEmail = None
    parent_section_id: OptId = None


class LocationCreate(Schema):
    name: str = Field(min_length=1, max_length=150)
    description: OptStr = None
    section_id: int = Field(gt=0)


class LocationUpdate(Schema):
    NOT_NULLABLE: ClassVar[tuple[str, ...]] = ("name", "section_id")

    name: opt_text(150, min_length=1) = None
    description: OptStr = None
    section_id: OptId = None


class CompanyCreate(Schema):
    tax_id: str = Field(min_length=1, max_length=50)
    legal_name: str = Field(min_length=1, max_length=255)
    trade_name: opt_text(255) = None
    email: OptEmail = None
    phone_number: opt_text(50) = None


class CompanyUpdate(Schema):
    NOT_NULLABLE: ClassVar[tuple[str, ...]] = ("tax_id", "legal_name")

    tax_id: opt_text(50, min_length=1) = None
    legal_name: opt_text(255, min_length=1) = None
    trade_name: opt_text(255) = None
    email: OptEmail = None
    phone_number: opt_text(50) = None


# =========================================================
# Documents / exports
# =========================================================
class DocumentUploadMeta(Schema):
    subject_type: SubjectField = Field(validation_alias=_alias("subject_type", "entity_type"))
    subject_id: int = Field(gt=0, validation_alias=_alias("subject_id", "entity_id"))
    document_category: str = Field("invoice_purchase", min_length=1, max_length=50)
    description: OptStr = None

    @field_validator("document_category", mode="before")
    @classmethod
    def _default_category(cls, v):
        return _blank_to_none(v) or "invoice_purchase"


class ExportRequest(Schema):
    columns: Optional[list[str]] = None
    title: opt_text(200) = None


# =========================================================
# Entry point
# =========================================================
S = TypeVar("S", bound=BaseModel)


def _field_name(loc: tuple) -> str:
    parts = [str(p) for p in loc if not isinstance(p, int)]
    return ".".join(parts) or "__root__"


def validate_payload(schema: type[S], data: Any, *, partial: bool = False) -> S:
    """
    Validate `data` against `schema`, raising ValidationFailed with per-field
    messages. With partial=True an empty payload is rejected.
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationFailed("Request body must be a JSON object.")

    try:
        obj = schema.model_validate(data)
    except ValidationError as exc:
        errors: dict[str, list[str]] = {}
        for err in exc.errors():
            msg = str(err.get("msg") or "Invalid value.")
            if msg.startswith("Value error, "):
                msg = msg[len("Value error, "):]
            errors.setdefault(_field_name(tuple(err.get("loc") or ())), []).append(msg)
        raise ValidationFailed("Invalid data.", errors=errors) from exc

    if partial and not obj.model_fields_set:
        raise ValidationFailed("No fields to update.")
    return obj
