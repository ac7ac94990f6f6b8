# assetdesk/serializers.py
"""Canonical JSON shapes returned by the API. Password hashes never leave here."""
from __future__ import annotations

import enum
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from .services.listing import pagination_window
from .services.status import license_status, warranty_status


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _enum(value: enum.Enum | None) -> str | None:
    return value.value if value is not None else None


def _money(value: Decimal | None) -> str | None:
    return f"{value:.2f}" if value is not None else None


def _ref(obj: Any, *, name_attr: str = "name") -> dict[str, Any] | None:
    if obj is None:
        return None
    return {"id": obj.id, "name": getattr(obj, name_attr)}


def _audit(obj: Any) -> dict[str, Any]:
    out = {"created_at": _iso(obj.created_at), "updated_at": _iso(getattr(obj, "updated_at", None))}
    if hasattr(obj, "deleted_at"):
        out["deleted_at"] = _iso(obj.deleted_at)
    return out


# =========================================================
# People / places
# =========================================================
def role_json(role) -> dict[str, Any]:
    return {"id": role.id, "name": role.name, "description": role.description}


def user_json(user) -> dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "full_name": user.full_name,
        "national_id": user.national_id,
        "birth_date": _iso(user.birth_date),
        "status": _enum(user.status),
        "status_label": user.status.label if user.status else None,
        "section": _ref(user.section),
        "section_id": user.section_id,
        "roles": user.role_names,
        "avatar_url": user.avatar_url,
        "last_login_at": _iso(user.last_login_at),
        **_audit(user),
    }


def section_json(section) -> dict[str, Any]:
    return {
        "id": section.id,
        "name": section.name,
        "management_level": section.management_level,
        "email": section.email,
        "parent_section_id": section.parent_section_id,
        "parent_section": _ref(section.parent_section),
        **_audit(section),
    }


def location_json(location) -> dict[str, Any]:
    return {
        "id": location.id,
        "name": location.name,
        "description": location.description,
        "section_id": location.section_id,
        "section": _ref(location.section),
        **_audit(location),
    }


def company_json(company) -> dict[str, Any]:
    return {
        "id": company.id,
        "tax_id": company.tax_id,
        "legal_name": company.legal_name,
        "trade_name": company.trade_name,
        "display_name": company.display_name,
        "email": company.email,
        "phone_number": company.phone_number,
        **_audit(company),
    }


# =========================================================
# Assets / movements
# =========================================================
def asset_json(asset) -> dict[str, Any]:
    supplier = asset.supplier_company
    return {
        "id": asset.id,
        "inventory_code": asset.inventory_code,
        "serial_number": asset.serial_number,
        "product_name": asset.product_name,
        "description": asset.description,
        "status": _enum(asset.status),
        "status_label": asset.status.label if asset.status else None,
        "current_section_id": asset.current_section_id,
        "current_section": _ref(asset.current_section),
        "current_location_id": asset.current_location_id,
        "current_location": _ref(asset.current_location),
        "supplier_company_id": asset.supplier_company_id,
        "supplier_company": (
            {"id": supplier.id, "name": supplier.display_name, "tax_id": supplier.tax_id}
            if supplier is not None
            else None
        ),
        "purchase_date": _iso(asset.purchase_date),
        "invoice_number": asset.invoice_number,
        "warranty_expiry_date": _iso(asset.warranty_expiry_date),
        "warranty_status": warranty_status(asset).to_dict(),
        "acquisition_procedure": asset.acquisition_procedure,
        "image_url": asset.image_url,
        **_audit(asset),
    }


def _person(user) -> dict[str, Any] | None:
    if user is None:
        return None
    return {"id": user.id, "name": user.full_name, "national_id": user.national_id}


def transfer_json(transfer) -> dict[str, Any]:
    asset = transfer.asset
    return {
        "id": transfer.id,
        "asset_id": transfer.asset_id,
        "asset": {
            "id": asset.id,
            "inventory_code": asset.inventory_code,
            "product_name": asset.product_name,
            "serial_number": asset.serial_number,
        },
        "transfer_date": _iso(transfer.transfer_date),
        "movement_type": _enum(transfer.movement_type),
        "movement_type_label": transfer.movement_type.label if transfer.movement_type else None,
        "from_section": _ref(transfer.from_section),
        "to_section": _ref(transfer.to_section),
        "from_location": _ref(transfer.from_location),
        "to_location": _ref(transfer.to_location),
        "from_user": _person(transfer.from_user),
        "to_user": _person(transfer.to_user),
        "authorized_by": _person(transfer.authorized_by),
        "received_by": _person(transfer.received_by),
        "received_date": _iso(transfer.received_date),
        "transfer_reason": transfer.transfer_reason,
        "notes": transfer.notes,
        "signature_image_url": transfer.signature_image_url,
        "created_at": _iso(transfer.created_at),
    }


# =========================================================
# Licenses
# =========================================================
def assignment_json(assignment) -> dict[str, Any]:
    asset = assignment.asset
    return {
        "asset_id": assignment.asset_id,
        "inventory_code": asset.inventory_code if asset else None,
        "product_name": asset.product_name if asset else None,
        "installation_date": _iso(assignment.installation_date),
        "notes": assignment.notes,
    }


def license_json(lic) -> dict[str, Any]:
    supplier = lic.supplier_company
    return {
        "id": lic.id,
        "software_name": lic.software_name,
        "software_version": lic.software_version,
        "license_key": lic.license_key,
        "license_type": _enum(lic.license_type),
        "license_type_label": lic.license_type.label if lic.license_type else None,
        "seats": lic.seats,
        "seats_used": len(lic.assignments),
        "purchase_date": _iso(lic.purchase_date),
        "purchase_cost": _money(lic.purchase_cost),
        "expiry_date": _iso(lic.expiry_date),
        "status": license_status(lic).to_dict(),
        "supplier_company_id": lic.supplier_company_id,
        "supplier_company": _ref(supplier, name_attr="display_name"),
        "invoice_number": lic.invoice_number,
        "assigned_to_user_id": lic.assigned_to_user_id,
        "assigned_to_user": _person(lic.assigned_to_user),
        "notes": lic.notes,
        "asset_ids": lic.asset_ids,
        "assignments": [assignment_json(a) for a in lic.assignments],
        **_audit(lic),
    }


# =========================================================
# Documents
# =========================================================
def document_json(doc) -> dict[str, Any]:
    return {
        "id": doc.id,
        "subject_type": _enum(doc.subject_type),
        "subject_id": doc.subject_id,
        "document_category": doc.document_category,
        "description": doc.description,
        "original_filename": doc.original_filename,
        "mime_type": doc.mime_type,
        "file_size_bytes": doc.file_size_bytes,
        "sha256": doc.file_sha256,
        "uploaded_by": _person(doc.uploaded_by),
        **_audit(doc),
    }


def page_json(result, serialize, state, extra: dict[str, Any] | None = None) -> dict[str, Any]:
    """Envelope for list endpoints."""
    page = result.page
    body = {
        "items": [serialize(r) for r in page.items],
        "page": page.page,
        "page_size": page.page_size,
        "total": page.total,
        "pages": page.pages,
        "window": pagination_window(page.page, page.pages),
        "state": state.to_dict(),
    }
    if result.error:
        body["error"] = result.error
    if extra:
        body.update(extra)
    return body
