# assetdesk/licenses.py
from __future__ import annotations

from typing import Iterable

from flask import Blueprint, current_app, jsonify
from flask_login import current_user, login_required
from sqlalchemy.orm import Session

from . import repository as repo
from .errors import ValidationFailed
from .extensions import db
from .models import (
    Asset,
    AssetLicenseAssignment,
    Company,
    Document,
    DocumentSubject,
    SoftwareLicense,
    User,
)
from .schemas import LicenseCreate, LicenseUpdate, validate_payload
from .serializers import document_json, license_json
from .services.views import LICENSES
from .utils.http import export_limit, export_view, json_body, list_response

licenses_bp = Blueprint("licenses", __name__, url_prefix="/api")


# =========================================================
# Helpers
# =========================================================
def _active_licenses():
    return repo.list_active(db.session, SoftwareLicense)


def _check_refs(session: Session, values: dict) -> None:
    if "supplier_company_id" in values:
        repo.require_reference(session, Company, values["supplier_company_id"], "supplier_company_id")
    if "assigned_to_user_id" in values:
        repo.require_reference(session, User, values["assigned_to_user_id"], "assigned_to_user_id")


def _check_seats(seats: int, asset_ids: Iterable[int]) -> None:
    count = len(set(asset_ids))
    if count > seats:
        raise ValidationFailed(
            "More assets assigned than the license has seats.",
            errors={"assign_to_asset_ids": [f"{count} assets for {seats} seat(s)."]},
            field="assign_to_asset_ids",
        )


def sync_assignments(session: Session, lic: SoftwareLicense, asset_ids: Iterable[int]) -> None:
    """
    Make the license's installations exactly `asset_ids`. Kept rows keep
    their installation date and notes.
    """
    wanted = list(dict.fromkeys(asset_ids))
    for asset_id in wanted:
        repo.require_reference(session, Asset, asset_id, "assign_to_asset_ids")

    current = {a.asset_id: a for a in lic.assignments}
    for asset_id, assignment in current.items():
        if asset_id not in wanted:
            lic.assignments.remove(assignment)
    for asset_id in wanted:
        if asset_id not in current:
            lic.assignments.append(AssetLicenseAssignment(asset_id=asset_id))


# =========================================================
# List / CRUD
# =========================================================
@licenses_bp.route("/software-licenses", methods=["GET"])
@login_required
def list_licenses():
    return list_response(_active_licenses, LICENSES, license_json)


@licenses_bp.route("/software-licenses", methods=["POST"])
@login_required
def create_license():
    data = validate_payload(LicenseCreate, json_body())
    values = data.model_dump()
    asset_ids = values.pop("assign_to_asset_ids") or []

    with repo.transaction(db.session, "Create software license"):
        _check_refs(db.session, values)
        repo.ensure_unique(db.session, SoftwareLicense, SoftwareLicense.license_key, values.get("license_key"), "license_key")
        _check_seats(values["seats"], asset_ids)

        lic = SoftwareLicense(**values)
        db.session.add(lic)
        sync_assignments(db.session, lic, asset_ids)
        db.session.flush()

    current_app.logger.info("License %s created by user %s", lic.id, current_user.id)
    return jsonify(license_json(lic)), 201


@licenses_bp.route("/software-licenses/<int:license_id>", methods=["GET"])
@login_required
def get_license(license_id: int):
    return jsonify(license_json(repo.get_active(db.session, SoftwareLicense, license_id))), 200


@licenses_bp.route("/software-licenses/<int:license_id>", methods=["PUT"])
@login_required
def update_license(license_id: int):
    lic = repo.get_active(db.session, SoftwareLicense, license_id)
    data = validate_payload(LicenseUpdate, json_body(), partial=True)
    changes = data.changes()
    asset_ids = changes.pop("assign_to_asset_ids", None)

    with repo.transaction(db.session, "Update software license"):
        _check_refs(db.session, changes)
        repo.ensure_unique(
            db.session,
            SoftwareLicense,
            SoftwareLicense.license_key,
            changes.get("license_key"),
            "license_key",
            exclude_id=lic.id,
        )
        purchase = changes.get("purchase_date", lic.purchase_date)
        expiry = changes.get("expiry_date", lic.expiry_date)
        if purchase and expiry and expiry < purchase:
            raise ValidationFailed(
                "expiry_date cannot be before purchase_date.",
                errors={"expiry_date": ["Cannot be before the purchase date."]},
                field="expiry_date",
            )
        seats = changes.get("seats", lic.seats)
        _check_seats(seats, lic.asset_ids if asset_ids is None else asset_ids)

        repo.apply_changes(lic, changes)
        # Only touch installations when the client sent the list
        if asset_ids is not None:
            sync_assignments(db.session, lic, asset_ids)

    return jsonify(license_json(lic)), 200


@licenses_bp.route("/software-licenses/<int:license_id>", methods=["DELETE"])
@login_required
def delete_license(license_id: int):
    lic = repo.get_active(db.session, SoftwareLicense, license_id)
    with repo.transaction(db.session, "Delete software license"):
        repo.soft_delete(lic)

    current_app.logger.info("License %s deleted by user %s", lic.id, current_user.id)
    return jsonify({"message": "Software license deleted.", "id": lic.id}), 200


@licenses_bp.route("/software-licenses/<int:license_id>/documents", methods=["GET"])
@login_required
def license_documents(license_id: int):
    repo.get_active(db.session, SoftwareLicense, license_id)
    docs = repo.list_active(
        db.session,
        Document,
        Document.subject_type == DocumentSubject.SOFTWARE_LICENSE,
        Document.subject_id == license_id,
    )
    return jsonify({"items": [document_json(d) for d in docs]}), 200


@licenses_bp.route("/software-licenses/export/<kind>", methods=["POST"])
@login_required
@export_limit
def export_licenses(kind: str):
    return export_view(kind, _active_licenses, LICENSES)
