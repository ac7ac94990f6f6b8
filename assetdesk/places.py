# assetdesk/places.py
"""Companies (suppliers), sections and the locations inside them."""
from __future__ import annotations

from flask import Blueprint, current_app, jsonify
from flask_login import current_user, login_required

from . import repository as repo
from .errors import Conflict, ValidationFailed
from .extensions import db
from .models import Company, Location, Section, User
from .schemas import (
    CompanyCreate,
    CompanyUpdate,
    LocationCreate,
    LocationUpdate,
    SectionCreate,
    SectionUpdate,
    validate_payload,
)
from .serializers import company_json, location_json, section_json, user_json
from .services.views import COMPANIES, LOCATIONS, SECTIONS
from .utils.http import export_limit, export_view, json_body, list_response

places_bp = Blueprint("places", __name__, url_prefix="/api")


def _deleted(label: str, obj):
    current_app.logger.info("%s %s deleted by user %s", label, obj.id, current_user.id)
    return jsonify({"message": f"{label} deleted.", "id": obj.id}), 200


# =========================================================
# Companies
# =========================================================
def _active_companies():
    return repo.list_active(db.session, Company)


@places_bp.route("/companies", methods=["GET"])
@login_required
def list_companies():
    return list_response(_active_companies, COMPANIES, company_json)


@places_bp.route("/companies", methods=["POST"])
@login_required
def create_company():
    data = validate_payload(CompanyCreate, json_body())
    values = data.model_dump()

    with repo.transaction(db.session, "Create company"):
        repo.ensure_unique(db.session, Company, Company.tax_id, values["tax_id"], "tax_id")
        company = Company(**values)
        db.session.add(company)
        db.session.flush()

    return jsonify(company_json(company)), 201


@places_bp.route("/companies/<int:company_id>", methods=["GET"])
@login_required
def get_company(company_id: int):
    return jsonify(company_json(repo.get_active(db.session, Company, company_id))), 200


@places_bp.route("/companies/<int:company_id>", methods=["PUT"])
@login_required
def update_company(company_id: int):
    company = repo.get_active(db.session, Company, company_id)
    changes = validate_payload(CompanyUpdate, json_body(), partial=True).changes()

    with repo.transaction(db.session, "Update company"):
        repo.ensure_unique(db.session, Company, Company.tax_id, changes.get("tax_id"), "tax_id", exclude_id=company.id)
        repo.apply_changes(company, changes)

    return jsonify(company_json(company)), 200


@places_bp.route("/companies/<int:company_id>", methods=["DELETE"])
@login_required
def delete_company(company_id: int):
    company = repo.get_active(db.session, Company, company_id)
    with repo.transaction(db.session, "Delete company"):
        repo.soft_delete(company)
    return _deleted("Company", company)


@places_bp.route("/companies/export/<kind>", methods=["POST"])
@login_required
@export_limit
def export_companies(kind: str):
    return export_view(kind, _active_companies, COMPANIES)


# =========================================================
# Sections
# =========================================================
def _active_sections():
    return repo.list_active(db.session, Section)


def _check_parent(section_id: int | None, parent_id: int | None) -> None:
    """A section cannot be its own parent, directly or through its ancestors."""
    if parent_id is None:
        return
    parent = repo.require_reference(db.session, Section, parent_id, "parent_section_id")
    if section_id is None:
        return

    seen = set()
    node = parent
    while node is not None and node.id not in seen:
        if node.id == section_id:
            raise ValidationFailed(
                "A section cannot be its own parent.",
                errors={"parent_section_id": ["A section cannot be its own parent or ancestor."]},
                field="parent_section_id",
            )
        seen.add(node.id)
        node = node.parent_section


@places_bp.route("/sections", methods=["GET"])
@login_required
def list_sections():
    return list_response(_active_sections, SECTIONS, section_json)


@places_bp.route("/sections", methods=["POST"])
@login_required
def create_section():
    values = validate_payload(SectionCreate, json_body()).model_dump()

    with repo.transaction(db.session, "Create section"):
        _check_parent(None, values.get("parent_section_id"))
        repo.ensure_unique(db.session, Section, Section.name, values["name"], "name", ci=True)
        section = Section(**values)
        db.session.add(section)
        db.session.flush()

    return jsonify(section_json(section)), 201


@places_bp.route("/sections/<int:section_id>", methods=["GET"])
@login_required
def get_section(section_id: int):
    return jsonify(section_json(repo.get_active(db.session, Section, section_id))), 200


@places_bp.route("/sections/<int:section_id>", methods=["PUT"])
@login_required
def update_section(section_id: int):
    section = repo.get_active(db.session, Section, section_id)
    changes = validate_payload(SectionUpdate, json_body(), partial=True).changes()

    with repo.transaction(db.session, "Update section"):
        if "parent_section_id" in changes:
            _check_parent(section.id, changes["parent_section_id"])
        repo.ensure_unique(db.session, Section, Section.name, changes.get("name"), "name", exclude_id=section.id, ci=True)
        repo.apply_changes(section, changes)

    return jsonify(section_json(section)), 200


@places_bp.route("/sections/<int:section_id>", methods=["DELETE"])
@login_required
def delete_section(section_id: int):
    section = repo.get_active(db.session, Section, section_id)
    children = repo.list_active(db.session, Section, Section.parent_section_id == section.id)
    if children:
        raise Conflict(
            f"Section has {len(children)} active subsection(s); move or delete them first.",
            field="parent_section_id",
        )

    with repo.transaction(db.session, "Delete section"):
        repo.soft_delete(section)
    return _deleted("Section", section)


@places_bp.route("/sections/<int:section_id>/subsections", methods=["GET"])
@login_required
def section_subsections(section_id: int):
    repo.get_active(db.session, Section, section_id)
    children = repo.list_active(db.session, Section, Section.parent_section_id == section_id)
    return jsonify({"items": [section_json(s) for s in children]}), 200


@places_bp.route("/sections/<int:section_id>/users", methods=["GET"])
@login_required
def section_users(section_id: int):
    repo.get_active(db.session, Section, section_id)
    users = repo.list_active(db.session, User, User.section_id == section_id)
    return jsonify({"items": [user_json(u) for u in users]}), 200


@places_bp.route("/sections/<int:section_id>/locations", methods=["GET"])
@login_required
def section_locations(section_id: int):
    repo.get_active(db.session, Section, section_id)
    locations = repo.list_active(db.session, Location, Location.section_id == section_id)
    return jsonify({"items": [location_json(loc) for loc in locations]}), 200


@places_bp.route("/sections/export/<kind>", methods=["POST"])
@login_required
@export_limit
def export_sections(kind: str):
    return export_view(kind, _active_sections, SECTIONS)


# =========================================================
# Locations
# =========================================================
def _active_locations():
    return repo.list_active(db.session, Location)


def _ensure_unique_location(section_id: int, name: str | None, *, exclude_id: int | None = None) -> None:
    repo.ensure_unique(
        db.session,
        Location,
        Location.name,
        name,
        "name",
        exclude_id=exclude_id,
        ci=True,
        extra=(Location.section_id == section_id,),
    )


@places_bp.route("/locations", methods=["GET"])
@login_required
def list_locations():
    return list_response(_active_locations, LOCATIONS, location_json)


@places_bp.route("/locations", methods=["POST"])
@login_required
def create_location():
    values = validate_payload(LocationCreate, json_body()).model_dump()

    with repo.transaction(db.session, "Create location"):
        repo.require_reference(db.session, Section, values["section_id"], "section_id")
        _ensure_unique_location(values["section_id"], values["name"])
        location = Location(**values)
        db.session.add(location)
        db.session.flush()

    return jsonify(location_json(location)), 201


@places_bp.route("/locations/<int:location_id>", methods=["GET"])
@login_required
def get_location(location_id: int):
    return jsonify(location_json(repo.get_active(db.session, Location, location_id))), 200


@places_bp.route("/locations/<int:location_id>", methods=["PUT"])
@login_required
def update_location(location_id: int):
    location = repo.get_active(db.session, Location, location_id)
    changes = validate_payload(LocationUpdate, json_body(), partial=True).changes()

    with repo.transaction(db.session, "Update location"):
        if "section_id" in changes:
            repo.require_reference(db.session, Section, changes["section_id"], "section_id")
        if "section_id" in changes or "name" in changes:
            _ensure_unique_location(
                changes.get("section_id", location.section_id),
                changes.get("name", location.name),
                exclude_id=location.id,
            )
        repo.apply_changes(location, changes)

    return jsonify(location_json(location)), 200


@places_bp.route("/locations/<int:location_id>", methods=["DELETE"])
@login_required
def delete_location(location_id: int):
    location = repo.get_active(db.session, Location, location_id)
    with repo.transaction(db.session, "Delete location"):
        repo.soft_delete(location)
    return _deleted("Location", location)


@places_bp.route("/locations/export/<kind>", methods=["POST"])
@login_required
@export_limit
def export_locations(kind: str):
    return export_view(kind, _active_locations, LOCATIONS)
