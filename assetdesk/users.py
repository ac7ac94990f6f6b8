# assetdesk/users.py
from __future__ import annotations

from flask import Blueprint, current_app, jsonify
from flask_login import current_user, login_required

from . import repository as repo
from .documents import replace_image
from .errors import Conflict, ValidationFailed
from .extensions import db
from .models import Role, Section, User, UserStatus
from .schemas import UserCreate, UserUpdate, validate_payload
from .serializers import role_json, user_json
from .services.views import USERS
from .utils.guards import admin_required
from .utils.http import export_limit, export_view, json_body, list_response
from .utils.passwords import enforce_password_policy, hash_password

users_bp = Blueprint("users", __name__, url_prefix="/api")


# =========================================================
# Helpers
# =========================================================
def _active_users():
    return repo.list_active(db.session, User)


def _roles(role_ids) -> list[Role]:
    wanted = list(dict.fromkeys(role_ids or []))
    if not wanted:
        return []
    found = {r.id: r for r in db.session.scalars(db.select(Role).where(Role.id.in_(wanted)))}
    missing = [rid for rid in wanted if rid not in found]
    if missing:
        raise ValidationFailed(
            "Unknown role.",
            errors={"role_ids": [f"Role {rid} does not exist." for rid in missing]},
            field="role_ids",
        )
    return [found[rid] for rid in wanted]


def _ensure_unique_user(email, national_id, *, exclude_id=None) -> None:
    repo.ensure_unique(db.session, User, User.email, email, "email", exclude_id=exclude_id, ci=True)
    repo.ensure_unique(db.session, User, User.national_id, national_id, "national_id", exclude_id=exclude_id)


# =========================================================
# Roles
# =========================================================
@users_bp.route("/roles", methods=["GET"])
@login_required
def list_roles():
    roles = db.session.scalars(db.select(Role).order_by(Role.name)).all()
    return jsonify({"items": [role_json(r) for r in roles]}), 200


# =========================================================
# Users: list / CRUD
# =========================================================
@users_bp.route("/users", methods=["GET"])
@login_required
def list_users():
    return list_response(_active_users, USERS, user_json)


@users_bp.route("/users/<int:user_id>", methods=["GET"])
@login_required
def get_user(user_id: int):
    return jsonify(user_json(repo.get_active(db.session, User, user_id))), 200


@users_bp.route("/users", methods=["POST"])
@admin_required
def create_user():
    data = validate_payload(UserCreate, json_body())

    enforce_password_policy(data.password)

    email = str(data.email).strip().lower()
    with repo.transaction(db.session, "Create user"):
        repo.require_reference(db.session, Section, data.section_id, "section_id")
        _ensure_unique_user(email, data.national_id)

        user = User(
            email=email,
            password_hash=hash_password(data.password),
            first_name=data.first_name,
            last_name=data.last_name,
            national_id=data.national_id,
            birth_date=data.birth_date,
            section_id=data.section_id,
            status=data.status,
            avatar_url=data.avatar_url,
            roles=_roles(data.role_ids),
        )
        db.session.add(user)
        db.session.flush()

    current_app.logger.info("User %s created by user %s", user.id, current_user.id)
    return jsonify(user_json(user)), 201


@users_bp.route("/users/<int:user_id>", methods=["PUT"])
@admin_required
def update_user(user_id: int):
    user = repo.get_active(db.session, User, user_id)
    data = validate_payload(UserUpdate, json_body(), partial=True)
    changes = data.changes()
    role_ids = changes.pop("role_ids", None)
    if "email" in changes:
        changes["email"] = str(changes["email"]).strip().lower()

    with repo.transaction(db.session, "Update user"):
        if "section_id" in changes:
            repo.require_reference(db.session, Section, changes["section_id"], "section_id")
        _ensure_unique_user(changes.get("email"), changes.get("national_id"), exclude_id=user.id)

        repo.apply_changes(user, changes)
        if role_ids is not None:
            user.roles = _roles(role_ids)

    return jsonify(user_json(user)), 200


@users_bp.route("/users/<int:user_id>", methods=["DELETE"])
@admin_required
def delete_user(user_id: int):
    user = repo.get_active(db.session, User, user_id)
    if user.id == current_user.id:
        raise Conflict("You cannot delete your own account.")

    # Users are disabled and hidden, never removed
    with repo.transaction(db.session, "Delete user"):
        user.status = UserStatus.DISABLED
        repo.soft_delete(user)

    current_app.logger.info("User %s disabled by user %s", user.id, current_user.id)
    return jsonify({"message": "User disabled.", "id": user.id}), 200


@users_bp.route("/users/<int:user_id>/avatar", methods=["POST"])
@admin_required
def upload_user_avatar(user_id: int):
    user = repo.get_active(db.session, User, user_id)
    replace_image(user, "avatar_url", "avatar")
    return jsonify(user_json(user)), 200


@users_bp.route("/users/export/<kind>", methods=["POST"])
@login_required
@export_limit
def export_users(kind: str):
    return export_view(kind, _active_users, USERS)
