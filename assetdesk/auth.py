# assetdesk/auth.py
from __future__ import annotations

from flask import Blueprint, current_app, jsonify
from flask_login import current_user, login_required, login_user, logout_user
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from . import repository as repo
from .errors import ValidationFailed
from .documents import replace_image
from .extensions import db, limiter, login_manager
from .models import User, utcnow_naive
from .schemas import LoginPayload, PasswordChange, ProfileUpdate, validate_payload
from .serializers import user_json
from .utils.http import json_body
from .utils.passwords import enforce_password_policy, hash_password, verify_password

auth = Blueprint("auth", __name__, url_prefix="/api")


# =========================================================
# Flask-Login user loader
# =========================================================
@login_manager.user_loader
def load_user(user_id: str):
    try:
        return db.session.get(User, int(user_id))
    except (TypeError, ValueError):
        return None


# =========================================================
# Login / Logout
# =========================================================
@auth.route("/auth/login", methods=["POST"])
@limiter.limit(lambda: current_app.config["LOGIN_RATE_LIMIT"])
def login():
    data = validate_payload(LoginPayload, json_body())
    email = data.email.strip().lower()

    user = db.session.scalars(
        repo.active(User).where(func.lower(User.email) == email).limit(1)
    ).first()

    # Same answer for unknown email and wrong password
    if user is None or not verify_password(user.password_hash, data.password):
        current_app.logger.info("Failed login for %s", email)
        return jsonify({"message": "Invalid email or password."}), 401

    if not user.is_active:
        return jsonify({"message": "This account is inactive. Contact an admin."}), 403

    login_user(user)

    try:
        user.last_login_at = utcnow_naive()
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning("Could not stamp last_login_at for user %s", user.id)

    return jsonify({"message": "Logged in.", "user": user_json(user)}), 200


@auth.route("/auth/logout", methods=["POST"])
def logout():
    """Not login_required: logging out twice is harmless."""
    logout_user()
    return jsonify({"message": "Logged out."}), 200


@auth.route("/auth/me", methods=["GET"])
@login_required
def me():
    return jsonify(user_json(current_user)), 200


# =========================================================
# Own profile / password
# =========================================================
@auth.route("/user/profile", methods=["PUT"])
@login_required
def update_profile():
    data = validate_payload(ProfileUpdate, json_body(), partial=True)
    user = db.session.get(User, current_user.id)

    with repo.transaction(db.session, "Update profile"):
        repo.apply_changes(user, data.changes())

    return jsonify({"message": "Profile updated.", "user": user_json(user)}), 200


@auth.route("/user/password", methods=["PUT"])
@login_required
def change_password():
    data = validate_payload(PasswordChange, json_body())
    user = db.session.get(User, current_user.id)

    if not verify_password(user.password_hash, data.current_password):
        raise ValidationFailed(
            "Current password is incorrect.",
            errors={"current_password": ["Current password is incorrect."]},
            field="current_password",
        )

    enforce_password_policy(data.new_password, field="new_password")

    with repo.transaction(db.session, "Change password"):
        user.password_hash = hash_password(data.new_password)

    return jsonify({"message": "Password updated."}), 200


@auth.route("/user/avatar", methods=["POST"])
@login_required
def upload_avatar():
    user = db.session.get(User, current_user.id)
    url = replace_image(user, "avatar_url", "avatar")
    return jsonify({"message": "Avatar updated.", "avatar_url": url, "user": user_json(user)}), 200
