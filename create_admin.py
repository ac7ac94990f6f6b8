"""
Seed the base roles and an admin account.

    ADMIN_EMAIL=it@uni.edu ADMIN_PASSWORD=... python create_admin.py
"""
import os
import sys

from sqlalchemy import func

from assetdesk import create_app
from assetdesk.extensions import db
from assetdesk.models import Role, User, UserStatus
from assetdesk.utils.passwords import hash_password, validate_password

ROLES = {
    "super_admin": "Full access, including user administration.",
    "admin": "User administration and all inventory operations.",
    "inventory_manager": "Assets, movements and licenses.",
    "viewer": "Read-only access.",
}

EMAIL = (os.environ.get("ADMIN_EMAIL") or "").strip().lower()
PASSWORD = os.environ.get("ADMIN_PASSWORD") or ""

if not EMAIL or not PASSWORD:
    sys.exit("Set ADMIN_EMAIL and ADMIN_PASSWORD.")

ok, msg = validate_password(PASSWORD)
if not ok:
    sys.exit(msg)

app = create_app()

with app.app_context():
    roles = {r.name: r for r in db.session.scalars(db.select(Role))}
    for name, description in ROLES.items():
        if name not in roles:
            roles[name] = Role(name=name, description=description)
            db.session.add(roles[name])
            print(f"Role created: {name}")

    admin = db.session.scalars(
        db.select(User).where(func.lower(User.email) == EMAIL, User.deleted_at.is_(None))
    ).first()
    if admin is None:
        admin = User(
            email=EMAIL,
            first_name="System",
            last_name="Administrator",
            status=UserStatus.ACTIVE,
            password_hash=hash_password(PASSWORD),
        )
        db.session.add(admin)
        print(f"Admin created: {EMAIL}")
    else:
        admin.password_hash = hash_password(PASSWORD)
        admin.status = UserStatus.ACTIVE
        print(f"Admin password reset: {EMAIL}")

    if not admin.has_role("super_admin"):
        admin.roles.append(roles["super_admin"])

    db.session.commit()
