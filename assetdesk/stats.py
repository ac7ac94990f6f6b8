# assetdesk/stats.py
from __future__ import annotations

from collections import Counter

from flask import Blueprint, jsonify
from flask_login import login_required
from sqlalchemy import func

from . import repository as repo
from .errors import NotFound
from .extensions import db
from .models import Asset, AssetStatus, AssetTransfer, Company, Location, Section, SoftwareLicense, User
from .serializers import transfer_json
from .services.status import license_status, warranty_status
from .services.views import VIEWS

stats_bp = Blueprint("stats", __name__, url_prefix="/api")

RECENT_MOVEMENTS = 5


def _count(model) -> int:
    return db.session.scalar(db.select(func.count(model.id)).where(model.deleted_at.is_(None))) or 0


@stats_bp.route("/stats/assets-by-status", methods=["GET"])
@login_required
def assets_by_status():
    rows = db.session.execute(
        db.select(Asset.status, func.count(Asset.id))
        .where(Asset.deleted_at.is_(None))
        .group_by(Asset.status)
    ).all()
    counts = {status: 0 for status in AssetStatus}
    for status, n in rows:
        counts[status] = n

    items = [{"status": s.value, "label": s.label, "count": n} for s, n in counts.items()]
    return jsonify({"items": items, "total": sum(counts.values())}), 200


@stats_bp.route("/stats/users-by-section", methods=["GET"])
@login_required
def users_by_section():
    rows = db.session.execute(
        db.select(Section.id, Section.name, func.count(User.id))
        .select_from(User)
        .outerjoin(Section, User.section_id == Section.id)
        .where(User.deleted_at.is_(None))
        .group_by(Section.id, Section.name)
        .order_by(Section.name)
    ).all()

    items = [
        {"section_id": sid, "section": name or "No section", "count": n}
        for sid, name, n in rows
    ]
    return jsonify({"items": items, "total": sum(i["count"] for i in items)}), 200


@stats_bp.route("/dashboard/summary-stats", methods=["GET"])
@login_required
def summary_stats():
    # Derived statuses are computed, never stored, so they are counted in Python
    licenses = repo.list_active(db.session, SoftwareLicense)
    license_counts = Counter(license_status(lic).key for lic in licenses)

    warranties = db.session.scalars(
        repo.active(Asset).where(Asset.warranty_expiry_date.is_not(None))
    ).unique()
    warranty_counts = Counter(warranty_status(a).key for a in warranties)

    recent = db.session.scalars(
        db.select(AssetTransfer)
        .where(AssetTransfer.asset.has(Asset.deleted_at.is_(None)))
        .order_by(AssetTransfer.transfer_date.desc(), AssetTransfer.id.desc())
        .limit(RECENT_MOVEMENTS)
    ).unique()

    return jsonify({
        "totals": {
            "assets": _count(Asset),
            "software_licenses": len(licenses),
            "users": _count(User),
            "sections": _count(Section),
            "locations": _count(Location),
            "companies": _count(Company),
        },
        "licenses": {
            "active": license_counts["active"],
            "perpetual": license_counts["perpetual"],
            "expiring_soon": license_counts["expiring_soon"],
            "expired": license_counts["expired"],
        },
        "warranties": {
            "active": warranty_counts["active"],
            "expiring_soon": warranty_counts["expiring_soon"],
            "expired": warranty_counts["expired"],
        },
        "recent_movements": [transfer_json(t) for t in recent],
    }), 200


@stats_bp.route("/views/<entity>", methods=["GET"])
@login_required
def view_definition(entity: str):
    """Columns, filters and default sort a client needs to build a list screen."""
    view = VIEWS.get(entity)
    if view is None:
        raise NotFound(f"No list view named '{entity}'.")
    return jsonify(view.describe()), 200
