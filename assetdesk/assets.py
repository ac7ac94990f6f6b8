# assetdesk/assets.py
from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from . import repository as repo
from .errors import NotFound, ValidationFailed
from .extensions import db
from .models import (
    Asset,
    AssetLicenseAssignment,
    AssetTransfer,
    Document,
    DocumentSubject,
    SoftwareLicense,
)
from .schemas import (
    AssetBatchCreate,
    AssetCreate,
    AssetMove,
    AssetUpdate,
    TransferReceipt,
    validate_payload,
)
from .documents import replace_image
from .serializers import asset_json, document_json, license_json, transfer_json
from .services import importing, inventory
from .services.exporting import ExportFile, csv_bytes, file_response, render_template_pdf
from .services.listing import format_value
from .services.views import ASSET_IMPORT_COLUMNS, ASSETS, MOVEMENTS
from .utils.http import export_limit, export_view, flag, json_body, list_response

assets_bp = Blueprint("assets", __name__, url_prefix="/api")


# =========================================================
# Helpers
# =========================================================
def _active_assets():
    return repo.list_active(db.session, Asset)


def _transfers(asset_id: int | None = None):
    stmt = db.select(AssetTransfer).order_by(AssetTransfer.id)
    if asset_id is not None:
        stmt = stmt.where(AssetTransfer.asset_id == asset_id)
    else:
        stmt = stmt.where(AssetTransfer.asset.has(Asset.deleted_at.is_(None)))
    return list(db.session.scalars(stmt).unique())


def _get_transfer(transfer_id: int) -> AssetTransfer:
    transfer = db.session.get(AssetTransfer, transfer_id)
    if transfer is None:
        raise NotFound(f"Transfer {transfer_id} not found.")
    return transfer


# =========================================================
# Assets: list / CRUD
# =========================================================
@assets_bp.route("/assets", methods=["GET"])
@login_required
def list_assets():
    return list_response(_active_assets, ASSETS, asset_json)


@assets_bp.route("/assets", methods=["POST"])
@login_required
def create_asset():
    data = validate_payload(AssetCreate, json_body())
    with repo.transaction(db.session, "Create asset"):
        asset = inventory.create_asset(db.session, data)

    current_app.logger.info("Asset %s created by user %s", asset.inventory_code, current_user.id)
    return jsonify(asset_json(asset)), 201


@assets_bp.route("/assets/batch", methods=["POST"])
@login_required
def create_asset_batch():
    data = validate_payload(AssetBatchCreate, json_body())
    with repo.transaction(db.session, "Create asset batch"):
        assets = inventory.create_asset_batch(db.session, data)

    return jsonify({
        "message": f"Created {len(assets)} asset(s).",
        "created": len(assets),
        "items": [asset_json(a) for a in assets],
    }), 201


@assets_bp.route("/assets/<int:asset_id>", methods=["GET"])
@login_required
def get_asset(asset_id: int):
    if flag("include_deleted"):
        asset = repo.get_any(db.session, Asset, asset_id)
        if asset is None:
            raise NotFound(f"Asset {asset_id} not found.")
    else:
        asset = repo.get_active(db.session, Asset, asset_id)
    return jsonify(asset_json(asset)), 200


@assets_bp.route("/assets/<int:asset_id>", methods=["PUT"])
@login_required
def update_asset(asset_id: int):
    asset = repo.get_active(db.session, Asset, asset_id)
    data = validate_payload(AssetUpdate, json_body(), partial=True)

    with repo.transaction(db.session, "Update asset"):
        inventory.update_asset(db.session, asset, data)

    return jsonify(asset_json(asset)), 200


@assets_bp.route("/assets/<int:asset_id>", methods=["DELETE"])
@login_required
def delete_asset(asset_id: int):
    asset = repo.get_active(db.session, Asset, asset_id)
    with repo.transaction(db.session, "Delete asset"):
        repo.soft_delete(asset)

    current_app.logger.info("Asset %s deleted by user %s", asset.inventory_code, current_user.id)
    return jsonify({"message": "Asset deleted.", "id": asset.id}), 200


@assets_bp.route("/assets/<int:asset_id>/image", methods=["POST"])
@login_required
def upload_asset_image(asset_id: int):
    asset = repo.get_active(db.session, Asset, asset_id)
    replace_image(asset, "image_url", "asset")
    return jsonify(asset_json(asset)), 200


@assets_bp.route("/assets/export/<kind>", methods=["POST"])
@login_required
@export_limit
def export_assets(kind: str):
    return export_view(kind, _active_assets, ASSETS)


# =========================================================
# Assets: related records
# =========================================================
@assets_bp.route("/assets/<int:asset_id>/software-licenses", methods=["GET"])
@login_required
def asset_licenses(asset_id: int):
    repo.get_active(db.session, Asset, asset_id)
    licenses = repo.list_active(
        db.session,
        SoftwareLicense,
        SoftwareLicense.assignments.any(AssetLicenseAssignment.asset_id == asset_id),
    )
    return jsonify({"items": [license_json(lic) for lic in licenses]}), 200


@assets_bp.route("/assets/<int:asset_id>/documents", methods=["GET"])
@login_required
def asset_documents(asset_id: int):
    repo.get_active(db.session, Asset, asset_id)
    docs = repo.list_active(
        db.session,
        Document,
        Document.subject_type == DocumentSubject.ASSET,
        Document.subject_id == asset_id,
    )
    return jsonify({"items": [document_json(d) for d in docs]}), 200


# =========================================================
# Movements
# =========================================================
@assets_bp.route("/assets/<int:asset_id>/move", methods=["POST"])
@login_required
def move_asset(asset_id: int):
    asset = repo.get_active(db.session, Asset, asset_id)
    data = validate_payload(AssetMove, json_body())

    with repo.transaction(db.session, "Move asset"):
        transfer = inventory.move_asset(db.session, asset, data, authorized_by_id=current_user.id)

    current_app.logger.info(
        "Asset %s moved (%s) by user %s",
        asset.inventory_code,
        transfer.movement_type.value,
        current_user.id,
    )
    return jsonify({"transfer": transfer_json(transfer), "asset": asset_json(asset)}), 201


@assets_bp.route("/assets/<int:asset_id>/movements", methods=["GET"])
@login_required
def asset_movements(asset_id: int):
    # History stays readable for deleted assets
    if repo.get_any(db.session, Asset, asset_id) is None:
        raise NotFound(f"Asset {asset_id} not found.")
    return list_response(lambda: _transfers(asset_id), MOVEMENTS, transfer_json)


@assets_bp.route("/assets/<int:asset_id>/movements/export/<kind>", methods=["POST"])
@login_required
@export_limit
def export_asset_movements(asset_id: int, kind: str):
    asset = repo.get_any(db.session, Asset, asset_id)
    if asset is None:
        raise NotFound(f"Asset {asset_id} not found.")
    return export_view(
        kind,
        lambda: _transfers(asset_id),
        MOVEMENTS,
        title=f"Movement history: {asset.inventory_code}",
        subtitle=asset.product_name,
    )


@assets_bp.route("/movements", methods=["GET"])
@login_required
def list_movements():
    return list_response(_transfers, MOVEMENTS, transfer_json)


@assets_bp.route("/movements/export/<kind>", methods=["POST"])
@login_required
@export_limit
def export_movements(kind: str):
    return export_view(kind, _transfers, MOVEMENTS)


@assets_bp.route("/transfers/<int:transfer_id>", methods=["GET"])
@login_required
def get_transfer(transfer_id: int):
    return jsonify(transfer_json(_get_transfer(transfer_id))), 200


@assets_bp.route("/transfers/<int:transfer_id>/receipt", methods=["PATCH"])
@login_required
def record_receipt(transfer_id: int):
    transfer = _get_transfer(transfer_id)
    data = validate_payload(TransferReceipt, json_body(), partial=True)

    with repo.transaction(db.session, "Record transfer receipt"):
        inventory.record_receipt(db.session, transfer, data)

    return jsonify(transfer_json(transfer)), 200


@assets_bp.route("/transfers/<int:transfer_id>/pdf", methods=["GET"])
@login_required
@export_limit
def transfer_pdf(transfer_id: int):
    transfer = _get_transfer(transfer_id)
    fields = [
        (col.label, col.text(transfer))
        for col in MOVEMENTS.columns
        if col.uid not in ("id", "inventory_code", "product_name")
    ]
    data = render_template_pdf(
        "pdfs/transfer_receipt.html",
        title=f"Asset {format_value(transfer.movement_type)} Movement",
        transfer=transfer,
        fields=fields,
    )
    return file_response(
        ExportFile(
            filename=f"transfer_{transfer.id}.pdf",
            mimetype="application/pdf",
            data=data,
        )
    )


# =========================================================
# CSV import
# =========================================================
@assets_bp.route("/assets/import-csv", methods=["POST"])
@login_required
def import_assets():
    upload = request.files.get("file")
    if upload is None or not (upload.filename or "").strip():
        raise ValidationFailed("No file was uploaded.", errors={"file": ["A CSV file is required."]}, field="file")

    with repo.transaction(db.session, "Import assets"):
        report = importing.import_assets_csv(db.session, upload.read())

    return jsonify(report.to_dict()), report.status_code


@assets_bp.route("/assets/import-template", methods=["GET"])
@login_required
def import_template():
    columns = [ASSETS.column(uid) for uid in ASSET_IMPORT_COLUMNS]
    return file_response(
        ExportFile(
            filename="assets_import_template.csv",
            mimetype="text/csv; charset=utf-8",
            data=csv_bytes(columns, []),
        )
    )
