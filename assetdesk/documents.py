# assetdesk/documents.py
from __future__ import annotations

from flask import Blueprint, current_app, jsonify, make_response, request, url_for
from flask_login import current_user, login_required

from . import repository as repo
from .errors import NotFound
from .extensions import db
from .models import Document
from .schemas import DocumentUploadMeta, validate_payload
from .serializers import document_json
from .services.documents import (
    IMAGE_PREFIX,
    image_key_for,
    image_mime_type,
    load_bytes,
    read_image_upload,
    read_upload,
    remove_file,
    storage_key_for,
    store_bytes,
)
from .services.exporting import ExportFile, file_response

documents_bp = Blueprint("documents", __name__, url_prefix="/api")


@documents_bp.route("/documents/upload", methods=["POST"])
@login_required
def upload_document():
    # Size and type are checked before anything touches the disk
    upload = read_upload(request.files.get("file"), declared_length=request.content_length)
    meta = validate_payload(DocumentUploadMeta, request.form.to_dict())

    # The attachment target must be a live record of that kind
    repo.require_reference(db.session, meta.subject_type.model, meta.subject_id, "subject_id")

    key = storage_key_for(meta.subject_type, meta.subject_id, upload.mime_type)
    stored = store_bytes(key, upload.data)
    try:
        with repo.transaction(db.session, "Upload document"):
            doc = Document(
                subject_type=meta.subject_type,
                subject_id=meta.subject_id,
                document_category=meta.document_category,
                description=meta.description,
                original_filename=upload.filename,
                storage_key=stored.storage_key,
                mime_type=upload.mime_type,
                file_size_bytes=stored.size,
                file_sha256=stored.sha256,
                uploaded_by_user_id=current_user.id,
            )
            db.session.add(doc)
            db.session.flush()
    except Exception:
        remove_file(stored.storage_key)
        raise

    current_app.logger.info(
        "Document %s uploaded for %s %s (%s bytes)",
        doc.id,
        meta.subject_type.value,
        meta.subject_id,
        stored.size,
    )
    return jsonify(document_json(doc)), 201


@documents_bp.route("/documents", methods=["GET"])
@login_required
def list_documents():
    criteria = []
    raw_type = request.args.get("subject_type") or request.args.get("entity_type")
    raw_id = request.args.get("subject_id") or request.args.get("entity_id")
    if raw_type or raw_id:
        # Same parsing and messages as the upload form
        meta = validate_payload(
            DocumentUploadMeta,
            {"subject_type": raw_type, "subject_id": raw_id},
        )
        criteria = [Document.subject_type == meta.subject_type, Document.subject_id == meta.subject_id]

    docs = repo.list_active(db.session, Document, *criteria)
    return jsonify({"items": [document_json(d) for d in docs]}), 200


@documents_bp.route("/documents/<int:document_id>", methods=["GET"])
@login_required
def get_document(document_id: int):
    return jsonify(document_json(repo.get_active(db.session, Document, document_id))), 200


@documents_bp.route("/documents/<int:document_id>/download", methods=["GET"])
@login_required
def download_document(document_id: int):
    doc = repo.get_active(db.session, Document, document_id)
    try:
        data = load_bytes(doc.storage_key)
    except OSError as exc:
        current_app.logger.error("Stored file missing for document %s (%s)", doc.id, doc.storage_key)
        raise NotFound("The stored file for this document is missing.") from exc

    return file_response(ExportFile(filename=doc.original_filename, mimetype=doc.mime_type, data=data))


@documents_bp.route("/documents/<int:document_id>", methods=["DELETE"])
@login_required
def delete_document(document_id: int):
    doc = repo.get_active(db.session, Document, document_id)
    # The file stays on disk with the soft-deleted row
    with repo.transaction(db.session, "Delete document"):
        repo.soft_delete(doc)

    current_app.logger.info("Document %s deleted by user %s", doc.id, current_user.id)
    return jsonify({"message": "Document deleted.", "id": doc.id}), 200


# =========================================================
# Images (asset pictures, avatars)
# =========================================================
IMAGE_FIELDS = ("file", "image", "imageFile", "avatar")


def replace_image(owner, attr: str, kind: str) -> str:
    """
    Store the uploaded image for `owner` and point `owner.<attr>` at it.
    Called by the asset picture and avatar endpoints; the request must be
    multipart with the image under one of IMAGE_FIELDS.
    """
    file = next((request.files[name] for name in IMAGE_FIELDS if name in request.files), None)
    upload = read_image_upload(file, declared_length=request.content_length)

    stored = store_bytes(image_key_for(kind, owner.id, upload.mime_type), upload.data)
    url = url_for("documents.get_image", image_key=stored.storage_key[len(IMAGE_PREFIX) + 1 :])
    try:
        with repo.transaction(db.session, f"Update {kind} image"):
            setattr(owner, attr, url)
    except Exception:
        remove_file(stored.storage_key)
        raise

    current_app.logger.info("%s image for %s %s stored (%s bytes)", kind, type(owner).__name__, owner.id, stored.size)
    return url


@documents_bp.route("/images/<path:image_key>", methods=["GET"])
@login_required
def get_image(image_key: str):
    storage_key = f"{IMAGE_PREFIX}/{image_key}"
    mime_type = image_mime_type(storage_key)
    if mime_type is None or ".." in image_key.split("/"):
        raise NotFound("Image not found.")
    try:
        data = load_bytes(storage_key)
    except (OSError, ValueError) as exc:
        raise NotFound("Image not found.") from exc

    resp = make_response(data)
    resp.headers["Content-Type"] = mime_type
    resp.headers["Cache-Control"] = "private, max-age=3600"
    return resp
