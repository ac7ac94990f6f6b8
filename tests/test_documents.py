from __future__ import annotations

import hashlib
import io

from conftest import make_asset

PNG = b"\x89PNG\r\n\x1a\n" + bytes(range(100))
PDF = b"%PDF-1.4\n" + b"0" * 64


def upload(client, data: bytes, *, filename="photo.png", mimetype="image/png", **form):
    fields = {"subject_type": "asset", "subject_id": "1"}
    fields.update(form)
    fields["file"] = (io.BytesIO(data), filename, mimetype)
    return client.post("/api/documents/upload", data=fields, content_type="multipart/form-data")


def test_upload_list_download_delete(auth_client, places):
    asset = make_asset(auth_client, places["section_a"])

    resp = upload(auth_client, PNG, subject_id=str(asset["id"]), description="Front view")
    assert resp.status_code == 201
    doc = resp.get_json()
    assert doc["original_filename"] == "photo.png"
    assert doc["mime_type"] == "image/png"
    assert doc["file_size_bytes"] == len(PNG)
    assert doc["sha256"] == hashlib.sha256(PNG).hexdigest()
    assert doc["document_category"] == "invoice_purchase"
    assert doc["uploaded_by"]["name"] == "Ada Admin"

    attached = auth_client.get(f"/api/assets/{asset['id']}/documents").get_json()["items"]
    assert [d["id"] for d in attached] == [doc["id"]]
    filtered = auth_client.get(f"/api/documents?subject_type=asset&subject_id={asset['id']}").get_json()["items"]
    assert [d["id"] for d in filtered] == [doc["id"]]

    download = auth_client.get(f"/api/documents/{doc['id']}/download")
    assert download.status_code == 200
    assert download.data == PNG
    assert download.headers["Content-Type"] == "image/png"
    assert 'filename="photo.png"' in download.headers["Content-Disposition"]

    assert auth_client.delete(f"/api/documents/{doc['id']}").status_code == 200
    assert auth_client.get(f"/api/documents/{doc['id']}").status_code == 404
    assert auth_client.get(f"/api/assets/{asset['id']}/documents").get_json()["items"] == []


def test_license_documents(auth_client):
    lic = auth_client.post(
        "/api/software-licenses",
        json={"software_name": "CAD", "license_type": "retail"},
    ).get_json()
    resp = upload(
        auth_client,
        PDF,
        filename="invoice.pdf",
        mimetype="application/pdf",
        subject_type="software_license",
        subject_id=str(lic["id"]),
    )
    assert resp.status_code == 201
    items = auth_client.get(f"/api/software-licenses/{lic['id']}/documents").get_json()["items"]
    assert [d["original_filename"] for d in items] == ["invoice.pdf"]


def test_oversize_upload_is_413(app, auth_client, places):
    make_asset(auth_client, places["section_a"])
    app.config["MAX_UPLOAD_BYTES"] = 64

    resp = upload(auth_client, PNG)
    assert resp.status_code == 413
    assert resp.get_json()["field"] == "file"


def test_disallowed_or_spoofed_types_are_400(auth_client, places):
    make_asset(auth_client, places["section_a"])

    text = upload(auth_client, b"just text", filename="notes.txt", mimetype="text/plain")
    assert text.status_code == 400

    # Declared PNG, actually a PDF
    spoofed = upload(auth_client, PDF, filename="photo.png", mimetype="image/png")
    assert spoofed.status_code == 400
    assert spoofed.get_json()["field"] == "file"


def test_upload_needs_file_and_live_subject(auth_client, places):
    no_file = auth_client.post(
        "/api/documents/upload",
        data={"subject_type": "asset", "subject_id": "1"},
        content_type="multipart/form-data",
    )
    assert no_file.status_code == 400

    missing = upload(auth_client, PNG, subject_id="999")
    assert missing.status_code == 400
    assert missing.get_json()["field"] == "subject_id"

    unknown_kind = upload(auth_client, PNG, subject_type="printer")
    assert unknown_kind.status_code == 400
    assert "subject_type" in unknown_kind.get_json()["errors"]


def test_filenames_are_sanitised(auth_client, places):
    make_asset(auth_client, places["section_a"])
    resp = upload(auth_client, PNG, filename="../../etc/passwd.png")
    assert resp.status_code == 201
    assert resp.get_json()["original_filename"] == "etc_passwd.png"


# =========================================================
# Asset pictures / avatars
# =========================================================
def post_image(client, url, data: bytes, *, field="image", filename="pic.png", mimetype="image/png"):
    return client.post(
        url,
        data={field: (io.BytesIO(data), filename, mimetype)},
        content_type="multipart/form-data",
    )


def test_asset_image_is_stored_and_served(auth_client, places):
    asset = make_asset(auth_client, places["section_a"])

    resp = post_image(auth_client, f"/api/assets/{asset['id']}/image", PNG)
    assert resp.status_code == 200
    image_url = resp.get_json()["image_url"]
    assert image_url.startswith(f"/api/images/asset/{asset['id']}/")
    assert image_url.endswith(".png")
    assert auth_client.get(f"/api/assets/{asset['id']}").get_json()["image_url"] == image_url

    served = auth_client.get(image_url)
    assert served.status_code == 200
    assert served.data == PNG
    assert served.headers["Content-Type"] == "image/png"

    # Documents are not reachable through the image route
    assert auth_client.get("/api/images/../asset/1/x.png").status_code == 404
    assert auth_client.get("/api/images/asset/1/missing.png").status_code == 404


def test_asset_image_rejects_pdf_and_oversize(app, auth_client, places):
    asset = make_asset(auth_client, places["section_a"])
    url = f"/api/assets/{asset['id']}/image"

    pdf = post_image(auth_client, url, PDF, filename="scan.pdf", mimetype="application/pdf")
    assert pdf.status_code == 400
    assert pdf.get_json()["field"] == "file"

    assert post_image(auth_client, url, b"", filename="").status_code == 400

    app.config["MAX_IMAGE_BYTES"] = 64
    big = post_image(auth_client, url, PNG)
    assert big.status_code == 413
    assert auth_client.get(f"/api/assets/{asset['id']}").get_json()["image_url"] is None

    assert post_image(auth_client, "/api/assets/999/image", PNG).status_code == 404


def test_own_avatar_upload(viewer_client):
    resp = post_image(viewer_client, "/api/user/avatar", PNG, field="avatar", filename="me.png")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["avatar_url"].startswith("/api/images/avatar/")
    assert viewer_client.get("/api/auth/me").get_json()["avatar_url"] == body["avatar_url"]

    spoofed = post_image(viewer_client, "/api/user/avatar", PDF, field="avatar")
    assert spoofed.status_code == 400


def test_setting_another_users_avatar_needs_admin(auth_client, viewer_client):
    assert post_image(viewer_client, "/api/users/1/avatar", PNG).status_code == 403

    resp = post_image(auth_client, "/api/users/2/avatar", PNG, field="file")
    assert resp.status_code == 200
    assert resp.get_json()["avatar_url"].startswith("/api/images/avatar/2/")
