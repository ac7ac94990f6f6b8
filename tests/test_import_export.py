from __future__ import annotations

import csv
import io
import multiprocessing
import random
import time
from datetime import date, timedelta

import pytest

from conftest import FAKE_PDF, make_asset

from assetdesk.errors import ExportFailed
from assetdesk.extensions import db
from assetdesk.models import Asset, AssetStatus
from assetdesk.services.exporting import render_pdf
from assetdesk.services.listing import DATE_KINDS
from assetdesk.services.views import ASSET_IMPORT_COLUMNS, ASSETS

COMPARED_FIELDS = (
    "product_name",
    "serial_number",
    "inventory_code",
    "description",
    "status",
    "current_section",
    "current_location",
    "supplier_company",
    "purchase_date",
    "invoice_number",
    "warranty_expiry_date",
    "acquisition_procedure",
    "image_url",
)


def upload_csv(client, text: str, filename="assets.csv"):
    return client.post(
        "/api/assets/import-csv",
        data={"file": (io.BytesIO(text.encode("utf-8")), filename)},
        content_type="multipart/form-data",
    )


def csv_rows(resp) -> list[list[str]]:
    return list(csv.reader(io.StringIO(resp.data.decode("utf-8-sig"))))


# =========================================================
# Export / list parity
# =========================================================
@pytest.fixture()
def many_assets(app, places):
    rng = random.Random(20240315)
    words = ["Laptop", "Monitor", "Dock", "Printer", "Projector", "Router"]
    sections = [(places["section_a"], places["lab"]), (places["section_b"], places["office"])]
    with app.app_context():
        for n in range(30):
            section_id, location_id = rng.choice(sections)
            purchased = date(2024, 1, 1) + timedelta(days=rng.randint(0, 300))
            db.session.add(
                Asset(
                    product_name=f"{rng.choice(words)} {rng.choice(['Pro', 'Lite', ''])}".strip(),
                    inventory_code=f"INV-{rng.randint(100, 999)}-{n}",
                    serial_number=rng.choice([None, f"SN{n:03d}"]),
                    status=rng.choice(list(AssetStatus)),
                    current_section_id=section_id,
                    current_location_id=rng.choice([location_id, None]),
                    purchase_date=rng.choice([purchased, None]),
                    warranty_expiry_date=rng.choice([purchased + timedelta(days=730), None]),
                )
            )
        db.session.commit()


def random_state(rng: random.Random) -> dict:
    params = {
        "page_size": 50,
        "sort": rng.choice([c.uid for c in ASSETS.columns if c.sortable]),
        "direction": rng.choice(["asc", "desc"]),
    }
    if rng.random() < 0.7:
        column = rng.choice(ASSETS.filterable)
        params["attribute"] = column.uid
        if column.kind in DATE_KINDS:
            start = date(2024, 1, 1) + timedelta(days=rng.randint(0, 400))
            params["date_from"] = start.isoformat()
            if rng.random() < 0.7:
                params["date_to"] = (start + timedelta(days=rng.randint(0, 200))).isoformat()
        else:
            params["q"] = rng.choice(["a", "pro", "lab", "section b", "in", "2025", "sn0", "warranty"])
    if rng.random() < 0.5:
        params["selected"] = rng.sample([s.value for s in AssetStatus], k=rng.randint(1, 3))
    return params


def test_exports_match_the_list_view(auth_client, many_assets):
    rng = random.Random(7)
    for _ in range(40):
        params = random_state(rng)
        listed = auth_client.get("/api/assets", query_string=params)
        assert listed.status_code == 200, params
        listed_ids = [str(a["id"]) for a in listed.get_json()["items"]]

        exported = auth_client.post("/api/assets/export/csv", json={**params, "columns": ["id"]})
        assert exported.status_code == 200, params
        exported_ids = [row[0] for row in csv_rows(exported)[1:]]

        assert exported_ids == listed_ids, params


def test_pdf_export_rows_follow_the_same_state(auth_client, places, fake_pdf):
    for n, status in enumerate(["in_use", "lost", "in_use"], start=1):
        make_asset(auth_client, places["section_a"], inventory_code=f"PDF-{n}", status=status)

    resp = auth_client.post(
        "/api/assets/export/pdf",
        json={"selected": ["in_use"], "sort": "inventory_code", "direction": "desc", "title": "Assets in use"},
    )
    assert resp.status_code == 200
    html = fake_pdf[-1]
    assert "Assets in use" in html
    assert html.index("PDF-3") < html.index("PDF-1")
    assert "PDF-2" not in html


def test_export_accepts_query_args_without_json(auth_client, places):
    make_asset(auth_client, places["section_a"], inventory_code="Q-1", status="lost")
    make_asset(auth_client, places["section_a"], inventory_code="Q-2", status="in_use")
    resp = auth_client.post("/api/assets/export/csv?selected=lost&columns=inventory_code")
    assert csv_rows(resp) == [["Inventory Code"], ["Q-1"]]


# =========================================================
# CSV import
# =========================================================
def test_exported_csv_imports_back_unchanged(auth_client, places):
    company = auth_client.post("/api/companies", json={"tax_id": "99-1", "legal_name": "Acme"}).get_json()
    originals = [
        make_asset(
            auth_client,
            places["section_a"],
            inventory_code="RT-1",
            serial_number="S-1",
            current_location_id=places["lab"],
            supplier_company_id=company["id"],
            purchase_date="2024-02-01",
            warranty_expiry_date="2026-02-01",
            invoice_number="F-77",
            status="under_repair",
            description='Has "quotes", commas',
        ),
        make_asset(auth_client, places["section_b"], inventory_code="RT-2", product_name="Ñandú scanner"),
    ]

    exported = auth_client.post("/api/assets/export/csv", json={"columns": list(ASSET_IMPORT_COLUMNS)})
    for asset in originals:
        auth_client.delete(f"/api/assets/{asset['id']}")

    resp = auth_client.post(
        "/api/assets/import-csv",
        data={"file": (io.BytesIO(exported.data), "assets.csv")},
        content_type="multipart/form-data",
    )
    assert resp.status_code == 201, resp.get_json()
    assert resp.get_json()["created"] == 2

    imported = {a["inventory_code"]: a for a in auth_client.get("/api/assets").get_json()["items"]}
    for original in originals:
        again = imported[original["inventory_code"]]
        assert again["id"] != original["id"]
        for name in COMPARED_FIELDS:
            assert again[name] == original[name], name


def test_partial_import_reports_failed_lines(auth_client, places):
    text = (
        "Product Name;Inventory Code;Section;Location;Status\n"
        "Laptop;IMP-1;Section A;Lab 1;In Use\n"
        "Phone;IMP-2;Nowhere;;\n"
        ";IMP-3;Section A;;\n"
        "\n"
        "Tablet;IMP-4;section b;Lab 1;\n"
        "Camera;IMP-5;Section B;;broken\n"
        "Dock;IMP-1;Section B;;\n"
    )
    resp = upload_csv(auth_client, text)
    assert resp.status_code == 207
    body = resp.get_json()
    assert (body["created"], body["failed"]) == (1, 5)

    failed = {r["line"]: r["errors"] for r in body["rows"] if not r["ok"]}
    assert failed[3] == ["section: Section 'Nowhere' not found."]
    assert failed[4] == ["product_name: value is required."]
    assert failed[6] == ["location: Location 'Lab 1' not found in section 'Section B'."]
    assert failed[7][0].startswith("status: Unknown status 'broken'")
    assert failed[8] == ["inventory_code: 'IMP-1' is already in use."]

    listed = auth_client.get("/api/assets").get_json()["items"]
    assert [a["inventory_code"] for a in listed] == ["IMP-1"]
    assert listed[0]["status"] == "in_use"


def test_import_accepts_legacy_headers(auth_client, places):
    text = "producto,codigo_inventario,seccion,estado\nRouter,LEG-1,Section A,in_storage\n"
    resp = upload_csv(auth_client, text)
    assert resp.status_code == 201
    assert resp.get_json()["rows"][0]["inventory_code"] == "LEG-1"


def test_import_with_no_valid_rows_is_400(auth_client, places):
    resp = upload_csv(auth_client, "product_name,inventory_code,section\nA,X-1,Nowhere\nB,X-2,Nowhere\n")
    assert resp.status_code == 400
    assert resp.get_json()["created"] == 0
    assert auth_client.get("/api/assets").get_json()["total"] == 0


@pytest.mark.parametrize(
    "content, field_message",
    [
        (b"product_name,serial_number\nA,B\n", "Missing column: inventory_code"),
        (b"product_name,inventory_code,section\n", None),
        (b"\xff\xfe\x00b\x00a\x00d", None),
    ],
)
def test_unusable_files_are_rejected(auth_client, content, field_message):
    resp = auth_client.post(
        "/api/assets/import-csv",
        data={"file": (io.BytesIO(content), "bad.csv")},
        content_type="multipart/form-data",
    )
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "file"
    if field_message:
        assert field_message in resp.get_json()["errors"]["file"]


def test_import_requires_a_file(auth_client):
    resp = auth_client.post("/api/assets/import-csv", data={}, content_type="multipart/form-data")
    assert resp.status_code == 400


def test_import_template_lists_the_import_columns(auth_client):
    resp = auth_client.get("/api/assets/import-template")
    assert resp.status_code == 200
    assert "assets_import_template.csv" in resp.headers["Content-Disposition"]
    header = csv_rows(resp)
    assert header == [[ASSETS.column(uid).label for uid in ASSET_IMPORT_COLUMNS]]


# =========================================================
# PDF rendering
# =========================================================
# Module level so the spawned render process can import them.
def _stalled_writer(html, base_url):
    time.sleep(60)
    return FAKE_PDF


def _broken_writer(html, base_url):
    raise OSError("cannot load libpango")


def _render_processes() -> list[str]:
    return [p.name for p in multiprocessing.active_children() if p.name == "pdf-render"]


def test_slow_pdf_render_is_stopped_on_timeout(app, monkeypatch):
    monkeypatch.setattr("assetdesk.services.exporting._write_pdf", _stalled_writer)

    started = time.monotonic()
    with app.app_context():
        with pytest.raises(ExportFailed) as exc:
            render_pdf("<p>slow</p>", timeout=0.5)
    assert exc.value.message == "PDF generation timed out."
    assert time.monotonic() - started < 30
    assert _render_processes() == []


def test_writer_errors_in_the_render_process_are_reported(app, monkeypatch):
    monkeypatch.setattr("assetdesk.services.exporting._write_pdf", _broken_writer)

    with app.app_context():
        with pytest.raises(ExportFailed) as exc:
            render_pdf("<p>broken</p>", timeout=60)
    assert exc.value.message == "Could not generate the export."
    assert "cannot load libpango" in str(exc.value.__cause__)
    assert _render_processes() == []


def test_weasyprint_produces_a_pdf(app):
    try:
        import weasyprint  # noqa: F401
    except (ImportError, OSError):
        pytest.skip("WeasyPrint or its system libraries are not available")

    with app.test_request_context():
        data = render_pdf("<html><body><h1>Assets</h1><p>&lt;ok&gt;</p></body></html>")
    assert data.startswith(b"%PDF")
