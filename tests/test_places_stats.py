from __future__ import annotations

from datetime import timedelta

from conftest import make_asset

from assetdesk.services.status import utc_today


# =========================================================
# Sections / locations / companies
# =========================================================
def test_section_hierarchy(auth_client, places):
    child = auth_client.post(
        "/api/sections",
        json={"name": "Lab Team", "parent_section_id": places["section_a"]},
    ).get_json()
    assert child["parent_section"]["name"] == "Section A"

    subs = auth_client.get(f"/api/sections/{places['section_a']}/subsections").get_json()["items"]
    assert [s["name"] for s in subs] == ["Lab Team"]

    # A parent with live children cannot go
    assert auth_client.delete(f"/api/sections/{places['section_a']}").status_code == 409


def test_section_cannot_be_its_own_ancestor(auth_client, places):
    a = places["section_a"]
    resp = auth_client.put(f"/api/sections/{a}", json={"parent_section_id": a})
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "parent_section_id"

    child = auth_client.post("/api/sections", json={"name": "Child", "parent_section_id": a}).get_json()
    resp = auth_client.put(f"/api/sections/{a}", json={"parent_section_id": child["id"]})
    assert resp.status_code == 400


def test_section_names_are_unique_ignoring_case(auth_client, places):
    resp = auth_client.post("/api/sections", json={"name": "section a"})
    assert resp.status_code == 409


def test_location_names_unique_per_section(auth_client, places):
    same_section = auth_client.post("/api/locations", json={"name": "lab 1", "section_id": places["section_a"]})
    assert same_section.status_code == 409

    other_section = auth_client.post("/api/locations", json={"name": "Lab 1", "section_id": places["section_b"]})
    assert other_section.status_code == 201

    items = auth_client.get(f"/api/sections/{places['section_b']}/locations").get_json()["items"]
    assert sorted(i["name"] for i in items) == ["Lab 1", "Office 2"]


def test_location_needs_live_section(auth_client, places):
    resp = auth_client.post("/api/locations", json={"name": "Attic", "section_id": 999})
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "section_id"


def test_company_tax_id_unique_and_supplier_link(auth_client, places):
    company = auth_client.post("/api/companies", json={"tax_id": "76.123.456-7", "legal_name": "Acme Ltd"})
    assert company.status_code == 201
    company_id = company.get_json()["id"]

    dup = auth_client.post("/api/companies", json={"tax_id": "76.123.456-7", "legal_name": "Copy"})
    assert dup.status_code == 409

    asset = make_asset(auth_client, places["section_a"], supplier_company_id=company_id)
    assert asset["supplier_company"] == {"id": company_id, "name": "Acme Ltd", "tax_id": "76.123.456-7"}

    # Deleted suppliers cannot be referenced by new writes
    auth_client.delete(f"/api/companies/{company_id}")
    resp = auth_client.post(
        "/api/assets",
        json={
            "product_name": "Phone",
            "inventory_code": "INV-9",
            "current_section_id": places["section_a"],
            "supplier_company_id": company_id,
        },
    )
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "supplier_company_id"


# =========================================================
# Stats / view metadata
# =========================================================
def test_assets_by_status_zero_fills(auth_client, places):
    make_asset(auth_client, places["section_a"], inventory_code="A-1", status="in_use")
    make_asset(auth_client, places["section_a"], inventory_code="A-2", status="in_use")
    make_asset(auth_client, places["section_a"], inventory_code="A-3", status="lost")

    body = auth_client.get("/api/stats/assets-by-status").get_json()
    counts = {i["status"]: i["count"] for i in body["items"]}
    assert counts == {"in_use": 2, "in_storage": 0, "under_repair": 0, "disposed": 0, "lost": 1}
    assert body["total"] == 3


def test_users_by_section(auth_client, places):
    body = auth_client.get("/api/stats/users-by-section").get_json()
    assert body["items"] == [{"section_id": None, "section": "No section", "count": 2}]
    assert body["total"] == 2


def test_dashboard_summary(auth_client, places):
    today = utc_today()
    make_asset(
        auth_client,
        places["section_a"],
        inventory_code="A-1",
        warranty_expiry_date=(today + timedelta(days=5)).isoformat(),
    )
    asset = make_asset(
        auth_client,
        places["section_a"],
        inventory_code="A-2",
        warranty_expiry_date=(today - timedelta(days=5)).isoformat(),
    )
    auth_client.post(
        "/api/software-licenses",
        json={"software_name": "CAD", "license_type": "subscription_user", "expiry_date": (today + timedelta(days=90)).isoformat()},
    )
    auth_client.post(f"/api/assets/{asset['id']}/move", json={"movement_type": "internal", "to_section_id": places["section_b"]})

    body = auth_client.get("/api/dashboard/summary-stats").get_json()
    assert body["totals"]["assets"] == 2
    assert body["totals"]["users"] == 2
    assert body["totals"]["sections"] == 2
    assert body["licenses"]["active"] == 1
    assert body["warranties"] == {"active": 0, "expiring_soon": 1, "expired": 1}
    assert [m["asset"]["inventory_code"] for m in body["recent_movements"]] == ["A-2"]


def test_view_definitions_are_published(auth_client):
    body = auth_client.get("/api/views/assets").get_json()
    uids = [c["uid"] for c in body["columns"]]
    assert "inventory_code" in uids and "warranty_status" in uids
    assert body["multi_select"] == "status"
    assert body["default_sort"] == {"column": "inventory_code", "direction": "ascending"}

    assert auth_client.get("/api/views/nothing").status_code == 404
