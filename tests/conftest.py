from __future__ import annotations

import pytest

from assetdesk import create_app
from assetdesk.extensions import db
from assetdesk.models import Location, Role, Section, User, UserStatus
from assetdesk.settings import TestConfig
from assetdesk.utils.passwords import hash_password

ADMIN_EMAIL = "admin@uni.edu"
ADMIN_PASSWORD = "Admin1234"
VIEWER_EMAIL = "viewer@uni.edu"
VIEWER_PASSWORD = "Viewer1234"

# Stand-in for WeasyPrint's output; real rendering needs pango/cairo.
FAKE_PDF = b"%PDF-1.7\n% test\n%%EOF\n"


@pytest.fixture()
def app(tmp_path):
    class Config(TestConfig):
        DOCUMENT_STORAGE_DIR = str(tmp_path / "uploads")

    app = create_app(Config)
    with app.app_context():
        db.create_all()
        admin_role = Role(name="admin", description="Administrators")
        viewer_role = Role(name="viewer", description="Read only")
        db.session.add_all([admin_role, viewer_role])
        db.session.add_all([
            User(
                email=ADMIN_EMAIL,
                password_hash=hash_password(ADMIN_PASSWORD),
                first_name="Ada",
                last_name="Admin",
                status=UserStatus.ACTIVE,
                roles=[admin_role],
            ),
            User(
                email=VIEWER_EMAIL,
                password_hash=hash_password(VIEWER_PASSWORD),
                first_name="Vic",
                last_name="Viewer",
                status=UserStatus.ACTIVE,
                roles=[viewer_role],
            ),
        ])
        db.session.commit()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


def login(client, email=ADMIN_EMAIL, password=ADMIN_PASSWORD):
    resp = client.post("/api/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.get_json()
    return client


@pytest.fixture()
def auth_client(client):
    return login(client)


@pytest.fixture()
def viewer_client(app):
    return login(app.test_client(), VIEWER_EMAIL, VIEWER_PASSWORD)


@pytest.fixture()
def places(app):
    """Two sections with one location each."""
    with app.app_context():
        a = Section(name="Section A")
        b = Section(name="Section B")
        db.session.add_all([a, b])
        db.session.flush()
        lab = Location(name="Lab 1", section_id=a.id)
        office = Location(name="Office 2", section_id=b.id)
        db.session.add_all([lab, office])
        db.session.commit()
        return {
            "section_a": a.id,
            "section_b": b.id,
            "lab": lab.id,
            "office": office.id,
        }


@pytest.fixture()
def fake_pdf(monkeypatch):
    calls = []

    def render(html, base_url, limit):
        calls.append(html)
        return FAKE_PDF

    monkeypatch.setattr("assetdesk.services.exporting._render_isolated", render)
    return calls


def make_asset(client, section_id, **fields):
    payload = {
        "product_name": "Laptop",
        "inventory_code": "INV-001",
        "current_section_id": section_id,
    }
    payload.update(fields)
    resp = client.post("/api/assets", json=payload)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()
