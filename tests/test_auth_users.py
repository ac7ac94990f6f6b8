from __future__ import annotations

from conftest import ADMIN_EMAIL, ADMIN_PASSWORD, VIEWER_EMAIL, VIEWER_PASSWORD, login


def new_user(**fields):
    payload = {
        "first_name": "Grace",
        "last_name": "Hopper",
        "email": "grace@uni.edu",
        "password": "Cobol1959",
        "confirm_password": "Cobol1959",
    }
    payload.update(fields)
    return payload


# =========================================================
# Login / session
# =========================================================
def test_login_returns_user_without_password(client):
    resp = client.post("/api/auth/login", json={"email": "ADMIN@uni.edu ", "password": ADMIN_PASSWORD})
    assert resp.status_code == 200
    user = resp.get_json()["user"]
    assert user["email"] == ADMIN_EMAIL
    assert user["roles"] == ["admin"]
    assert "password_hash" not in user
    assert user["last_login_at"] is not None


def test_login_failures_share_one_message(client):
    wrong = client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": "nope"})
    unknown = client.post("/api/auth/login", json={"email": "ghost@uni.edu", "password": "nope"})
    assert wrong.status_code == unknown.status_code == 401
    assert wrong.get_json() == unknown.get_json() == {"message": "Invalid email or password."}

    assert client.post("/api/auth/login", json={}).status_code == 400


def test_me_and_logout(auth_client):
    assert auth_client.get("/api/auth/me").get_json()["email"] == ADMIN_EMAIL
    assert auth_client.post("/api/auth/logout").status_code == 200
    assert auth_client.get("/api/auth/me").status_code == 401
    # Twice is fine
    assert auth_client.post("/api/auth/logout").status_code == 200


def test_disabled_account_cannot_log_in(auth_client, client):
    created = auth_client.post("/api/users", json=new_user(status="disabled")).get_json()
    assert created["status"] == "disabled"

    other = client.application.test_client()
    resp = other.post("/api/auth/login", json={"email": "grace@uni.edu", "password": "Cobol1959"})
    assert resp.status_code == 403


# =========================================================
# Own profile / password
# =========================================================
def test_profile_update_is_partial(viewer_client):
    resp = viewer_client.put("/api/user/profile", json={"firstName": "Victoria"})
    assert resp.status_code == 200
    user = resp.get_json()["user"]
    assert user["first_name"] == "Victoria"
    assert user["last_name"] == "Viewer"

    assert viewer_client.put("/api/user/profile", json={}).status_code == 400


def test_password_change_flow(app, viewer_client):
    wrong = viewer_client.put(
        "/api/user/password",
        json={"current_password": "bad", "new_password": "Newpass123", "confirm_password": "Newpass123"},
    )
    assert wrong.status_code == 400
    assert "current_password" in wrong.get_json()["errors"]

    mismatch = viewer_client.put(
        "/api/user/password",
        json={"current_password": VIEWER_PASSWORD, "new_password": "Newpass123", "confirm_password": "Other1234"},
    )
    assert mismatch.status_code == 400

    weak = viewer_client.put(
        "/api/user/password",
        json={"current_password": VIEWER_PASSWORD, "new_password": "onlyletters", "confirm_password": "onlyletters"},
    )
    assert weak.status_code == 400
    assert weak.get_json()["errors"]["new_password"] == ["Include at least one number."]

    ok = viewer_client.put(
        "/api/user/password",
        json={"currentPassword": VIEWER_PASSWORD, "newPassword": "Newpass123", "confirmPassword": "Newpass123"},
    )
    assert ok.status_code == 200

    fresh = app.test_client()
    assert fresh.post("/api/auth/login", json={"email": VIEWER_EMAIL, "password": VIEWER_PASSWORD}).status_code == 401
    login(fresh, VIEWER_EMAIL, "Newpass123")


# =========================================================
# User management
# =========================================================
def test_admin_creates_user_with_roles(auth_client, places):
    roles = {r["name"]: r["id"] for r in auth_client.get("/api/roles").get_json()["items"]}
    resp = auth_client.post(
        "/api/users",
        json=new_user(email="Grace@Uni.edu", section_id=places["section_a"], role_ids=[roles["viewer"]]),
    )
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["email"] == "grace@uni.edu"
    assert body["roles"] == ["viewer"]
    assert body["section"]["name"] == "Section A"

    members = auth_client.get(f"/api/sections/{places['section_a']}/users").get_json()["items"]
    assert [m["email"] for m in members] == ["grace@uni.edu"]


def test_viewer_cannot_manage_users(viewer_client):
    assert viewer_client.get("/api/users").status_code == 200
    resp = viewer_client.post("/api/users", json=new_user())
    assert resp.status_code == 403
    assert viewer_client.delete("/api/users/1").status_code == 403


def test_email_uniqueness_ignores_case(auth_client):
    assert auth_client.post("/api/users", json=new_user()).status_code == 201
    dup = auth_client.post("/api/users", json=new_user(email="GRACE@uni.edu"))
    assert dup.status_code == 409
    assert dup.get_json()["field"] == "email"


def test_create_user_validation(auth_client):
    resp = auth_client.post("/api/users", json=new_user(confirm_password="Different1"))
    assert resp.status_code == 400

    resp = auth_client.post("/api/users", json=new_user(email="not-an-email"))
    assert resp.status_code == 400
    assert "email" in resp.get_json()["errors"]

    resp = auth_client.post("/api/users", json=new_user(role_ids=[99]))
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "role_ids"


def test_delete_disables_and_hides_user(auth_client):
    user = auth_client.post("/api/users", json=new_user()).get_json()

    resp = auth_client.delete(f"/api/users/{user['id']}")
    assert resp.status_code == 200
    assert auth_client.get(f"/api/users/{user['id']}").status_code == 404
    emails = [u["email"] for u in auth_client.get("/api/users").get_json()["items"]]
    assert "grace@uni.edu" not in emails

    # The address can be reused by a new account
    assert auth_client.post("/api/users", json=new_user()).status_code == 201


def test_admin_cannot_delete_self(auth_client):
    me = auth_client.get("/api/auth/me").get_json()
    resp = auth_client.delete(f"/api/users/{me['id']}")
    assert resp.status_code == 409


def test_users_export_has_no_password_column(auth_client):
    resp = auth_client.post("/api/users/export/csv", json={})
    text = resp.data.decode("utf-8-sig")
    assert resp.status_code == 200
    assert text.splitlines()[0] == '"Name","Email","National ID","Status","Section","Roles","Last Login"'
    assert "scrypt" not in text
