import os
import shutil
import sqlite3
import tempfile
import uuid

import pytest

# Point the app at a throwaway database and data directory before it is imported
TEST_DATA_DIR = tempfile.mkdtemp(prefix="foodshare-tests-")
TEST_DB_PATH = os.path.join(TEST_DATA_DIR, "test.db")

os.environ["ENV_MODE"] = "development"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{TEST_DB_PATH}"
os.environ["DATA_DIRECTORY"] = TEST_DATA_DIR
os.environ["JWT_SECRET"] = "test-secret-for-the-food-share-suite-0123456789"

from fastapi.testclient import TestClient  # noqa: E402

from app.main import app  # noqa: E402

STORAGE_DIR = os.path.join(TEST_DATA_DIR, "storage")


def _reset_state():
    if os.path.exists(TEST_DB_PATH):
        os.remove(TEST_DB_PATH)
    shutil.rmtree(STORAGE_DIR, ignore_errors=True)


@pytest.fixture
def client():
    _reset_state()
    with TestClient(app) as c:
        yield c
    _reset_state()


def auth(token):
    return {"Authorization": f"Bearer {token}"}


def make_user(client, first_name="Анна", last_name="Иванова", email=None, phone="+7 900 000-00-00"):
    """Sign up and register a user; returns a dict with id, email and auth headers."""
    email = email or f"user-{uuid.uuid4().hex[:8]}@example.com"
    r = client.post("/api/auth/signup", json={"email": email, "password": "secret123"})
    assert r.status_code == 201, r.text
    token = r.json()["access_token"]
    user_id = r.json()["user_id"]

    r = client.post(
        "/api/register",
        json={
            "id": user_id,
            "first_name": first_name,
            "last_name": last_name,
            "email": email,
            "phone": phone,
        },
        headers=auth(token),
    )
    assert r.status_code == 200, r.text
    return {"id": user_id, "email": email, "token": token, "headers": auth(token)}


def promote(user_id, is_admin=True):
    """Flip the admin flag directly in the database."""
    conn = sqlite3.connect(TEST_DB_PATH)
    try:
        conn.execute("UPDATE profiles SET is_admin = ? WHERE id = ?", (1 if is_admin else 0, user_id))
        conn.commit()
    finally:
        conn.close()


@pytest.fixture
def user(client):
    return make_user(client)


@pytest.fixture
def admin(client):
    a = make_user(client, first_name="Ольга", last_name="Админова")
    promote(a["id"])
    return a


@pytest.fixture
def products(client, admin):
    """Two products in one category; returns their ids."""
    r = client.post("/api/admin/categories", json={"name": "Крупы"}, headers=admin["headers"])
    assert r.status_code == 201, r.text
    category_id = r.json()["id"]

    ids = []
    for name, unit in [("Гречка", "кг"), ("Рис", "кг")]:
        r = client.post(
            "/api/admin/products",
            json={"name": name, "unit": unit, "category_id": category_id},
            headers=admin["headers"],
        )
        assert r.status_code == 201, r.text
        ids.append(r.json()["id"])
    return {"category_id": category_id, "ids": ids}
