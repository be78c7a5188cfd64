import os
import tempfile
from unittest.mock import patch

os.environ.setdefault("FLASK_CONFIG", "testing")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="portal-test-logs-"))

import pytest  # noqa: E402

from app import create_app  # noqa: E402
from extensions import api  # noqa: E402
from utils.api_client import ApiResponse, Pagination  # noqa: E402

USERS = {
    "ruangan": {"_id": "u-ruangan", "username": "icu", "ruangan": "ICU", "role": "ruangan"},
    "ruangan2": {"_id": "u-ruangan-2", "username": "igd", "ruangan": "IGD", "role": "ruangan"},
    "simrs": {"_id": "u-simrs", "username": "simrs", "ruangan": "SIM RS", "role": "simrs"},
    "teknisi": {"_id": "u-teknisi", "username": "budi", "ruangan": "IPSRS", "role": "teknisi"},
    "teknisi2": {"_id": "u-teknisi-2", "username": "andi", "ruangan": "IPSRS", "role": "teknisi"},
    "admin": {"_id": "u-admin", "username": "admin", "ruangan": "Manajemen", "role": "admin"},
}

CATEGORIES = [
    {"_id": "cat-ac", "name": "AC", "description": "Pendingin ruangan", "isActive": True},
    {"_id": "cat-listrik", "name": "Listrik", "description": "", "isActive": True},
    {"_id": "cat-lama", "name": "Telepon", "description": "Sudah tidak dipakai", "isActive": False},
]


def ok(data=None, message="OK", pagination=None):
    return ApiResponse(status="success", message=message, data=data, pagination=pagination)


def page(page_number=1, pages=1, total=0, limit=10):
    return Pagination(page=page_number, limit=limit, total=total, pages=pages)


def complaint_payload(**overrides):
    payload = {
        "_id": "c-1",
        "title": "AC bocor di ICU",
        "description": "AC di ruang ICU meneteskan air sejak pagi.",
        "category": {"_id": "cat-ac", "name": "AC"},
        "priority": "high",
        "status": "Menunggu Verifikasi",
        "createdBy": USERS["ruangan"],
        "createdAt": "2026-10-01T08:00:00.000Z",
        "updatedAt": "2026-10-01T08:00:00.000Z",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def app():
    app = create_app("testing")
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture(autouse=True)
def no_network():
    """Any call that reaches the HTTP layer without being mocked fails the test."""
    with patch.object(api.http, "request", side_effect=AssertionError("unexpected API call")) as mocked:
        yield mocked


@pytest.fixture
def categories_api():
    with patch.object(api, "get_categories", return_value=ok({"categories": CATEGORIES})) as mocked:
        yield mocked


@pytest.fixture
def login_as(client):
    def _login(role):
        user = USERS[role]
        with patch.object(api, "login", return_value=ok({"user": user, "token": f"token-{role}"})):
            response = client.post("/login", data={"username": user["username"], "password": "rahasia123"})
        assert response.status_code == 302
        return user

    return _login
