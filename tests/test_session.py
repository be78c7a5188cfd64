import json
from unittest.mock import MagicMock, patch

import pytest
import requests
from flask import url_for

from extensions import api
from utils.api_client import ApiError
from conftest import USERS, ok


def api_reply(status_code, body):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body
    return response


def url(app, endpoint, **values):
    with app.test_request_context():
        return url_for(endpoint, **values)


def forget_validation(client):
    """Simulate a new browser session that still carries the persistent cookies."""
    with client.session_transaction() as sess:
        sess.clear()


@pytest.mark.parametrize(
    "role, endpoint",
    [
        ("ruangan", "ruangan.complaints"),
        ("simrs", "simrs.dashboard"),
        ("teknisi", "teknisi.tasks"),
        ("admin", "admin.dashboard"),
    ],
)
def test_login_persists_cookies_and_lands_on_role_home(app, client, role, endpoint):
    user = USERS[role]
    with patch.object(api, "login", return_value=ok({"user": user, "token": "tok-123"})) as login:
        response = client.post("/login", data={"username": user["username"], "password": "rahasia123"})

    login.assert_called_once_with(user["username"], "rahasia123")
    assert response.status_code == 302
    assert response.headers["Location"].endswith(url(app, endpoint))
    assert client.get_cookie("token").decoded_value == "tok-123"
    assert json.loads(client.get_cookie("user").decoded_value)["role"] == role


def test_login_ignores_external_next(app, client):
    user = USERS["ruangan"]
    with patch.object(api, "login", return_value=ok({"user": user, "token": "tok"})):
        response = client.post(
            "/login?next=http://evil.test/steal",
            data={"username": user["username"], "password": "rahasia123"},
        )
    assert "evil.test" not in response.headers["Location"]
    assert response.headers["Location"].endswith(url(app, "ruangan.complaints"))


def test_login_form_validation_happens_before_any_api_call(client):
    response = client.post("/login", data={"username": "ab", "password": "123"})

    assert response.status_code == 200
    assert "Username minimal 3 karakter" in response.get_data(as_text=True)
    assert "Password minimal 6 karakter" in response.get_data(as_text=True)


def test_wrong_credentials_show_server_message(client, no_network):
    no_network.side_effect = None
    no_network.return_value = api_reply(401, {"status": "error", "message": "Username atau password salah"})

    response = client.post("/login", data={"username": "icu", "password": "salahsalah"})

    assert response.status_code == 200
    assert response.get_data(as_text=True).count("Username atau password salah") == 1
    assert client.get_cookie("token") is None


def test_malformed_login_response_is_reported(client):
    with patch.object(api, "login", return_value=ok({"user": USERS["ruangan"]})):
        response = client.post("/login", data={"username": "icu", "password": "rahasia123"})

    assert response.status_code == 200
    assert "Respon server tidak valid." in response.get_data(as_text=True)


def test_anonymous_visitor_is_sent_to_login(client):
    response = client.get("/ruangan/complaints")

    assert response.status_code == 302
    assert "/login" in response.headers["Location"]


def test_bootstrap_revalidates_once_and_refreshes_user_cookie(client, login_as):
    login_as("ruangan")
    forget_validation(client)
    fresh = dict(USERS["ruangan"], ruangan="ICU Lantai 2")

    with patch.object(api, "get_profile", return_value=ok({"user": fresh})) as get_profile:
        client.get("/")
        client.get("/")

    get_profile.assert_called_once_with()
    assert json.loads(client.get_cookie("user").decoded_value)["ruangan"] == "ICU Lantai 2"
    assert client.get_cookie("token").decoded_value == "token-ruangan"


def test_bootstrap_with_rejected_token_clears_cookies(client, login_as, no_network):
    login_as("ruangan")
    forget_validation(client)
    no_network.side_effect = None
    no_network.return_value = api_reply(401, {"status": "error", "message": "Token tidak valid"})

    response = client.get("/ruangan/complaints")

    assert response.status_code == 302
    assert "/login" in response.headers["Location"]
    assert client.get_cookie("token") is None
    assert client.get_cookie("user") is None

    page = client.get("/login")
    assert "Sesi Anda telah berakhir" in page.get_data(as_text=True)


def test_bootstrap_network_failure_leaves_visitor_anonymous(client, login_as, no_network):
    login_as("teknisi")
    forget_validation(client)
    no_network.side_effect = requests.ConnectionError("connection refused")

    response = client.get("/")

    assert "/login" in response.headers["Location"]
    assert client.get_cookie("token") is None


def test_malformed_user_cookie_is_discarded(client):
    client.set_cookie("token", "tok")
    client.set_cookie("user", "not-json")

    response = client.get("/")

    assert "/login" in response.headers["Location"]
    assert client.get_cookie("token") is None
    assert client.get_cookie("user") is None


def test_edited_user_cookie_cannot_change_role(app, client, login_as):
    login_as("teknisi")
    client.set_cookie("user", json.dumps(dict(USERS["teknisi"], role="admin")))

    with patch.object(api, "get_profile") as get_profile, patch.object(api, "get_dashboard_stats") as stats:
        response = client.get("/admin/dashboard")

    assert response.headers["Location"].endswith(url(app, "main.unauthorized"))
    get_profile.assert_not_called()
    stats.assert_not_called()
    assert json.loads(client.get_cookie("user").decoded_value)["role"] == "teknisi"


def test_unauthorized_response_mid_session_logs_out(client, login_as, no_network):
    login_as("ruangan")
    no_network.side_effect = None
    no_network.return_value = api_reply(401, {"status": "error", "message": "Token kedaluwarsa"})

    response = client.get("/ruangan/complaints")

    assert response.status_code == 302
    assert "/login" in response.headers["Location"]
    assert client.get_cookie("token") is None
    assert response.headers["X-Frame-Options"] == "DENY"


def test_logout_is_local_and_clears_cookies(app, client, login_as):
    login_as("simrs")

    response = client.post("/logout")

    assert response.headers["Location"].endswith(url(app, "auth.login"))
    assert client.get_cookie("token") is None
    assert client.get_cookie("user") is None
    assert "/login" in client.get("/simrs/dashboard").headers["Location"]


def test_clear_auth_wipes_cookies(client, login_as):
    login_as("admin")

    response = client.get("/clear-auth")

    assert response.status_code == 302
    assert client.get_cookie("token") is None
    assert "Data autentikasi telah dihapus." in client.get("/login").get_data(as_text=True)


def test_register_cannot_pick_admin_role(client):
    response = client.post(
        "/register",
        data={
            "username": "penyusup",
            "ruangan": "Gudang",
            "role": "admin",
            "password": "rahasia123",
            "confirm_password": "rahasia123",
        },
    )

    assert response.status_code == 200
    assert client.get_cookie("token") is None


def test_register_signs_in_and_lands_on_role_home(app, client):
    user = USERS["teknisi"]
    with patch.object(api, "register", return_value=ok({"user": user, "token": "tok-new"})) as register:
        response = client.post(
            "/register",
            data={
                "username": user["username"],
                "ruangan": user["ruangan"],
                "role": "teknisi",
                "password": "rahasia123",
                "confirm_password": "rahasia123",
            },
        )

    register.assert_called_once_with(
        {"username": "budi", "password": "rahasia123", "ruangan": "IPSRS", "role": "teknisi"}
    )
    assert response.headers["Location"].endswith(url(app, "teknisi.tasks"))
    assert client.get_cookie("token").decoded_value == "tok-new"


def test_register_flashes_each_validation_error(client):
    error = ApiError("Validasi gagal", 400, ["Username sudah digunakan"])
    with patch.object(api, "register", side_effect=error):
        response = client.post(
            "/register",
            data={
                "username": "icu",
                "ruangan": "ICU",
                "role": "ruangan",
                "password": "rahasia123",
                "confirm_password": "rahasia123",
            },
        )

    assert "Username sudah digunakan" in response.get_data(as_text=True)


def test_profile_update_refreshes_user_cookie(client, login_as):
    login_as("ruangan")
    renamed = dict(USERS["ruangan"], username="icu-baru")

    with patch.object(api, "update_profile", return_value=ok()) as update_profile, patch.object(
        api, "get_profile", return_value=ok({"user": renamed})
    ):
        response = client.post("/profile", data={"name": "icu-baru"})

    update_profile.assert_called_once_with("icu-baru")
    assert response.status_code == 302
    assert json.loads(client.get_cookie("user").decoded_value)["username"] == "icu-baru"

    client.set_cookie("user", json.dumps(USERS["ruangan"]))
    client.get("/profile")
    assert json.loads(client.get_cookie("user").decoded_value)["username"] == "icu-baru"


def test_wrong_role_is_sent_to_unauthorized_page(app, client, login_as):
    login_as("ruangan")

    response = client.get("/admin/users")

    assert response.headers["Location"].endswith(url(app, "main.unauthorized"))
    page = client.get("/unauthorized")
    assert page.status_code == 403
    assert "Akses Ditolak" in page.get_data(as_text=True)


def test_security_headers_on_every_page(client):
    response = client.get("/login")

    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert "frame-ancestors 'none'" in response.headers["Content-Security-Policy"]


def test_profile_update_with_expired_token_shows_one_message(client, login_as, no_network):
    login_as("ruangan")
    no_network.side_effect = None
    no_network.return_value = api_reply(401, {"status": "error", "message": "Token kedaluwarsa"})

    response = client.post("/profile", data={"name": "icu-baru"})

    assert "/login" in response.headers["Location"]
    body = client.get("/login").get_data(as_text=True)
    assert "Sesi Anda telah berakhir" in body
    assert "Token kedaluwarsa" not in body
