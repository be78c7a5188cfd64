from unittest.mock import patch

import pytest

from extensions import api
from utils.api_client import ApiError
from conftest import USERS, complaint_payload, ok


@pytest.fixture
def simrs(client, login_as, categories_api):
    login_as("simrs")
    return client


@pytest.fixture
def pending():
    with patch.object(api, "get_complaint", return_value=ok({"complaint": complaint_payload()})) as mocked:
        yield mocked


def complaint_list():
    return [
        complaint_payload(_id="c-1", title="AC bocor di ICU"),
        complaint_payload(_id="c-2", title="Lampu koridor mati", priority="low", category="Listrik"),
        complaint_payload(_id="c-3", title="Pompa air berisik", status="Selesai", priority="medium"),
    ]


def test_dashboard_highlights_high_priority_pending(simrs):
    with patch.object(api, "get_complaints", return_value=ok({"complaints": complaint_list()})):
        response = simrs.get("/simrs/dashboard")

    body = response.get_data(as_text=True)
    assert response.status_code == 200
    assert "Prioritas Tinggi Menunggu Verifikasi" in body
    assert "AC bocor di ICU" in body
    assert "Listrik: 1" in body


def test_complaints_filters_locally(simrs):
    with patch.object(api, "get_complaints", return_value=ok({"complaints": complaint_list()})):
        response = simrs.get("/simrs/complaints?priority=low&search=lampu")

    body = response.get_data(as_text=True)
    assert "Lampu koridor mati" in body
    assert "AC bocor di ICU" not in body
    assert "1 dari 3 aduan" in body


def test_unknown_filter_values_are_ignored(simrs):
    with patch.object(api, "get_complaints", return_value=ok({"complaints": complaint_list()})):
        response = simrs.get("/simrs/complaints?status=Hilang&sort=judul")

    assert "3 dari 3 aduan" in response.get_data(as_text=True)


def test_detail_offers_approve_and_reject(simrs, pending):
    response = simrs.get("/simrs/complaints/c-1")

    body = response.get_data(as_text=True)
    assert "Terima Aduan" in body
    assert "Tolak Aduan" in body
    assert 'http-equiv="refresh"' not in body
    assert "Muat ulang halaman" in body


def test_approve_sends_verify_payload(simrs, pending):
    with patch.object(api, "verify_complaint", return_value=ok()) as verify:
        response = simrs.post("/simrs/complaints/c-1/approve", data={"notes": "Segera ditangani"})

    verify.assert_called_once_with(
        "c-1", {"action": "approve", "status": "Diterima SIM RS", "notes": "Segera ditangani"}
    )
    assert response.headers["Location"].endswith("/simrs/complaints/c-1")
    assert "Aduan berhasil diterima!" in simrs.get("/simrs/complaints/c-1").get_data(as_text=True)


def test_reject_requires_reason(simrs, pending):
    with patch.object(api, "verify_complaint") as verify:
        response = simrs.post("/simrs/complaints/c-1/reject", data={"rejection_reason": "  ", "notes": ""})

    verify.assert_not_called()
    assert response.headers["Location"].endswith("/simrs/complaints/c-1")
    assert "Alasan penolakan wajib diisi." in simrs.get("/simrs/complaints/c-1").get_data(as_text=True)


def test_reject_sends_reason(simrs, pending):
    with patch.object(api, "verify_complaint", return_value=ok()) as verify:
        simrs.post(
            "/simrs/complaints/c-1/reject",
            data={"rejection_reason": "Bukan wewenang IPSRS", "notes": "Hubungi vendor"},
        )

    verify.assert_called_once_with(
        "c-1",
        {
            "action": "reject",
            "status": "Ditolak SIM RS",
            "notes": "Hubungi vendor",
            "rejectionReason": "Bukan wewenang IPSRS",
        },
    )


def test_already_verified_complaint_is_not_sent(simrs):
    accepted = complaint_payload(status="Diterima SIM RS")
    with patch.object(api, "get_complaint", return_value=ok({"complaint": accepted})), patch.object(
        api, "verify_complaint"
    ) as verify:
        response = simrs.post("/simrs/complaints/c-1/approve", data={"notes": ""})

    verify.assert_not_called()
    assert response.status_code == 302


def test_verify_api_failure_is_flashed(simrs, pending):
    with patch.object(api, "verify_complaint", side_effect=ApiError("Aduan sudah diverifikasi", 400)):
        simrs.post("/simrs/complaints/c-1/approve", data={"notes": ""})

    assert "Aduan sudah diverifikasi" in simrs.get("/simrs/complaints/c-1").get_data(as_text=True)


def test_technicians_page_shows_workload(simrs):
    technicians = [USERS["teknisi"], USERS["teknisi2"], USERS["ruangan"]]
    complaints = [
        complaint_payload(_id="c-5", status="Diproses Teknisi", assignedTo=USERS["teknisi"]),
        complaint_payload(_id="c-6", status="Selesai", assignedTo=USERS["teknisi"]),
    ]
    with patch.object(api, "get_technicians", return_value=ok({"users": technicians})), patch.object(
        api, "get_complaints", return_value=ok({"complaints": complaints})
    ):
        response = simrs.get("/simrs/technicians")

    body = response.get_data(as_text=True)
    assert "budi" in body
    assert "andi" in body
    assert "50.0%" in body
    assert "Sibuk" in body
    assert ">icu<" not in body
