from datetime import datetime, timezone

from models import Category, Complaint, ComplaintStatus, Priority, User
from utils.api_client import ApiResponse
from utils.complaint_views import (
    average_resolution_days,
    complaints_since,
    completion_rate,
    count_by,
    count_by_status,
    extract_items,
    extract_record,
    filter_complaints,
    is_today,
    parse_complaints,
    period_start,
    resolve_categories,
    sort_complaints,
    summarize_dashboard_stats,
    technician_buckets,
    technician_workload,
)
from conftest import USERS, complaint_payload


def make(**overrides):
    return Complaint.from_payload(complaint_payload(**overrides))


def test_extract_items_reads_nested_key_and_inner_pagination():
    response = ApiResponse(
        status="success",
        data={"complaints": [complaint_payload()], "pagination": {"page": 1, "pages": 4, "total": 40}},
    )
    items, pagination = extract_items(response, "complaints")
    assert len(items) == 1
    assert pagination.pages == 4

    bare, none = extract_items(ApiResponse(status="success", data=[1, 2]), "complaints")
    assert bare == [1, 2]
    assert none is None


def test_extract_record_unwraps_named_object():
    response = ApiResponse(status="success", data={"complaint": {"_id": "c-9"}})
    assert extract_record(response, "complaint") == {"_id": "c-9"}
    assert extract_record(ApiResponse(status="success", data={"_id": "c-9"}), "complaint") == {"_id": "c-9"}


def test_parse_complaints_skips_malformed_items():
    complaints = parse_complaints([complaint_payload(), {"title": "tanpa id"}, complaint_payload(status="?")])
    assert [c.id for c in complaints] == ["c-1"]


def test_resolve_categories_fills_names_for_bare_ids():
    categories = [Category(id="cat-ac", name="AC")]
    resolved = resolve_categories([make(category="cat-ac")], categories)
    assert resolved[0].category.name == "AC"


def test_filter_by_status_priority_category_and_search():
    complaints = [
        make(_id="a", title="AC bocor", priority="high"),
        make(_id="b", title="Lampu mati", category={"_id": "cat-listrik", "name": "Listrik"}, priority="low"),
        make(_id="c", title="AC berisik", status="Selesai", priority="medium"),
    ]
    assert [c.id for c in filter_complaints(complaints, status=ComplaintStatus.SELESAI)] == ["c"]
    assert [c.id for c in filter_complaints(complaints, priority=Priority.LOW)] == ["b"]
    assert [c.id for c in filter_complaints(complaints, category="listrik")] == ["b"]
    assert [c.id for c in filter_complaints(complaints, search="  BOCOR ")] == ["a"]
    assert [c.id for c in filter_complaints(complaints, search="icu")] == ["a", "b", "c"]


def test_sort_by_priority_and_dates():
    complaints = [
        make(_id="old", priority="low", createdAt="2026-09-01T00:00:00Z", updatedAt="2026-10-05T00:00:00Z"),
        make(_id="new", priority="high", createdAt="2026-10-02T00:00:00Z", updatedAt="2026-10-02T00:00:00Z"),
        make(_id="mid", priority="medium", createdAt="2026-09-15T00:00:00Z", updatedAt=None),
    ]
    assert [c.id for c in sort_complaints(complaints)] == ["new", "mid", "old"]
    assert [c.id for c in sort_complaints(complaints, order="asc")] == ["old", "mid", "new"]
    assert [c.id for c in sort_complaints(complaints, "priority")] == ["new", "mid", "old"]
    assert [c.id for c in sort_complaints(complaints, "updatedAt")] == ["old", "new", "mid"]


def test_counts_cover_every_status():
    counts = count_by_status([make(), make(status="Selesai"), make(status="Selesai")])
    assert counts[ComplaintStatus.SELESAI] == 2
    assert counts[ComplaintStatus.DIPROSES] == 0
    assert set(counts) == set(ComplaintStatus)

    by_category = count_by([make(), make(category=None)], key=lambda c: c.category.name)
    assert by_category == {"AC": 1, "Tidak diketahui": 1}


def test_today_and_periods_use_the_given_clock():
    now = datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc)
    assert is_today(datetime(2026, 10, 18, 1, 0, tzinfo=timezone.utc), now)
    assert not is_today(datetime(2026, 10, 17, 23, 0, tzinfo=timezone.utc), now)
    assert not is_today(None, now)
    assert period_start("month", now) == datetime(2026, 10, 1, tzinfo=timezone.utc)
    assert period_start("year", now) == datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert period_start("week", now) == datetime(2026, 10, 11, tzinfo=timezone.utc)
    assert period_start("all", now) is None


def test_complaints_since_and_rates():
    complaints = [
        make(_id="a", status="Selesai", createdAt="2026-10-01T00:00:00Z", updatedAt="2026-10-03T00:00:00Z"),
        make(_id="b", createdAt="2026-09-01T00:00:00Z"),
    ]
    since = complaints_since(complaints, datetime(2026, 9, 15, tzinfo=timezone.utc))
    assert [c.id for c in since] == ["a"]
    assert completion_rate(complaints) == 50.0
    assert completion_rate([]) == 0.0
    assert average_resolution_days(complaints) == 2.0


def test_technician_buckets_split_by_state():
    complaints = [
        make(_id="open", status="Diterima SIM RS"),
        make(_id="mine", status="Diterima SIM RS", assignedTo=USERS["teknisi"]),
        make(_id="theirs", status="Diterima SIM RS", assignedTo=USERS["teknisi2"]),
        make(_id="work", status="Diproses Teknisi", assignedTo=USERS["teknisi"]),
        make(_id="done", status="Selesai", assignedTo=USERS["teknisi"]),
    ]
    buckets = technician_buckets(complaints, "u-teknisi")
    assert {tab: [c.id for c in items] for tab, items in buckets.items()} == {
        "available": ["open"],
        "assigned": ["mine"],
        "processing": ["work"],
        "completed": ["done"],
    }


def test_technician_workload_marks_busy_technicians():
    technicians = [User.from_payload(USERS["teknisi"]), User.from_payload(USERS["teknisi2"])]
    complaints = [
        make(_id="work", status="Diproses Teknisi", assignedTo=USERS["teknisi"]),
        make(_id="done", status="Selesai", assignedTo=USERS["teknisi"]),
    ]
    rows = technician_workload(technicians, complaints)
    assert rows[0]["total"] == 2
    assert rows[0]["completion_rate"] == 50.0
    assert rows[0]["available"] is False
    assert rows[1]["total"] == 0
    assert rows[1]["available"] is True


def test_summarize_dashboard_stats_tolerates_partial_payloads():
    summary = summarize_dashboard_stats(
        {
            "overview": {
                "totalComplaints": "12",
                "complaintsByStatus": {"Selesai": 5, "Diproses Teknisi": 2},
                "complaintsByPriority": {"high": 3},
            },
            "charts": {
                "monthlyStats": [{"_id": {"year": 2026, "month": 9}, "count": 7, "completed": 4}],
                "complaintsByCategory": [{"_id": "AC", "count": 6}, {"_id": None, "count": 1}],
            },
            "technicians": [{"username": "budi", "totalAssigned": 4, "completed": 3, "completionRate": 75}],
            "recentActivities": [complaint_payload()],
        }
    )
    assert summary["total"] == 12
    assert summary["by_status"][ComplaintStatus.SELESAI] == 5
    assert summary["by_status"][ComplaintStatus.DITOLAK] == 0
    assert summary["by_priority"][Priority.HIGH] == 3
    assert summary["monthly"] == [{"label": "09/2026", "count": 7, "completed": 4}]
    assert summary["by_category"][1] == {"name": "Tidak diketahui", "count": 1}
    assert summary["technicians"][0]["completion_rate"] == 75.0
    assert [c.id for c in summary["recent"]] == ["c-1"]

    empty = summarize_dashboard_stats(None)
    assert empty["total"] == 0
    assert empty["recent"] == []
