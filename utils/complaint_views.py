"""List shaping for complaint pages: payload extraction, filters, sorting and counts."""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Optional

from flask import current_app, has_app_context

from models import Category, Complaint, ComplaintStatus, Priority, User
from utils.api_client import ApiResponse, Pagination

PERIODS: tuple[str, ...] = ("all", "today", "week", "month", "year")

TECHNICIAN_TABS: tuple[str, ...] = ("available", "assigned", "processing", "completed")


def extract_items(response: ApiResponse, key: str) -> tuple[list, Optional[Pagination]]:
    """Return the list under ``data[key]`` (or ``data`` itself) plus any pagination block."""
    data = response.data
    items: Any = []
    pagination = response.pagination
    if isinstance(data, dict):
        items = data.get(key) or []
        raw_pagination = data.get("pagination")
        if pagination is None and isinstance(raw_pagination, dict):
            pagination = ApiResponse.from_json({"pagination": raw_pagination}).pagination
    elif isinstance(data, list):
        items = data
    return list(items) if isinstance(items, list) else [], pagination


def extract_record(response: ApiResponse, key: str) -> Any:
    data = response.data
    if isinstance(data, dict) and isinstance(data.get(key), dict):
        return data[key]
    return data


def _warn(message: str, **extra: Any) -> None:
    if has_app_context():
        current_app.logger.warning(message, extra=extra)


def parse_complaints(items: Iterable[Any]) -> list[Complaint]:
    complaints = []
    for item in items:
        try:
            complaints.append(Complaint.from_payload(item))
        except ValueError as exc:
            _warn("Skipping malformed complaint payload", error=str(exc))
    return complaints


def parse_users(items: Iterable[Any]) -> list[User]:
    users = []
    for item in items:
        try:
            users.append(User.from_payload(item))
        except ValueError as exc:
            _warn("Skipping malformed user payload", error=str(exc))
    return users


def parse_categories(items: Iterable[Any]) -> list[Category]:
    return [Category.from_payload(item) for item in items if isinstance(item, dict) and item.get("name")]


def active_categories(categories: Iterable[Category]) -> list[Category]:
    return [category for category in categories if category.is_active and category.id]


def resolve_categories(complaints: Iterable[Complaint], categories: Iterable[Category]) -> list[Complaint]:
    """Attach the canonical id and name to each complaint's category where one matches."""
    categories = list(categories)
    if not categories:
        return list(complaints)
    return [replace(c, category=c.category.resolve(categories)) for c in complaints]


def filter_complaints(
    complaints: Iterable[Complaint],
    status: Optional[ComplaintStatus] = None,
    priority: Optional[Priority] = None,
    category: str = "",
    search: str = "",
) -> list[Complaint]:
    category_term = (category or "").strip().lower()
    search_term = (search or "").strip().lower()
    result = []
    for complaint in complaints:
        if status and complaint.status != status:
            continue
        if priority and complaint.priority != priority:
            continue
        if category_term and category_term not in complaint.category.name.lower():
            continue
        if search_term:
            haystack = (complaint.title, complaint.description, complaint.reporter_room)
            if not any(search_term in value.lower() for value in haystack):
                continue
        result.append(complaint)
    return result


def _timestamp(value: Optional[datetime]) -> float:
    if value is None:
        return 0.0
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


def sort_complaints(complaints: Iterable[Complaint], sort_by: str = "createdAt", order: str = "desc") -> list[Complaint]:
    reverse = order != "asc"
    if sort_by == "priority":
        return sorted(complaints, key=lambda c: c.priority.rank, reverse=reverse)
    if sort_by == "updatedAt":
        return sorted(complaints, key=lambda c: _timestamp(c.updated_at or c.created_at), reverse=reverse)
    return sorted(complaints, key=lambda c: _timestamp(c.created_at), reverse=reverse)


def count_by_status(complaints: Iterable[Complaint]) -> dict[ComplaintStatus, int]:
    counts = {status: 0 for status in ComplaintStatus}
    for complaint in complaints:
        counts[complaint.status] += 1
    return counts


def count_by_priority(complaints: Iterable[Complaint]) -> dict[Priority, int]:
    counts = {priority: 0 for priority in Priority}
    for complaint in complaints:
        counts[complaint.priority] += 1
    return counts


def count_by(complaints: Iterable[Complaint], key) -> dict[str, int]:
    counts: dict[str, int] = {}
    for complaint in complaints:
        label = key(complaint) or "Tidak diketahui"
        counts[label] = counts.get(label, 0) + 1
    return dict(sorted(counts.items(), key=lambda item: item[1], reverse=True))


def _local_now() -> datetime:
    return datetime.now(timezone.utc)


def is_today(value: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if value is None:
        return False
    now = now or _local_now()
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(now.tzinfo).date() == now.date()


def period_start(period: str, now: Optional[datetime] = None) -> Optional[datetime]:
    now = now or _local_now()
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "today":
        return midnight
    if period == "week":
        return midnight - timedelta(days=7)
    if period == "month":
        return midnight.replace(day=1)
    if period == "year":
        return midnight.replace(month=1, day=1)
    return None


def complaints_since(complaints: Iterable[Complaint], start: Optional[datetime]) -> list[Complaint]:
    if start is None:
        return list(complaints)
    floor = _timestamp(start)
    return [c for c in complaints if c.created_at is not None and _timestamp(c.created_at) >= floor]


def completion_rate(complaints: list[Complaint]) -> float:
    if not complaints:
        return 0.0
    done = sum(1 for c in complaints if c.status == ComplaintStatus.SELESAI)
    return round(done / len(complaints) * 100, 1)


def average_resolution_days(complaints: Iterable[Complaint]) -> float:
    durations = [
        _timestamp(c.updated_at or c.created_at) - _timestamp(c.created_at)
        for c in complaints
        if c.status == ComplaintStatus.SELESAI and c.created_at is not None
    ]
    if not durations:
        return 0.0
    return round(sum(durations) / len(durations) / 86400, 1)


def technician_buckets(complaints: Iterable[Complaint], technician_id: str) -> dict[str, list[Complaint]]:
    buckets: dict[str, list[Complaint]] = {tab: [] for tab in TECHNICIAN_TABS}
    for complaint in complaints:
        mine = complaint.assigned_to_id == technician_id
        if complaint.status == ComplaintStatus.DITERIMA and not complaint.is_assigned:
            buckets["available"].append(complaint)
        elif mine and complaint.status == ComplaintStatus.DITERIMA:
            buckets["assigned"].append(complaint)
        elif mine and complaint.status == ComplaintStatus.DIPROSES:
            buckets["processing"].append(complaint)
        elif mine and complaint.status == ComplaintStatus.SELESAI:
            buckets["completed"].append(complaint)
    return buckets


def technician_workload(technicians: Iterable[User], complaints: list[Complaint]) -> list[dict]:
    rows = []
    for technician in technicians:
        assigned = [c for c in complaints if c.assigned_to_id == technician.id]
        completed = sum(1 for c in assigned if c.status == ComplaintStatus.SELESAI)
        in_progress = sum(1 for c in assigned if c.status == ComplaintStatus.DIPROSES)
        rows.append(
            {
                "technician": technician,
                "total": len(assigned),
                "completed": completed,
                "in_progress": in_progress,
                "completion_rate": round(completed / len(assigned) * 100, 1) if assigned else 0.0,
                "available": in_progress == 0,
            }
        )
    return rows


def _int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def summarize_dashboard_stats(data: Any) -> dict:
    """Normalize the ``/admin/stats`` payload into plain counts keyed by enums."""
    data = data if isinstance(data, dict) else {}
    overview = data.get("overview") or {}
    charts = data.get("charts") or {}
    raw_status = overview.get("complaintsByStatus") or {}
    raw_priority = overview.get("complaintsByPriority") or {}

    monthly = []
    for row in charts.get("monthlyStats") or []:
        period = row.get("_id") or {}
        monthly.append(
            {
                "label": f"{_int(period.get('month')):02d}/{_int(period.get('year'))}",
                "count": _int(row.get("count")),
                "completed": _int(row.get("completed")),
            }
        )

    technicians = [
        {
            "username": str(row.get("username") or ""),
            "ruangan": str(row.get("ruangan") or ""),
            "total": _int(row.get("totalAssigned")),
            "completed": _int(row.get("completed")),
            "completion_rate": round(float(row.get("completionRate") or 0), 1),
        }
        for row in data.get("technicians") or []
        if isinstance(row, dict)
    ]

    return {
        "total": _int(overview.get("totalComplaints")),
        "by_status": {status: _int(raw_status.get(status.value)) for status in ComplaintStatus},
        "by_priority": {priority: _int(raw_priority.get(priority.value)) for priority in Priority},
        "monthly": monthly,
        "by_category": [
            {"name": str(row.get("_id") or "Tidak diketahui"), "count": _int(row.get("count"))}
            for row in charts.get("complaintsByCategory") or []
            if isinstance(row, dict)
        ],
        "technicians": technicians,
        "recent": parse_complaints(data.get("recentActivities") or []),
    }
