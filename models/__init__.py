"""Domain records mirrored from the complaint API: users, categories, complaints."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Optional


class Role(str, Enum):
    RUANGAN = "ruangan"
    SIMRS = "simrs"
    TEKNISI = "teknisi"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: Any) -> "Role":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            raise ValueError(f"Unknown role: {value!r}") from None


ROLE_LABELS: dict[Role, str] = {
    Role.RUANGAN: "Ruangan",
    Role.SIMRS: "SIM RS",
    Role.TEKNISI: "Teknisi",
    Role.ADMIN: "Administrator",
}


class ComplaintStatus(str, Enum):
    """Wire values are the API's own status strings."""

    MENUNGGU_VERIFIKASI = "Menunggu Verifikasi"
    DITOLAK = "Ditolak SIM RS"
    DITERIMA = "Diterima SIM RS"
    DIPROSES = "Diproses Teknisi"
    SELESAI = "Selesai"

    @classmethod
    def parse(cls, value: Any) -> "ComplaintStatus":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip())
        except ValueError:
            raise ValueError(f"Unknown complaint status: {value!r}") from None

    @property
    def is_terminal(self) -> bool:
        return self in (ComplaintStatus.DITOLAK, ComplaintStatus.SELESAI)


STATUS_LABELS: dict[ComplaintStatus, str] = {
    ComplaintStatus.MENUNGGU_VERIFIKASI: "Menunggu Verifikasi",
    ComplaintStatus.DITOLAK: "Ditolak",
    ComplaintStatus.DITERIMA: "Diterima",
    ComplaintStatus.DIPROSES: "Sedang Diproses",
    ComplaintStatus.SELESAI: "Selesai",
}

STATUS_BADGES: dict[ComplaintStatus, str] = {
    ComplaintStatus.MENUNGGU_VERIFIKASI: "badge-pending",
    ComplaintStatus.DITOLAK: "badge-rejected",
    ComplaintStatus.DITERIMA: "badge-approved",
    ComplaintStatus.DIPROSES: "badge-processing",
    ComplaintStatus.SELESAI: "badge-completed",
}


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value: Any) -> "Priority":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            raise ValueError(f"Unknown priority: {value!r}") from None

    @property
    def rank(self) -> int:
        return PRIORITY_ORDER[self]


PRIORITY_ORDER: dict[Priority, int] = {Priority.LOW: 1, Priority.MEDIUM: 2, Priority.HIGH: 3}

PRIORITY_LABELS: dict[Priority, str] = {
    Priority.LOW: "Rendah",
    Priority.MEDIUM: "Sedang",
    Priority.HIGH: "Tinggi",
}

PRIORITY_BADGES: dict[Priority, str] = {
    Priority.LOW: "priority-low",
    Priority.MEDIUM: "priority-medium",
    Priority.HIGH: "priority-high",
}


def parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _record_id(data: dict) -> str:
    return str(data.get("_id") or data.get("id") or "")


@dataclass(frozen=True)
class User:
    id: str
    username: str
    ruangan: str
    role: Role
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    raw: dict = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_payload(cls, data: Any) -> "User":
        if not isinstance(data, dict):
            raise ValueError("User payload must be an object")
        user_id = _record_id(data)
        username = data.get("username")
        if not user_id or not username:
            raise ValueError("User payload is missing id or username")
        return cls(
            id=user_id,
            username=str(username),
            ruangan=str(data.get("ruangan") or ""),
            role=Role.parse(data.get("role")),
            created_at=parse_datetime(data.get("createdAt")),
            updated_at=parse_datetime(data.get("updatedAt")),
            raw=dict(data),
        )

    def to_payload(self) -> dict:
        payload = dict(self.raw)
        payload.update(
            {
                "_id": self.id,
                "username": self.username,
                "ruangan": self.ruangan,
                "role": self.role.value,
            }
        )
        return payload

    @property
    def role_label(self) -> str:
        return ROLE_LABELS[self.role]


@dataclass(frozen=True)
class CategoryRef:
    """A complaint's category, always carrying an id and a display name.

    Older complaints store the category as a bare string; that string then
    serves as both id and name until it is resolved against the category list.
    """

    id: str
    name: str

    @classmethod
    def from_payload(cls, value: Any) -> "CategoryRef":
        if isinstance(value, dict):
            name = str(value.get("name") or "")
            return cls(id=_record_id(value) or name, name=name)
        if isinstance(value, str):
            return cls(id=value, name=value)
        return cls(id="", name="")

    def resolve(self, categories: Iterable["Category"]) -> "CategoryRef":
        for category in categories:
            if category.id == self.id:
                return CategoryRef(id=category.id, name=category.name)
        wanted = self.name.strip().lower()
        if wanted:
            for category in categories:
                if category.name.strip().lower() == wanted:
                    return CategoryRef(id=category.id, name=category.name)
        return self

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    description: str = ""
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_payload(cls, data: dict) -> "Category":
        return cls(
            id=_record_id(data),
            name=str(data.get("name") or ""),
            description=str(data.get("description") or ""),
            is_active=bool(data.get("isActive", True)),
            created_at=parse_datetime(data.get("createdAt")),
            updated_at=parse_datetime(data.get("updatedAt")),
        )


def _optional_user(value: Any) -> Optional[User]:
    if isinstance(value, dict):
        try:
            return User.from_payload(value)
        except ValueError:
            return None
    return None


def _ref_id(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        return _record_id(value) or None
    if isinstance(value, str) and value:
        return value
    return None


@dataclass(frozen=True)
class Complaint:
    id: str
    title: str
    description: str
    category: CategoryRef
    priority: Priority
    status: ComplaintStatus
    created_by_id: Optional[str] = None
    created_by: Optional[User] = None
    verified_by: Optional[User] = None
    assigned_to_id: Optional[str] = None
    assigned_to: Optional[User] = None
    attachment: Optional[str] = None
    notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    process_notes: Optional[str] = None
    completion_notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_payload(cls, data: Any) -> "Complaint":
        if not isinstance(data, dict):
            raise ValueError("Complaint payload must be an object")
        complaint_id = _record_id(data)
        if not complaint_id:
            raise ValueError("Complaint payload is missing an id")
        return cls(
            id=complaint_id,
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            category=CategoryRef.from_payload(data.get("category")),
            priority=Priority.parse(data.get("priority") or Priority.MEDIUM.value),
            status=ComplaintStatus.parse(data.get("status")),
            created_by_id=_ref_id(data.get("createdBy")),
            created_by=_optional_user(data.get("createdBy")),
            verified_by=_optional_user(data.get("verifiedBy")),
            assigned_to_id=_ref_id(data.get("assignedTo")),
            assigned_to=_optional_user(data.get("assignedTo")),
            attachment=data.get("attachment") or None,
            notes=data.get("notes") or None,
            rejection_reason=data.get("rejectionReason") or None,
            process_notes=data.get("processNotes") or None,
            completion_notes=data.get("completionNotes") or None,
            created_at=parse_datetime(data.get("createdAt")),
            updated_at=parse_datetime(data.get("updatedAt")),
        )

    @property
    def is_assigned(self) -> bool:
        return bool(self.assigned_to_id)

    @property
    def reporter_room(self) -> str:
        return self.created_by.ruangan if self.created_by else ""

    @property
    def status_label(self) -> str:
        return STATUS_LABELS[self.status]

    @property
    def priority_label(self) -> str:
        return PRIORITY_LABELS[self.priority]


__all__ = [
    "Category",
    "CategoryRef",
    "Complaint",
    "ComplaintStatus",
    "PRIORITY_BADGES",
    "PRIORITY_LABELS",
    "PRIORITY_ORDER",
    "Priority",
    "ROLE_LABELS",
    "Role",
    "STATUS_BADGES",
    "STATUS_LABELS",
    "User",
    "parse_datetime",
]
