"""Complaint lifecycle: legal transitions, who may trigger them, and required notes.

The API is the authority on every transition. These checks run before a
request is sent so that illegal actions are never offered in a page and
never reach the wire from a stale form.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional

from models import Complaint, ComplaintStatus, Role, User


class Action(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    CLAIM = "claim"
    BEGIN_WORK = "begin_work"
    FINISH = "finish"
    EDIT = "edit"
    DELETE = "delete"


class WorkflowError(Exception):
    """Raised when an action cannot be applied to a complaint."""


class ActionNotAllowed(WorkflowError):
    """Wrong role, wrong owner, wrong status, or already claimed by someone else."""


class NotesRequired(WorkflowError):
    """A note the transition depends on was left empty."""


ACTION_ROLES: dict[Action, Role] = {
    Action.APPROVE: Role.SIMRS,
    Action.REJECT: Role.SIMRS,
    Action.CLAIM: Role.TEKNISI,
    Action.BEGIN_WORK: Role.TEKNISI,
    Action.FINISH: Role.TEKNISI,
    Action.EDIT: Role.RUANGAN,
    Action.DELETE: Role.RUANGAN,
}

ACTION_SOURCE: dict[Action, ComplaintStatus] = {
    Action.APPROVE: ComplaintStatus.MENUNGGU_VERIFIKASI,
    Action.REJECT: ComplaintStatus.MENUNGGU_VERIFIKASI,
    Action.CLAIM: ComplaintStatus.DITERIMA,
    Action.BEGIN_WORK: ComplaintStatus.DITERIMA,
    Action.FINISH: ComplaintStatus.DIPROSES,
    Action.EDIT: ComplaintStatus.MENUNGGU_VERIFIKASI,
    Action.DELETE: ComplaintStatus.MENUNGGU_VERIFIKASI,
}

# Claim and edit keep the status; delete removes the record.
ACTION_TARGET: dict[Action, Optional[ComplaintStatus]] = {
    Action.APPROVE: ComplaintStatus.DITERIMA,
    Action.REJECT: ComplaintStatus.DITOLAK,
    Action.CLAIM: ComplaintStatus.DITERIMA,
    Action.BEGIN_WORK: ComplaintStatus.DIPROSES,
    Action.FINISH: ComplaintStatus.SELESAI,
    Action.EDIT: ComplaintStatus.MENUNGGU_VERIFIKASI,
    Action.DELETE: None,
}

NOTE_FIELDS: dict[Action, str] = {
    Action.REJECT: "alasan penolakan",
    Action.BEGIN_WORK: "catatan proses",
    Action.FINISH: "catatan penyelesaian",
}

STATUS_SUCCESSORS: dict[ComplaintStatus, tuple[ComplaintStatus, ...]] = {
    ComplaintStatus.MENUNGGU_VERIFIKASI: (ComplaintStatus.DITERIMA, ComplaintStatus.DITOLAK),
    ComplaintStatus.DITERIMA: (ComplaintStatus.DIPROSES,),
    ComplaintStatus.DIPROSES: (ComplaintStatus.SELESAI,),
    ComplaintStatus.DITOLAK: (),
    ComplaintStatus.SELESAI: (),
}


def next_status(action: Action) -> Optional[ComplaintStatus]:
    return ACTION_TARGET[action]


def is_legal_step(current: ComplaintStatus, target: ComplaintStatus) -> bool:
    return target in STATUS_SUCCESSORS[current]


def path_to(target: ComplaintStatus) -> tuple[ComplaintStatus, ...]:
    """Return the only sequence of statuses that ends in ``target``."""
    path = [target]
    while path[0] != ComplaintStatus.MENUNGGU_VERIFIKASI:
        previous = next(status for status, successors in STATUS_SUCCESSORS.items() if path[0] in successors)
        path.insert(0, previous)
    return tuple(path)


def check_action(complaint: Complaint, action: Action, actor: Optional[User], notes: Optional[str] = None) -> None:
    """Raise ``WorkflowError`` unless ``actor`` may apply ``action`` to ``complaint`` right now."""
    if actor is None:
        raise ActionNotAllowed("Silakan login terlebih dahulu.")

    if actor.role != ACTION_ROLES[action]:
        raise ActionNotAllowed("Anda tidak memiliki akses untuk tindakan ini.")

    if action in (Action.EDIT, Action.DELETE):
        if complaint.created_by_id != actor.id:
            raise ActionNotAllowed("Anda tidak berhak mengubah aduan ini.")
        if complaint.status != ComplaintStatus.MENUNGGU_VERIFIKASI:
            raise ActionNotAllowed("Aduan yang sudah diverifikasi tidak dapat diubah atau dihapus.")
        return

    if complaint.status != ACTION_SOURCE[action]:
        raise ActionNotAllowed(
            f"Aduan berstatus '{complaint.status.value}' tidak dapat diproses dengan tindakan ini."
        )

    if action == Action.CLAIM:
        if complaint.is_assigned:
            raise ActionNotAllowed("Aduan sudah diambil oleh teknisi lain.")
    elif action in (Action.BEGIN_WORK, Action.FINISH):
        if complaint.assigned_to_id != actor.id:
            raise ActionNotAllowed("Aduan ini tidak ditugaskan kepada Anda.")

    if action in NOTE_FIELDS and not (notes or "").strip():
        raise NotesRequired(f"{NOTE_FIELDS[action].capitalize()} wajib diisi.")


def is_allowed(complaint: Complaint, action: Action, actor: Optional[User]) -> bool:
    """Whether ``action`` should be offered; note requirements are checked on submit."""
    try:
        check_action(complaint, action, actor, notes="-")
    except WorkflowError:
        return False
    return True


def allowed_actions(complaint: Complaint, actor: Optional[User]) -> set[Action]:
    return {action for action in Action if is_allowed(complaint, action, actor)}
