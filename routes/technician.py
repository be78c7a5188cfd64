"""Technician blueprint: claim accepted complaints, work on them, and close them out."""
from flask import Blueprint, current_app, flash, redirect, render_template, request, url_for
from flask_login import current_user

from extensions import api
from models import ComplaintStatus, Priority, Role
from utils.api_client import ApiError
from utils.complaint_views import TECHNICIAN_TABS, resolve_categories, sort_complaints, technician_buckets
from utils.decorators import roles_required
from utils.workflow import Action, NotesRequired, WorkflowError, check_action
from .complaints import ConfirmForm, NoteForm, fetch_complaint, flash_api_error, load_categories, load_complaints, render_detail

teknisi_bp = Blueprint("teknisi", __name__, url_prefix="/teknisi")

DEFAULT_TAB = "assigned"

# Tab a complaint lands in after each action, used when acting from the task list.
_LANDING_TAB = {
    Action.CLAIM: "assigned",
    Action.BEGIN_WORK: "processing",
    Action.FINISH: "completed",
}

_SUCCESS_MESSAGES = {
    Action.CLAIM: "Berhasil mengambil aduan!",
    Action.BEGIN_WORK: "Aduan mulai diproses!",
    Action.FINISH: "Aduan selesai dikerjakan!",
}


def _after_action_url(complaint_id: str, action: Action) -> str:
    if request.args.get("from") == "tasks":
        return url_for("teknisi.tasks", filter=_LANDING_TAB[action])
    return url_for("teknisi.complaint_detail", complaint_id=complaint_id)


def _transition(complaint_id: str, action: Action, notes: str = ""):
    complaint = fetch_complaint(complaint_id)
    if complaint is None:
        return redirect(url_for("teknisi.tasks"))

    try:
        check_action(complaint, action, current_user.user, notes)
    except NotesRequired as exc:
        flash(str(exc), "warning")
        return redirect(url_for("teknisi.complaint_detail", complaint_id=complaint.id))
    except WorkflowError as exc:
        flash(str(exc), "danger")
        return redirect(url_for("teknisi.complaint_detail", complaint_id=complaint.id))

    try:
        if action == Action.CLAIM:
            api.take_complaint(complaint.id)
        elif action == Action.BEGIN_WORK:
            api.process_complaint(complaint.id, notes)
        else:
            api.finish_complaint(complaint.id, notes)
    except ApiError as exc:
        flash_api_error(exc)
        return redirect(url_for("teknisi.complaint_detail", complaint_id=complaint.id))

    current_app.logger.info(
        "Technician action applied",
        extra={"user_id": current_user.id, "complaint_id": complaint.id, "action": action.value},
    )
    flash(_SUCCESS_MESSAGES[action], "success")
    return redirect(_after_action_url(complaint.id, action))


@teknisi_bp.route("/")
@teknisi_bp.route("/dashboard")
@roles_required(Role.TEKNISI)
def dashboard():
    complaints = sort_complaints(load_complaints() or [])
    buckets = technician_buckets(complaints, current_user.id)
    mine = [c for c in complaints if c.assigned_to_id == current_user.id]
    urgent = [c for c in buckets["available"] if c.priority == Priority.HIGH]
    return render_template(
        "teknisi/dashboard.html",
        counts={tab: len(items) for tab, items in buckets.items()},
        recent=mine[:5],
        urgent=urgent[:5],
        page_title="Dashboard Teknisi",
    )


@teknisi_bp.route("/tasks")
@roles_required(Role.TEKNISI)
def tasks():
    tab = request.args.get("filter") if request.args.get("filter") in TECHNICIAN_TABS else DEFAULT_TAB
    complaints = resolve_categories(
        sort_complaints(load_complaints() or []), load_categories(include_inactive=True)
    )
    buckets = technician_buckets(complaints, current_user.id)
    return render_template(
        "teknisi/tasks.html",
        tab=tab,
        tabs=TECHNICIAN_TABS,
        counts={name: len(items) for name, items in buckets.items()},
        complaints=buckets[tab],
        confirm_form=ConfirmForm(),
        note_form=NoteForm(),
        page_title="Tugas Saya",
    )


@teknisi_bp.route("/complaints/<complaint_id>")
@roles_required(Role.TEKNISI)
def complaint_detail(complaint_id: str):
    complaint = fetch_complaint(complaint_id, load_categories(include_inactive=True))
    if complaint is None:
        return redirect(url_for("teknisi.tasks"))
    # Technicians only see accepted work: the open pool or their own tasks.
    visible = complaint.assigned_to_id == current_user.id or (
        complaint.status == ComplaintStatus.DITERIMA and not complaint.is_assigned
    )
    if not visible:
        flash("Anda tidak berhak melihat aduan ini.", "danger")
        return redirect(url_for("teknisi.tasks"))
    return render_detail(complaint, "teknisi.tasks")


@teknisi_bp.route("/complaints/<complaint_id>/claim", methods=["POST"])
@roles_required(Role.TEKNISI)
def claim(complaint_id: str):
    form = ConfirmForm()
    if not form.validate_on_submit():
        flash("Konfirmasi diperlukan untuk mengambil aduan.", "warning")
        return redirect(url_for("teknisi.complaint_detail", complaint_id=complaint_id))
    return _transition(complaint_id, Action.CLAIM)


@teknisi_bp.route("/complaints/<complaint_id>/process", methods=["POST"])
@roles_required(Role.TEKNISI)
def begin_work(complaint_id: str):
    form = NoteForm()
    if not form.validate_on_submit():
        flash("Catatan terlalu panjang.", "warning")
        return redirect(url_for("teknisi.complaint_detail", complaint_id=complaint_id))
    return _transition(complaint_id, Action.BEGIN_WORK, (form.notes.data or "").strip())


@teknisi_bp.route("/complaints/<complaint_id>/finish", methods=["POST"])
@roles_required(Role.TEKNISI)
def finish(complaint_id: str):
    form = NoteForm()
    if not form.validate_on_submit():
        flash("Catatan terlalu panjang.", "warning")
        return redirect(url_for("teknisi.complaint_detail", complaint_id=complaint_id))
    return _transition(complaint_id, Action.FINISH, (form.notes.data or "").strip())
