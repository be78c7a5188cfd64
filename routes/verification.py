"""Reviewing office (SIM RS) blueprint: triage, approve or reject, and technician oversight."""
from flask import Blueprint, current_app, flash, redirect, render_template, request, url_for
from flask_login import current_user
from flask_wtf import FlaskForm
from wtforms import SubmitField, TextAreaField
from wtforms.validators import Length

from extensions import api
from models import ComplaintStatus, Priority, Role
from utils.api_client import ApiError
from utils.complaint_views import (
    count_by,
    count_by_priority,
    count_by_status,
    extract_items,
    filter_complaints,
    is_today,
    parse_users,
    resolve_categories,
    sort_complaints,
    technician_workload,
)
from utils.decorators import roles_required
from utils.workflow import Action, NotesRequired, WorkflowError, check_action, next_status
from .complaints import NoteForm, fetch_complaint, flash_api_error, load_categories, load_complaints, render_detail

simrs_bp = Blueprint("simrs", __name__, url_prefix="/simrs")

SORT_FIELDS = ("createdAt", "updatedAt", "priority")


class RejectForm(FlaskForm):
    rejection_reason = TextAreaField("Alasan Penolakan", validators=[Length(max=1000)])
    notes = TextAreaField("Catatan Tambahan", validators=[Length(max=1000)])
    submit = SubmitField("Tolak Aduan")


def _parse_or_none(parser, value):
    if not value:
        return None
    try:
        return parser(value)
    except ValueError:
        return None


def _verify(complaint_id: str, action: Action, notes: str = "", rejection_reason: str = ""):
    complaint = fetch_complaint(complaint_id)
    if complaint is None:
        return redirect(url_for("simrs.complaints"))
    detail_url = url_for("simrs.complaint_detail", complaint_id=complaint.id)

    try:
        check_action(complaint, action, current_user.user, rejection_reason if action == Action.REJECT else None)
    except NotesRequired as exc:
        flash(str(exc), "warning")
        return redirect(detail_url)
    except WorkflowError as exc:
        flash(str(exc), "danger")
        return redirect(detail_url)

    payload = {"action": action.value, "status": next_status(action).value, "notes": notes}
    if action == Action.REJECT:
        payload["rejectionReason"] = rejection_reason

    try:
        api.verify_complaint(complaint.id, payload)
    except ApiError as exc:
        flash_api_error(exc)
        return redirect(detail_url)

    current_app.logger.info(
        "Complaint verified",
        extra={"user_id": current_user.id, "complaint_id": complaint.id, "action": action.value},
    )
    flash("Aduan berhasil diterima!" if action == Action.APPROVE else "Aduan berhasil ditolak!", "success")
    return redirect(detail_url)


@simrs_bp.route("/")
@simrs_bp.route("/dashboard")
@roles_required(Role.SIMRS)
def dashboard():
    complaints = sort_complaints(load_complaints() or [])
    high_pending = [
        c for c in complaints if c.status == ComplaintStatus.MENUNGGU_VERIFIKASI and c.priority == Priority.HIGH
    ]
    return render_template(
        "simrs/dashboard.html",
        total=len(complaints),
        by_status=count_by_status(complaints),
        by_priority=count_by_priority(complaints),
        by_category=count_by(resolve_categories(complaints, load_categories(include_inactive=True)), lambda c: c.category.name),
        today=[c for c in complaints if is_today(c.created_at)],
        high_pending=high_pending,
        recent=complaints[:5],
        page_title="Dashboard SIM RS",
    )


@simrs_bp.route("/complaints")
@roles_required(Role.SIMRS)
def complaints():
    status = _parse_or_none(ComplaintStatus.parse, request.args.get("status"))
    priority = _parse_or_none(Priority.parse, request.args.get("priority"))
    category = (request.args.get("category") or "").strip()
    search = (request.args.get("search") or "").strip()
    sort_by = request.args.get("sort") if request.args.get("sort") in SORT_FIELDS else "createdAt"
    order = "asc" if request.args.get("order") == "asc" else "desc"

    all_complaints = resolve_categories(load_complaints() or [], load_categories(include_inactive=True))
    shown = sort_complaints(filter_complaints(all_complaints, status, priority, category, search), sort_by, order)
    return render_template(
        "simrs/complaints.html",
        complaints=shown,
        total=len(all_complaints),
        counts=count_by_status(all_complaints),
        filters={
            "status": status.value if status else "",
            "priority": priority.value if priority else "",
            "category": category,
            "search": search,
            "sort": sort_by,
            "order": order,
        },
        statuses=list(ComplaintStatus),
        priorities=list(Priority),
        page_title="Verifikasi Aduan",
    )


@simrs_bp.route("/complaints/<complaint_id>")
@roles_required(Role.SIMRS)
def complaint_detail(complaint_id: str):
    complaint = fetch_complaint(complaint_id, load_categories(include_inactive=True))
    if complaint is None:
        return redirect(url_for("simrs.complaints"))
    return render_detail(complaint, "simrs.complaints", reject_form=RejectForm())


@simrs_bp.route("/complaints/<complaint_id>/approve", methods=["POST"])
@roles_required(Role.SIMRS)
def approve(complaint_id: str):
    form = NoteForm()
    if not form.validate_on_submit():
        flash("Catatan terlalu panjang.", "warning")
        return redirect(url_for("simrs.complaint_detail", complaint_id=complaint_id))
    return _verify(complaint_id, Action.APPROVE, notes=(form.notes.data or "").strip())


@simrs_bp.route("/complaints/<complaint_id>/reject", methods=["POST"])
@roles_required(Role.SIMRS)
def reject(complaint_id: str):
    form = RejectForm()
    if not form.validate_on_submit():
        flash("Alasan penolakan atau catatan terlalu panjang.", "warning")
        return redirect(url_for("simrs.complaint_detail", complaint_id=complaint_id))
    return _verify(
        complaint_id,
        Action.REJECT,
        notes=(form.notes.data or "").strip(),
        rejection_reason=(form.rejection_reason.data or "").strip(),
    )


@simrs_bp.route("/technicians")
@roles_required(Role.SIMRS)
def technicians():
    try:
        response = api.get_technicians()
    except ApiError as exc:
        flash_api_error(exc)
        technicians_list = []
    else:
        items, _ = extract_items(response, "users")
        technicians_list = [user for user in parse_users(items) if user.role == Role.TEKNISI]

    rows = technician_workload(technicians_list, load_complaints() or [])
    return render_template(
        "simrs/technicians.html",
        rows=rows,
        available=sum(1 for row in rows if row["available"]),
        busy=sum(1 for row in rows if not row["available"]),
        page_title="Teknisi",
    )
