"""Room reporter blueprint: file, review, edit and withdraw complaints."""
from dataclasses import replace
from typing import Iterable, Optional

from flask import Blueprint, current_app, flash, redirect, render_template, url_for
from flask_login import current_user
from flask_wtf import FlaskForm
from flask_wtf.file import FileAllowed, FileField
from wtforms import HiddenField, SelectField, StringField, SubmitField, TextAreaField
from wtforms.validators import DataRequired, Length

from extensions import api
from models import PRIORITY_LABELS, Category, Complaint, ComplaintStatus, Priority, Role
from utils.api_client import ApiError, SessionExpired
from utils.complaint_views import (
    active_categories,
    count_by_status,
    extract_items,
    extract_record,
    parse_categories,
    parse_complaints,
    resolve_categories,
    sort_complaints,
)
from utils.decorators import roles_required
from utils.image_utils import ALLOWED_IMAGE_EXTENSIONS, build_attachment
from utils.workflow import Action, WorkflowError, allowed_actions, check_action, is_legal_step, path_to

ruangan_bp = Blueprint("ruangan", __name__, url_prefix="/ruangan")

RECENT_LIMIT = 5

# Actions whose forms take typed notes; a page reload would discard them.
NOTE_FORM_ACTIONS = {Action.APPROVE.value, Action.REJECT.value, Action.BEGIN_WORK.value, Action.FINISH.value}


class ComplaintForm(FlaskForm):
    title = StringField(
        "Judul Aduan",
        validators=[
            DataRequired("Judul wajib diisi"),
            Length(min=5, max=200, message="Judul minimal 5 karakter"),
        ],
    )
    description = TextAreaField(
        "Deskripsi",
        validators=[
            DataRequired("Deskripsi wajib diisi"),
            Length(min=10, max=2000, message="Deskripsi minimal 10 karakter"),
        ],
    )
    category = SelectField("Kategori", validators=[DataRequired("Kategori wajib dipilih")])
    priority = SelectField(
        "Prioritas",
        choices=[("", "Pilih prioritas...")] + [(p.value, PRIORITY_LABELS[p]) for p in Priority],
        validators=[DataRequired("Prioritas wajib dipilih")],
    )
    attachment = FileField(
        "Lampiran Foto (opsional)",
        validators=[FileAllowed(sorted(ALLOWED_IMAGE_EXTENSIONS), "Hanya file gambar yang diizinkan")],
    )
    submit = SubmitField("Kirim Aduan")


class ConfirmForm(FlaskForm):
    """Second step for destructive actions; nothing is sent without ``confirmed``."""

    confirmed = HiddenField(validators=[DataRequired()])
    submit = SubmitField("Ya, lanjutkan")


class NoteForm(FlaskForm):
    """Free-text note attached to a transition; emptiness is judged by the workflow."""

    notes = TextAreaField("Catatan", validators=[Length(max=1000)])
    submit = SubmitField("Kirim")


def flash_api_error(exc: ApiError) -> None:
    # Expired sessions get their own message from the after_request hook.
    if isinstance(exc, SessionExpired):
        return
    flash(exc.message, "danger")


def load_categories(include_inactive: bool = False) -> list[Category]:
    try:
        response = api.get_categories(include_inactive=include_inactive)
    except ApiError as exc:
        flash_api_error(exc)
        return []
    items, _ = extract_items(response, "categories")
    return parse_categories(items)


def load_complaints(filters: Optional[dict] = None) -> Optional[list[Complaint]]:
    """Fetch complaints visible to the current user, or ``None`` after flashing an error."""
    try:
        response = api.get_complaints(filters)
    except ApiError as exc:
        flash_api_error(exc)
        return None
    items, _ = extract_items(response, "complaints")
    return parse_complaints(items)


def fetch_complaint(complaint_id: str, categories: Iterable[Category] = ()) -> Optional[Complaint]:
    try:
        response = api.get_complaint(complaint_id)
    except ApiError as exc:
        if exc.is_not_found:
            flash("Aduan tidak ditemukan.", "warning")
        else:
            flash_api_error(exc)
        return None

    try:
        complaint = Complaint.from_payload(extract_record(response, "complaint"))
    except ValueError:
        current_app.logger.exception("Malformed complaint payload", extra={"complaint_id": complaint_id})
        flash("Data aduan tidak valid.", "danger")
        return None

    categories = list(categories)
    if categories:
        complaint = replace(complaint, category=complaint.category.resolve(categories))
    return complaint


def action_names(complaint: Complaint) -> set[str]:
    """Allowed actions as plain strings, which is what templates test against."""
    return {action.value for action in allowed_actions(complaint, current_user.user)}


def actions_for(complaints: Iterable[Complaint]) -> dict[str, set[str]]:
    return {complaint.id: action_names(complaint) for complaint in complaints}


def render_detail(complaint: Complaint, back_endpoint: str, **context):
    actions = action_names(complaint)
    return render_template(
        "complaints/detail.html",
        complaint=complaint,
        timeline=path_to(complaint.status),
        next_steps=[status for status in ComplaintStatus if is_legal_step(complaint.status, status)],
        actions=actions,
        auto_refresh=not complaint.status.is_terminal and not actions & NOTE_FORM_ACTIONS,
        back_url=url_for(back_endpoint),
        refresh_seconds=current_app.config.get("COMPLAINT_REFRESH_SECONDS", 30),
        confirm_form=ConfirmForm(),
        note_form=NoteForm(),
        page_title=complaint.title,
        **context,
    )


def _category_choices(categories: Iterable[Category], current: Optional[tuple[str, str]] = None) -> list[tuple[str, str]]:
    choices = [("", "Pilih kategori...")] + [(c.id, c.name) for c in categories]
    if current and current[0] and current[0] not in {value for value, _ in choices}:
        choices.append(current)
    return choices


def _complaint_fields(form: ComplaintForm) -> dict:
    return {
        "title": form.title.data.strip(),
        "description": form.description.data.strip(),
        "category": form.category.data,
        "priority": form.priority.data,
    }


def _own_complaint(complaint_id: str, categories: Iterable[Category] = ()) -> Optional[Complaint]:
    complaint = fetch_complaint(complaint_id, categories)
    if complaint is None:
        return None
    if complaint.created_by_id != current_user.id:
        current_app.logger.warning(
            "Room user attempted to open another room's complaint",
            extra={"user_id": current_user.id, "complaint_id": complaint_id},
        )
        flash("Anda tidak berhak melihat aduan ini.", "danger")
        return None
    return complaint


@ruangan_bp.route("/")
@ruangan_bp.route("/dashboard")
@roles_required(Role.RUANGAN)
def dashboard():
    complaints = load_complaints({"createdBy": current_user.id}) or []
    counts = count_by_status(complaints)
    return render_template(
        "ruangan/dashboard.html",
        recent=sort_complaints(complaints)[:RECENT_LIMIT],
        total=len(complaints),
        pending=counts[ComplaintStatus.MENUNGGU_VERIFIKASI],
        processing=counts[ComplaintStatus.DIPROSES],
        accepted=counts[ComplaintStatus.DITERIMA],
        completed=counts[ComplaintStatus.SELESAI],
        rejected=counts[ComplaintStatus.DITOLAK],
        page_title="Dashboard Ruangan",
    )


@ruangan_bp.route("/complaints")
@roles_required(Role.RUANGAN)
def complaints():
    items = sort_complaints(load_complaints({"createdBy": current_user.id}) or [])
    items = resolve_categories(items, load_categories(include_inactive=True))
    return render_template(
        "ruangan/complaints.html",
        complaints=items,
        counts=count_by_status(items),
        actions=actions_for(items),
        page_title="Aduan Saya",
    )


@ruangan_bp.route("/complaints/new", methods=["GET", "POST"])
@roles_required(Role.RUANGAN)
def create_complaint():
    categories = active_categories(load_categories())
    form = ComplaintForm()
    form.category.choices = _category_choices(categories)

    if form.validate_on_submit():
        try:
            attachment = build_attachment(form.attachment.data, current_app.config["MAX_IMAGE_UPLOAD_BYTES"])
        except ValueError as exc:
            form.attachment.errors.append(str(exc))
        else:
            try:
                response = api.create_complaint(_complaint_fields(form), attachment)
            except ApiError as exc:
                flash_api_error(exc)
            else:
                created = extract_record(response, "complaint")
                complaint_id = None
                if isinstance(created, dict):
                    complaint_id = created.get("_id") or created.get("id")
                current_app.logger.info("Complaint filed", extra={"user_id": current_user.id, "complaint_id": complaint_id})
                flash("Aduan berhasil dibuat!", "success")
                if complaint_id:
                    return redirect(url_for("ruangan.complaint_detail", complaint_id=complaint_id))
                return redirect(url_for("ruangan.complaints"))

    return render_template(
        "ruangan/complaint_form.html",
        form=form,
        no_categories=not categories,
        page_title="Buat Aduan",
    )


@ruangan_bp.route("/complaints/<complaint_id>")
@roles_required(Role.RUANGAN)
def complaint_detail(complaint_id: str):
    complaint = _own_complaint(complaint_id, load_categories(include_inactive=True))
    if complaint is None:
        return redirect(url_for("ruangan.complaints"))
    return render_detail(complaint, "ruangan.complaints")


@ruangan_bp.route("/complaints/<complaint_id>/edit", methods=["GET", "POST"])
@roles_required(Role.RUANGAN)
def edit_complaint(complaint_id: str):
    categories = load_categories(include_inactive=True)
    complaint = _own_complaint(complaint_id, categories)
    if complaint is None:
        return redirect(url_for("ruangan.complaints"))

    try:
        check_action(complaint, Action.EDIT, current_user.user)
    except WorkflowError as exc:
        flash(str(exc), "warning")
        return redirect(url_for("ruangan.complaint_detail", complaint_id=complaint.id))

    form = ComplaintForm()
    form.category.choices = _category_choices(
        active_categories(categories), current=(complaint.category.id, complaint.category.name)
    )
    form.submit.label.text = "Simpan Perubahan"

    if form.validate_on_submit():
        try:
            attachment = build_attachment(form.attachment.data, current_app.config["MAX_IMAGE_UPLOAD_BYTES"])
        except ValueError as exc:
            form.attachment.errors.append(str(exc))
        else:
            try:
                api.update_complaint(complaint.id, _complaint_fields(form), attachment)
            except ApiError as exc:
                flash_api_error(exc)
            else:
                current_app.logger.info("Complaint updated", extra={"user_id": current_user.id, "complaint_id": complaint.id})
                flash("Aduan berhasil diperbarui!", "success")
                return redirect(url_for("ruangan.complaint_detail", complaint_id=complaint.id))
    elif not form.is_submitted():
        form.title.data = complaint.title
        form.description.data = complaint.description
        form.category.data = complaint.category.id
        form.priority.data = complaint.priority.value

    return render_template(
        "ruangan/complaint_form.html",
        form=form,
        complaint=complaint,
        no_categories=len(form.category.choices) <= 1,
        page_title="Edit Aduan",
    )


@ruangan_bp.route("/complaints/<complaint_id>/delete", methods=["GET", "POST"])
@roles_required(Role.RUANGAN)
def delete_complaint(complaint_id: str):
    complaint = _own_complaint(complaint_id)
    if complaint is None:
        return redirect(url_for("ruangan.complaints"))

    try:
        check_action(complaint, Action.DELETE, current_user.user)
    except WorkflowError as exc:
        flash(str(exc), "warning")
        return redirect(url_for("ruangan.complaint_detail", complaint_id=complaint.id))

    form = ConfirmForm()
    if form.validate_on_submit():
        try:
            api.delete_complaint(complaint.id)
        except ApiError as exc:
            flash_api_error(exc)
            return redirect(url_for("ruangan.complaint_detail", complaint_id=complaint.id))
        current_app.logger.info("Complaint deleted", extra={"user_id": current_user.id, "complaint_id": complaint.id})
        flash("Aduan berhasil dihapus!", "success")
        return redirect(url_for("ruangan.complaints"))

    return render_template(
        "shared/confirm.html",
        form=form,
        title="Hapus Aduan",
        message=f"Apakah Anda yakin ingin menghapus aduan \"{complaint.title}\"?",
        cancel_url=url_for("ruangan.complaint_detail", complaint_id=complaint.id),
        danger=True,
        page_title="Hapus Aduan",
    )
