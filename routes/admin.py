"""Administrator blueprint: system statistics, all complaints, users and categories."""
from flask import Blueprint, current_app, flash, redirect, render_template, request, url_for
from flask_login import current_user
from flask_wtf import FlaskForm
from wtforms import PasswordField, SelectField, StringField, SubmitField, TextAreaField
from wtforms.validators import DataRequired, Length, Optional as OptionalValue

from extensions import api
from models import ROLE_LABELS, ComplaintStatus, Priority, Role
from utils.api_client import ApiError
from utils.complaint_views import (
    PERIODS,
    average_resolution_days,
    complaints_since,
    completion_rate,
    count_by,
    count_by_priority,
    count_by_status,
    extract_items,
    filter_complaints,
    parse_complaints,
    parse_users,
    period_start,
    resolve_categories,
    summarize_dashboard_stats,
)
from utils.decorators import roles_required
from .complaints import ConfirmForm, fetch_complaint, flash_api_error, load_categories, render_detail

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")

STATS_FETCH_LIMIT = 1000
PERIOD_LABELS = {
    "all": "Semua Waktu",
    "today": "Hari Ini",
    "week": "7 Hari Terakhir",
    "month": "Bulan Ini",
    "year": "Tahun Ini",
}


class UserForm(FlaskForm):
    username = StringField(
        "Username",
        validators=[DataRequired("Username wajib diisi"), Length(min=3, max=50, message="Username 3-50 karakter")],
    )
    password = PasswordField(
        "Password",
        validators=[DataRequired("Password wajib diisi"), Length(min=6, message="Password minimal 6 karakter")],
    )
    role = SelectField("Peran", choices=[(r.value, ROLE_LABELS[r]) for r in Role], default=Role.RUANGAN.value)
    ruangan = StringField("Ruangan / Unit", validators=[DataRequired("Ruangan wajib diisi"), Length(max=100)])
    submit = SubmitField("Simpan Pengguna")


class EditUserForm(FlaskForm):
    ruangan = StringField("Ruangan / Unit", validators=[DataRequired("Ruangan wajib diisi"), Length(max=100)])
    password = PasswordField(
        "Password Baru (opsional)",
        validators=[OptionalValue(), Length(min=6, message="Password minimal 6 karakter")],
    )
    submit = SubmitField("Simpan Perubahan")


class CategoryForm(FlaskForm):
    name = StringField(
        "Nama Kategori",
        validators=[DataRequired("Nama kategori wajib diisi"), Length(min=2, max=100)],
    )
    description = TextAreaField("Deskripsi", validators=[Length(max=500)])
    submit = SubmitField("Simpan Kategori")


def _page_arg() -> int:
    try:
        return max(1, int(request.args.get("page", 1)))
    except (TypeError, ValueError):
        return 1


def _fetch_user(user_id: str):
    """Users have no single-record endpoint; look the id up in the full list."""
    try:
        response = api.get_all_users()
    except ApiError as exc:
        flash_api_error(exc)
        return None
    items, _ = extract_items(response, "users")
    for user in parse_users(items):
        if user.id == user_id:
            return user
    flash("Pengguna tidak ditemukan.", "warning")
    return None


def _fetch_category(category_id: str):
    for category in load_categories(include_inactive=True):
        if category.id == category_id:
            return category
    flash("Kategori tidak ditemukan.", "warning")
    return None


def _fetch_all_complaints() -> list:
    """Every complaint the server holds, one ``STATS_FETCH_LIMIT``-sized page at a time."""
    raw_items, page_number = [], 1
    while True:
        response = api.get_all_complaints({"limit": STATS_FETCH_LIMIT, "page": page_number})
        items, pagination = extract_items(response, "complaints")
        raw_items.extend(items)
        if not items or pagination is None or page_number >= pagination.pages:
            return raw_items
        page_number += 1


@admin_bp.route("/")
@admin_bp.route("/dashboard")
@roles_required(Role.ADMIN)
def dashboard():
    try:
        response = api.get_dashboard_stats()
        stats = summarize_dashboard_stats(response.data)
    except ApiError as exc:
        flash_api_error(exc)
        stats = summarize_dashboard_stats(None)
    return render_template("admin/dashboard.html", stats=stats, page_title="Dashboard Admin")


@admin_bp.route("/complaints")
@roles_required(Role.ADMIN)
def complaints():
    filters = {
        "status": request.args.get("status", ""),
        "priority": request.args.get("priority", ""),
        "category": request.args.get("category", ""),
        "sortBy": request.args.get("sortBy") if request.args.get("sortBy") in ("createdAt", "updatedAt", "priority") else "createdAt",
        "sortOrder": "asc" if request.args.get("sortOrder") == "asc" else "desc",
    }
    search = (request.args.get("search") or "").strip()
    page = _page_arg()

    items, pagination = [], None
    try:
        response = api.get_all_complaints(
            {**filters, "page": page, "limit": current_app.config.get("COMPLAINTS_PER_PAGE", 10)}
        )
        raw_items, pagination = extract_items(response, "complaints")
        items = parse_complaints(raw_items)
    except ApiError as exc:
        flash_api_error(exc)

    categories = load_categories(include_inactive=True)
    items = filter_complaints(resolve_categories(items, categories), search=search)
    return render_template(
        "admin/complaints.html",
        complaints=items,
        pagination=pagination,
        page=page,
        filters={**filters, "search": search},
        statuses=list(ComplaintStatus),
        priorities=list(Priority),
        categories=categories,
        page_title="Semua Aduan",
    )


@admin_bp.route("/complaints/<complaint_id>")
@roles_required(Role.ADMIN)
def complaint_detail(complaint_id: str):
    complaint = fetch_complaint(complaint_id, load_categories(include_inactive=True))
    if complaint is None:
        return redirect(url_for("admin.complaints"))
    return render_detail(complaint, "admin.complaints")


@admin_bp.route("/stats")
@roles_required(Role.ADMIN)
def stats():
    period = request.args.get("period") if request.args.get("period") in PERIODS else "all"

    complaints_list = []
    try:
        complaints_list = parse_complaints(_fetch_all_complaints())
    except ApiError as exc:
        flash_api_error(exc)

    try:
        server_stats = summarize_dashboard_stats(api.get_dashboard_stats().data)
    except ApiError as exc:
        flash_api_error(exc)
        server_stats = summarize_dashboard_stats(None)

    complaints_list = resolve_categories(complaints_list, load_categories(include_inactive=True))
    scoped = complaints_since(complaints_list, period_start(period))
    return render_template(
        "admin/stats.html",
        period=period,
        periods=PERIOD_LABELS,
        total=len(scoped),
        by_status=count_by_status(scoped),
        by_priority=count_by_priority(scoped),
        by_category=count_by(scoped, lambda c: c.category.name),
        by_room=count_by(scoped, lambda c: c.reporter_room),
        completion_rate=completion_rate(scoped),
        average_days=average_resolution_days(scoped),
        server_stats=server_stats,
        page_title="Statistik",
    )


@admin_bp.route("/users")
@roles_required(Role.ADMIN)
def users():
    role_filter = request.args.get("role", "all")
    if role_filter not in {r.value for r in Role}:
        role_filter = "all"
    search = (request.args.get("search") or "").strip()

    users_list, pagination = [], None
    try:
        response = api.get_all_users(
            {
                "role": None if role_filter == "all" else role_filter,
                "search": search,
                "page": _page_arg(),
                "limit": current_app.config.get("USERS_PER_PAGE", 10),
            }
        )
        items, pagination = extract_items(response, "users")
        users_list = parse_users(items)
    except ApiError as exc:
        flash_api_error(exc)

    # The API may ignore filters it does not support; apply them again locally.
    term = search.lower()
    users_list = [
        user
        for user in users_list
        if (role_filter == "all" or user.role.value == role_filter)
        and (not term or term in user.username.lower() or term in user.ruangan.lower())
    ]
    return render_template(
        "admin/users.html",
        users=users_list,
        pagination=pagination,
        role_filter=role_filter,
        search=search,
        role_counts={role: sum(1 for u in users_list if u.role == role) for role in Role},
        roles=list(Role),
        page_title="Manajemen Pengguna",
    )


@admin_bp.route("/users/new", methods=["GET", "POST"])
@roles_required(Role.ADMIN)
def create_user():
    form = UserForm()
    if form.validate_on_submit():
        payload = {
            "username": form.username.data.strip(),
            "password": form.password.data,
            "role": form.role.data,
            "ruangan": form.ruangan.data.strip(),
        }
        try:
            api.create_user(payload)
        except ApiError as exc:
            flash_api_error(exc)
        else:
            current_app.logger.info("User created", extra={"admin_id": current_user.id, "username": payload["username"]})
            flash("Pengguna berhasil dibuat!", "success")
            return redirect(url_for("admin.users"))
    return render_template("admin/user_form.html", form=form, page_title="Tambah Pengguna")


@admin_bp.route("/users/<user_id>/edit", methods=["GET", "POST"])
@roles_required(Role.ADMIN)
def edit_user(user_id: str):
    user = _fetch_user(user_id)
    if user is None:
        return redirect(url_for("admin.users"))

    form = EditUserForm()
    if form.validate_on_submit():
        payload = {"ruangan": form.ruangan.data.strip()}
        if form.password.data:
            payload["password"] = form.password.data
        try:
            api.update_user(user.id, payload)
        except ApiError as exc:
            flash_api_error(exc)
        else:
            current_app.logger.info("User updated", extra={"admin_id": current_user.id, "target_user_id": user.id})
            flash("Pengguna berhasil diperbarui!", "success")
            return redirect(url_for("admin.users"))
    elif not form.is_submitted():
        form.ruangan.data = user.ruangan

    return render_template("admin/user_form.html", form=form, user=user, page_title="Edit Pengguna")


@admin_bp.route("/users/<user_id>/delete", methods=["GET", "POST"])
@roles_required(Role.ADMIN)
def delete_user(user_id: str):
    user = _fetch_user(user_id)
    if user is None:
        return redirect(url_for("admin.users"))
    if user.role == Role.ADMIN or user.id == current_user.id:
        flash("Akun administrator tidak dapat dihapus.", "warning")
        return redirect(url_for("admin.users"))

    form = ConfirmForm()
    if form.validate_on_submit():
        try:
            api.delete_user(user.id)
        except ApiError as exc:
            flash_api_error(exc)
        else:
            current_app.logger.info("User deleted", extra={"admin_id": current_user.id, "target_user_id": user.id})
            flash("Pengguna berhasil dihapus!", "success")
        return redirect(url_for("admin.users"))

    return render_template(
        "shared/confirm.html",
        form=form,
        title="Hapus Pengguna",
        message=f"Apakah Anda yakin ingin menghapus pengguna \"{user.username}\"?",
        cancel_url=url_for("admin.users"),
        danger=True,
        page_title="Hapus Pengguna",
    )


@admin_bp.route("/categories")
@roles_required(Role.ADMIN)
def categories():
    categories_list = load_categories(include_inactive=True)
    usage = {}
    try:
        items, _ = extract_items(api.get_category_stats(), "stats")
        usage = {str(row.get("_id") or row.get("name") or ""): int(row.get("count") or 0) for row in items if isinstance(row, dict)}
    except ApiError as exc:
        current_app.logger.info("Category stats unavailable", extra={"status": exc.status_code})
    except (TypeError, ValueError):
        current_app.logger.warning("Malformed category stats payload")

    return render_template(
        "admin/categories.html",
        categories=sorted(categories_list, key=lambda c: (not c.is_active, c.name.lower())),
        usage=usage,
        confirm_form=ConfirmForm(),
        page_title="Manajemen Kategori",
    )


@admin_bp.route("/categories/new", methods=["GET", "POST"])
@roles_required(Role.ADMIN)
def create_category():
    form = CategoryForm()
    if form.validate_on_submit():
        try:
            api.create_category(form.name.data.strip(), (form.description.data or "").strip())
        except ApiError as exc:
            flash_api_error(exc)
        else:
            current_app.logger.info("Category created", extra={"admin_id": current_user.id, "category": form.name.data})
            flash("Kategori berhasil dibuat!", "success")
            return redirect(url_for("admin.categories"))
    return render_template("admin/category_form.html", form=form, page_title="Tambah Kategori")


@admin_bp.route("/categories/<category_id>/edit", methods=["GET", "POST"])
@roles_required(Role.ADMIN)
def edit_category(category_id: str):
    category = _fetch_category(category_id)
    if category is None:
        return redirect(url_for("admin.categories"))

    form = CategoryForm()
    if form.validate_on_submit():
        try:
            api.update_category(
                category.id,
                {"name": form.name.data.strip(), "description": (form.description.data or "").strip()},
            )
        except ApiError as exc:
            flash_api_error(exc)
        else:
            flash("Kategori berhasil diperbarui!", "success")
            return redirect(url_for("admin.categories"))
    elif not form.is_submitted():
        form.name.data = category.name
        form.description.data = category.description

    return render_template("admin/category_form.html", form=form, category=category, page_title="Edit Kategori")


@admin_bp.route("/categories/<category_id>/deactivate", methods=["POST"])
@roles_required(Role.ADMIN)
def deactivate_category(category_id: str):
    form = ConfirmForm()
    if form.validate_on_submit():
        try:
            api.delete_category(category_id)
        except ApiError as exc:
            flash_api_error(exc)
        else:
            flash("Kategori berhasil dinonaktifkan.", "success")
    return redirect(url_for("admin.categories"))


@admin_bp.route("/categories/<category_id>/restore", methods=["POST"])
@roles_required(Role.ADMIN)
def restore_category(category_id: str):
    form = ConfirmForm()
    if form.validate_on_submit():
        try:
            api.restore_category(category_id)
        except ApiError as exc:
            flash_api_error(exc)
        else:
            flash("Kategori berhasil diaktifkan kembali.", "success")
    return redirect(url_for("admin.categories"))


@admin_bp.route("/categories/<category_id>/delete", methods=["GET", "POST"])
@roles_required(Role.ADMIN)
def delete_category(category_id: str):
    """Permanent delete. A 409 (category still in use) asks for a second confirmation."""
    category = _fetch_category(category_id)
    if category is None:
        return redirect(url_for("admin.categories"))

    in_use = request.args.get("stage") == "conflict"
    message = f"Apakah Anda yakin ingin menghapus kategori \"{category.name}\" secara permanen? Tindakan ini tidak dapat dibatalkan."
    form = ConfirmForm()
    if form.validate_on_submit():
        try:
            api.delete_category(category.id, force=True)
        except ApiError as exc:
            if exc.is_conflict and not in_use:
                current_app.logger.info("Category delete conflict", extra={"category_id": category.id})
                return render_template(
                    "shared/confirm.html",
                    form=ConfirmForm(formdata=None),
                    title="Kategori Masih Digunakan",
                    message=f"{exc.message} Tetap hapus?",
                    action_url=url_for("admin.delete_category", category_id=category.id, stage="conflict"),
                    cancel_url=url_for("admin.categories"),
                    danger=True,
                    page_title="Hapus Kategori",
                )
            flash_api_error(exc)
            return redirect(url_for("admin.categories"))
        current_app.logger.info("Category deleted", extra={"admin_id": current_user.id, "category_id": category.id})
        flash("Kategori berhasil dihapus permanen.", "success")
        return redirect(url_for("admin.categories"))

    return render_template(
        "shared/confirm.html",
        form=form,
        title="Hapus Kategori",
        message=message,
        action_url=url_for("admin.delete_category", category_id=category.id, stage="conflict" if in_use else None),
        cancel_url=url_for("admin.categories"),
        danger=True,
        page_title="Hapus Kategori",
    )
