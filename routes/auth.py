"""Authentication blueprint: login, registration, logout and profile."""
from flask import Blueprint, current_app, flash, make_response, redirect, render_template, request, url_for
from flask_login import current_user, login_required
from flask_wtf import FlaskForm
from wtforms import PasswordField, SelectField, StringField, SubmitField
from wtforms.validators import DataRequired, EqualTo, Length

from extensions import api
from models import ROLE_LABELS, Role, User
from utils.api_client import ApiError
from utils.security import is_safe_redirect_url
from utils.session import end_session, refresh_current_user, start_session

from .complaints import flash_api_error

auth_bp = Blueprint("auth", __name__)


ROLE_HOME: dict[Role, str] = {
    Role.ADMIN: "admin.dashboard",
    Role.SIMRS: "simrs.dashboard",
    Role.TEKNISI: "teknisi.tasks",
    Role.RUANGAN: "ruangan.complaints",
}

SELF_REGISTER_ROLES: tuple[Role, ...] = (Role.RUANGAN, Role.SIMRS, Role.TEKNISI)


class LoginForm(FlaskForm):
    username = StringField(
        "Username",
        validators=[DataRequired("Username wajib diisi"), Length(min=3, message="Username minimal 3 karakter")],
    )
    password = PasswordField(
        "Password",
        validators=[DataRequired("Password wajib diisi"), Length(min=6, message="Password minimal 6 karakter")],
    )
    submit = SubmitField("Masuk")


class RegisterForm(FlaskForm):
    username = StringField(
        "Username",
        validators=[DataRequired("Username wajib diisi"), Length(min=3, max=50, message="Username 3-50 karakter")],
    )
    ruangan = StringField("Ruangan / Unit", validators=[DataRequired("Ruangan wajib diisi"), Length(max=100)])
    role = SelectField(
        "Peran",
        choices=[(r.value, ROLE_LABELS[r]) for r in SELF_REGISTER_ROLES],
        default=Role.RUANGAN.value,
        validators=[DataRequired()],
    )
    password = PasswordField(
        "Password",
        validators=[DataRequired("Password wajib diisi"), Length(min=6, message="Password minimal 6 karakter")],
    )
    confirm_password = PasswordField(
        "Konfirmasi Password",
        validators=[DataRequired(), EqualTo("password", message="Password tidak sama")],
    )
    submit = SubmitField("Daftar")


class ProfileForm(FlaskForm):
    name = StringField("Nama", validators=[DataRequired("Nama wajib diisi"), Length(min=3, max=50)])
    submit = SubmitField("Simpan")


def role_home(user) -> str:
    """URL of the landing page for ``user``'s role, or the login page for visitors."""
    role = getattr(user, "role", None)
    if role is None:
        return url_for("auth.login")
    return url_for(ROLE_HOME[role])


def _complete_login(response_data: dict, welcome: str):
    user = User.from_payload((response_data or {}).get("user"))
    token = (response_data or {}).get("token")
    if not token:
        raise ValueError("Login response is missing a token")

    next_page = request.args.get("next")
    target = next_page if next_page and is_safe_redirect_url(next_page) else url_for(ROLE_HOME[user.role])
    response = make_response(redirect(target))
    start_session(response, user, token)
    current_app.logger.info("User signed in", extra={"user_id": user.id, "role": user.role.value})
    flash(welcome, "success")
    return response


@auth_bp.route("/login", methods=["GET", "POST"])
def login():
    if current_user.is_authenticated:
        return redirect(role_home(current_user))

    form = LoginForm()
    if form.validate_on_submit():
        try:
            result = api.login(form.username.data.strip(), form.password.data)
            return _complete_login(result.data, "Login berhasil!")
        except ApiError as exc:
            current_app.logger.info("Login rejected", extra={"username": form.username.data, "status": exc.status_code})
            flash(exc.message, "danger")
        except ValueError:
            current_app.logger.exception("Malformed login response")
            flash("Respon server tidak valid.", "danger")

    return render_template("auth/login.html", form=form, page_title="Login")


@auth_bp.route("/register", methods=["GET", "POST"])
def register():
    if current_user.is_authenticated:
        return redirect(role_home(current_user))

    form = RegisterForm()
    if form.validate_on_submit():
        payload = {
            "username": form.username.data.strip(),
            "password": form.password.data,
            "ruangan": form.ruangan.data.strip(),
            "role": form.role.data,
        }
        try:
            result = api.register(payload)
            return _complete_login(result.data, "Registrasi berhasil!")
        except ApiError as exc:
            current_app.logger.info("Registration rejected", extra={"username": payload["username"]})
            for error in exc.errors or [exc.message]:
                flash(str(error), "danger")
        except ValueError:
            current_app.logger.exception("Malformed registration response")
            flash("Respon server tidak valid.", "danger")

    return render_template("auth/register.html", form=form, page_title="Registrasi")


@auth_bp.route("/logout", methods=["GET", "POST"])
def logout():
    user_id = getattr(current_user, "id", None)
    end_session()
    flash("Logout berhasil!", "success")
    current_app.logger.info("User signed out", extra={"user_id": user_id})
    return redirect(url_for("auth.login"))


@auth_bp.route("/clear-auth")
def clear_auth():
    end_session()
    flash("Data autentikasi telah dihapus.", "info")
    return redirect(url_for("auth.login"))


@auth_bp.route("/profile", methods=["GET", "POST"])
@login_required
def profile():
    form = ProfileForm()
    if request.method == "GET":
        form.name.data = current_user.username

    if form.validate_on_submit():
        try:
            api.update_profile(form.name.data.strip())
            fresh = api.get_profile()
            refresh_current_user(User.from_payload((fresh.data or {}).get("user")))
            flash("Profil berhasil diperbarui.", "success")
            return redirect(url_for("auth.profile"))
        except ApiError as exc:
            flash_api_error(exc)
        except ValueError:
            current_app.logger.exception("Malformed profile response")
            flash("Respon server tidak valid.", "danger")

    return render_template("auth/profile.html", form=form, page_title="Profil")
