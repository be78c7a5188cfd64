"""Blueprint registration and role-neutral pages."""
from flask import Blueprint, redirect, render_template
from flask_login import current_user

from .admin import admin_bp
from .auth import auth_bp, role_home
from .complaints import ruangan_bp
from .technician import teknisi_bp
from .verification import simrs_bp

main_bp = Blueprint("main", __name__)


@main_bp.route("/")
def index():
    """Neutral landing page: sends everyone to the home of their role, or to login."""
    return redirect(role_home(current_user))


@main_bp.route("/unauthorized")
def unauthorized():
    return render_template(
        "main/unauthorized.html",
        home_url=role_home(current_user),
        page_title="Akses Ditolak",
    ), 403


__all__ = ["admin_bp", "auth_bp", "main_bp", "ruangan_bp", "simrs_bp", "teknisi_bp"]
