"""Flask application factory for the hospital complaint portal."""
import os
from datetime import datetime
from typing import Optional

from dotenv import load_dotenv
from flask import Flask, flash, redirect, render_template, request, url_for
from flask_login import current_user
from flask_wtf.csrf import CSRFError

from extensions import api, csrf, login_manager
from models import PRIORITY_BADGES, ROLE_LABELS, STATUS_BADGES, ComplaintStatus, Priority, Role
from utils.api_client import ApiError, SessionExpired
from utils.logger import init_logging
from utils.security import apply_security_headers
from utils.session import init_session


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(403)
    def forbidden(error):
        app.logger.warning("403 Forbidden", extra={"path": request.path, "method": request.method})
        return render_template("errors/403.html"), 403

    @app.errorhandler(404)
    def not_found_error(error):
        app.logger.warning("404 Not Found", extra={"path": request.path, "method": request.method})
        return render_template("errors/404.html"), 404

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.exception("500 Internal Server Error")
        return render_template("errors/500.html"), 500

    @app.errorhandler(CSRFError)
    def csrf_error(error):
        app.logger.warning("CSRF validation failed", extra={"path": request.path})
        flash("Sesi formulir telah kedaluwarsa, silakan coba lagi.", "warning")
        return redirect(request.referrer or url_for("main.index"))

    @app.errorhandler(SessionExpired)
    def session_expired(error):
        # The after_request hook turns this into a redirect and clears cookies.
        return redirect(url_for("auth.login"))

    @app.errorhandler(ApiError)
    def api_error(error):
        app.logger.error("Unhandled API error", extra={"path": request.path, "status": error.status_code})
        return render_template("errors/500.html", message=error.message), 502


def register_template_helpers(app: Flask) -> None:
    @app.template_filter("status_badge")
    def status_badge(status) -> str:
        try:
            return STATUS_BADGES[ComplaintStatus.parse(status)]
        except ValueError:
            return "badge-unknown"

    @app.template_filter("priority_badge")
    def priority_badge(priority) -> str:
        try:
            return PRIORITY_BADGES[Priority.parse(priority)]
        except ValueError:
            return "priority-unknown"

    @app.template_filter("datetime")
    def format_datetime(value: Optional[datetime], fmt: str = "%d %b %Y %H:%M") -> str:
        if not value:
            return "-"
        return value.strftime(fmt)

    @app.context_processor
    def inject_global_context():
        role = getattr(current_user, "role", None)
        return {
            "current_role": role,
            "current_role_label": ROLE_LABELS.get(role, "") if role else "",
            "Role": Role,
        }


def create_app(config_name: Optional[str] = None) -> Flask:
    """Application factory with environment-aware configuration."""
    load_dotenv()

    app = Flask(__name__, instance_relative_config=True)

    from config import DevelopmentConfig, ProductionConfig, TestingConfig

    config_key = (config_name or os.getenv("FLASK_CONFIG") or os.getenv("FLASK_ENV") or "production").lower()
    config_map = {
        "development": DevelopmentConfig,
        "dev": DevelopmentConfig,
        "production": ProductionConfig,
        "prod": ProductionConfig,
        "testing": TestingConfig,
        "test": TestingConfig,
    }
    config_class = config_map.get(config_key, ProductionConfig)
    app.config.from_object(config_class())

    # Optional instance-specific overrides
    app.config.from_pyfile("config.py", silent=True)

    # Initialize logging early
    logger = init_logging(app)
    app.logger = logger

    # Initialize extensions
    csrf.init_app(app)
    api.init_app(app)
    login_manager.init_app(app)
    login_manager.login_view = "auth.login"
    login_manager.login_message = "Silakan login terlebih dahulu."
    login_manager.login_message_category = "warning"

    # Registered before the session hook so headers land on its redirects too.
    @app.after_request
    def _after_request(response):
        return apply_security_headers(
            response,
            image_hosts=app.config.get("ATTACHMENT_IMAGE_HOSTS", ""),
            force_https=app.config.get("PREFERRED_URL_SCHEME") == "https" and not app.testing,
        )

    init_session(app, login_manager)

    # Blueprints
    from routes import admin_bp, auth_bp, main_bp, ruangan_bp, simrs_bp, teknisi_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(ruangan_bp)
    app.register_blueprint(simrs_bp)
    app.register_blueprint(teknisi_bp)
    app.register_blueprint(admin_bp)

    register_error_handlers(app)
    register_template_helpers(app)

    app.logger.info("Complaint portal ready", extra={"api_base_url": app.config["API_BASE_URL"]})
    return app


# Expose the Flask application for WSGI servers (e.g., gunicorn app:app).
app = create_app()


if __name__ == "__main__":
    port = int(os.getenv("PORT", 3000))
    app.run(host="0.0.0.0", port=port, use_reloader=False)
