"""Authorization decorators for role-based access control."""
from functools import wraps

from flask import current_app, flash, redirect, request, url_for
from flask_login import current_user, login_required

from models import Role


def roles_required(*roles):
    """Render the view only for signed-in users holding one of ``roles``.

    Anonymous visitors go to the login page; signed-in users with another
    role go to the unauthorized page. Unknown role names fail at import time.
    """
    allowed = frozenset(Role.parse(r) for r in roles)
    if not allowed:
        raise ValueError("roles_required needs at least one role")

    def decorator(view_func):
        @wraps(view_func)
        @login_required
        def wrapped(*args, **kwargs):
            if current_user.role in allowed:
                return view_func(*args, **kwargs)

            current_app.logger.warning(
                "Unauthorized role access attempt",
                extra={
                    "user_id": current_user.id,
                    "role": current_user.role.value,
                    "path": request.path,
                },
            )
            flash("Anda tidak memiliki akses ke halaman ini.", "danger")
            return redirect(url_for("main.unauthorized"))

        return wrapped

    return decorator
