"""Cookie-backed login state: bootstrap re-validation, persistence, and teardown.

The remote API issues a bearer token at login. The token and a JSON copy of
the user are kept in two cookies with the same expiry. On the first request
of a browser session the token is re-validated against ``/auth/profile`` and
the server's profile is kept in the signed Flask session; later requests take
identity and role from there, never from the user cookie. Any failure wipes
both cookies and leaves the visitor anonymous.
"""
from __future__ import annotations

import json
from typing import Optional

from flask import current_app, flash, g, redirect, request, session, url_for
from flask_login import AnonymousUserMixin, UserMixin, current_user, login_user, logout_user

from extensions import api
from models import Role, User
from utils.api_client import ApiError
from utils.security import hash_value

TOKEN_COOKIE = "token"
USER_COOKIE = "user"
_VALIDATED_KEY = "validated_token"
_VALIDATED_USER_KEY = "validated_user"

# Pages that must stay reachable while a session is being torn down.
_NO_REDIRECT_ENDPOINTS = {"auth.login", "auth.register", "auth.clear_auth", "static"}


class AnonymousSession(AnonymousUserMixin):
    user = None
    token = None
    role = None

    def has_role(self, *roles) -> bool:
        return False


class AuthenticatedSession(UserMixin):
    def __init__(self, user: User, token: str):
        self.user = user
        self.token = token

    def get_id(self) -> str:
        return self.user.id

    @property
    def id(self) -> str:
        return self.user.id

    @property
    def username(self) -> str:
        return self.user.username

    @property
    def role(self) -> Role:
        return self.user.role

    def has_role(self, *roles) -> bool:
        return self.user.role in {Role.parse(r) for r in roles}


def _cookie_kwargs() -> dict:
    days = int(current_app.config.get("AUTH_COOKIE_DAYS", 7))
    return {
        "max_age": days * 24 * 60 * 60,
        "samesite": "Lax",
        "secure": bool(current_app.config.get("AUTH_COOKIE_SECURE", False)),
        "httponly": True,
    }


def persist_session(response, user: User, token: Optional[str] = None):
    kwargs = _cookie_kwargs()
    if token is not None:
        response.set_cookie(TOKEN_COOKIE, token, **kwargs)
    response.set_cookie(USER_COOKIE, json.dumps(user.to_payload()), **kwargs)
    return response


def clear_session_cookies(response):
    response.delete_cookie(TOKEN_COOKIE)
    response.delete_cookie(USER_COOKIE)
    return response


def mark_validated(token: str, user: User) -> None:
    """Remember the server's profile for ``token`` in the signed Flask session."""
    session[_VALIDATED_KEY] = hash_value(token)
    session[_VALIDATED_USER_KEY] = user.to_payload()


def forget_validation() -> None:
    session.pop(_VALIDATED_KEY, None)
    session.pop(_VALIDATED_USER_KEY, None)


def _validated_user(token: str) -> Optional[User]:
    if session.get(_VALIDATED_KEY) != hash_value(token):
        return None
    try:
        return User.from_payload(session.get(_VALIDATED_USER_KEY))
    except ValueError:
        return None


def _invalidate(reason: str) -> None:
    current_app.logger.info("Discarding persisted session", extra={"reason": reason, "path": request.path})
    forget_validation()
    g.clear_auth_cookies = True
    g.auth_session = AnonymousSession()


def load_session_from_cookies(req) -> Optional[AuthenticatedSession]:
    """Flask-Login request loader implementing the bootstrap sequence."""
    token = req.cookies.get(TOKEN_COOKIE)
    raw_user = req.cookies.get(USER_COOKIE)
    if not token or not raw_user:
        if token or raw_user:
            _invalidate("incomplete cookies")
        return None

    try:
        persisted = User.from_payload(json.loads(raw_user))
    except (TypeError, ValueError):
        _invalidate("malformed user cookie")
        return None

    # The user cookie is only a hint; identity and role come from the validated profile.
    validated = _validated_user(token)
    if validated is not None:
        state = AuthenticatedSession(validated, token)
        g.auth_session = state
        if persisted != validated:
            current_app.logger.warning(
                "User cookie does not match validated profile",
                extra={"user_id": validated.id, "cookie_role": persisted.role.value},
            )
            g.refreshed_user = validated
        return state

    g.auth_session = AuthenticatedSession(persisted, token)
    try:
        response = api.get_profile()
        fresh = User.from_payload((response.data or {}).get("user"))
    except ApiError as exc:
        _invalidate(f"profile check failed: {exc.message}")
        return None
    except (AttributeError, ValueError):
        _invalidate("malformed profile payload")
        return None

    state = AuthenticatedSession(fresh, token)
    g.auth_session = state
    g.refreshed_user = fresh
    mark_validated(token, fresh)
    return state


def start_session(response, user: User, token: str):
    """Log ``user`` in for this request and persist the session on ``response``."""
    state = AuthenticatedSession(user, token)
    login_user(state)
    g.auth_session = state
    g.clear_auth_cookies = False
    g.session_expired = False
    mark_validated(token, user)
    return persist_session(response, user, token)


def end_session() -> None:
    """Forget the user locally; the after_request hook deletes both cookies. No API call."""
    logout_user()
    session.clear()
    g.auth_session = AnonymousSession()
    g.refreshed_user = None
    g.clear_auth_cookies = True


def refresh_current_user(user: User) -> None:
    """Swap the in-memory user after a profile change; the cookie follows on response."""
    token = getattr(current_user, "token", None)
    if not token:
        return
    g.auth_session = AuthenticatedSession(user, token)
    g._login_user = g.auth_session
    g.refreshed_user = user
    mark_validated(token, user)


def init_session(app, login_manager) -> None:
    login_manager.anonymous_user = AnonymousSession
    login_manager.request_loader(load_session_from_cookies)

    @app.before_request
    def _bootstrap_session() -> None:
        if request.endpoint == "static":
            return
        # Touching current_user runs the request loader once per request.
        g.auth_session = current_user._get_current_object()

    @app.after_request
    def _apply_session_changes(response):
        if g.get("session_expired"):
            forget_validation()
            if request.endpoint not in _NO_REDIRECT_ENDPOINTS:
                app.logger.warning("Session expired, redirecting to login", extra={"path": request.path})
                flash("Sesi Anda telah berakhir, silakan login kembali.", "warning")
                response = redirect(url_for("auth.login"))
            return clear_session_cookies(response)
        if g.get("clear_auth_cookies"):
            return clear_session_cookies(response)
        refreshed = g.get("refreshed_user")
        if refreshed is not None:
            persist_session(response, refreshed)
        return response
