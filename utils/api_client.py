"""REST client for the complaint API with envelope parsing and session-aware auth."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

import requests
from flask import current_app, g, has_app_context, has_request_context


class ApiError(Exception):
    """The API answered with an error envelope or an HTTP error status."""

    def __init__(self, message: str, status_code: Optional[int] = None, errors: Optional[list] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.errors = list(errors or [])

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @property
    def is_conflict(self) -> bool:
        return self.status_code == 409


class SessionExpired(ApiError):
    """HTTP 401: the bearer token is missing, expired or rejected."""


class ApiUnavailable(ApiError):
    """The API could not be reached or answered with something other than JSON."""


@dataclass
class Pagination:
    page: int = 1
    limit: int = 10
    total: int = 0
    pages: int = 1

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.pages


@dataclass
class ApiResponse:
    status: str
    message: str = ""
    data: Any = None
    errors: list = field(default_factory=list)
    pagination: Optional[Pagination] = None

    @classmethod
    def from_json(cls, body: Mapping[str, Any]) -> "ApiResponse":
        pagination = None
        raw_pagination = body.get("pagination")
        if isinstance(raw_pagination, Mapping):
            pagination = Pagination(
                page=int(raw_pagination.get("page") or 1),
                limit=int(raw_pagination.get("limit") or 10),
                total=int(raw_pagination.get("total") or 0),
                pages=max(1, int(raw_pagination.get("pages") or 1)),
            )
        return cls(
            status=str(body.get("status") or ""),
            message=str(body.get("message") or ""),
            data=body.get("data"),
            errors=list(body.get("errors") or []),
            pagination=pagination,
        )

    @property
    def ok(self) -> bool:
        return self.status == "success"


DEFAULT_ERROR_MESSAGE = "Terjadi kesalahan pada server"


def _current_token() -> Optional[str]:
    if not has_request_context():
        return None
    state = getattr(g, "auth_session", None)
    return getattr(state, "token", None) if state is not None else None


def _mark_session_expired() -> None:
    if has_request_context():
        g.session_expired = True


def _drop_empty(params: Optional[Mapping[str, Any]]) -> dict:
    return {key: value for key, value in (params or {}).items() if value not in (None, "")}


class ApiClient:
    """Thin wrapper around ``requests.Session`` bound to ``API_BASE_URL``.

    Every call returns an ``ApiResponse``. Failures raise ``ApiError`` (or a
    subclass) carrying the server's message so views can flash it verbatim.
    A 401 additionally flags the current request so the app can tear the
    session down no matter which view made the call.
    """

    def __init__(self, app=None, token_getter: Callable[[], Optional[str]] = _current_token):
        self.base_url = ""
        self.timeout = 15
        self.token_getter = token_getter
        self.http = requests.Session()
        self.http.headers.update({"Accept": "application/json"})
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        self.base_url = app.config["API_BASE_URL"].rstrip("/")
        self.timeout = int(app.config.get("API_TIMEOUT_SECONDS", 15))
        app.extensions["api_client"] = self

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json: Any = None,
        data: Optional[Mapping[str, Any]] = None,
        files: Optional[Mapping[str, Any]] = None,
    ) -> ApiResponse:
        url = f"{self.base_url}{path}"
        headers = {}
        token = self.token_getter()
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = self.http.request(
                method,
                url,
                params=_drop_empty(params),
                json=json,
                data=data,
                files=files,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            self._log_warning("API request failed", method=method, path=path, error=str(exc))
            raise ApiUnavailable("Tidak dapat terhubung ke server") from exc

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code == 401:
            _mark_session_expired()
            message = body.get("message") if isinstance(body, dict) else None
            self._log_warning("API rejected credentials", method=method, path=path, status=401)
            raise SessionExpired(message or "Sesi Anda telah berakhir, silakan login kembali", 401)

        if not isinstance(body, dict):
            self._log_warning("API response not JSON-decodable", method=method, path=path, status=response.status_code)
            raise ApiUnavailable(DEFAULT_ERROR_MESSAGE, response.status_code)

        parsed = ApiResponse.from_json(body)
        if response.status_code >= 400 or not parsed.ok:
            self._log_warning(
                "API returned an error",
                method=method,
                path=path,
                status=response.status_code,
                api_message=parsed.message,
            )
            raise ApiError(parsed.message or DEFAULT_ERROR_MESSAGE, response.status_code, parsed.errors)
        return parsed

    def _log_warning(self, message: str, **extra: Any) -> None:
        if has_app_context():
            current_app.logger.warning(message, extra=extra)

    # Auth
    def login(self, username: str, password: str) -> ApiResponse:
        return self.request("POST", "/auth/login", json={"username": username, "password": password})

    def register(self, payload: Mapping[str, Any]) -> ApiResponse:
        return self.request("POST", "/auth/register", json=dict(payload))

    def get_profile(self) -> ApiResponse:
        return self.request("GET", "/auth/profile")

    def update_profile(self, name: str) -> ApiResponse:
        return self.request("PUT", "/auth/profile", json={"name": name})

    # Complaints
    def create_complaint(self, fields: Mapping[str, Any], attachment: Optional[tuple] = None) -> ApiResponse:
        files = {"attachment": attachment} if attachment else None
        return self.request("POST", "/complaints", data=dict(fields), files=files)

    def get_complaints(self, filters: Optional[Mapping[str, Any]] = None) -> ApiResponse:
        return self.request("GET", "/complaints", params=filters)

    def get_complaint(self, complaint_id: str) -> ApiResponse:
        return self.request("GET", f"/complaints/{complaint_id}")

    def update_complaint(self, complaint_id: str, fields: Mapping[str, Any], attachment: Optional[tuple] = None) -> ApiResponse:
        files = {"attachment": attachment} if attachment else None
        return self.request("PUT", f"/complaints/{complaint_id}", data=dict(fields), files=files)

    def delete_complaint(self, complaint_id: str) -> ApiResponse:
        return self.request("DELETE", f"/complaints/{complaint_id}")

    def verify_complaint(self, complaint_id: str, payload: Mapping[str, Any]) -> ApiResponse:
        return self.request("PUT", f"/complaints/{complaint_id}/verify", json=dict(payload))

    def take_complaint(self, complaint_id: str) -> ApiResponse:
        return self.request("PUT", f"/complaints/{complaint_id}/take")

    def process_complaint(self, complaint_id: str, process_notes: str) -> ApiResponse:
        return self.request("PUT", f"/complaints/{complaint_id}/process", json={"processNotes": process_notes})

    def finish_complaint(self, complaint_id: str, completion_notes: str) -> ApiResponse:
        return self.request("PUT", f"/complaints/{complaint_id}/finish", json={"completionNotes": completion_notes})

    # Admin
    def get_all_complaints(self, filters: Optional[Mapping[str, Any]] = None) -> ApiResponse:
        return self.request("GET", "/admin/complaints", params=filters)

    def get_dashboard_stats(self) -> ApiResponse:
        return self.request("GET", "/admin/stats")

    def get_all_users(self, filters: Optional[Mapping[str, Any]] = None) -> ApiResponse:
        return self.request("GET", "/admin/users", params=filters)

    def get_technicians(self) -> ApiResponse:
        return self.request("GET", "/users/technicians")

    def create_user(self, payload: Mapping[str, Any]) -> ApiResponse:
        return self.request("POST", "/admin/users", json=dict(payload))

    def update_user(self, user_id: str, payload: Mapping[str, Any]) -> ApiResponse:
        return self.request("PUT", f"/admin/users/{user_id}", json=dict(payload))

    def delete_user(self, user_id: str) -> ApiResponse:
        return self.request("DELETE", f"/admin/users/{user_id}")

    # Categories
    def get_categories(self, include_inactive: bool = False) -> ApiResponse:
        params = {"includeInactive": "true"} if include_inactive else None
        return self.request("GET", "/categories", params=params)

    def create_category(self, name: str, description: str = "") -> ApiResponse:
        return self.request("POST", "/categories", json={"name": name, "description": description})

    def update_category(self, category_id: str, payload: Mapping[str, Any]) -> ApiResponse:
        return self.request("PUT", f"/categories/{category_id}", json=dict(payload))

    def delete_category(self, category_id: str, force: bool = False) -> ApiResponse:
        params = {"force": "true"} if force else None
        return self.request("DELETE", f"/categories/{category_id}", params=params)

    def restore_category(self, category_id: str) -> ApiResponse:
        return self.request("POST", f"/categories/{category_id}/restore")

    def get_category_stats(self) -> ApiResponse:
        return self.request("GET", "/categories/stats")
