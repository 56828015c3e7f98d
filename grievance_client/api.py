"""
HTTP client for the grievance service.

Thin wrapper over ``httpx``; every call maps one endpoint. Failures surface as
``ApiError`` (HTTP status + server detail) or ``ServiceUnavailable`` when the
service cannot be reached. Nothing is retried.
"""

import logging
import os
from typing import Any, Optional

import httpx
from dotenv import load_dotenv

from grievance_client.validation import validate_complaint, validate_registration

load_dotenv()

logger = logging.getLogger(__name__)

API_URL = os.getenv("GRIEVANCE_API_URL", "http://localhost:8080")
CONNECTIVITY_ERROR = "Failed to connect to the server. Please try again."


class ApiError(Exception):
    def __init__(self, status_code: Optional[int], detail: str):
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


class ServiceUnavailable(ApiError):
    def __init__(self, detail: str = CONNECTIVITY_ERROR):
        super().__init__(None, detail)


def _detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or resp.reason_phrase
    detail = body.get("detail") if isinstance(body, dict) else None
    if isinstance(detail, list):
        # pydantic validation errors
        return "; ".join(d.get("msg", str(d)) for d in detail)
    return str(detail) if detail else resp.reason_phrase


class GrievanceClient:
    def __init__(self, base_url: Optional[str] = None, http: Optional[httpx.Client] = None,
                 timeout: Optional[float] = 10.0):
        self.http = http or httpx.Client(base_url=base_url or API_URL, timeout=timeout)
        self.access_token: Optional[str] = None

    def close(self) -> None:
        self.http.close()

    def _request(self, method: str, path: str, **kwargs) -> Any:
        headers = kwargs.pop("headers", {})
        if self.access_token:
            headers.setdefault("Authorization", f"Bearer {self.access_token}")
        try:
            resp = self.http.request(method, path, headers=headers, **kwargs)
        except httpx.TransportError as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise ServiceUnavailable() from e
        if resp.status_code >= 400:
            raise ApiError(resp.status_code, _detail(resp))
        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    # ---------- identity ----------
    def register(self, email: str, password: str, name: str, branch: str,
                 confirm_password: Optional[str] = None) -> dict:
        payload = validate_registration(email, password, name, branch, confirm_password)
        return self._request("POST", "/auth/register", json=payload)

    def login(self, email: str, password: str) -> dict:
        return self._request("POST", "/auth/login", json={"email": email, "password": password})

    def refresh(self, refresh_token: str) -> dict:
        return self._request("POST", "/auth/refresh", json={"refresh_token": refresh_token})

    def logout(self, refresh_token: str) -> None:
        self._request("POST", "/auth/logout", json={"refresh_token": refresh_token})

    def me(self) -> dict:
        return self._request("GET", "/auth/me")

    def check_access(self, path: str) -> dict:
        return self._request("GET", "/auth/access", params={"path": path})

    # ---------- complaints ----------
    def list_complaints(self, status: Optional[str] = None, category: Optional[str] = None) -> list:
        params = {k: v for k, v in (("status", status), ("category", category)) if v}
        return self._request("GET", "/complaints/", params=params)

    def complaint_stats(self) -> dict:
        return self._request("GET", "/complaints/stats")

    def get_complaint(self, complaint_id: int) -> dict:
        return self._request("GET", f"/complaints/{complaint_id}")

    def submit_complaint(self, category: str, description: str,
                         attachment_url: Optional[str] = None) -> dict:
        # raises ValidationError before touching the network
        payload = validate_complaint(category, description, attachment_url)
        return self._request("POST", "/complaints/", json=payload)

    def resolve_complaint(self, complaint_id: int) -> dict:
        return self._request("POST", f"/complaints/{complaint_id}/resolve")

    # ---------- admin ----------
    def list_users(self, q: Optional[str] = None) -> list:
        return self._request("GET", "/auth/users", params={"q": q} if q else None)

    def user_stats(self) -> dict:
        return self._request("GET", "/auth/users/stats")

    def change_role(self, user_id: int, role: str) -> dict:
        return self._request("PATCH", f"/auth/users/{user_id}/role", json={"role": role})

    def delete_user(self, user_id: int) -> None:
        self._request("DELETE", f"/auth/users/{user_id}")
