"""
Client session ("auth context").

``AuthContext`` is an explicitly owned object: create one at start-up, hand it
to whatever needs the signed-in identity, and only change it through
``login``/``logout``/``register``. Persistence is a single JSON snapshot
(identity + tokens) under a fixed key, read once by ``start()`` and removed on
sign-out.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from dotenv import load_dotenv

from auth.guard import RouteDecision, decide_path
from grievance_client.api import ApiError, GrievanceClient, ServiceUnavailable
from grievance_client.validation import ValidationError

load_dotenv()

logger = logging.getLogger(__name__)

SESSION_KEY = "campusGrievanceUser"
SESSION_DIR = os.getenv("GRIEVANCE_SESSION_DIR") or str(Path.home() / ".campus_grievance")

PROFILE_NOT_FOUND = "Profile not found. Please contact the administrator."
LOGIN_FAILED = "Login failed"
REGISTRATION_FAILED = "Registration failed"
SESSION_EXPIRED = "Your session has expired. Please sign in again."


class SessionEvent(str, Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    RESTORED = "RESTORED"


@dataclass
class CurrentUser:
    user_id: int
    email: str
    name: str
    branch: str
    role: str

    @classmethod
    def from_dict(cls, data: dict) -> "CurrentUser":
        return cls(
            user_id=int(data["user_id"]),
            email=data["email"],
            name=data["name"],
            branch=data["branch"],
            role=data["role"],
        )


@dataclass
class AuthResult:
    success: bool
    error: Optional[str] = None


SessionListener = Callable[[SessionEvent, Optional[CurrentUser]], None]


class SessionStore:
    """Single serialized snapshot under ``SESSION_KEY``."""

    def __init__(self, directory: Optional[str] = None):
        self.directory = Path(directory or SESSION_DIR)

    @property
    def path(self) -> Path:
        return self.directory / f"{SESSION_KEY}.json"

    def load(self) -> Optional[dict]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable session snapshot at %s", self.path)
            self.clear()
            return None
        return data if isinstance(data, dict) else None

    def save(self, snapshot: dict) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(snapshot), encoding="utf-8")

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


class AuthContext:
    def __init__(self, api: GrievanceClient, store: Optional[SessionStore] = None):
        self.api = api
        self.store = store or SessionStore()
        self.user: Optional[CurrentUser] = None
        self.loading = True
        self._refresh_token: Optional[str] = None
        self._listeners: List[SessionListener] = []

    # ---------- notifications ----------
    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: SessionEvent) -> None:
        # delivered synchronously, in emission order
        for listener in list(self._listeners):
            try:
                listener(event, self.user)
            except Exception:
                logger.exception("Session listener failed on %s", event.value)

    # ---------- state ----------
    def _apply_tokens(self, payload: dict) -> None:
        self.api.access_token = payload["access_token"]
        self._refresh_token = payload["refresh_token"]
        self.user = CurrentUser.from_dict(payload["user"])
        self.store.save({
            "user": asdict(self.user),
            "access_token": self.api.access_token,
            "refresh_token": self._refresh_token,
        })

    def _clear(self) -> None:
        self.user = None
        self.api.access_token = None
        self._refresh_token = None
        self.store.clear()

    # ---------- operations ----------
    def start(self) -> None:
        """Initial session check; ``loading`` stays True until it finishes."""
        try:
            snapshot = self.store.load()
            if not snapshot:
                return
            try:
                self.user = CurrentUser.from_dict(snapshot["user"])
                self.api.access_token = snapshot.get("access_token")
                self._refresh_token = snapshot.get("refresh_token")
            except (KeyError, TypeError, ValueError):
                logger.warning("Session snapshot is incomplete; signing out")
                self._clear()
                return

            if not self._refresh_token:
                self._emit(SessionEvent.RESTORED)
                return
            if not self.refresh().success and self.user is not None:
                # keep the cached identity; the service may come back
                logger.warning("Could not reach the service; using the cached session")
                self._emit(SessionEvent.RESTORED)
        finally:
            self.loading = False

    def refresh(self) -> AuthResult:
        """Rotate the token pair. Call it when a protected call answers 401.

        A rejected refresh token signs the session out; an unreachable service
        leaves it as it is.
        """
        if not self._refresh_token:
            return AuthResult(False, SESSION_EXPIRED)
        try:
            payload = self.api.refresh(self._refresh_token)
        except ServiceUnavailable as e:
            return AuthResult(False, e.detail)
        except ApiError as e:
            logger.info("Stored session rejected (%s); signing out", e.detail)
            self._clear()
            self._emit(SessionEvent.SIGNED_OUT)
            return AuthResult(False, SESSION_EXPIRED)
        self._apply_tokens(payload)
        self._emit(SessionEvent.TOKEN_REFRESHED)
        return AuthResult(True)

    def login(self, email: str, password: str) -> AuthResult:
        try:
            payload = self.api.login(email.strip().lower(), password)
        except ServiceUnavailable as e:
            return AuthResult(False, e.detail)
        except ApiError as e:
            if e.status_code == 404:
                # credentials were accepted but no profile/role pair exists
                return AuthResult(False, PROFILE_NOT_FOUND)
            return AuthResult(False, e.detail or LOGIN_FAILED)
        self._apply_tokens(payload)
        self._emit(SessionEvent.SIGNED_IN)
        return AuthResult(True)

    def register(self, email: str, password: str, name: str, branch: str,
                 confirm_password: Optional[str] = None) -> AuthResult:
        """Create a student account. The caller still has to ``login``."""
        try:
            self.api.register(email, password, name, branch, confirm_password)
        except ValidationError as e:
            return AuthResult(False, e.message)
        except ApiError as e:
            return AuthResult(False, e.detail or REGISTRATION_FAILED)
        return AuthResult(True)

    def logout(self) -> None:
        if self._refresh_token:
            try:
                self.api.logout(self._refresh_token)
            except ApiError as e:
                logger.info("Server-side logout failed (%s); clearing local session", e.detail)
        self._clear()
        self._emit(SessionEvent.SIGNED_OUT)

    def guard(self, path: str) -> RouteDecision:
        return decide_path(path, self.user, self.loading)
