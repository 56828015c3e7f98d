"""
Route/role guard.

Pure decisions over (identity, allowed roles, loading flag). Used by the
``/auth/access`` endpoint and by the Python client before it renders a view.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional

from Models.auth_models import ROLE_ADMIN, ROLE_STUDENT, STAFF_ROLES

SIGN_IN_PATH = "/"
DASHBOARD_PATH = "/dashboard"

# None = any signed-in role
ROUTE_ROLES = {
    DASHBOARD_PATH: None,
    "/lodge-complaint": (ROLE_STUDENT,),
    "/my-complaints": (ROLE_STUDENT,),
    "/all-complaints": STAFF_ROLES,
    "/admin": (ROLE_ADMIN,),
}

PUBLIC_ROUTES = (SIGN_IN_PATH, "/register", "/admin-login")


class RouteAction(str, Enum):
    RENDER = "render"
    REDIRECT = "redirect"
    LOADING = "loading"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class RouteDecision:
    action: RouteAction
    location: Optional[str] = None


def _role_of(user: Any) -> Optional[str]:
    if user is None:
        return None
    if isinstance(user, dict):
        return user.get("role")
    return getattr(user, "role", None)


def decide_route(user: Any, allowed_roles: Optional[Iterable[str]], loading: bool) -> RouteDecision:
    """Gate a protected route.

    loading      -> LOADING, no redirect while the session check is pending
    no identity  -> redirect to sign-in
    wrong role   -> redirect to the dashboard
    otherwise    -> RENDER
    """
    if loading:
        return RouteDecision(RouteAction.LOADING)
    if user is None:
        return RouteDecision(RouteAction.REDIRECT, SIGN_IN_PATH)
    if allowed_roles is not None and _role_of(user) not in set(allowed_roles):
        return RouteDecision(RouteAction.REDIRECT, DASHBOARD_PATH)
    return RouteDecision(RouteAction.RENDER)


def decide_public_route(user: Any, loading: bool) -> RouteDecision:
    """Sign-in style pages bounce an already signed-in user to the dashboard."""
    if loading:
        return RouteDecision(RouteAction.LOADING)
    if user is not None:
        return RouteDecision(RouteAction.REDIRECT, DASHBOARD_PATH)
    return RouteDecision(RouteAction.RENDER)


def decide_path(path: str, user: Any, loading: bool = False) -> RouteDecision:
    if path in PUBLIC_ROUTES:
        return decide_public_route(user, loading)
    if path not in ROUTE_ROLES:
        return RouteDecision(RouteAction.NOT_FOUND)
    return decide_route(user, ROUTE_ROLES[path], loading)
