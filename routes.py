from typing import Optional
from urllib.parse import urlsplit

ROUTES = {
    "login": "/login",
    "signup": "/signup",
    "forgot_password": "/forgot-password",
    "launch": "/launch",
    "signout": "/signout",
    "session_expired": "/session-expired",
    "dashboard": "/dashboard",
    "insights": "/insights",
    "log": "/log",
    "bodyweight": "/bodyweight",
    "calories": "/calories",
    "profile": "/profile",
}

PROTECTED_ROUTES = (
    ROUTES["dashboard"],
    ROUTES["insights"],
    ROUTES["log"],
    ROUTES["bodyweight"],
    ROUTES["calories"],
    ROUTES["profile"],
    ROUTES["launch"],
)

PUBLIC_ROUTES = (
    ROUTES["login"],
    ROUTES["signup"],
    ROUTES["forgot_password"],
)

LOGIN_REASONS = {
    "session_expired": "Your session expired. Please sign in again.",
    "auth_required": "Please sign in to continue.",
}


def _matches(pathname: str, routes: tuple[str, ...]) -> bool:
    return any(pathname == r or pathname.startswith(r + "/") for r in routes)


def is_protected_route(pathname: str) -> bool:
    return _matches(pathname, PROTECTED_ROUTES)


def is_public_route(pathname: str) -> bool:
    return _matches(pathname, PUBLIC_ROUTES)


def get_default_signed_in_route() -> str:
    return ROUTES["dashboard"]


def get_safe_protected_next_route(candidate: Optional[str]) -> Optional[str]:
    """Return ``candidate`` if it is a local protected path, else ``None``.

    Scheme-relative targets (``//host``), absolute URLs and paths outside the
    protected set are rejected so the value can be used as a redirect.
    """
    if not candidate or not candidate.startswith("/") or candidate.startswith("//"):
        return None
    if "\\" in candidate:
        return None
    try:
        parts = urlsplit(candidate)
    except ValueError:
        return None
    if parts.scheme or parts.netloc:
        return None
    if not is_protected_route(parts.path):
        return None
    return f"{parts.path}?{parts.query}" if parts.query else parts.path


def friendly_login_reason(reason: Optional[str]) -> Optional[str]:
    return LOGIN_REASONS.get(reason) if reason else None
