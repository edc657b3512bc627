import logging
import time
from typing import Callable, Optional, Protocol
from urllib.parse import urlencode

from fastapi import Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import RedirectResponse

from auth_client import has_auth_cookie
from routes import ROUTES, is_protected_route, is_public_route
from session_timeout import (
    AUTH_COOKIE_PREFIX,
    SESSION_COOKIE_MAX_AGE_DAYS,
    SESSION_MAX_AGE_MS,
    SESSION_STARTED_AT_COOKIE,
    format_session_cookie_value,
    is_session_expired_from_start,
    parse_session_started_at,
)

logger = logging.getLogger(__name__)


class AuthProvider(Protocol):
    def get_user(self, cookies: dict) -> Optional[dict]: ...


def _now_ms() -> float:
    return time.time() * 1000


class SessionGate:
    """HTTP middleware enforcing authentication and session lifetime.

    Only protected and public routes are evaluated. Without an auth provider
    (missing backend configuration) every request passes through.
    """

    def __init__(
        self,
        auth_provider: Optional[AuthProvider],
        *,
        max_age_ms: int = SESSION_MAX_AGE_MS,
        cookie_max_age_days: int = SESSION_COOKIE_MAX_AGE_DAYS,
        secure_cookies: bool = False,
        clock: Callable[[], float] = _now_ms,
    ) -> None:
        self.auth_provider = auth_provider
        self.max_age_ms = max_age_ms
        self.cookie_max_age = cookie_max_age_days * 24 * 60 * 60
        self.secure_cookies = secure_cookies
        self.clock = clock
        self._warned = False

    async def __call__(self, request: Request, call_next):
        pathname = request.url.path
        protected = is_protected_route(pathname)
        public = is_public_route(pathname)
        if not protected and not public:
            return await call_next(request)

        if self.auth_provider is None:
            if not self._warned:
                logger.warning("auth backend not configured; session gate disabled")
                self._warned = True
            return await call_next(request)

        cookies = dict(request.cookies)
        user = await run_in_threadpool(self.auth_provider.get_user, cookies)

        if user is None:
            if protected:
                reason = "session_expired" if has_auth_cookie(cookies) else "auth_required"
                query = request.url.query
                next_route = f"{pathname}?{query}" if query else pathname
                logger.debug("redirecting %s to login (%s)", pathname, reason)
                return self._redirect(
                    request, ROUTES["login"], {"next": next_route, "reason": reason}
                )
            return await call_next(request)

        now = self.clock()
        started_at = parse_session_started_at(request.cookies.get(SESSION_STARTED_AT_COOKIE))
        if started_at is not None and is_session_expired_from_start(
            started_at, now, self.max_age_ms
        ):
            logger.debug("session for user %s expired", user.get("id"))
            response = self._redirect(request, ROUTES["login"], {"reason": "session_expired"})
            self._clear_auth_cookies(response, cookies)
            return response

        request.state.user = user
        if public:
            response = self._redirect(request, ROUTES["dashboard"], {})
        else:
            response = await call_next(request)
        if started_at is None:
            self._set_session_cookie(response, now)
        return response

    @staticmethod
    def _redirect(request: Request, path: str, params: dict) -> RedirectResponse:
        url = request.url.replace(path=path, query=urlencode(params))
        return RedirectResponse(str(url), status_code=307)

    def _set_session_cookie(self, response: Response, now_ms: float) -> None:
        response.set_cookie(
            SESSION_STARTED_AT_COOKIE,
            format_session_cookie_value(now_ms),
            max_age=self.cookie_max_age,
            path="/",
            samesite="lax",
            secure=self.secure_cookies,
        )

    def _clear_auth_cookies(self, response: Response, cookies: dict) -> None:
        for name in cookies:
            if name.startswith(AUTH_COOKIE_PREFIX):
                response.delete_cookie(name, path="/")
        response.delete_cookie(SESSION_STARTED_AT_COOKIE, path="/")
