import base64
import binascii
import json
import logging
import re
from typing import Mapping, Optional

import requests

from session_timeout import AUTH_COOKIE_PREFIX

logger = logging.getLogger(__name__)

_AUTH_TOKEN_COOKIE = re.compile(r"^sb-.+-auth-token(?:\.(\d+))?$")
_BASE64_PREFIX = "base64-"


class AuthConfigError(RuntimeError):
    """Raised when the auth backend is not configured correctly."""


def has_auth_cookie(cookies: Mapping[str, str]) -> bool:
    return any(name.startswith(AUTH_COOKIE_PREFIX) for name in cookies)


def read_access_token(cookies: Mapping[str, str]) -> Optional[str]:
    """Return the access token stored in the Supabase auth cookie(s).

    Large sessions are split across ``sb-<ref>-auth-token.0``, ``.1`` and so
    on; the chunks are joined in index order before decoding.
    """
    chunks: list[tuple[int, str]] = []
    for name, value in cookies.items():
        match = _AUTH_TOKEN_COOKIE.match(name)
        if match:
            index = int(match.group(1)) if match.group(1) is not None else -1
            chunks.append((index, value))
    if not chunks:
        return None
    raw = "".join(value for _, value in sorted(chunks))
    if raw.startswith(_BASE64_PREFIX):
        encoded = raw[len(_BASE64_PREFIX):]
        try:
            raw = base64.urlsafe_b64decode(encoded + "=" * (-len(encoded) % 4)).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            return None
    try:
        session = json.loads(raw)
    except ValueError:
        return None
    if isinstance(session, list) and session:
        return session[0] if isinstance(session[0], str) else None
    if isinstance(session, dict):
        token = session.get("access_token")
        return token if isinstance(token, str) and token else None
    return None


class SupabaseAuthClient:
    """Minimal client for the Supabase auth ``/user`` endpoint."""

    def __init__(self, url: str, anon_key: str, timeout: float = 5.0) -> None:
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.timeout = timeout
        self.session = requests.Session()

    def get_user(self, cookies: Mapping[str, str]) -> Optional[dict]:
        """Return the user for the request cookies or ``None``."""
        token = read_access_token(cookies)
        if token is None:
            return None
        try:
            resp = self.session.get(
                f"{self.url}/auth/v1/user",
                headers={"apikey": self.anon_key, "Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("auth backend unreachable: %s", e)
            return None
        if resp.status_code != 200:
            logger.debug("auth backend rejected token with status %s", resp.status_code)
            return None
        try:
            user = resp.json()
        except ValueError as e:
            logger.warning("auth backend returned invalid JSON: %s", e)
            return None
        return user if isinstance(user, dict) and user.get("id") else None


def validate_auth_config(url: str, anon_key: str) -> None:
    if not url:
        raise AuthConfigError("Missing required setting: supabase_url")
    if not anon_key:
        raise AuthConfigError("Missing required setting: supabase_anon_key")
    if "service_role" in anon_key or anon_key.startswith("sb_secret_"):
        raise AuthConfigError(
            "Unsafe Supabase key detected in supabase_anon_key. Use the publishable/anon key only."
        )


_clients: dict[tuple[str, str], SupabaseAuthClient] = {}


def get_auth_client(url: str, anon_key: str) -> SupabaseAuthClient:
    """Return the shared auth client for ``url`` and ``anon_key``.

    One client is created per distinct configuration and reused afterwards.
    """
    key = (url.rstrip("/"), anon_key)
    client = _clients.get(key)
    if client is None:
        validate_auth_config(url, anon_key)
        client = _clients[key] = SupabaseAuthClient(url, anon_key)
    return client


def reset_auth_client() -> None:
    _clients.clear()
