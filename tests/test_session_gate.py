import os
import sys
import unittest
from urllib.parse import parse_qs, urlsplit

from fastapi.testclient import TestClient

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from rest_api import TrainlyticsAPI
from session_timeout import SESSION_MAX_AGE_MS, SESSION_STARTED_AT_COOKIE

NOW_MS = 1_771_200_000_000
AUTH_COOKIE = "sb-test-auth-token"
ENV_NAMES = (
    "SUPABASE_URL",
    "SUPABASE_ANON_KEY",
    "NEXT_PUBLIC_SUPABASE_URL",
    "NEXT_PUBLIC_SUPABASE_ANON_KEY",
    "APP_ENV",
)


class FakeAuth:
    """Accepts the auth cookie only when its value is ``valid``."""

    def __init__(self) -> None:
        self.calls = 0

    def get_user(self, cookies):
        self.calls += 1
        if cookies.get(AUTH_COOKIE) == "valid":
            return {"id": "user-1", "email": "athlete@example.com"}
        return None


class SessionGateTest(unittest.TestCase):
    def setUp(self) -> None:
        self.saved_env = {name: os.environ.pop(name, None) for name in ENV_NAMES}
        self.db_path = "test_gate.db"
        self.yaml_path = "test_gate.yaml"
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)
        self.auth = FakeAuth()
        self.api = TrainlyticsAPI(
            db_path=self.db_path,
            yaml_path=self.yaml_path,
            auth_provider=self.auth,
            clock=lambda: NOW_MS,
        )
        self.client = TestClient(self.api.app, follow_redirects=False)

    def tearDown(self) -> None:
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)
        for name, value in self.saved_env.items():
            if value is not None:
                os.environ[name] = value

    def _location(self, response):
        parts = urlsplit(response.headers["location"])
        return parts.path, parse_qs(parts.query)

    def test_untracked_route_passes_through(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.auth.calls, 0)

    def test_anonymous_protected_route_redirects(self) -> None:
        response = self.client.get("/dashboard", params={"tab": "x"})
        self.assertEqual(response.status_code, 307)
        path, query = self._location(response)
        self.assertEqual(path, "/login")
        self.assertEqual(query["next"], ["/dashboard?tab=x"])
        self.assertEqual(query["reason"], ["auth_required"])

    def test_stale_auth_cookie_reports_expired(self) -> None:
        self.client.cookies.set(AUTH_COOKIE, "revoked")
        response = self.client.get("/bodyweight")
        path, query = self._location(response)
        self.assertEqual(path, "/login")
        self.assertEqual(query["next"], ["/bodyweight"])
        self.assertEqual(query["reason"], ["session_expired"])

    def test_anonymous_public_route_passes(self) -> None:
        response = self.client.get("/login", params={"reason": "auth_required", "next": "//evil.com"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["message"], "Please sign in to continue.")
        self.assertIsNone(response.json()["next"])

    def test_first_authenticated_request_sets_session_cookie(self) -> None:
        self.client.cookies.set(AUTH_COOKIE, "valid")
        response = self.client.get("/dashboard")
        self.assertEqual(response.status_code, 200)
        header = response.headers["set-cookie"]
        self.assertIn(f"{SESSION_STARTED_AT_COOKIE}={NOW_MS}", header)
        self.assertIn("Max-Age=2592000", header)
        self.assertIn("Path=/", header)
        self.assertIn("samesite=lax", header.lower())
        self.assertNotIn("secure", header.lower())

    def test_fresh_session_does_not_reset_cookie(self) -> None:
        self.client.cookies.set(AUTH_COOKIE, "valid")
        self.client.cookies.set(SESSION_STARTED_AT_COOKIE, str(NOW_MS - 1000))
        response = self.client.get("/dashboard")
        self.assertEqual(response.status_code, 200)
        self.assertNotIn("set-cookie", response.headers)

    def test_expired_session_clears_cookies(self) -> None:
        self.client.cookies.set(AUTH_COOKIE, "valid")
        self.client.cookies.set(
            SESSION_STARTED_AT_COOKIE, str(NOW_MS - SESSION_MAX_AGE_MS)
        )
        response = self.client.get("/calories")
        self.assertEqual(response.status_code, 307)
        path, query = self._location(response)
        self.assertEqual(path, "/login")
        self.assertEqual(query, {"reason": ["session_expired"]})
        cleared = " ".join(response.headers.get_list("set-cookie"))
        self.assertIn(f'{AUTH_COOKIE}=""', cleared)
        self.assertIn(f'{SESSION_STARTED_AT_COOKIE}=""', cleared)

    def test_expired_session_on_public_route(self) -> None:
        self.client.cookies.set(AUTH_COOKIE, "valid")
        self.client.cookies.set(
            SESSION_STARTED_AT_COOKIE, str(NOW_MS - SESSION_MAX_AGE_MS - 1)
        )
        response = self.client.get("/signup")
        path, query = self._location(response)
        self.assertEqual(path, "/login")
        self.assertEqual(query["reason"], ["session_expired"])

    def test_invalid_session_cookie_is_replaced(self) -> None:
        self.client.cookies.set(AUTH_COOKIE, "valid")
        self.client.cookies.set(SESSION_STARTED_AT_COOKIE, "garbage")
        response = self.client.get("/dashboard")
        self.assertEqual(response.status_code, 200)
        self.assertIn(f"{SESSION_STARTED_AT_COOKIE}={NOW_MS}", response.headers["set-cookie"])

    def test_authenticated_public_route_redirects_to_dashboard(self) -> None:
        self.client.cookies.set(AUTH_COOKIE, "valid")
        self.client.cookies.set(SESSION_STARTED_AT_COOKIE, str(NOW_MS))
        response = self.client.get("/login", params={"next": "/log"})
        self.assertEqual(response.status_code, 307)
        self.assertEqual(response.headers["location"], "http://testserver/dashboard")


class UnconfiguredGateTest(unittest.TestCase):
    def setUp(self) -> None:
        self.saved_env = {name: os.environ.pop(name, None) for name in ENV_NAMES}
        self.db_path = "test_gate_off.db"
        self.api = TrainlyticsAPI(db_path=self.db_path, yaml_path="missing.yaml")
        self.client = TestClient(self.api.app, follow_redirects=False)

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        for name, value in self.saved_env.items():
            if value is not None:
                os.environ[name] = value

    def test_requests_pass_through(self) -> None:
        self.assertIsNone(self.api.gate.auth_provider)
        response = self.client.get("/dashboard")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(self.client.get("/login").status_code, 200)


class SecureCookieTest(unittest.TestCase):
    def setUp(self) -> None:
        self.saved_env = {name: os.environ.pop(name, None) for name in ENV_NAMES}
        os.environ["APP_ENV"] = "production"
        self.db_path = "test_gate_secure.db"
        self.api = TrainlyticsAPI(
            db_path=self.db_path,
            yaml_path="missing.yaml",
            auth_provider=FakeAuth(),
            clock=lambda: NOW_MS,
        )
        self.client = TestClient(self.api.app, follow_redirects=False)

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        os.environ.pop("APP_ENV", None)
        for name, value in self.saved_env.items():
            if value is not None:
                os.environ[name] = value

    def test_cookie_is_secure_in_production(self) -> None:
        self.client.cookies.set(AUTH_COOKIE, "valid")
        response = self.client.get("/profile")
        self.assertEqual(response.status_code, 200)
        self.assertIn("secure", response.headers["set-cookie"].lower())


if __name__ == "__main__":
    unittest.main()
