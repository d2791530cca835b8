"""End-to-end tests for administrator login, logout and the donation listing."""

from __future__ import annotations

import asyncio
import tempfile
import unittest
from pathlib import Path

import httpx
from fastapi.testclient import TestClient

from donations.config import Settings
from donations.database import Database
from donations.rate_limit import LoginAttemptTracker
from donations.validation import DonationSubmission
from donations.web import LOCKED_OUT_MESSAGE, create_app

from conftest import FakeClock

USERNAME = "admin"
PASSWORD = "correct-horse-battery"


class AdminLoginTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tempdir = tempfile.TemporaryDirectory()
        self.database = Database(Path(self._tempdir.name) / "donations.sqlite3")
        self.database.initialize()
        self.database.create_user(USERNAME, PASSWORD)
        self.clock = FakeClock()
        self.tracker = LoginAttemptTracker(max_attempts=5, lockout_seconds=900, clock=self.clock)
        app = create_app(
            database=self.database,
            settings=Settings(),
            session_secret="not-so-secret",
            login_attempts=self.tracker,
        )
        self.app = app
        self.client = TestClient(app)

    def tearDown(self) -> None:
        self.client.close()
        self._tempdir.cleanup()

    def _login(self, username: str = USERNAME, password: str = PASSWORD):
        return self.client.post(
            "/login",
            data={"username": username, "password": password},
            follow_redirects=False,
        )

    def _donate(self, name: str) -> None:
        self.database.insert_donation(
            DonationSubmission(name=name, bank_info="IBAN-" + name, amount="10", description="")
        )

    def test_admin_requires_authentication(self) -> None:
        self._donate("Secret Donor")

        response = self.client.get("/admin", follow_redirects=False)

        self.assertEqual(response.status_code, 303)
        self.assertTrue(response.headers["location"].endswith("/login"))
        self.assertNotIn("Secret Donor", response.text)

    def test_successful_login_shows_donations_newest_first(self) -> None:
        self._donate("Older Donor")
        self._donate("Newer Donor")

        response = self._login()
        self.assertEqual(response.status_code, 303)
        self.assertTrue(response.headers["location"].endswith("/admin"))

        page = self.client.get("/admin")
        self.assertEqual(page.status_code, 200)
        self.assertIn("Signed in as <strong>admin</strong>", page.text)
        self.assertLess(page.text.index("Newer Donor"), page.text.index("Older Donor"))
        self.assertIn("IBAN-Older Donor", page.text)

    def test_wrong_password_and_unknown_user_get_the_same_error(self) -> None:
        for username, password in ((USERNAME, "wrong-password"), ("ghost", PASSWORD)):
            response = self._login(username, password)
            self.assertEqual(response.status_code, 303)
            self.assertTrue(response.headers["location"].endswith("/login"))
            page = self.client.get("/login")
            self.assertIn("Invalid username or password.", page.text)
            self.assertIn(f'value="{username}"', page.text)
            self.assertNotIn(password, page.text)

        self.assertEqual(self.client.get("/admin", follow_redirects=False).status_code, 303)

    def test_blank_fields_are_reported(self) -> None:
        response = self._login("", "")
        self.assertEqual(response.status_code, 303)
        page = self.client.get("/login")
        self.assertIn("Username is required.", page.text)
        self.assertIn("Password is required.", page.text)

    def test_authenticated_session_skips_login_page(self) -> None:
        self._login()
        response = self.client.get("/login", follow_redirects=False)
        self.assertEqual(response.status_code, 303)
        self.assertTrue(response.headers["location"].endswith("/admin"))

    def test_logout_returns_to_anonymous(self) -> None:
        self._login()
        response = self.client.get("/logout", follow_redirects=False)
        self.assertEqual(response.status_code, 303)
        self.assertTrue(response.headers["location"].endswith("/login"))

        admin = self.client.get("/admin", follow_redirects=False)
        self.assertEqual(admin.status_code, 303)

    def test_repeated_attempts_lock_out_the_client_until_window_passes(self) -> None:
        for _ in range(5):
            self.assertEqual(self._login(password="wrong-password").status_code, 303)
            self.clock.advance(1)

        locked = self.client.get("/login")
        self.assertEqual(locked.status_code, 429)
        self.assertEqual(locked.text, LOCKED_OUT_MESSAGE)

        # Even the right password is refused while locked out.
        self.assertEqual(self._login().status_code, 429)

        self.clock.advance(900)
        self.assertEqual(self.client.get("/login").status_code, 200)
        self.assertEqual(self._login().status_code, 303)

    def test_successful_login_counts_as_an_attempt(self) -> None:
        self._login()
        self.assertEqual(self.tracker.attempts("testclient"), 1)

    def test_concurrent_attempts_cannot_exceed_the_limit(self) -> None:
        async def _storm():
            transport = httpx.ASGITransport(app=self.app)
            async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
                return await asyncio.gather(
                    *(
                        client.post("/login", data={"username": USERNAME, "password": f"guess-{n}"})
                        for n in range(20)
                    )
                )

        responses = asyncio.run(_storm())
        codes = [response.status_code for response in responses]

        self.assertEqual(codes.count(303), 5)
        self.assertEqual(codes.count(429), 15)
        self.assertEqual(self.tracker.attempts("127.0.0.1"), 5)

    def test_login_page_views_do_not_count(self) -> None:
        self.client.get("/login")
        self.client.get("/login")
        self.assertEqual(self.tracker.attempts("testclient"), 0)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
