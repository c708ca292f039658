"""Test-user provisioning in the local Zitadel instance."""

from typing import Optional

import requests

from devbootstrap.errors import BootstrapError, ManualActionRequired


class LocalIdentityService:
    """Creates a human test user through the local Zitadel management API."""

    def __init__(self, logger, console, requests_module=requests, timeout_seconds: float = 30.0):
        self.logger = logger
        self.console = console
        self.requests = requests_module
        self.timeout_seconds = timeout_seconds

    def is_reachable(self, base_url: str) -> bool:
        try:
            self.requests.get(f"{base_url}/ui/console", timeout=self.timeout_seconds)
        except self.requests.RequestException:
            return False
        return True

    @staticmethod
    def manual_instructions(base_url: str, email: str, first_name: str, last_name: str) -> str:
        return (
            f"Create the user manually: open {base_url}/ui/console, go to Users > New and use "
            f"email {email}, name {first_name} {last_name} and the TEST_USER_PASSWORD value; "
            "or set LOCAL_ZITADEL_ADMIN_TOKEN in setup.env."
        )

    def create_test_user(
        self,
        base_url: str,
        admin_token: Optional[str],
        email: str,
        password: str,
        first_name: str,
        last_name: str,
    ) -> str:
        base_url = base_url.rstrip("/")
        if not self.is_reachable(base_url):
            raise BootstrapError(
                f"Local Zitadel is not running at {base_url}. "
                "Start it first: cd backend && docker compose up -d zitadel"
            )

        if not admin_token:
            raise ManualActionRequired(
                "LOCAL_ZITADEL_ADMIN_TOKEN not set. "
                + self.manual_instructions(base_url, email, first_name, last_name)
            )

        self.console.print(f"[blue]Creating user: {email}[/blue]")
        payload = {
            "userName": email,
            "profile": {"firstName": first_name, "lastName": last_name},
            "email": {"email": email, "isEmailVerified": True},
            "password": password,
            "passwordChangeRequired": False,
        }
        try:
            response = self.requests.post(
                f"{base_url}/management/v1/users/human/_import",
                headers={
                    "Authorization": f"Bearer {admin_token}",
                    "Content-Type": "application/json",
                },
                json=payload,
                timeout=self.timeout_seconds,
            )
        except self.requests.RequestException as exc:
            raise BootstrapError(f"Failed to create test user: no response from {base_url} ({exc})") from exc

        if response.status_code == 409:
            self.logger.info("Test user %s already exists in local Zitadel", email)
            return f"Test user {email} already exists"

        try:
            body = response.json()
        except ValueError:
            body = {}

        user_id = body.get("userId") if isinstance(body, dict) else None
        if not 200 <= response.status_code < 300 or not user_id:
            raise BootstrapError(
                f"Failed to create test user (HTTP {response.status_code}): {response.text.strip()}"
            )

        self.logger.info("Test user created: email=%s user_id=%s", email, user_id)
        self.console.print(
            f"[green]Test user created![/green] Email: {email}  User ID: {user_id}\n"
            "User will be auto-provisioned to the database on first login."
        )
        return f"Test user {email} created ({user_id})"
