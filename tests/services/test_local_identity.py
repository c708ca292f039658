import json

import pytest

from devbootstrap.errors import BootstrapError, ManualActionRequired
from devbootstrap.services.local_identity import LocalIdentityService


class DummyLogger:
    def _log(self, *_args, **_kwargs):
        return None

    debug = info = warning = _log


class DummyConsole:
    def print(self, *_args, **_kwargs):
        return None


class FakeResponse:
    def __init__(self, status_code, body):
        self.status_code = status_code
        self.text = body if isinstance(body, str) else json.dumps(body)

    def json(self):
        return json.loads(self.text)


class FakeRequestsModule:
    class RequestException(Exception):
        pass

    def __init__(self, reachable=True, response=None):
        self.reachable = reachable
        self.response = response
        self.posts = []

    def get(self, url, timeout=None):
        if not self.reachable:
            raise self.RequestException("connection refused")
        return FakeResponse(200, "")

    def post(self, url, headers=None, json=None, timeout=None):
        self.posts.append((url, headers, json, timeout))
        return self.response


def _create(fake_requests, admin_token="admin-token"):
    service = LocalIdentityService(
        logger=DummyLogger(),
        console=DummyConsole(),
        requests_module=fake_requests,
        timeout_seconds=5.0,
    )
    return service.create_test_user(
        base_url="http://localhost:9010/",
        admin_token=admin_token,
        email="test@example.com",
        password="Password1!",
        first_name="Test",
        last_name="User",
    )


def test_create_test_user_imports_human_user():
    fake_requests = FakeRequestsModule(response=FakeResponse(200, {"userId": "123"}))

    message = _create(fake_requests)

    url, headers, payload, timeout = fake_requests.posts[0]
    assert message == "Test user test@example.com created (123)"
    assert url == "http://localhost:9010/management/v1/users/human/_import"
    assert headers["Authorization"] == "Bearer admin-token"
    assert payload["email"] == {"email": "test@example.com", "isEmailVerified": True}
    assert payload["passwordChangeRequired"] is False
    assert timeout == 5.0


def test_existing_user_counts_as_done():
    fake_requests = FakeRequestsModule(response=FakeResponse(409, {"message": "User already exists"}))

    assert "already exists" in _create(fake_requests)


def test_missing_admin_token_requires_manual_action_without_leaking_password():
    with pytest.raises(ManualActionRequired) as exc_info:
        _create(FakeRequestsModule(), admin_token=None)

    assert "LOCAL_ZITADEL_ADMIN_TOKEN" in str(exc_info.value)
    assert "Password1!" not in str(exc_info.value)


def test_unreachable_identity_provider_fails():
    with pytest.raises(BootstrapError, match="not running"):
        _create(FakeRequestsModule(reachable=False))


def test_response_without_user_id_fails():
    with pytest.raises(BootstrapError, match="HTTP 400"):
        _create(FakeRequestsModule(response=FakeResponse(400, {"message": "invalid email"})))
