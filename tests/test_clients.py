import asyncio
import json

import httpx
import pytest
from pydantic import ValidationError

from safisha.clients import ApiClient, Navigator
from safisha.errors import (
    ApiError,
    MissingRefreshToken,
    RequestTimeout,
    TransportError,
    Unauthorized,
)
from safisha.storage import AUTH_TOKEN, LEGACY_TOKEN, REFRESH_TOKEN, USER_DATA, MemoryStorage

from .fake_api import CUSTOMER

STORED_USER = json.dumps({"id": "u-1", "email": CUSTOMER["email"], "role": "customer"})


def test_login_persists_tokens_and_user(api, storage, transport):
    session = asyncio.run(api.login(CUSTOMER))

    stored = storage.snapshot()
    assert stored[AUTH_TOKEN] == session.access_token
    assert stored[LEGACY_TOKEN] == session.access_token
    assert stored[REFRESH_TOKEN] == session.refresh_token
    assert json.loads(stored[USER_DATA])["email"] == CUSTOMER["email"]
    assert session.user.first_name == "Alice"
    assert transport.calls("POST", "/auth/signin")[0].body == CUSTOMER


def test_login_failure_leaves_storage_untouched(api, storage):
    with pytest.raises(Unauthorized) as exc:
        asyncio.run(api.login({"email": CUSTOMER["email"], "password": "wrong"}))

    assert exc.value.status_code == 401
    assert exc.value.detail == "Invalid credentials"
    assert storage.snapshot() == {}


def test_requests_carry_bearer_token_and_request_id(api, transport):
    async def main():
        session = await api.login(CUSTOMER)
        await api.get_current_user()
        return session

    session = asyncio.run(main())

    profile_call = transport.calls("GET", "/auth/profile")[0]
    assert profile_call.headers["authorization"] == f"Bearer {session.access_token}"
    assert profile_call.headers["x-request-id"]
    assert "authorization" not in transport.calls("POST", "/auth/signin")[0].headers


def test_unauthorized_clears_session_and_redirects_once(settings, transport):
    storage = MemoryStorage({AUTH_TOKEN: "revoked", LEGACY_TOKEN: "revoked", USER_DATA: STORED_USER})
    navigator = Navigator("/dashboard/bookings")
    api = ApiClient(settings, storage, navigator, transport)

    async def main():
        for _ in range(2):
            with pytest.raises(Unauthorized):
                await api.get("/auth/profile")

    asyncio.run(main())

    assert navigator.redirects == ["/login"]
    assert navigator.path == "/login"
    assert storage.snapshot() == {}


@pytest.mark.parametrize("path", ["/login", "/register", "/register?next=/services"])
def test_unauthorized_on_auth_pages_does_not_redirect(settings, transport, path):
    storage = MemoryStorage({AUTH_TOKEN: "revoked", USER_DATA: STORED_USER})
    navigator = Navigator(path)
    api = ApiClient(settings, storage, navigator, transport)

    with pytest.raises(Unauthorized):
        asyncio.run(api.get("/auth/profile"))

    assert navigator.redirects == []
    assert navigator.path == path
    assert AUTH_TOKEN not in storage.snapshot()


def test_error_message_from_payload(api, transport):
    transport.fail("GET", "/services/svc-9", 404, {"message": "Service not found"})
    transport.fail("POST", "/services", 400, {"message": ["name is required", "base_price must be a number"]})

    async def main():
        with pytest.raises(ApiError) as missing:
            await api.get("/services/svc-9")
        with pytest.raises(ApiError) as invalid:
            await api.post("/services", {})
        return missing.value, invalid.value

    missing, invalid = asyncio.run(main())

    assert missing.status_code == 404
    assert str(missing) == "Service not found"
    assert missing.is_client_error
    assert invalid.detail == "name is required; base_price must be a number"


def test_error_without_message_falls_back_to_body_then_status(api, transport):
    transport.overrides[("GET", "/services")] = (503, [])
    transport.overrides[("GET", "/bookings")] = (500, None)

    with pytest.raises(ApiError) as listed:
        asyncio.run(api.get("/services"))
    with pytest.raises(ApiError) as empty:
        asyncio.run(api.get("/bookings"))

    assert listed.value.is_server_error
    assert listed.value.detail == "[]"
    assert empty.value.detail == "HTTP error! status: 500"


def test_timeout_and_network_errors(api, transport):
    transport.raise_on("GET", "/services", httpx.ReadTimeout("too slow"))
    transport.raise_on("GET", "/bookings", httpx.ConnectError("refused"))

    with pytest.raises(RequestTimeout) as slow:
        asyncio.run(api.get("/services"))
    with pytest.raises(TransportError) as down:
        asyncio.run(api.get("/bookings"))

    assert slow.value.status_code is None
    assert not isinstance(down.value, RequestTimeout)


def test_empty_body_reads_as_empty_dict(api, transport):
    transport.overrides[("DELETE", "/services/svc-1")] = (204, None)

    assert asyncio.run(api.delete("/services/svc-1")) == {}


def test_session_needs_token_and_parseable_user():
    async def authenticated(initial):
        api = ApiClient(storage=MemoryStorage(initial))
        return await api.is_authenticated()

    assert asyncio.run(authenticated({AUTH_TOKEN: "t", USER_DATA: STORED_USER}))
    assert asyncio.run(authenticated({LEGACY_TOKEN: "t", USER_DATA: STORED_USER}))
    assert not asyncio.run(authenticated({AUTH_TOKEN: "t"}))
    assert not asyncio.run(authenticated({USER_DATA: STORED_USER}))


def test_malformed_cached_user_removes_token():
    storage = MemoryStorage({AUTH_TOKEN: "t", LEGACY_TOKEN: "t", USER_DATA: "{not json"})
    api = ApiClient(storage=storage)

    assert asyncio.run(api.load_session()) is None
    assert storage.snapshot() == {}


def test_logout_clears_session_even_when_server_fails(api, storage, transport):
    async def main():
        await api.login(CUSTOMER)
        transport.fail("POST", "/auth/logout", 500)
        await api.logout()

    asyncio.run(main())

    assert storage.snapshot() == {}


def test_refresh_without_refresh_token_sends_nothing(api, transport):
    with pytest.raises(MissingRefreshToken):
        asyncio.run(api.refresh_token())

    assert transport.requests == []


def test_refresh_rotates_tokens(api, storage, transport):
    async def main():
        session = await api.login(CUSTOMER)
        new_access = await api.refresh_token()
        return session, new_access

    session, new_access = asyncio.run(main())

    assert new_access != session.access_token
    assert storage.snapshot()[AUTH_TOKEN] == new_access
    assert storage.snapshot()[LEGACY_TOKEN] == new_access
    assert storage.snapshot()[REFRESH_TOKEN] == f"refresh-{new_access}"
    assert transport.calls("POST", "/auth/refresh")[0].body == {"refreshToken": session.refresh_token}


def test_register_customer_uses_signup_and_persists(api, storage, transport):
    session = asyncio.run(
        api.register(
            {
                "firstName": "Carol",
                "lastName": "Mwangi",
                "email": "carol@example.com",
                "password": "pw123456",
                "accountType": "customer",
            }
        )
    )

    body = transport.calls("POST", "/auth/signup")[0].body
    assert body == {
        "first_name": "Carol",
        "last_name": "Mwangi",
        "email": "carol@example.com",
        "password": "pw123456",
        "role": "customer",
    }
    assert session.is_authenticated
    assert storage.snapshot()[AUTH_TOKEN] == session.access_token


def test_register_provider_without_tokens_persists_nothing(api, storage, transport):
    session = asyncio.run(
        api.register(
            {
                "first_name": "Dan",
                "last_name": "Kip",
                "email": "dan@example.com",
                "password": "pw123456",
                "account_type": "service_provider",
                "business_name": "Dan's Wash",
                "phone": "+254700000001",
            }
        )
    )

    body = transport.calls("POST", "/auth/register/service-provider")[0].body
    assert body["role"] == "service_provider"
    assert body["business_name"] == "Dan's Wash"
    assert body["phone"] == "+254700000001"
    assert session.user.is_service_provider
    assert not session.is_authenticated
    assert storage.snapshot() == {}


def test_register_rejects_admin_before_any_request(api, transport):
    with pytest.raises(ValidationError):
        asyncio.run(
            api.register(
                {"first_name": "E", "last_name": "F", "email": "e@example.com", "password": "x", "role": "admin"}
            )
        )
    assert transport.requests == []
