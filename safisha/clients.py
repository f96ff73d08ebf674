import json
import logging
import time
import uuid
from typing import Any, Awaitable, Callable

import httpx
from pydantic import ValidationError

from .config import AUTH_PAGES, Settings
from .errors import (
    ApiError,
    MissingRefreshToken,
    RequestTimeout,
    ResponseShapeError,
    TransportError,
    Unauthorized,
    error_detail,
)
from .schemas import LoginRequest, RegisterRequest, Role, Session, User
from .shapes import unwrap_item
from .storage import (
    AUTH_TOKEN,
    CREDENTIAL_KEYS,
    LEGACY_TOKEN,
    REFRESH_TOKEN,
    USER_DATA,
    MemoryStorage,
    Storage,
)

logger = logging.getLogger(__name__)

LOGIN_PATH = "/login"


class Navigator:
    """Where the user currently is, and every forced redirect so far."""

    def __init__(self, path: str = "/", auth_pages: tuple[str, ...] = AUTH_PAGES):
        self.path = path
        self.auth_pages = auth_pages
        self.redirects: list[str] = []

    def navigate(self, path: str) -> None:
        self.path = path

    def is_on_auth_page(self) -> bool:
        return any(p in self.path for p in self.auth_pages)

    def redirect_to_login(self) -> bool:
        if self.is_on_auth_page():
            return False
        self.redirects.append(LOGIN_PATH)
        self.path = LOGIN_PATH
        return True


def _register_endpoint(role: Role) -> str:
    if role == Role.SERVICE_PROVIDER:
        return "/auth/register/service-provider"
    return "/auth/signup"


def _extract_tokens(response: Any) -> tuple[str | None, str | None]:
    if not isinstance(response, dict):
        return None, None
    tokens = response.get("tokens")
    if isinstance(tokens, dict):
        return tokens.get("accessToken") or tokens.get("access_token"), tokens.get("refreshToken") or tokens.get("refresh_token")
    return (
        response.get("accessToken") or response.get("access_token"),
        response.get("refreshToken") or response.get("refresh_token"),
    )


def _parse_user(raw: Any) -> User:
    try:
        return User.model_validate(unwrap_item(raw))
    except ValidationError as e:
        raise ResponseShapeError(f"Invalid user data format received: {e.error_count()} errors")


class ApiClient:
    """
    Single choke point for network I/O against the SafishaHub REST API.
    Owns the credential keys in storage; nothing else writes them.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        storage: Storage | None = None,
        navigator: Navigator | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or Settings.from_env()
        self.storage = storage if storage is not None else MemoryStorage()
        self.navigator = navigator or Navigator(auth_pages=self.settings.auth_pages)
        self.transport = transport
        # awaited after a 401 has cleared the stored session
        self.on_unauthorized: Callable[[], Awaitable] | None = None

    # -------- TOKENS --------

    async def get_token(self) -> str | None:
        return await self.storage.get(AUTH_TOKEN) or await self.storage.get(LEGACY_TOKEN)

    async def _base_headers(self, request_id: str) -> dict:
        headers = {"Accept": "application/json", "X-Request-Id": request_id}
        token = await self.get_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _persist_session(self, session: Session) -> None:
        await self.storage.set(AUTH_TOKEN, session.access_token)
        await self.storage.set(LEGACY_TOKEN, session.access_token)
        if session.refresh_token:
            await self.storage.set(REFRESH_TOKEN, session.refresh_token)
        if session.user is not None:
            await self.storage.set(USER_DATA, session.user.model_dump_json())

    async def clear_session(self) -> None:
        for key in CREDENTIAL_KEYS:
            await self.storage.delete(key)

    async def load_session(self) -> Session | None:
        """
        A session exists only when both a token and a parseable cached user are
        stored. A corrupt cached user takes the token down with it.
        """
        token = await self.get_token()
        if not token:
            return None

        raw = await self.storage.get(USER_DATA)
        if raw is None:
            return None
        try:
            user = User.model_validate_json(raw)
        except ValidationError:
            logger.error("Cached user data is malformed; discarding stored credentials")
            await self.clear_session()
            return None

        return Session(
            access_token=token,
            refresh_token=await self.storage.get(REFRESH_TOKEN),
            user=user,
        )

    async def is_authenticated(self) -> bool:
        return await self.load_session() is not None

    # -------- HTTP --------

    async def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        *,
        params: dict | None = None,
        headers: dict | None = None,
        files: dict | None = None,
    ) -> Any:
        request_id = str(uuid.uuid4())
        all_headers = await self._base_headers(request_id)
        if headers:
            all_headers.update(headers)

        kwargs: dict[str, Any] = {"params": params, "headers": all_headers}
        if files is not None:
            kwargs["files"] = files
            if body is not None:
                kwargs["data"] = body
        elif body is not None:
            kwargs["json"] = body

        start = time.perf_counter()
        status = None
        try:
            async with httpx.AsyncClient(
                base_url=self.settings.api_base_url,
                timeout=self.settings.request_timeout,
                transport=self.transport,
            ) as client:
                resp = await client.request(method, path, **kwargs)
                status = resp.status_code
        except httpx.TimeoutException:
            raise RequestTimeout(f"Timeout calling API: {method} {path}")
        except httpx.HTTPError as e:
            raise TransportError(f"Network error calling API: {method} {path}: {e}")
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.info(
                json.dumps(
                    {
                        "request_id": request_id,
                        "method": method,
                        "path": path,
                        "status": status,
                        "duration_ms": round(duration_ms, 2),
                    }
                )
            )

        payload = self._decode(resp)

        if resp.status_code == 401:
            await self._handle_unauthorized()
            raise Unauthorized(401, error_detail(payload, resp.text, 401), payload)

        if resp.is_error:
            raise ApiError(resp.status_code, error_detail(payload, resp.text, resp.status_code), payload)

        return payload if payload is not None else {}

    @staticmethod
    def _decode(resp: httpx.Response) -> Any:
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            return None

    async def _handle_unauthorized(self) -> None:
        await self.clear_session()
        if self.navigator.redirect_to_login():
            logger.warning("Session rejected by API; redirecting to login")
        if self.on_unauthorized is not None:
            await self.on_unauthorized()

    async def get(self, path: str, *, params: dict | None = None, headers: dict | None = None) -> Any:
        return await self.request("GET", path, params=params, headers=headers)

    async def post(self, path: str, body: Any = None, **kwargs) -> Any:
        return await self.request("POST", path, body, **kwargs)

    async def put(self, path: str, body: Any = None, **kwargs) -> Any:
        return await self.request("PUT", path, body, **kwargs)

    async def patch(self, path: str, body: Any = None, **kwargs) -> Any:
        return await self.request("PATCH", path, body, **kwargs)

    async def delete(self, path: str, *, params: dict | None = None, headers: dict | None = None) -> Any:
        return await self.request("DELETE", path, params=params, headers=headers)

    # -------- AUTH --------

    async def login(self, credentials: LoginRequest | dict) -> Session:
        if isinstance(credentials, dict):
            credentials = LoginRequest.model_validate(credentials)

        response = await self.post("/auth/signin", credentials.model_dump())

        access, refresh = _extract_tokens(response)
        if not access:
            raise ResponseShapeError("Invalid response from server: missing access token")
        session = Session(access_token=access, refresh_token=refresh, user=_parse_user(response.get("user")))

        await self._persist_session(session)
        return session

    async def register(self, data: RegisterRequest | dict) -> Session:
        if isinstance(data, dict):
            data = RegisterRequest.model_validate(data)

        response = await self.post(_register_endpoint(data.account_type), data.to_backend())
        if not isinstance(response, dict):
            raise ResponseShapeError("Invalid response from server during registration")

        raw_user = response.get("user") or response.get("data")
        user = _parse_user(raw_user) if raw_user is not None else None
        access, refresh = _extract_tokens(response)
        session = Session(access_token=access, refresh_token=refresh, user=user)

        if access:
            await self._persist_session(session)
        return session

    async def logout(self) -> None:
        try:
            await self.post("/auth/logout")
        except Exception as e:
            logger.error(f"Logout error: {e}")
        finally:
            await self.clear_session()

    async def refresh_token(self) -> str:
        refresh = await self.storage.get(REFRESH_TOKEN)
        if not refresh:
            raise MissingRefreshToken("No refresh token available")

        response = await self.post("/auth/refresh", {"refreshToken": refresh})
        access, rotated = _extract_tokens(response)
        if not access:
            raise ResponseShapeError("Invalid response from server: missing access token")

        await self.storage.set(AUTH_TOKEN, access)
        await self.storage.set(LEGACY_TOKEN, access)
        if rotated:
            await self.storage.set(REFRESH_TOKEN, rotated)
        return access

    async def get_current_user(self) -> User:
        return _parse_user(await self.get("/auth/profile"))

    async def remember_user(self, user: User) -> None:
        await self.storage.set(USER_DATA, user.model_dump_json())

    async def healthcheck(self) -> Any:
        return await self.get("/cors-test")
