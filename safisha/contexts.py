import logging

from pydantic import ValidationError

from .clients import ApiClient
from .errors import ResponseShapeError, SafishaError
from .events import AUTH_CHANGED, REQUEST_LOGIN, SignalBus
from .rbac import is_service_provider
from .schemas import LoginRequest, RegisterRequest, Session, User
from .security import token_expired
from .shapes import unwrap_item

logger = logging.getLogger(__name__)


class AuthContext:
    """
    Process-wide authentication state. Every transition between "has a user"
    and "has none" emits AUTH_CHANGED.
    """

    def __init__(self, api: ApiClient, signals: SignalBus):
        self.api = api
        self.signals = signals
        self.user: User | None = None
        self.loading = True
        self.error: str | None = None
        api.on_unauthorized = self._on_session_rejected

    async def _on_session_rejected(self) -> None:
        if self.user is None:
            return
        logger.info(f"Session for user {self.user.id} rejected by API; logging out")
        self.user = None
        await self.signals.emit(AUTH_CHANGED, user_id=None)

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def is_service_provider(self) -> bool:
        return is_service_provider(self.user)

    async def initialize(self) -> User | None:
        try:
            token = await self.api.get_token()
            if not token:
                return None

            if token_expired(token):
                logger.info("Stored access token has expired; discarding it")
                await self.api.clear_session()
                return None

            try:
                user = await self.api.get_current_user()
            except SafishaError as e:
                logger.error(f"Authentication check failed: {e}")
                await self.api.clear_session()
                return None

            self.user = user
            await self.api.remember_user(user)
            return user
        finally:
            self.loading = False

    async def login(self, email: str, password: str) -> User:
        self.error = None
        self.loading = True
        try:
            session = await self.api.login(LoginRequest(email=email, password=password))
        except SafishaError as e:
            logger.error(f"Login failed: {e}")
            self.error = str(e) or "Login failed. Please check your credentials."
            raise
        finally:
            self.loading = False

        self.user = session.user
        await self.signals.emit(AUTH_CHANGED, user_id=self.user.id)
        return self.user

    async def register(self, data: RegisterRequest | dict) -> Session:
        self.error = None
        self.loading = True
        try:
            session = await self.api.register(data)
        except (SafishaError, ValidationError) as e:
            logger.error(f"Registration failed: {e}")
            self.error = str(e) or "Registration failed. Please try again."
            raise
        finally:
            self.loading = False

        if session.user is None:
            logger.error("Registration response carried no user")
            return session

        # accounts pending verification come back without tokens
        if session.is_authenticated:
            self.user = session.user
            await self.signals.emit(AUTH_CHANGED, user_id=self.user.id)
        return session

    async def logout(self) -> None:
        self.loading = True
        try:
            await self.api.logout()
        finally:
            self.user = None
            self.loading = False
        await self.signals.emit(AUTH_CHANGED, user_id=None)

    async def update_profile(self, changes: dict) -> User:
        self.error = None
        self.loading = True
        try:
            updated = unwrap_item(await self.api.patch("/users/profile", changes))
        except SafishaError as e:
            self.error = str(e) or "Failed to update profile. Please try again."
            raise
        finally:
            self.loading = False

        if not isinstance(updated, dict):
            raise ResponseShapeError("Invalid profile update data")

        base = self.user.model_dump() if self.user is not None else {}
        try:
            self.user = User.model_validate({**base, **updated})
        except ValidationError as e:
            raise ResponseShapeError(f"Invalid profile update data: {e.error_count()} errors")
        await self.api.remember_user(self.user)
        return self.user


class ModalContext:
    """Login/register modal state; at most one of them is open."""

    def __init__(self, signals: SignalBus):
        self.is_login_open = False
        self.is_register_open = False
        self._unsubscribe = [
            signals.subscribe(REQUEST_LOGIN, self._on_request_login),
            signals.subscribe(AUTH_CHANGED, self._on_auth_changed),
        ]

    @property
    def is_auth_open(self) -> bool:
        return self.is_login_open or self.is_register_open

    def open_login(self) -> None:
        self.is_register_open = False
        self.is_login_open = True

    def open_register(self) -> None:
        self.is_login_open = False
        self.is_register_open = True

    def close_login(self) -> None:
        self.is_login_open = False

    def close_register(self) -> None:
        self.is_register_open = False

    def close_all(self) -> None:
        self.is_login_open = False
        self.is_register_open = False

    def detach(self) -> None:
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []

    def _on_request_login(self, event: dict) -> None:
        self.open_login()

    def _on_auth_changed(self, event: dict) -> None:
        if event["data"].get("user_id"):
            self.close_all()
