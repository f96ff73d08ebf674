from .clients import ApiClient
from .schemas import LoginRequest, RegisterRequest, Session, User


class AuthService:
    def __init__(self, api: ApiClient):
        self.api = api

    async def login(self, credentials: LoginRequest | dict) -> Session:
        return await self.api.login(credentials)

    async def register(self, data: RegisterRequest | dict) -> Session:
        return await self.api.register(data)

    async def logout(self) -> None:
        await self.api.logout()

    async def refresh_token(self) -> str:
        return await self.api.refresh_token()

    async def current_user(self) -> User | None:
        session = await self.api.load_session()
        return session.user if session else None

    async def is_authenticated(self) -> bool:
        return await self.api.is_authenticated()

    # -------- ACCOUNT RECOVERY --------

    async def forgot_password(self, email: str) -> dict:
        return await self.api.post("/auth/forgot-password", {"email": email})

    async def reset_password(self, token: str, new_password: str) -> dict:
        return await self.api.post("/auth/reset-password", {"token": token, "newPassword": new_password})

    async def verify_email(self, token: str) -> dict:
        return await self.api.post("/auth/verify-email", {"token": token})

    async def resend_verification(self) -> dict:
        return await self.api.post("/auth/resend-verification")
