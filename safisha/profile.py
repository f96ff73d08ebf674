import logging
from typing import Any

from pydantic import BaseModel, ValidationError

from .clients import ApiClient
from .errors import ApiError, ResponseShapeError
from .schemas import (
    CustomerProfile,
    DashboardData,
    ProfileResponse,
    ProviderDashboardStats,
    ServiceProviderProfile,
    UserProfile,
)
from .shapes import unwrap_item

logger = logging.getLogger(__name__)


def _decode(model: type[BaseModel], payload: Any):
    try:
        return model.model_validate(unwrap_item(payload))
    except ValidationError as e:
        raise ResponseShapeError(f"Invalid {model.__name__} in response: {e.error_count()} errors")


def _changes(data: BaseModel | dict) -> dict:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json", exclude_unset=True, exclude_none=True)
    return {k: v for k, v in data.items() if v is not None}


class ProfileService:
    def __init__(self, api: ApiClient):
        self.api = api

    async def get_profile(self) -> ProfileResponse:
        return _decode(ProfileResponse, await self.api.get("/users/profile"))

    async def update_profile(self, data: UserProfile | dict) -> UserProfile:
        return _decode(UserProfile, await self.api.put("/users/profile", _changes(data)))

    async def update_customer_profile(self, data: CustomerProfile | dict) -> CustomerProfile:
        return _decode(CustomerProfile, await self.api.put("/users/profile/customer", _changes(data)))

    async def update_service_provider_profile(self, data: ServiceProviderProfile | dict) -> ServiceProviderProfile:
        payload = await self.api.put("/users/profile/service-provider", _changes(data))
        return _decode(ServiceProviderProfile, payload)

    async def dashboard(self) -> DashboardData:
        return _decode(DashboardData, await self.api.get("/users/dashboard"))

    async def verify_email(self) -> UserProfile:
        return _decode(UserProfile, await self.api.post("/users/verify-email"))

    async def upload_avatar(self, filename: str, content: bytes, content_type: str = "image/jpeg") -> str:
        payload = unwrap_item(
            await self.api.post("/users/profile/avatar", files={"avatar": (filename, content, content_type)})
        )
        if isinstance(payload, dict) and payload.get("avatar"):
            return payload["avatar"]
        raise ResponseShapeError("Invalid response from server: missing avatar URL")

    async def provider_dashboard_stats(self) -> ProviderDashboardStats:
        try:
            payload = await self.api.get("/service-provider-dashboard/stats")
            return ProviderDashboardStats.model_validate(unwrap_item(payload))
        except (ApiError, ValidationError) as e:
            logger.error(f"Failed to fetch dashboard stats: {e}")
            return ProviderDashboardStats()
