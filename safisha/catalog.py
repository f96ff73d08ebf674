import logging
from typing import Any

from .clients import ApiClient
from .errors import ApiError, ResponseShapeError
from .schemas import (
    CreateServiceRequest,
    Service,
    ServiceCategory,
    ServiceFilters,
    UpdateServiceRequest,
)
from .shapes import build_params, decode_list, unwrap_item

logger = logging.getLogger(__name__)


def _service(payload: Any) -> Service:
    try:
        return Service.model_validate(unwrap_item(payload))
    except ValueError as e:
        raise ResponseShapeError(f"Invalid service in response: {e}")


class ServicesService:
    """Public service catalog plus the provider's own service management."""

    def __init__(self, api: ApiClient):
        self.api = api

    async def _list(self, path: str, params: dict | None = None) -> list[Service]:
        try:
            payload = await self.api.get(path, params=params)
        except ApiError as e:
            logger.error(f"Failed to fetch services from {path}: {e}")
            return []
        return decode_list(Service, payload, source=path)

    # -------- CATALOG --------

    async def list_services(self, filters: ServiceFilters | dict | None = None) -> list[Service]:
        return await self._list("/services", build_params(filters))

    async def search_services(self, query: str, filters: ServiceFilters | dict | None = None) -> list[Service]:
        params = {"search": query, **build_params(filters)}
        return await self._list("/services/search", params)

    async def services_by_category(self, category_id: str) -> list[Service]:
        return await self._list(f"/services/categories/{category_id}/services")

    async def services_by_provider(self, provider_id: str) -> list[Service]:
        return await self._list(f"/services/providers/{provider_id}/services")

    async def get_service(self, service_id: str) -> Service:
        return _service(await self.api.get(f"/services/{service_id}"))

    async def categories(self) -> list[ServiceCategory]:
        try:
            payload = await self.api.get("/services/categories")
        except ApiError as e:
            logger.error(f"Error fetching categories: {e}")
            return []
        return decode_list(ServiceCategory, payload, source="/services/categories")

    # -------- PROVIDER MANAGEMENT --------

    async def provider_services(self) -> list[Service]:
        return await self._list("/services/provider")

    async def create_service(self, data: CreateServiceRequest | dict) -> Service:
        if isinstance(data, dict):
            data = CreateServiceRequest.model_validate(data)
        payload = data.to_payload()
        logger.info(f"Creating service {data.name!r} for business {data.business_id}")
        return _service(await self.api.post("/services", payload))

    async def update_service(self, service_id: str, data: UpdateServiceRequest | dict) -> Service:
        if isinstance(data, dict):
            data = UpdateServiceRequest.model_validate(data)
        return _service(await self.api.patch(f"/services/{service_id}", data.to_payload(partial=True)))

    async def delete_service(self, service_id: str) -> None:
        await self.api.delete(f"/services/{service_id}")

    async def upload_service_image(self, filename: str, content: bytes, content_type: str = "image/jpeg") -> str:
        response = await self.api.post(
            "/file-upload/business-image",
            files={"file": (filename, content, content_type)},
        )
        if isinstance(response, dict) and response.get("url"):
            return response["url"]
        raise ResponseShapeError("Invalid response from server: missing image URL")
