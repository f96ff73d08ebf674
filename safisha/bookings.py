import logging
import math
from typing import Any

from .clients import ApiClient
from .errors import ApiError, ResponseShapeError
from .schemas import (
    Booking,
    BookingFilters,
    BookingStatus,
    CreateBookingRequest,
    Page,
    PageMeta,
    UpdateBookingRequest,
)
from .shapes import build_params, decode_list, parse_items, unwrap_item

logger = logging.getLogger(__name__)

# provider dashboard filters use the backend's date names
_PROVIDER_FILTER_NAMES = {"start_date": "date_from", "end_date": "date_to"}


def _booking(payload: Any) -> Booking:
    try:
        return Booking.model_validate(unwrap_item(payload))
    except ValueError as e:
        raise ResponseShapeError(f"Invalid booking in response: {e}")


def _page_meta(raw: dict, count: int, page: int | None, limit: int | None) -> PageMeta:
    limit = raw.get("limit") or raw.get("per_page") or limit or 10
    total = raw.get("total") or count
    return PageMeta(
        total=total,
        page=raw.get("page") or raw.get("current_page") or page or 1,
        limit=limit,
        total_pages=raw.get("totalPages") or raw.get("total_pages") or math.ceil(total / limit),
    )


class BookingsService:
    def __init__(self, api: ApiClient):
        self.api = api

    # -------- READS --------

    async def list_bookings(self, filters: BookingFilters | dict | None = None) -> list[Booking]:
        try:
            payload = await self.api.get("/bookings", params=build_params(filters))
        except ApiError as e:
            logger.error(f"Failed to fetch bookings: {e}")
            return []
        return decode_list(Booking, payload, source="/bookings")

    async def my_bookings(self) -> list[Booking]:
        try:
            payload = await self.api.get("/bookings/my-bookings")
        except ApiError as e:
            if e.status_code == 404:
                logger.info("User bookings endpoint not found, getting all bookings")
                return await self.list_bookings()
            logger.error(f"Failed to fetch user bookings: {e}")
            return []
        return decode_list(Booking, payload, source="/bookings/my-bookings")

    async def provider_bookings(self, filters: BookingFilters | dict | None = None) -> list[Booking]:
        try:
            payload = await self.api.get("/bookings/provider", params=build_params(filters))
        except ApiError as e:
            logger.error(f"Error in provider_bookings: {e}")
            return []
        return decode_list(Booking, payload, source="/bookings/provider")

    async def provider_bookings_page(
        self,
        status: BookingStatus | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
        page: int | None = None,
        limit: int | None = None,
    ) -> Page:
        filters = {"status": status, "start_date": start_date, "end_date": end_date, "page": page, "limit": limit}
        try:
            payload = await self.api.get(
                "/bookings/provider", params=build_params(filters, renames=_PROVIDER_FILTER_NAMES)
            )
        except ApiError as e:
            logger.error(f"Failed to fetch provider bookings: {e}")
            return Page(data=[], meta=PageMeta(total=0, page=1, limit=10, total_pages=0))

        if isinstance(payload, list):
            items = parse_items(Booking, payload, source="/bookings/provider")
            return Page(data=items, meta=_page_meta({}, len(payload), page, limit))

        if isinstance(payload, dict) and isinstance(payload.get("data"), list):
            items = parse_items(Booking, payload["data"], source="/bookings/provider")
            raw_meta = payload.get("meta") or payload.get("pagination") or {}
            return Page(data=items, meta=_page_meta(raw_meta, len(payload["data"]), page, limit))

        logger.warning("Unexpected provider bookings response shape")
        return Page(data=[], meta=PageMeta(page=page or 1, limit=limit or 10, total_pages=1))

    async def get_booking(self, booking_id: str) -> Booking:
        return _booking(await self.api.get(f"/bookings/{booking_id}"))

    async def booking_history(self, user_id: str | None = None) -> list[Booking]:
        path = f"/bookings/history/{user_id}" if user_id else "/bookings/history"
        try:
            payload = await self.api.get(path)
        except ApiError as e:
            logger.error(f"Failed to fetch booking history: {e}")
            return []
        return decode_list(Booking, payload, source=path)

    async def upcoming_bookings(self, user_id: str | None = None) -> list[Booking]:
        path = f"/bookings/upcoming/{user_id}" if user_id else "/bookings/upcoming"
        try:
            payload = await self.api.get(path)
        except ApiError as e:
            logger.error(f"Failed to fetch upcoming bookings: {e}")
            return []
        return decode_list(Booking, payload, source=path)

    # -------- WRITES --------

    async def create_booking(self, data: CreateBookingRequest | dict) -> Booking:
        if isinstance(data, dict):
            data = CreateBookingRequest.model_validate(data)
        return _booking(await self.api.post("/bookings", data.to_payload()))

    async def update_booking(self, booking_id: str, data: UpdateBookingRequest | dict) -> Booking:
        if isinstance(data, dict):
            data = UpdateBookingRequest.model_validate(data)
        return _booking(await self.api.patch(f"/bookings/{booking_id}", data.to_payload(partial=True)))

    async def update_status(self, booking_id: str, status: BookingStatus) -> Booking:
        return await self.update_booking(booking_id, UpdateBookingRequest(status=BookingStatus(status)))

    async def cancel_booking(self, booking_id: str, reason: str | None = None) -> Booking:
        body = {"reason": reason} if reason else {}
        return _booking(await self.api.patch(f"/bookings/{booking_id}/cancel", body))

    async def confirm_booking(self, booking_id: str) -> Booking:
        return _booking(await self.api.patch(f"/bookings/{booking_id}/confirm"))

    async def complete_booking(self, booking_id: str) -> Booking:
        return _booking(await self.api.patch(f"/bookings/{booking_id}/complete"))

    async def accept_booking(self, booking_id: str) -> dict:
        return await self.api.post(f"/service-provider-dashboard/bookings/{booking_id}/accept", {})
