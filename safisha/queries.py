from __future__ import annotations

from typing import TYPE_CHECKING

from .cache import QueryClient

if TYPE_CHECKING:
    from .bookings import BookingsService
    from .business import BusinessService, RegistrationService
    from .catalog import ServicesService
    from .notifications import NotificationsService
    from .profile import ProfileService
    from .schemas import ServiceFilters

MINUTE = 60

MY_BUSINESS = ("my-business",)
BUSINESS = ("business",)
BUSINESS_SERVICES = ("business-services",)
SERVICES = ("services",)
PROVIDER_SERVICES = ("provider-services",)
SERVICE_CATEGORIES = ("service-categories",)
MY_BOOKINGS = ("my-bookings",)
PROVIDER_BOOKINGS = ("provider-bookings",)
NOTIFICATIONS = ("notifications",)
PROFILE = ("profile",)

STALE_TIMES = {
    MY_BUSINESS: 5 * MINUTE,
    BUSINESS: 5 * MINUTE,
    BUSINESS_SERVICES: 2 * MINUTE,
    SERVICES: 5 * MINUTE,
    PROVIDER_SERVICES: 2 * MINUTE,
    SERVICE_CATEGORIES: 10 * MINUTE,
    MY_BOOKINGS: 2 * MINUTE,
    PROVIDER_BOOKINGS: 2 * MINUTE,
    NOTIFICATIONS: 2 * MINUTE,
    PROFILE: 5 * MINUTE,
}


def business_key(business_id: str) -> tuple:
    return BUSINESS + (business_id,)


def business_services_key(business_id: str | None) -> tuple:
    return BUSINESS_SERVICES + (business_id,)


def services_key(filters: dict | None = None) -> tuple:
    if not filters:
        return SERVICES
    return SERVICES + (tuple(sorted(filters.items())),)


def stale_time(key: tuple) -> float:
    return STALE_TIMES[key[:1]]


class Queries:
    """Read helpers that go through the cache under their canonical keys."""

    def __init__(
        self,
        query: QueryClient,
        business: BusinessService,
        registration: RegistrationService,
        services: ServicesService,
        bookings: BookingsService,
        notifications: NotificationsService,
        profile: ProfileService,
    ):
        self.query = query
        self.business = business
        self.registration = registration
        self.services = services
        self.bookings = bookings
        self.notifications = notifications
        self.profile = profile

    async def _fetch(self, key: tuple, fetcher):
        return await self.query.fetch_query(key, fetcher, stale_time=stale_time(key))

    async def my_business(self):
        return await self._fetch(MY_BUSINESS, self.business.fetch_my_business)

    async def business_detail(self, business_id: str):
        return await self._fetch(business_key(business_id), lambda: self.business.get_business(business_id))

    async def business_services(self, business_id: str | None):
        return await self._fetch(
            business_services_key(business_id), lambda: self.business.business_services(business_id)
        )

    async def services_list(self, filters: ServiceFilters | dict | None = None):
        if filters is not None and not isinstance(filters, dict):
            filters = filters.model_dump(mode="json", exclude_none=True)
        return await self._fetch(services_key(filters), lambda: self.services.list_services(filters))

    async def provider_services(self):
        return await self._fetch(PROVIDER_SERVICES, self.services.provider_services)

    async def service_categories(self):
        return await self._fetch(SERVICE_CATEGORIES, self.registration.service_categories)

    async def my_bookings(self):
        return await self._fetch(MY_BOOKINGS, self.bookings.my_bookings)

    async def provider_bookings(self):
        return await self._fetch(PROVIDER_BOOKINGS, self.bookings.provider_bookings)

    async def notifications_list(self):
        return await self._fetch(NOTIFICATIONS, self.notifications.list_notifications)

    async def user_profile(self):
        return await self._fetch(PROFILE, self.profile.get_profile)
