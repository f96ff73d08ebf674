import logging

from .booking_states import CANCEL, available_actions, status_action
from .bookings import BookingsService
from .business import BusinessService
from .cache import QueryClient
from .catalog import ServicesService
from .contexts import AuthContext
from .errors import ActionNotAvailable, BusinessRegistrationRequired, Forbidden
from .events import REQUEST_LOGIN, SignalBus
from .notifications import NotificationsService
from .queries import (
    BUSINESS_SERVICES,
    MY_BOOKINGS,
    MY_BUSINESS,
    NOTIFICATIONS,
    PROFILE,
    PROVIDER_BOOKINGS,
    PROVIDER_SERVICES,
    SERVICES,
    Queries,
    business_key,
    business_services_key,
)
from .rbac import require_role
from .schemas import (
    Booking,
    BookingStatus,
    Business,
    BusinessInput,
    CreateBookingRequest,
    CreateServiceRequest,
    Role,
    Service,
    UpdateServiceRequest,
    User,
)

logger = logging.getLogger(__name__)


def _with_status(bookings, booking_id: str, status: BookingStatus):
    if not isinstance(bookings, list):
        return bookings
    return [b.model_copy(update={"status": status}) if b.id == booking_id else b for b in bookings]


class Mutations:
    """
    Server writes. Each one invalidates exactly the cache keys it affects,
    and only after the server accepted it.
    """

    def __init__(
        self,
        query: QueryClient,
        queries: Queries,
        auth: AuthContext,
        signals: SignalBus,
        services: ServicesService,
        business: BusinessService,
        bookings: BookingsService,
        notifications: NotificationsService,
    ):
        self.query = query
        self.queries = queries
        self.auth = auth
        self.signals = signals
        self.services = services
        self.business = business
        self.bookings = bookings
        self.notifications = notifications

    async def _invalidate_service_keys(self, business_id: str | None) -> None:
        if business_id:
            await self.query.invalidate(business_services_key(business_id))
        else:
            await self.query.invalidate(BUSINESS_SERVICES)
        await self.query.invalidate(SERVICES)
        await self.query.invalidate(PROVIDER_SERVICES)

    async def _current_business_id(self) -> str | None:
        business = await self.queries.my_business()
        return business.id if business is not None else None

    # -------- SERVICES --------

    async def create_service(self, data: CreateServiceRequest | dict) -> Service:
        business_id = await self._current_business_id()
        if not business_id:
            raise BusinessRegistrationRequired(
                "No business profile found. Please register your business before adding services."
            )

        if isinstance(data, dict):
            data = CreateServiceRequest.model_validate(data)
        data = data.model_copy(update={"business_id": business_id})

        service = await self.services.create_service(data)
        await self._invalidate_service_keys(business_id)
        return service

    async def update_service(self, service_id: str, data: UpdateServiceRequest | dict) -> Service:
        service = await self.services.update_service(service_id, data)
        await self._invalidate_service_keys(service.business_id or await self._current_business_id())
        return service

    async def delete_service(self, service_id: str, business_id: str | None = None) -> None:
        await self.services.delete_service(service_id)
        await self._invalidate_service_keys(business_id or await self._current_business_id())

    # -------- BUSINESS --------

    async def create_business(self, data: BusinessInput | dict) -> Business:
        business = await self.business.create_business(data)
        self.query.set_query_data(MY_BUSINESS, business)
        return business

    async def update_business(self, business_id: str, data: BusinessInput | dict) -> Business:
        business = await self.business.update_business(business_id, data)
        self.query.set_query_data(MY_BUSINESS, business)
        await self.query.invalidate(business_key(business_id))
        return business

    # -------- BOOKINGS --------

    async def change_booking_status(self, booking: Booking, status: BookingStatus) -> Booking:
        require_role(self.auth.user, [Role.SERVICE_PROVIDER])
        status = BookingStatus(status)
        if status_action(status) not in available_actions(booking, Role.SERVICE_PROVIDER):
            raise ActionNotAvailable(f"Cannot change booking {booking.id} from {booking.status.value} to {status.value}")

        had_entry = PROVIDER_BOOKINGS in self.query
        previous = self.query.get_query_data(PROVIDER_BOOKINGS)
        if had_entry:
            self.query.set_query_data(PROVIDER_BOOKINGS, lambda current: _with_status(current, booking.id, status))

        try:
            updated = await self.bookings.update_status(booking.id, status)
        except Exception:
            if had_entry:
                self.query.set_query_data(PROVIDER_BOOKINGS, lambda current: previous)
            raise

        logger.info(f"Booking {booking.id} status changed to {status.value}")
        await self.query.invalidate(PROVIDER_BOOKINGS)
        return updated

    async def cancel_booking(self, booking: Booking, reason: str | None = None) -> Booking:
        user = self.auth.user
        if user is None:
            raise Forbidden("Login required")
        role = Role.SERVICE_PROVIDER if self.auth.is_service_provider else Role.CUSTOMER
        if CANCEL not in available_actions(booking, role):
            raise ActionNotAvailable(f"Booking {booking.id} can no longer be cancelled ({booking.status.value})")

        cancelled = await self.bookings.cancel_booking(booking.id, reason)
        await self.query.invalidate(MY_BOOKINGS)
        await self.query.invalidate(PROVIDER_BOOKINGS)
        return cancelled

    async def book_service(self, service: Service, request: CreateBookingRequest | dict) -> Booking | None:
        """
        "Book Now". Without a session nothing is sent; the login modal is
        asked for instead and None is returned.
        """
        user = self.auth.user
        if user is None:
            await self.signals.emit(REQUEST_LOGIN, service_id=service.id)
            return None

        if isinstance(request, dict):
            fields = {
                "user_id": user.id,
                "service_id": service.id,
                "total_amount": service.discounted_price or service.base_price,
                **request,
            }
            request = CreateBookingRequest.model_validate(fields)

        booking = await self.bookings.create_booking(request)
        logger.info(f"Booking {booking.id} created for service {service.id}")

        await self.notifications.notify_booking_created(booking, service, user)
        await self.query.invalidate(MY_BOOKINGS)
        await self.query.invalidate(PROVIDER_BOOKINGS)
        return booking

    # -------- NOTIFICATIONS / PROFILE --------

    async def mark_notification_read(self, notification_id: str) -> None:
        await self.notifications.mark_as_read(notification_id)
        await self.query.invalidate(NOTIFICATIONS)

    async def update_profile(self, changes: dict) -> User:
        user = await self.auth.update_profile(changes)
        await self.query.invalidate(PROFILE)
        return user
