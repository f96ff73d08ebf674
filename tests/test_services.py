import asyncio

import pytest
from pydantic import ValidationError

from safisha.bookings import BookingsService
from safisha.business import BusinessService
from safisha.catalog import ServicesService
from safisha.errors import ApiError, ResponseShapeError
from safisha.notifications import NotificationsService
from safisha.payments import PaymentsService
from safisha.profile import ProfileService
from safisha.schemas import Booking, BookingStatus, Role, Service, ServiceType, User

from .fake_api import CUSTOMER, booking_record, service_record


# ---- bookings ----


@pytest.mark.parametrize("shape", ["array", "wrapped", "double"])
def test_provider_bookings_any_shape(api, backend, shape):
    backend.list_shape = shape
    backend.bookings = [booking_record("bk-1"), booking_record("bk-2", "confirmed")]

    bookings = asyncio.run(BookingsService(api).provider_bookings())

    assert [b.id for b in bookings] == ["bk-1", "bk-2"]
    assert bookings[1].status == BookingStatus.CONFIRMED


def test_read_failures_give_empty_lists(api, transport):
    transport.fail("GET", "/bookings/provider", 500)
    transport.fail("GET", "/services", 503)

    assert asyncio.run(BookingsService(api).provider_bookings()) == []
    assert asyncio.run(ServicesService(api).list_services()) == []


def test_my_bookings_falls_back_to_all_bookings_on_404(api, backend, transport):
    backend.bookings = [booking_record()]
    transport.fail("GET", "/bookings/my-bookings", 404, {"message": "Not found"})

    bookings = asyncio.run(BookingsService(api).my_bookings())

    assert [b.id for b in bookings] == ["bk-1"]
    assert len(transport.calls("GET", "/bookings")) == 1


def test_provider_bookings_page_renames_filters(api, backend, transport):
    backend.bookings = [booking_record()]

    page = asyncio.run(
        BookingsService(api).provider_bookings_page(status=BookingStatus.PENDING, start_date="2026-11-01", page=2)
    )

    assert transport.calls("GET", "/bookings/provider")[0].params == {
        "status": "pending",
        "date_from": "2026-11-01",
        "page": "2",
    }
    assert [b.id for b in page.data] == ["bk-1"]
    assert page.meta.total == 1
    assert page.meta.page == 2
    assert page.meta.total_pages == 1


def test_provider_bookings_page_reads_server_meta(api, transport):
    transport.overrides[("GET", "/bookings/provider")] = (
        200,
        {"data": [booking_record()], "meta": {"total": 35, "page": 3, "limit": 10, "totalPages": 4}},
    )

    page = asyncio.run(BookingsService(api).provider_bookings_page(page=3))

    assert page.meta.total == 35
    assert page.meta.total_pages == 4


def test_create_booking_rejects_bad_dates_before_sending(api, transport):
    with pytest.raises(ValidationError):
        asyncio.run(
            BookingsService(api).create_booking(
                {
                    "user_id": "u-1",
                    "service_id": "svc-1",
                    "service_date": "next tuesday",
                    "service_time": "10:00",
                    "total_amount": 1500,
                }
            )
        )
    assert transport.requests == []


def test_cancel_booking_sends_reason(api, backend, transport):
    backend.bookings = [booking_record()]

    cancelled = asyncio.run(BookingsService(api).cancel_booking("bk-1", "Car not available"))

    assert cancelled.status == BookingStatus.CANCELLED
    assert transport.calls("PATCH", "/bookings/bk-1/cancel")[0].body == {"reason": "Car not available"}


def test_get_booking_raises_on_error(api, transport):
    transport.fail("GET", "/bookings/bk-404", 404, {"message": "Booking not found"})

    with pytest.raises(ApiError) as exc:
        asyncio.run(BookingsService(api).get_booking("bk-404"))
    assert exc.value.status_code == 404


# ---- catalog ----


def test_create_service_posts_normalized_payload(api, transport):
    service = asyncio.run(
        ServicesService(api).create_service(
            {
                "business_id": "biz-1",
                "category_id": "cat-1",
                "name": "Interior Detail",
                "service_type": "Premium",
                "base_price": 3000,
                "duration_minutes": "90",
            }
        )
    )

    body = transport.calls("POST", "/services")[0].body
    assert body["service_type"] == "premium"
    assert body["duration_minutes"] == 90
    assert body["vehicle_type"] == "sedan"
    assert service.id.startswith("svc-")
    assert service.service_type == ServiceType.PREMIUM


def test_search_services_sends_query(api, backend, transport):
    backend.services = [service_record()]
    transport.overrides[("GET", "/services/search")] = (200, {"data": [service_record()]})

    found = asyncio.run(ServicesService(api).search_services("wash", {"max_price": 2000}))

    assert [s.id for s in found] == ["svc-1"]
    assert transport.calls("GET", "/services/search")[0].params == {"search": "wash", "max_price": "2000"}


def test_upload_service_image(api, transport):
    transport.overrides[("POST", "/file-upload/business-image")] = (200, {"url": "https://cdn.example/x.jpg"})
    url = asyncio.run(ServicesService(api).upload_service_image("x.jpg", b"\xff\xd8"))
    assert url == "https://cdn.example/x.jpg"
    assert transport.calls("POST", "/file-upload/business-image")[0].headers["content-type"].startswith(
        "multipart/form-data"
    )


def test_upload_service_image_without_url(api, transport):
    transport.overrides[("POST", "/file-upload/business-image")] = (200, {"ok": True})
    with pytest.raises(ResponseShapeError):
        asyncio.run(ServicesService(api).upload_service_image("x.jpg", b"\xff\xd8"))


# ---- business ----


def test_my_business_absent_is_none(api):
    assert asyncio.run(BusinessService(api).my_business()) is None


def test_fetch_my_business_only_maps_404_to_none(api, transport):
    business = BusinessService(api)
    assert asyncio.run(business.fetch_my_business()) is None

    transport.fail("GET", "/businesses/my-business", 503)
    with pytest.raises(ApiError):
        asyncio.run(business.fetch_my_business())
    assert asyncio.run(business.my_business()) is None


def test_my_business_present(api, backend):
    backend.business = {"id": 5, "name": "Sparkle Wash", "postal_code": "00100"}

    business = asyncio.run(BusinessService(api).my_business())

    assert business.id == "5"
    assert business.zip_code == "00100"


def test_business_services_without_id_sends_nothing(api, transport):
    assert asyncio.run(BusinessService(api).business_services(None)) == []
    assert transport.requests == []


def test_provider_business_matches_owner(api, transport):
    transport.overrides[("GET", "/businesses")] = (
        200,
        [{"id": "biz-1", "name": "A", "user_id": "p-9"}, {"id": "biz-2", "name": "B", "user_id": "p-1"}],
    )

    business = asyncio.run(BusinessService(api).provider_business("p-1"))

    assert business.id == "biz-2"


def test_update_business_sends_only_changes(api, backend, transport):
    backend.business = {"id": "biz-1", "name": "Sparkle", "city": "Nairobi"}

    business = asyncio.run(BusinessService(api).update_business("biz-1", {"city": "Thika"}))

    assert transport.calls("PATCH", "/businesses/biz-1")[0].body == {"city": "Thika"}
    assert business.city == "Thika"
    assert business.name == "Sparkle"


# ---- notifications ----


def provider_service(**provider) -> Service:
    return Service.model_validate(service_record(provider={"id": "p-1", **provider}))


def created_booking() -> Booking:
    return Booking.model_validate(booking_record("bk-7"))


def test_notify_booking_created_uses_all_channels(api, backend):
    customer = User(id="u-1", email=CUSTOMER["email"], first_name="Alice")
    service = provider_service(email="bob@example.com", business_phone="+254700111222")

    asyncio.run(NotificationsService(api).notify_booking_created(created_booking(), service, customer))

    channels = [channel for channel, _ in backend.sent]
    assert channels == ["notification", "email", "sms"]
    notification = backend.sent[0][1]
    assert notification["recipient_id"] == "biz-1"
    assert notification["type"] == "booking"
    assert notification["message"] == "Alice has booked your service: Full Exterior Wash for 2026-11-02"
    assert backend.sent[1][1]["to"] == "bob@example.com"
    assert backend.sent[2][1] == {
        "to": "+254700111222",
        "message": "New booking: Full Exterior Wash on 2026-11-02 at 10:00 by Alice.",
    }


def test_notify_booking_created_survives_channel_failures(api, backend, transport):
    transport.fail("POST", "/notifications", 500)
    transport.fail("POST", "/email/send", 502)
    service = provider_service(email="bob@example.com", phone="+254700111222")

    asyncio.run(NotificationsService(api).notify_booking_created(created_booking(), service, None))

    assert [channel for channel, _ in backend.sent] == ["sms"]
    assert "by Customer." in backend.sent[0][1]["message"]


def test_notify_booking_created_skips_contactless_provider(api, backend):
    service = Service.model_validate(service_record(business_id=None))

    asyncio.run(NotificationsService(api).notify_booking_created(created_booking(), service, None))

    assert backend.sent == []


def test_mark_as_read_raises(api, transport):
    with pytest.raises(ApiError):
        asyncio.run(NotificationsService(api).mark_as_read("n-missing"))


def test_list_notifications(api, backend):
    backend.notifications = [{"id": "n-1", "title": "New Booking", "message": "hi", "status": "unread"}]

    notifications = asyncio.run(NotificationsService(api).list_notifications())

    assert notifications[0].unread


# ---- profile ----


def test_get_profile_unwraps_data(api):
    async def main():
        await api.login(CUSTOMER)
        return await ProfileService(api).get_profile()

    profile = asyncio.run(main())

    assert profile.user.email == CUSTOMER["email"]
    assert profile.profile_type == Role.CUSTOMER


def test_dashboard_stats_parse_and_default(api, backend, transport):
    backend.bookings = [booking_record(), booking_record("bk-2", "completed")]

    stats = asyncio.run(ProfileService(api).provider_dashboard_stats())
    assert stats.total_bookings == 2
    assert stats.pending_bookings == 1
    assert stats.business_status == "active"

    transport.fail("GET", "/service-provider-dashboard/stats", 500)
    fallback = asyncio.run(ProfileService(api).provider_dashboard_stats())
    assert fallback.total_bookings == 0
    assert fallback.business_status == "inactive"


def test_upload_avatar(api, transport):
    transport.overrides[("POST", "/users/profile/avatar")] = (200, {"data": {"avatar": "https://cdn.example/a.png"}})
    assert asyncio.run(ProfileService(api).upload_avatar("a.png", b"png", "image/png")) == "https://cdn.example/a.png"


# ---- payments ----


def test_initialize_payment(api, transport):
    init = asyncio.run(PaymentsService(api).initialize(1500, CUSTOMER["email"], {"booking_id": "bk-1"}))

    assert init.reference == "ref-1"
    assert transport.calls("POST", "/payments/initialize")[0].body == {
        "amount": 1500,
        "email": CUSTOMER["email"],
        "metadata": {"booking_id": "bk-1"},
    }


def test_initialize_payment_without_data(api, transport):
    transport.overrides[("POST", "/payments/initialize")] = (200, {"status": True})
    with pytest.raises(ResponseShapeError):
        asyncio.run(PaymentsService(api).initialize(1500, CUSTOMER["email"]))


def test_poll_verification_until_success(api, backend, transport):
    backend.verify_statuses = ["pending", "pending"]

    verified = asyncio.run(PaymentsService(api).poll_verification("ref-1", "bk-1", 1500, interval=0, attempts=5))

    assert verified
    assert len(transport.calls("POST", "/payments/verify")) == 3
    assert transport.calls("POST", "/payments/verify")[0].body == {
        "reference": "ref-1",
        "booking_id": "bk-1",
        "amount": 1500,
    }


def test_poll_verification_gives_up(api, backend, transport):
    backend.verify_statuses = ["pending"] * 3
    assert not asyncio.run(PaymentsService(api).poll_verification("ref-1", interval=0, attempts=3))

    transport.fail("POST", "/payments/verify", 500)
    assert not asyncio.run(PaymentsService(api).poll_verification("ref-1", interval=0, attempts=2))
