import logging
from typing import Any

from .clients import ApiClient
from .errors import ApiError
from .schemas import Booking, Notification, NotificationData, NotificationType, Service, User
from .shapes import decode_list

logger = logging.getLogger(__name__)


def _customer_name(customer: User | None) -> str:
    if customer is None:
        return "Customer"
    return customer.first_name or customer.name or "Customer"


class NotificationsService:
    def __init__(self, api: ApiClient):
        self.api = api

    async def list_notifications(self) -> list[Notification]:
        try:
            payload = await self.api.get("/notifications")
        except ApiError as e:
            logger.error(f"Failed to fetch notifications: {e}")
            return []
        return decode_list(Notification, payload, source="/notifications")

    async def provider_notifications(self) -> list[Notification]:
        path = "/service-provider-dashboard/notifications"
        try:
            payload = await self.api.get(path)
        except ApiError as e:
            logger.error(f"Failed to fetch provider notifications: {e}")
            return []
        return decode_list(Notification, payload, source=path)

    async def mark_as_read(self, notification_id: str) -> Any:
        return await self.api.patch(f"/notifications/{notification_id}/read")

    async def send_notification(self, data: NotificationData | dict) -> Any:
        if isinstance(data, dict):
            data = NotificationData.model_validate(data)
        return await self.api.post("/notifications", data.to_payload())

    # -------- BEST EFFORT --------
    # these never fail the caller's flow; a failure is logged and gives None

    async def send_booking_notification(
        self,
        recipient_id: str,
        booking_id: str,
        customer_name: str,
        service_name: str,
        booking_date: str,
    ) -> Any:
        data = NotificationData(
            type=NotificationType.BOOKING,
            title="New Booking",
            message=f"{customer_name} has booked your service: {service_name} for {booking_date}",
            recipient_id=recipient_id,
            data={
                "booking_id": booking_id,
                "service_name": service_name,
                "customer_name": customer_name,
                "booking_date": booking_date,
            },
        )
        try:
            return await self.send_notification(data)
        except ApiError as e:
            logger.error(f"Failed to send booking notification: {e}")
            return None

    async def send_email_notification(
        self, email: str, subject: str, message: str, template_data: dict | None = None
    ) -> Any:
        body = {"to": email, "subject": subject, "message": message}
        if template_data is not None:
            body["template_data"] = template_data
        try:
            return await self.api.post("/email/send", body)
        except ApiError as e:
            logger.error(f"Failed to send email notification: {e}")
            return None

    async def send_sms_notification(self, phone: str, message: str) -> Any:
        try:
            return await self.api.post("/sms/send", {"to": phone, "message": message})
        except ApiError as e:
            logger.error(f"Failed to send SMS notification: {e}")
            return None

    async def notify_booking_created(self, booking: Booking, service: Service, customer: User | None) -> None:
        """
        Tell the provider about a new booking: in-app first, then email and SMS
        when the provider has them. Never raises.
        """
        try:
            provider = service.provider or {}
            recipient = service.business_id or provider.get("id")
            if not recipient:
                return

            name = _customer_name(customer)
            when = booking.service_date or ""
            at = booking.service_time or ""

            await self.send_booking_notification(str(recipient), booking.id, name, service.name, when)

            if provider.get("email"):
                await self.send_email_notification(
                    provider["email"],
                    "New Booking Notification",
                    f"You have a new booking for {service.name} on {when} at {at}.",
                    {
                        "service_name": service.name,
                        "customer_name": name,
                        "booking_date": when,
                        "booking_time": at,
                    },
                )

            phone = provider.get("phone") or provider.get("business_phone")
            if phone:
                await self.send_sms_notification(
                    phone, f"New booking: {service.name} on {when} at {at} by {name}."
                )
        except Exception as e:
            logger.error(f"Failed to send notifications: {e}")
