import asyncio
import logging
from typing import Any

from pydantic import ValidationError

from .clients import ApiClient
from .errors import ApiError, ResponseShapeError
from .schemas import PaymentInit
from .shapes import unwrap_item

logger = logging.getLogger(__name__)

VERIFIED = "success"


class PaymentsService:
    def __init__(self, api: ApiClient):
        self.api = api

    async def initialize(self, amount: float, email: str, metadata: dict | None = None) -> PaymentInit:
        response = await self.api.post(
            "/payments/initialize", {"amount": amount, "email": email, "metadata": metadata}
        )
        if not isinstance(response, dict) or "data" not in response:
            raise ResponseShapeError("Invalid response from payment initialization")
        try:
            return PaymentInit.model_validate(response["data"])
        except ValidationError as e:
            raise ResponseShapeError(f"Invalid payment initialization data: {e.error_count()} errors")

    async def verify(self, reference: str, booking_id: str | None = None, amount: float | None = None) -> Any:
        body = {"reference": reference}
        if booking_id is not None:
            body["booking_id"] = booking_id
        if amount is not None:
            body["amount"] = amount
        return unwrap_item(await self.api.post("/payments/verify", body))

    async def poll_verification(
        self,
        reference: str,
        booking_id: str | None = None,
        amount: float | None = None,
        interval: float = 3.0,
        attempts: int = 10,
    ) -> bool:
        for attempt in range(1, attempts + 1):
            try:
                result = await self.verify(reference, booking_id, amount)
                if isinstance(result, dict) and result.get("status") == VERIFIED:
                    logger.info(f"Payment {reference} verified after {attempt} attempts")
                    return True
            except ApiError as e:
                logger.warning(f"Payment verification attempt {attempt} for {reference} failed: {e}")
            if attempt < attempts:
                await asyncio.sleep(interval)
        return False
