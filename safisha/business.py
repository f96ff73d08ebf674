import logging
from typing import Any

from pydantic import ValidationError

from .cache import QueryClient
from .clients import ApiClient
from .errors import ApiError, ResponseShapeError, SafishaError
from .queries import MY_BUSINESS
from .schemas import (
    Business,
    BusinessInput,
    BusinessRegistrationData,
    County,
    GeoPoint,
    LicenseCheck,
    OperatingHours,
    RegistrationResponse,
    Service,
    ServiceCategory,
)
from .shapes import decode_list, unwrap_item
from .storage import REGISTRATION_DRAFT, Storage, get_json, set_json

logger = logging.getLogger(__name__)

DEFAULT_BUSINESS_TYPE = "Car Wash Service"

FALLBACK_COUNTIES = [
    County(id="1", name="Nairobi", code="NRB"),
    County(id="2", name="Mombasa", code="MSA"),
    County(id="3", name="Kiambu", code="KAB"),
    County(id="4", name="Nakuru", code="NKU"),
    County(id="5", name="Machakos", code="MCH"),
    County(id="6", name="Kajiado", code="KJD"),
    County(id="7", name="Uasin Gishu", code="UGS"),
]


def _business(payload: Any) -> Business:
    try:
        return Business.model_validate(unwrap_item(payload))
    except ValidationError as e:
        raise ResponseShapeError(f"Invalid business in response: {e.error_count()} errors")


def _as_input(data: BusinessInput | dict) -> BusinessInput:
    return data if isinstance(data, BusinessInput) else BusinessInput.model_validate(data)


class BusinessService:
    def __init__(self, api: ApiClient):
        self.api = api

    async def fetch_my_business(self) -> Business | None:
        """None only when the API says there is no business (404 or empty body)."""
        try:
            payload = await self.api.get("/businesses/my-business")
        except ApiError as e:
            if e.status_code == 404:
                return None
            raise
        if not payload:
            return None
        return _business(payload)

    async def my_business(self) -> Business | None:
        try:
            return await self.fetch_my_business()
        except SafishaError as e:
            logger.error(f"Failed to fetch business profile: {e}")
            return None

    async def get_business(self, business_id: str) -> Business:
        return _business(await self.api.get(f"/businesses/{business_id}"))

    async def list_businesses(self) -> list[Business]:
        try:
            payload = await self.api.get("/businesses")
        except ApiError as e:
            logger.error(f"Failed to fetch businesses: {e}")
            return []
        return decode_list(Business, payload, source="/businesses")

    async def provider_business(self, user_id: str) -> Business | None:
        for business in await self.list_businesses():
            if business.user_id == user_id:
                return business
        return None

    async def create_business(self, data: BusinessInput | dict) -> Business:
        return _business(await self.api.post("/businesses", _as_input(data).to_payload()))

    async def update_business(self, business_id: str, data: BusinessInput | dict) -> Business:
        payload = _as_input(data).to_payload(partial=True)
        return _business(await self.api.patch(f"/businesses/{business_id}", payload))

    async def business_services(self, business_id: str | None) -> list[Service]:
        if not business_id:
            return []
        path = f"/businesses/{business_id}/services"
        try:
            payload = await self.api.get(path)
        except ApiError as e:
            logger.error(f"Failed to fetch services for business {business_id}: {e}")
            return []
        return decode_list(Service, payload, source=path)


def registration_payload(data: BusinessRegistrationData) -> dict:
    personal = data.personal_information
    details = data.business_details
    location = data.address_location
    hours = details.operating_hours or OperatingHours()

    return {
        "email": personal.email,
        "first_name": personal.first_name,
        "last_name": personal.last_name,
        "phone": personal.phone,
        "business": {
            "name": details.business_name,
            "type": details.business_type or DEFAULT_BUSINESS_TYPE,
            "description": details.business_description,
            "address": location.address,
            "city": location.city,
            "state": location.county,
            "postal_code": location.zip_code,
            "phone": personal.phone,
            "email": personal.email,
            "website": details.website or "",
            "license_number": details.business_license or "",
            "tax_id": details.tax_pin or "",
            "latitude": location.latitude,
            "longitude": location.longitude,
        },
        "operating_hours": {"hours": hours.model_dump()},
    }


class RegistrationService:
    def __init__(self, api: ApiClient, storage: Storage):
        self.api = api
        self.storage = storage

    async def submit_application(self, data: BusinessRegistrationData) -> RegistrationResponse:
        response = await self.api.post("/businesses/register", registration_payload(data))
        logger.info("Business registration submitted")
        try:
            return RegistrationResponse.model_validate(unwrap_item(response) or {})
        except ValidationError as e:
            raise ResponseShapeError(f"Invalid registration response: {e.error_count()} errors")

    # -------- DRAFTS --------

    async def save_draft(self, data: BusinessRegistrationData) -> bool:
        try:
            await set_json(self.storage, REGISTRATION_DRAFT, data.model_dump(mode="json"))
            return True
        except Exception as e:
            logger.error(f"Failed to save registration draft: {e}")
            return False

    async def get_draft(self) -> BusinessRegistrationData | None:
        try:
            raw = await get_json(self.storage, REGISTRATION_DRAFT)
        except Exception as e:
            logger.error(f"Failed to retrieve registration draft: {e}")
            return None
        if raw is None:
            return None
        try:
            return BusinessRegistrationData.model_validate(raw)
        except ValidationError:
            logger.warning("Stored registration draft is malformed; ignoring it")
            return None

    async def clear_draft(self) -> None:
        await self.storage.delete(REGISTRATION_DRAFT)

    # -------- LOOKUPS --------

    async def service_categories(self) -> list[ServiceCategory]:
        try:
            payload = await self.api.get("/services/categories")
        except ApiError as e:
            logger.error(f"Failed to fetch service categories: {e}")
            return []
        return decode_list(ServiceCategory, payload, source="/services/categories")

    async def counties(self) -> list[County]:
        try:
            payload = await self.api.get("/locations")
        except ApiError:
            return list(FALLBACK_COUNTIES)
        return decode_list(County, payload, source="/locations") or list(FALLBACK_COUNTIES)

    async def validate_license(self, license_number: str) -> LicenseCheck:
        try:
            payload = await self.api.post(
                "/auth/register/service-provider/validate-license",
                {"license_number": license_number},
            )
            return LicenseCheck.model_validate(unwrap_item(payload))
        except (ApiError, ValidationError) as e:
            # license service is optional on the backend; accept and let review catch it
            logger.warning(f"License validation unavailable, accepting {license_number}: {e}")
            return LicenseCheck(valid=True, business_name=f"Business for License {license_number}")

    async def registration_status(self) -> RegistrationResponse | None:
        try:
            payload = await self.api.get("/auth/register/service-provider/status")
            return RegistrationResponse.model_validate(unwrap_item(payload))
        except (ApiError, ValidationError):
            return None

    async def geocode(self, address: str) -> GeoPoint:
        payload = await self.api.post("/locations/geocode", {"address": address})
        try:
            return GeoPoint.model_validate(unwrap_item(payload))
        except ValidationError as e:
            raise ResponseShapeError(f"Invalid geocode response: {e.error_count()} errors")


STEPS = ("personal", "business", "location", "services", "review")


def _step_errors(step: str, data: BusinessRegistrationData) -> list[str]:
    errors = []
    if step == "personal":
        p = data.personal_information
        if not p.first_name:
            errors.append("first_name is required")
        if not p.last_name:
            errors.append("last_name is required")
        if "@" not in p.email:
            errors.append("a valid email is required")
        if not p.phone:
            errors.append("phone is required")
    elif step == "business":
        if not data.business_details.business_name:
            errors.append("business_name is required")
    elif step == "location":
        loc = data.address_location
        if not loc.address:
            errors.append("address is required")
        if not loc.county:
            errors.append("county is required")
    elif step == "services":
        if not data.services_offered:
            errors.append("at least one service is required")
    elif step == "review":
        if not data.terms_accepted:
            errors.append("terms must be accepted")
        if not data.data_consent:
            errors.append("data consent is required")
    return errors


class RegistrationWizard:
    """
    Multi-step business registration form state. Steps only advance when the
    current one validates; the draft is autosaved while there is something
    worth keeping.
    """

    def __init__(self, registration: RegistrationService, query: QueryClient | None = None):
        self.registration = registration
        self.query = query
        self.data = BusinessRegistrationData()
        self.step_index = 0
        self.errors: list[str] = []
        self.submitted: RegistrationResponse | None = None

    @property
    def step(self) -> str:
        return STEPS[self.step_index]

    @property
    def is_last_step(self) -> bool:
        return self.step_index == len(STEPS) - 1

    @property
    def has_meaningful_data(self) -> bool:
        d = self.data
        return bool(
            d.personal_information.first_name
            or d.business_details.business_name
            or d.address_location.county
            or d.services_offered
        )

    def update(self, section: str, **values) -> None:
        current = getattr(self.data, section)
        if isinstance(current, list):
            raise ValueError(f"{section} is a list; assign it with set_services()")
        setattr(self.data, section, current.model_copy(update=values))

    def set_services(self, offerings: list) -> None:
        self.data.services_offered = list(offerings)

    def accept_terms(self, terms: bool = True, consent: bool = True) -> None:
        self.data.terms_accepted = terms
        self.data.data_consent = consent

    def validate_step(self) -> bool:
        self.errors = _step_errors(self.step, self.data)
        return not self.errors

    def next_step(self) -> bool:
        if not self.validate_step() or self.is_last_step:
            return False
        self.step_index += 1
        return True

    def previous_step(self) -> bool:
        if self.step_index == 0:
            return False
        self.step_index -= 1
        self.errors = []
        return True

    async def autosave(self) -> bool:
        # a submitted application has no draft
        if self.submitted is not None or not self.has_meaningful_data:
            return False
        return await self.registration.save_draft(self.data)

    async def restore(self) -> bool:
        draft = await self.registration.get_draft()
        if draft is None:
            return False
        self.data = draft
        return True

    async def submit(self) -> RegistrationResponse:
        for index, step in enumerate(STEPS):
            errors = _step_errors(step, self.data)
            if errors:
                self.step_index = index
                self.errors = errors
                raise ValueError(f"Registration step {step!r} is incomplete: {', '.join(errors)}")

        self.submitted = await self.registration.submit_application(self.data)
        if self.query is not None:
            await self.query.invalidate(MY_BUSINESS)
        await self.registration.clear_draft()
        return self.submitted
