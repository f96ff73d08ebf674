from datetime import date
from enum import Enum
from typing import Annotated, Any, List, Literal, Optional

from dateutil.parser import isoparser
from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    field_validator,
)

_iso = isoparser()


def _as_str_id(v):
    if isinstance(v, int) and not isinstance(v, bool):
        return str(v)
    return v


Id = Annotated[str, BeforeValidator(_as_str_id)]


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


class Record(BaseModel):
    """Server record: snake_case is canonical, unknown server fields are kept."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def to_payload(self, *, partial: bool = False) -> dict:
        if partial:
            return self.model_dump(mode="json", exclude_unset=True, exclude_none=True)
        return self.model_dump(mode="json", exclude_none=True)


# ---- Enums ----

class Role(str, Enum):
    CUSTOMER = "customer"
    SERVICE_PROVIDER = "service_provider"
    ADMIN = "admin"


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class ServiceType(str, Enum):
    BASIC = "basic"
    STANDARD = "standard"
    PREMIUM = "premium"
    DELUXE = "deluxe"
    CUSTOM = "custom"


class VehicleType(str, Enum):
    SEDAN = "sedan"
    SUV = "suv"
    HATCHBACK = "hatchback"
    TRUCK = "truck"
    VAN = "van"
    BUS = "bus"
    MOTORCYCLE = "motorcycle"
    LUXURY = "luxury"
    SPORTS = "sports"


class ServiceStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    DRAFT = "draft"


class NotificationType(str, Enum):
    BOOKING = "booking"
    PAYMENT = "payment"
    MESSAGE = "message"
    SYSTEM = "system"


def _lower(v):
    return v.strip().lower() if isinstance(v, str) else v


def coerce_enum(enum_cls, value, default):
    """Map a loose string onto an enum member, falling back to `default`."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(_lower(value))
    except ValueError:
        return default


# ---- Auth ----

class User(Record):
    id: Id
    email: str
    first_name: Optional[str] = Field(None, validation_alias=_alias("first_name", "firstName"))
    last_name: Optional[str] = Field(None, validation_alias=_alias("last_name", "lastName"))
    name: Optional[str] = None
    phone: Optional[str] = Field(None, validation_alias=_alias("phone", "phone_number"))
    role: Role = Role.CUSTOMER
    is_active: bool = True
    is_verified: bool = Field(False, validation_alias=_alias("is_verified", "isVerified"))
    is_service_provider: bool = False
    created_at: Optional[str] = Field(None, validation_alias=_alias("created_at", "createdAt"))
    updated_at: Optional[str] = Field(None, validation_alias=_alias("updated_at", "updatedAt"))

    _normalize_role = field_validator("role", mode="before")(_lower)

    def model_post_init(self, __context):
        if self.role == Role.SERVICE_PROVIDER and not self.is_service_provider:
            object.__setattr__(self, "is_service_provider", True)

    @property
    def full_name(self) -> str:
        parts = [p for p in (self.first_name, self.last_name) if p]
        if parts:
            return " ".join(parts)
        return self.name or self.email


class Session(BaseModel):
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    user: Optional[User] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token) and self.user is not None


class LoginRequest(BaseModel):
    email: str
    password: str


_SELF_REGISTER_ROLES = {Role.CUSTOMER, Role.SERVICE_PROVIDER}


class RegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    first_name: str = Field(validation_alias=_alias("first_name", "firstName"))
    last_name: str = Field(validation_alias=_alias("last_name", "lastName"))
    email: str
    password: str
    phone: Optional[str] = None
    account_type: Role = Field(Role.CUSTOMER, validation_alias=_alias("account_type", "accountType", "role"))
    business_name: Optional[str] = None
    business_description: Optional[str] = None
    business_address: Optional[str] = None

    _normalize_role = field_validator("account_type", mode="before")(_lower)

    @field_validator("account_type")
    @classmethod
    def _self_registerable(cls, v: Role) -> Role:
        if v not in _SELF_REGISTER_ROLES:
            raise ValueError(f"Invalid account type: {v.value}. Allowed: customer, service_provider")
        return v

    def to_backend(self) -> dict:
        data = {
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "password": self.password,
            "role": self.account_type.value,
        }
        if self.phone:
            data["phone"] = self.phone
        if self.account_type == Role.SERVICE_PROVIDER:
            for key in ("business_name", "business_description", "business_address"):
                value = getattr(self, key)
                if value:
                    data[key] = value
        return data


# ---- Bookings ----

class VehicleInfo(Record):
    type: VehicleType = VehicleType.SEDAN
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = None
    license_plate: Optional[str] = Field(None, validation_alias=_alias("license_plate", "licensePlate"))

    @field_validator("type", mode="before")
    @classmethod
    def _vehicle(cls, v):
        return coerce_enum(VehicleType, v, VehicleType.SEDAN)


class LocationInfo(Record):
    address: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    note: Optional[str] = None


class AddOnSelection(Record):
    addon_id: Id
    price: float


class Booking(Record):
    id: Id
    status: BookingStatus = BookingStatus.PENDING
    user_id: Optional[Id] = Field(None, validation_alias=_alias("user_id", "customer_id", "customerId"))
    service_id: Optional[Id] = Field(None, validation_alias=_alias("service_id", "serviceId"))
    provider_id: Optional[Id] = Field(
        None, validation_alias=_alias("provider_id", "service_provider_id", "serviceProviderId")
    )
    service_date: Optional[str] = Field(
        None, validation_alias=_alias("service_date", "scheduled_date", "scheduledDate")
    )
    service_time: Optional[str] = Field(
        None, validation_alias=_alias("service_time", "scheduled_time", "scheduledTime")
    )
    total_amount: Optional[float] = Field(None, validation_alias=_alias("total_amount", "totalAmount"))
    payment_status: Optional[PaymentStatus] = Field(
        None, validation_alias=_alias("payment_status", "paymentStatus")
    )
    special_instructions: Optional[str] = Field(
        None, validation_alias=_alias("special_instructions", "specialInstructions")
    )
    vehicle_info: Optional[VehicleInfo] = Field(None, validation_alias=_alias("vehicle_info", "vehicleInfo"))
    location_info: Optional[LocationInfo] = Field(None, validation_alias=_alias("location_info", "location"))
    service: Optional[dict] = None
    customer: Optional[dict] = None
    service_provider: Optional[dict] = Field(None, validation_alias=_alias("service_provider", "serviceProvider"))
    customer_name: Optional[str] = None
    service_name: Optional[str] = None
    created_at: Optional[str] = Field(None, validation_alias=_alias("created_at", "createdAt"))
    updated_at: Optional[str] = Field(None, validation_alias=_alias("updated_at", "updatedAt"))

    _normalize_status = field_validator("status", "payment_status", mode="before")(_lower)


def _check_date(v: str) -> str:
    try:
        _iso.parse_isodate(v)
    except ValueError:
        raise ValueError(f"service_date must be an ISO date (YYYY-MM-DD), got {v!r}")
    return v


def _check_time(v: str) -> str:
    if len(v) < 4:
        raise ValueError(f"service_time must be HH:MM, got {v!r}")
    try:
        _iso.parse_isotime(v)
    except ValueError:
        raise ValueError(f"service_time must be HH:MM, got {v!r}")
    return v


class CreateBookingRequest(Record):
    user_id: Id
    service_id: Id
    service_date: str
    service_time: str
    total_amount: float
    payment_method: Optional[str] = None
    special_instructions: Optional[str] = None
    vehicle_info: Optional[VehicleInfo] = None
    location_info: Optional[LocationInfo] = None
    add_ons: Optional[List[AddOnSelection]] = None

    @field_validator("service_date", mode="before")
    @classmethod
    def _date(cls, v):
        if isinstance(v, date):
            v = v.isoformat()
        if not isinstance(v, str):
            return v
        return _check_date(v)

    _time = field_validator("service_time")(_check_time)


class UpdateBookingRequest(Record):
    service_date: Optional[str] = None
    service_time: Optional[str] = None
    status: Optional[BookingStatus] = None
    payment_method: Optional[str] = None
    special_instructions: Optional[str] = None
    vehicle_info: Optional[VehicleInfo] = None
    location_info: Optional[LocationInfo] = None


class BookingFilters(BaseModel):
    user_id: Optional[str] = None
    service_id: Optional[str] = None
    provider_id: Optional[str] = None
    status: Optional[BookingStatus] = None
    date_from: Optional[str] = None
    date_to: Optional[str] = None
    page: Optional[int] = None
    limit: Optional[int] = None
    sort_by: Optional[str] = None
    sort_order: Optional[Literal["ASC", "DESC"]] = None


# ---- Services ----

class ServiceCategory(Record):
    id: Id
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None


class ServicePricing(Record):
    id: Optional[Id] = None
    service_id: Optional[Id] = None
    vehicle_type: str
    price: float
    duration_minutes: int


class _ServiceFields(Record):
    @field_validator("service_type", mode="before", check_fields=False)
    @classmethod
    def _service_type(cls, v):
        return None if v is None else coerce_enum(ServiceType, v, ServiceType.STANDARD)

    @field_validator("vehicle_type", mode="before", check_fields=False)
    @classmethod
    def _vehicle_type(cls, v):
        return None if v is None else coerce_enum(VehicleType, v, VehicleType.SEDAN)

    @field_validator("status", mode="before", check_fields=False)
    @classmethod
    def _status(cls, v):
        return None if v is None else coerce_enum(ServiceStatus, v, ServiceStatus.ACTIVE)


class Service(_ServiceFields):
    id: Id
    business_id: Optional[Id] = None
    category_id: Optional[Id] = None
    name: str
    description: Optional[str] = None
    service_type: ServiceType = ServiceType.STANDARD
    vehicle_type: VehicleType = VehicleType.SEDAN
    base_price: float = 0.0
    discounted_price: Optional[float] = None
    duration_minutes: int = 0
    status: ServiceStatus = ServiceStatus.ACTIVE
    is_available: bool = True
    image_url: Optional[str] = None
    features: List[str] = Field(default_factory=list)
    category: Optional[ServiceCategory] = None
    business: Optional[dict] = None
    provider: Optional[dict] = None
    pricings: List[ServicePricing] = Field(default_factory=list)


class CreateServiceRequest(_ServiceFields):
    business_id: Optional[Id] = None
    category_id: Id
    name: str
    description: str = ""
    short_description: Optional[str] = None
    service_type: ServiceType = ServiceType.STANDARD
    vehicle_type: VehicleType = VehicleType.SEDAN
    base_price: float
    discounted_price: Optional[float] = None
    duration_minutes: int
    status: ServiceStatus = ServiceStatus.ACTIVE
    featured: Optional[bool] = None
    features: Optional[List[str]] = None
    requirements: Optional[List[str]] = None
    images: Optional[List[str]] = None
    image_url: Optional[str] = None
    is_available: Optional[bool] = None
    pricings: Optional[List[ServicePricing]] = None

    @field_validator("duration_minutes", mode="before")
    @classmethod
    def _minutes(cls, v):
        return int(float(v)) if isinstance(v, str) else v


class UpdateServiceRequest(_ServiceFields):
    business_id: Optional[Id] = None
    category_id: Optional[Id] = None
    name: Optional[str] = None
    description: Optional[str] = None
    service_type: Optional[ServiceType] = None
    vehicle_type: Optional[VehicleType] = None
    base_price: Optional[float] = None
    discounted_price: Optional[float] = None
    duration_minutes: Optional[int] = None
    status: Optional[ServiceStatus] = None
    is_available: Optional[bool] = None
    image_url: Optional[str] = None
    features: Optional[List[str]] = None


class ServiceFilters(BaseModel):
    category_id: Optional[str] = None
    location_id: Optional[str] = None
    service_type: Optional[ServiceType] = None
    vehicle_type: Optional[VehicleType] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    status: Optional[ServiceStatus] = None
    is_available: Optional[bool] = None
    business_id: Optional[str] = None
    search: Optional[str] = None
    page: Optional[int] = None
    limit: Optional[int] = None
    sort_by: Optional[str] = None
    sort_order: Optional[Literal["ASC", "DESC"]] = None


# ---- Business ----

class DayHours(BaseModel):
    open: str = "08:00"
    close: str = "18:00"
    closed: bool = False


class OperatingHours(BaseModel):
    monday: DayHours = Field(default_factory=DayHours)
    tuesday: DayHours = Field(default_factory=DayHours)
    wednesday: DayHours = Field(default_factory=DayHours)
    thursday: DayHours = Field(default_factory=DayHours)
    friday: DayHours = Field(default_factory=DayHours)
    saturday: DayHours = Field(default_factory=lambda: DayHours(open="09:00", close="17:00"))
    sunday: DayHours = Field(default_factory=lambda: DayHours(open="10:00", close="16:00"))


class BusinessHours(Record):
    id: Optional[Id] = None
    business_id: Optional[Id] = None
    hours: OperatingHours = Field(default_factory=OperatingHours)


class Business(Record):
    id: Id
    user_id: Optional[Id] = None
    name: str
    type: Optional[str] = None
    description: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = Field(None, validation_alias=_alias("zip_code", "postal_code"))
    phone: Optional[str] = None
    email: Optional[str] = None
    image: Optional[str] = None
    rating: float = 0.0
    total_services: int = 0
    total_reviews: int = 0
    is_verified: bool = False
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    operating_hours: Optional[BusinessHours] = None


class BusinessInput(Record):
    name: Optional[str] = None
    type: Optional[str] = None
    description: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    image: Optional[str] = None
    website: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class PersonalInformation(Record):
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    date_of_birth: Optional[str] = None
    id_number: Optional[str] = None


class BusinessDetails(Record):
    business_name: str = ""
    business_description: str = ""
    business_type: Optional[str] = None
    business_license: Optional[str] = None
    tax_pin: Optional[str] = None
    years_of_experience: int = 0
    specializations: List[str] = Field(default_factory=list)
    website: Optional[str] = None
    operating_hours: Optional[OperatingHours] = None


class AddressLocation(Record):
    address: str = ""
    city: str = ""
    county: str = ""
    zip_code: Optional[str] = Field(None, validation_alias=_alias("zip_code", "postal_code"))
    country: str = "Kenya"
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    service_areas: List[str] = Field(default_factory=list)


class OfferingPrice(Record):
    vehicle_type: str
    pricing_tier: str = "standard"
    price: float
    discount_price: Optional[float] = None
    estimated_duration: int = 0


class ServiceOffering(_ServiceFields):
    category_id: str = ""
    service_type: ServiceType = ServiceType.STANDARD
    name: str = ""
    description: str = ""
    short_description: Optional[str] = None
    features: List[str] = Field(default_factory=list)
    pricing: List[OfferingPrice] = Field(default_factory=list)
    image_url: Optional[str] = None


class BusinessRegistrationData(Record):
    personal_information: PersonalInformation = Field(default_factory=PersonalInformation)
    business_details: BusinessDetails = Field(default_factory=BusinessDetails)
    address_location: AddressLocation = Field(default_factory=AddressLocation)
    services_offered: List[ServiceOffering] = Field(default_factory=list)
    terms_accepted: bool = False
    data_consent: bool = False


class RegistrationResponse(Record):
    id: Optional[Id] = None
    status: Optional[str] = None
    submitted_at: Optional[str] = None
    reviewed_at: Optional[str] = None
    notes: Optional[str] = None


class County(Record):
    id: Id
    name: str
    code: str


class LicenseCheck(Record):
    valid: bool
    business_name: Optional[str] = None


class GeoPoint(BaseModel):
    latitude: float
    longitude: float


# ---- Notifications ----

class NotificationData(Record):
    type: NotificationType
    title: str
    message: str
    recipient_id: Id
    data: Optional[dict] = None


class Notification(Record):
    id: Id
    type: Optional[str] = None
    title: str = ""
    message: str = ""
    status: str = "unread"
    is_read: Optional[bool] = None
    data: Optional[dict] = None
    created_at: Optional[str] = Field(None, validation_alias=_alias("created_at", "createdAt"))

    @property
    def unread(self) -> bool:
        if self.is_read is not None:
            return not self.is_read
        return self.status == "unread"


# ---- Profile / dashboard ----

class UserProfile(Record):
    id: Id
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    avatar: Optional[str] = None
    role: Role = Role.CUSTOMER
    is_active: bool = True
    email_verified_at: Optional[str] = None

    _normalize_role = field_validator("role", mode="before")(_lower)


class CustomerProfile(Record):
    id: Optional[Id] = None
    user_id: Optional[Id] = None
    address: Optional[str] = None
    date_of_birth: Optional[str] = None
    preferred_contact_method: Optional[str] = None
    email_notifications: bool = True
    sms_notifications: bool = False
    total_bookings: int = 0
    total_spent: float = 0.0
    loyalty_tier: Optional[str] = None
    loyalty_points: int = 0


class ServiceProviderProfile(Record):
    id: Optional[Id] = None
    user_id: Optional[Id] = None
    business_name: Optional[str] = None
    description: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    rating: float = 0.0
    total_services: int = 0
    is_verified: bool = False


class ProfileResponse(Record):
    user: UserProfile
    profile: Optional[dict] = None
    profile_type: Role = Field(Role.CUSTOMER, validation_alias=_alias("profile_type", "profileType"))

    _normalize_role = field_validator("profile_type", mode="before")(_lower)


class DashboardData(Record):
    user: dict = Field(default_factory=dict)
    stats: Optional[dict] = None


class ProviderDashboardStats(Record):
    total_bookings: int = Field(0, validation_alias=_alias("total_bookings", "totalBookings"))
    total_services: int = Field(0, validation_alias=_alias("total_services", "totalServices"))
    active_services: int = Field(0, validation_alias=_alias("active_services", "activeServices"))
    pending_bookings: int = Field(0, validation_alias=_alias("pending_bookings", "pendingBookings"))
    completed_bookings: int = Field(0, validation_alias=_alias("completed_bookings", "completedBookings"))
    total_earnings: float = Field(0.0, validation_alias=_alias("total_earnings", "totalEarnings"))
    business_status: str = Field("inactive", validation_alias=_alias("business_status", "businessStatus"))
    rating: float = 0.0
    recent_bookings: List[Booking] = Field(
        default_factory=list, validation_alias=_alias("recent_bookings", "recentBookings")
    )


class PageMeta(BaseModel):
    total: int = 0
    page: int = 1
    limit: int = 10
    total_pages: int = 0


class Page(BaseModel):
    data: List[Any] = Field(default_factory=list)
    meta: PageMeta = Field(default_factory=PageMeta)


# ---- Payments ----

class PaymentInit(Record):
    authorization_url: Optional[str] = None
    access_code: Optional[str] = None
    reference: str
    amount: Optional[float] = None
