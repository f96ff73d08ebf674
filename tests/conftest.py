import pytest

from safisha.app import SafishaApp
from safisha.clients import ApiClient, Navigator
from safisha.config import Settings
from safisha.storage import MemoryStorage

from .fake_api import CUSTOMER, PROVIDER, FakeState, FakeTransport, create_app


@pytest.fixture
def backend() -> FakeState:
    state = FakeState()
    state.add_user(CUSTOMER["email"], CUSTOMER["password"], id="u-1", first_name="Alice", last_name="Wanjiru", role="customer")
    state.add_user(
        PROVIDER["email"],
        PROVIDER["password"],
        id="p-1",
        first_name="Bob",
        last_name="Otieno",
        role="service_provider",
    )
    return state


@pytest.fixture
def transport(backend) -> FakeTransport:
    return FakeTransport(create_app(backend))


@pytest.fixture
def settings() -> Settings:
    return Settings(api_base_url="http://testserver/api")


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def navigator() -> Navigator:
    return Navigator("/dashboard")


@pytest.fixture
def api(settings, storage, navigator, transport) -> ApiClient:
    return ApiClient(settings, storage, navigator, transport)


@pytest.fixture
def app(settings, storage, navigator, transport) -> SafishaApp:
    return SafishaApp(settings, storage=storage, transport=transport, navigator=navigator)
