import logging

import httpx

from .auth import AuthService
from .bookings import BookingsService
from .business import BusinessService, RegistrationService, RegistrationWizard
from .cache import QueryClient
from .catalog import ServicesService
from .clients import ApiClient, Navigator
from .config import Settings, setup_logging
from .contexts import AuthContext, ModalContext
from .events import SignalBus
from .mutations import Mutations
from .notifications import NotificationsService
from .payments import PaymentsService
from .profile import ProfileService
from .queries import Queries
from .storage import Storage, open_storage
from .workers import DraftAutosaver, NotificationPoller

logger = logging.getLogger(__name__)


class SafishaApp:
    """Everything a SafishaHub client session needs, wired together."""

    def __init__(
        self,
        settings: Settings,
        storage: Storage | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        navigator: Navigator | None = None,
    ):
        self.settings = settings
        self.storage = storage if storage is not None else open_storage(settings)
        self.navigator = navigator or Navigator(auth_pages=settings.auth_pages)
        self.api = ApiClient(settings, self.storage, self.navigator, transport)

        self.auth_service = AuthService(self.api)
        self.bookings = BookingsService(self.api)
        self.services = ServicesService(self.api)
        self.business = BusinessService(self.api)
        self.registration = RegistrationService(self.api, self.storage)
        self.notifications = NotificationsService(self.api)
        self.profile = ProfileService(self.api)
        self.payments = PaymentsService(self.api)

        self.query = QueryClient()
        self.signals = SignalBus()
        self.auth = AuthContext(self.api, self.signals)
        self.modals = ModalContext(self.signals)

        self.queries = Queries(
            self.query,
            self.business,
            self.registration,
            self.services,
            self.bookings,
            self.notifications,
            self.profile,
        )
        self.mutations = Mutations(
            self.query,
            self.queries,
            self.auth,
            self.signals,
            self.services,
            self.business,
            self.bookings,
            self.notifications,
        )
        self.poller = NotificationPoller(settings.notifications_poll_seconds, self.query, self.queries, self.signals)
        self._autosavers: list[DraftAutosaver] = []

    @classmethod
    def from_env(cls) -> "SafishaApp":
        setup_logging()
        return cls(Settings.from_env())

    def registration_wizard(self, autosave: bool = True) -> RegistrationWizard:
        wizard = RegistrationWizard(self.registration, self.query)
        self._autosavers = [saver for saver in self._autosavers if saver.running]
        if autosave:
            saver = DraftAutosaver(self.settings.draft_autosave_seconds, wizard)
            saver.start()
            self._autosavers.append(saver)
        return wizard

    async def start(self) -> None:
        user = await self.auth.initialize()
        if user is not None:
            self.poller.start()
        logger.info(f"SafishaHub client started against {self.settings.api_base_url}")

    async def close(self) -> None:
        await self.poller.close()
        for saver in self._autosavers:
            await saver.stop()
        self._autosavers = []
        self.modals.detach()
