import asyncio
import logging
from typing import Awaitable, Callable

from .business import RegistrationWizard
from .cache import QueryClient
from .events import AUTH_CHANGED, SignalBus
from .queries import NOTIFICATIONS, Queries

logger = logging.getLogger(__name__)


async def interval_loop(stop_event: asyncio.Event, interval: float, tick: Callable[[], Awaitable], name: str):
    while not stop_event.is_set():
        try:
            await tick()
        except Exception as e:
            logger.error(f"[{name}] tick failed: {e}")
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            continue


class IntervalWorker:
    """Runs `tick` every `interval` seconds on the running loop until stopped."""

    name = "worker"

    def __init__(self, interval: float, tick: Callable[[], Awaitable] | None = None):
        self.interval = interval
        self._tick = tick
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self):
        if self._tick is not None:
            await self._tick()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(interval_loop(self._stop_event, self.interval, self.tick, self.name))

    async def stop(self) -> None:
        self._stop_event.set()
        task, self._task = self._task, None
        # a tick may stop its own worker; the loop then exits after that tick
        if task is not None and task is not asyncio.current_task():
            await task


class NotificationPoller(IntervalWorker):
    """Keeps the notifications query fresh while someone is logged in."""

    name = "notification-poller"

    def __init__(self, interval: float, query: QueryClient, queries: Queries, signals: SignalBus):
        super().__init__(interval)
        self.query = query
        self.queries = queries
        self._unsubscribe = signals.subscribe(AUTH_CHANGED, self._on_auth_changed)

    async def tick(self):
        if NOTIFICATIONS in self.query:
            await self.query.refetch(NOTIFICATIONS)
        else:
            await self.queries.notifications_list()

    async def _on_auth_changed(self, event: dict) -> None:
        if event["data"].get("user_id"):
            self.start()
        else:
            await self.stop()

    async def close(self) -> None:
        self._unsubscribe()
        await self.stop()


class DraftAutosaver(IntervalWorker):
    name = "draft-autosaver"

    def __init__(self, interval: float, wizard: RegistrationWizard):
        super().__init__(interval)
        self.wizard = wizard

    async def tick(self):
        if self.wizard.submitted is not None:
            await self.stop()
            return
        if await self.wizard.autosave():
            logger.debug("Registration draft autosaved")
