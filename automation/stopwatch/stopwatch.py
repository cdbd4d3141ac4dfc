import asyncio
import logging
import random
import time
from typing import Any, Awaitable, Callable, Mapping, Optional, Set

from playwright.async_api import Page

from automation.config import get_settings
from automation.matching.overrides import resolve_for
from automation.matching.patterns import is_domain_included
from automation.models import PageLocation, SessionState, StopwatchSettings
from automation.stopwatch import random_threshold
from automation.stopwatch.settings_reducer import STOPWATCH_KEYS, SettingsChange, apply_changes, settings_from_storage
from automation.storage import SettingsStorage
from automation.utils.browser_scripts import (
    JS_REMOVE_STOPWATCH,
    JS_RENDER_STOPWATCH,
    STOPWATCH_ELEMENT_ID,
    STOPWATCH_POSITIONS,
)

logger = logging.getLogger(__name__)

# on_notify(elapsed_ms, settings_snapshot)
NotifyCallback = Callable[[int, StopwatchSettings], Awaitable[Any]]


def format_time(ms: float) -> str:
    """H:MM:SS from one hour on, M:SS below."""
    total_seconds = int(ms // 1000)
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"


class StopwatchOverlay:
    """The time-on-page widget injected into the page."""

    def __init__(self, page: Page):
        self.page = page

    async def render(self, time_text: str, minimized: bool, position: str):
        await self.page.evaluate(JS_RENDER_STOPWATCH, {
            "id": STOPWATCH_ELEMENT_ID,
            "time": time_text,
            "minimized": minimized,
            "position": STOPWATCH_POSITIONS.get(position, STOPWATCH_POSITIONS["bottom-right"]),
        })

    async def remove(self):
        await self.page.evaluate(JS_REMOVE_STOPWATCH, STOPWATCH_ELEMENT_ID)


class Stopwatch:
    """
    Time-on-page stopwatch with a single-fire notification.

    Stopped -> Running -> Stopped. While running, a tick every second updates
    the display and, once the elapsed time reaches the resolved threshold,
    latches `notification_sent` and hands off to `on_notify`. The latch is
    only cleared by a restart or by raising the threshold past the elapsed
    time.

    The random threshold is drawn once, when the stopwatch is created for a
    page load; settings changes never redraw it.
    """

    def __init__(
        self,
        location: PageLocation,
        settings: Optional[StopwatchSettings] = None,
        on_notify: Optional[NotifyCallback] = None,
        overlay: Optional[StopwatchOverlay] = None,
        clock: Callable[[], float] = time.monotonic,
        rng: Callable[[], float] = random.random,
        tick_interval: Optional[float] = None,
    ):
        self.location = location
        self.settings = settings or StopwatchSettings()
        self.on_notify = on_notify
        self.overlay = overlay
        self.clock = clock
        self.tick_interval = tick_interval if tick_interval is not None else get_settings().TICK_INTERVAL_SECONDS
        self.state = SessionState(
            generated_random_seconds=random_threshold.generate(self.settings, location, rng),
        )
        self.display_text = ""
        self._task: Optional[asyncio.Task] = None
        self._handoffs: Set[asyncio.Task] = set()
        self._hand_off_lock: Optional[asyncio.Lock] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    @classmethod
    async def load(cls, storage: SettingsStorage, location: PageLocation, **kwargs) -> "Stopwatch":
        """Read the settings snapshot and follow later changes from `storage`."""
        raw = await storage.get(STOPWATCH_KEYS)
        stopwatch = cls(location, settings_from_storage(raw), **kwargs)
        stopwatch._unsubscribe = storage.subscribe(stopwatch.handle_storage_change)
        return stopwatch

    # --- state ----------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._task is not None

    def is_admitted(self) -> bool:
        return is_domain_included(self.settings.included_domains, self.location.hostname, self.location.url)

    def elapsed_ms(self) -> int:
        if self.state.start_time is None:
            return 0
        return int((self.clock() - self.state.start_time) * 1000)

    def threshold_seconds(self) -> float:
        if self.state.generated_random_seconds is not None:
            return self.state.generated_random_seconds
        return resolve_for(
            self.settings.notification_time_by_domain,
            self.location,
            self.settings.notification_minutes * 60,
        )

    # --- lifecycle --------------------------------------------------------------

    async def init(self) -> bool:
        if not self.settings.enabled:
            return False
        if not self.is_admitted():
            logger.info(f"Stopwatch not enabled for {self.location.hostname}")
            return False
        await self.start()
        return True

    async def start(self):
        if self.running:
            return
        self.state.start_time = self.clock()
        self.state.notification_sent = False
        self.state.is_minimized = self.settings.minimized_by_default
        self._task = asyncio.create_task(self._run())
        logger.info(f"Stopwatch started on {self.location.hostname} (threshold {self.threshold_seconds()}s)")

    async def stop(self):
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self.overlay is not None:
            try:
                await self.overlay.remove()
            except Exception as e:
                logger.debug(f"Stopwatch overlay removal failed: {e}")

        self.state.start_time = None

    async def destroy(self):
        """Page unload: stop and stop listening for settings changes."""
        await self.stop()
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    async def _run(self):
        while True:
            await self.tick()
            await asyncio.sleep(self.tick_interval)

    # --- ticking ----------------------------------------------------------------

    async def tick(self):
        if self.state.start_time is None:
            return

        elapsed = self.elapsed_ms()
        self.display_text = format_time(elapsed)
        await self._render()

        if self.settings.notification_enabled and not self.state.notification_sent:
            threshold = self.threshold_seconds()
            if elapsed / 1000 >= threshold:
                self.state.notification_sent = True
                logger.info(f"Notification threshold {threshold}s reached on {self.location.hostname} ({self.display_text})")
                self._hand_off(elapsed)

    async def _render(self):
        if self.overlay is None:
            return
        try:
            await self.overlay.render(self.display_text, self.state.is_minimized, self.settings.position.value)
        except Exception as e:
            logger.debug(f"Stopwatch overlay render failed: {e}")

    async def toggle_minimized(self):
        self.state.is_minimized = not self.state.is_minimized
        await self._render()

    def _hand_off(self, elapsed_ms: int):
        if self.on_notify is None:
            return
        # Runs beside the tick loop; stop() does not cancel it
        task = asyncio.create_task(self._run_hand_off(elapsed_ms, self.settings))
        self._handoffs.add(task)
        task.add_done_callback(self._handoffs.discard)

    async def _run_hand_off(self, elapsed_ms: int, settings: StopwatchSettings):
        # A re-armed or restarted notification waits for the running batch
        if self._hand_off_lock is None:
            self._hand_off_lock = asyncio.Lock()
        async with self._hand_off_lock:
            try:
                await self.on_notify(elapsed_ms, settings)
            except Exception as e:
                logger.error(f"Notification automation failed: {e}", exc_info=True)

    async def wait_for_hand_offs(self):
        if self._handoffs:
            await asyncio.gather(*list(self._handoffs))

    # --- settings changes -------------------------------------------------------

    async def handle_storage_change(self, changes: Mapping[str, Any]) -> SettingsChange:
        self.settings, change = apply_changes(self.settings, changes)
        if not change.keys:
            return change

        if change.ui_changed and self.running:
            await self._render()

        if change.threshold_changed and self.state.notification_sent and self.state.start_time is not None:
            if self.elapsed_ms() / 1000 < self.threshold_seconds():
                self.state.notification_sent = False
                logger.info(f"Notification re-armed: threshold moved to {self.threshold_seconds()}s")

        if change.restart:
            await self.stop()
            if self.settings.enabled and self.is_admitted():
                await self.start()
        return change
