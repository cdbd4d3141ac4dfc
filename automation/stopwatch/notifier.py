import asyncio
import logging
from typing import Optional

from playwright.async_api import Page

from automation.bookmarklets.runner import BookmarkletRunner
from automation.config import get_settings
from automation.matching.overrides import get_bookmarks_for_domain, resolve_for
from automation.models import BatchResult, PageLocation, StopwatchSettings
from automation.stopwatch.stopwatch import format_time
from automation.utils.browser_scripts import JS_ALERT

logger = logging.getLogger(__name__)


def alert_message(hostname: str, elapsed_ms: int) -> str:
    return f"Time Alert!\n\nYou've been on {hostname} for {format_time(elapsed_ms)}"


class NotificationHandOff:
    """
    What happens once the stopwatch threshold is reached: an alert (unless
    silent mode resolves to true for the page), then, if enabled, the page's
    bookmarks after the resolved delay. Regular links open in new tabs,
    bookmarklets go through the runner as one batch.
    """

    def __init__(self, page: Page, location: PageLocation, runner: BookmarkletRunner,
                 focus_delay: Optional[float] = None):
        self.page = page
        self.location = location
        self.runner = runner
        self.focus_delay = focus_delay if focus_delay is not None else get_settings().FOCUS_DELAY_SECONDS

    async def __call__(self, elapsed_ms: int, settings: StopwatchSettings) -> Optional[BatchResult]:
        silent = resolve_for(settings.silent_mode_by_domain, self.location, settings.notification_silent)
        if silent:
            logger.info(f"Silent mode on for {self.location.hostname}, skipping alert")
        else:
            await self.show_alert(elapsed_ms)

        if not settings.open_bookmarks_on_notification:
            return None

        entries = get_bookmarks_for_domain(settings.bookmarks_by_domain, self.location, settings.global_bookmarklets)
        if not entries:
            logger.info(f"No bookmarks configured for {self.location.hostname}")
            return None

        delay_ms = resolve_for(settings.delay_by_domain, self.location, settings.bookmarklet_delay)
        if delay_ms > 0:
            logger.info(f"Waiting {delay_ms}ms before running bookmarks")
            await asyncio.sleep(delay_ms / 1000)

        for entry in entries:
            if not entry.is_bookmarklet and entry.url:
                await self.open_link(entry.url)

        bookmarklets = [entry for entry in entries if entry.is_bookmarklet]
        if not bookmarklets:
            return None
        return await self.runner.execute_multiple(bookmarklets)

    async def show_alert(self, elapsed_ms: int):
        try:
            await self.page.bring_to_front()
            await asyncio.sleep(self.focus_delay)
        except Exception as e:
            logger.warning(f"Could not focus tab before alert: {e}")

        try:
            await self.page.evaluate(JS_ALERT, alert_message(self.location.hostname, elapsed_ms))
        except Exception as e:
            logger.warning(f"Alert failed: {e}")

    async def open_link(self, url: str):
        try:
            tab = await self.page.context.new_page()
            await tab.goto(url)
            logger.info(f"Opened {url}")
        except Exception as e:
            logger.warning(f"❌ Could not open {url}: {e}")
