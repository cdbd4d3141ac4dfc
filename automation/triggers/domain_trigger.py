import asyncio
import inspect
import logging
from typing import Any, Callable, List, Optional, Set

from playwright.async_api import Frame, Page, Request

from automation.bookmarklets.metadata import compile_source
from automation.bookmarklets.runner import BookmarkletRunner
from automation.config import get_settings
from automation.matching.patterns import matches_trigger_pattern
from automation.models import EditorBookmarklet, PageLocation
from automation.storage import EditorBookmarkletStore

logger = logging.getLogger(__name__)

TRIGGER_PAGELOAD = "pageload"
TRIGGER_URLCHANGE = "urlchange"

# confirm(bookmarklet) -> bool, sync or async
ConfirmCallback = Callable[[EditorBookmarklet], Any]


class DomainTriggerMonitor:
    """
    Runs editor bookmarklets whose schedule is bound to the current domain,
    on page load or on in-page URL changes.
    """

    def __init__(
        self,
        page: Page,
        runner: BookmarkletRunner,
        editor_store: EditorBookmarkletStore,
        confirm_callback: Optional[ConfirmCallback] = None,
        url_change_delay: Optional[float] = None,
    ):
        self.page = page
        self.runner = runner
        self.editor_store = editor_store
        self.confirm_callback = confirm_callback
        self.url_change_delay = url_change_delay if url_change_delay is not None else get_settings().URL_CHANGE_DELAY_SECONDS
        self.last_url: str = page.url
        self._tasks: Set[asyncio.Task] = set()
        # URL of the document the main frame is loading, if any
        self._loading_url: Optional[str] = None

    def matching_bookmarklets(self, bookmarklets: List[EditorBookmarklet], trigger: str,
                              location: PageLocation) -> List[EditorBookmarklet]:
        matched = []
        for bookmarklet in bookmarklets:
            if not bookmarklet.enabled or bookmarklet.schedule.type != "domain":
                continue
            config = bookmarklet.schedule.config or {}
            if config.get("trigger") != trigger:
                continue
            domains = config.get("domains") or []
            if any(matches_trigger_pattern(p, location.hostname, location.url) for p in domains):
                matched.append(bookmarklet)
        return matched

    async def check_domain_triggers(self, trigger: str) -> List[str]:
        """Returns the ids of the bookmarklets that ran successfully."""
        location = PageLocation.from_url(self.page.url)
        executed = []
        try:
            bookmarklets = await self.editor_store.all()
        except Exception as e:
            logger.warning(f"Error checking domain triggers: {e}")
            return executed

        for bookmarklet in self.matching_bookmarklets(bookmarklets, trigger, location):
            logger.info(f"Domain trigger matched for bookmarklet: {bookmarklet.name}")
            if not bookmarklet.auto_run and not await self._confirm(bookmarklet):
                logger.info(f"Skipped \"{bookmarklet.name}\" (not confirmed)")
                continue
            if await self.execute_bookmarklet(bookmarklet):
                executed.append(bookmarklet.id)
        return executed

    async def _confirm(self, bookmarklet: EditorBookmarklet) -> bool:
        if self.confirm_callback is None:
            return False
        try:
            answer = self.confirm_callback(bookmarklet)
            if inspect.isawaitable(answer):
                answer = await answer
            return bool(answer)
        except Exception as e:
            logger.warning(f"Confirmation for \"{bookmarklet.name}\" failed: {e}")
            return False

    async def execute_bookmarklet(self, bookmarklet: EditorBookmarklet) -> bool:
        logger.info(f"Executing domain-triggered bookmarklet: {bookmarklet.name}")
        try:
            success = await self.runner.execute(compile_source(bookmarklet.code), bookmarklet.name)
        except Exception as e:
            logger.error(f"❌ Bookmarklet execution error: {e}")
            return False

        if not success:
            logger.info(f"\"{bookmarklet.name}\" failed")
            return False
        try:
            await self.editor_store.record_execution(bookmarklet.id)
        except Exception as e:
            logger.warning(f"Error updating bookmarklet stats: {e}")
        return True

    async def handle_url_change(self, url: str) -> Optional[List[str]]:
        if url == self.last_url:
            return None
        self.last_url = url
        await asyncio.sleep(self.url_change_delay)
        return await self.check_domain_triggers(TRIGGER_URLCHANGE)

    def _spawn(self, coro):
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def attach(self):
        """
        Follow page loads and in-document URL changes of the page. A main-frame
        navigation that loads a new document is left to the load event.
        """
        def on_request(request: Request):
            if request.is_navigation_request() and request.frame == self.page.main_frame:
                self._loading_url = request.url

        def on_navigated(frame: Frame):
            if frame != self.page.main_frame:
                return
            if self._loading_url is not None and _without_fragment(frame.url) == _without_fragment(self._loading_url):
                self._loading_url = None
                self.last_url = frame.url
                return
            self._spawn(self.handle_url_change(frame.url))

        def on_load(page: Page):
            self._loading_url = None
            self.last_url = page.url
            self._spawn(self.check_domain_triggers(TRIGGER_PAGELOAD))

        self.page.on("request", on_request)
        self.page.on("framenavigated", on_navigated)
        self.page.on("load", on_load)


def _without_fragment(url: str) -> str:
    return url.split("#", 1)[0]
