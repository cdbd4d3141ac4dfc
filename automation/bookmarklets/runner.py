import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from playwright.async_api import Page
from pydantic import ValidationError

from automation.bookmarklets import url_codec
from automation.bookmarklets.analyzer import analyze
from automation.bookmarklets.engine import BackgroundChannel, LegacyFallback, ScriptEngine
from automation.bookmarklets.metadata import compile_source
from automation.config import get_settings
from automation.controller.dom_actions import DomActionExecutor
from automation.models import ActionResult, BatchResult, BookmarkEntry, DomAction, ScriptItem
from automation.storage import EditorBookmarkletStore

logger = logging.getLogger(__name__)

BookmarkLike = Union[BookmarkEntry, Dict[str, Any]]


class BookmarkletRunner:
    """
    Runs bookmarklets on a page.

    With an injected `engine` every bookmarklet is delegated to it. Without
    one, a LegacyFallback (script tag, eval, background channel) is used.
    When execution fails either way, the code is analyzed into DOM actions
    and those are executed instead.
    """

    def __init__(
        self,
        page: Page,
        engine: Optional[ScriptEngine] = None,
        background: Optional[BackgroundChannel] = None,
        editor_store: Optional[EditorBookmarkletStore] = None,
        executor: Optional[DomActionExecutor] = None,
    ):
        self.page = page
        self.engine = engine
        self.legacy = LegacyFallback(page, background) if engine is None else None
        self.editor_store = editor_store
        self.executor = executor or DomActionExecutor(page)
        self.preview_chars = get_settings().CODE_PREVIEW_CHARS
        self._busy: Optional[asyncio.Lock] = None

    async def log_status(self) -> Dict[str, bool]:
        active = self.engine or self.legacy
        status = await active.get_method_status()
        kind = "engine" if self.engine is not None else "legacy"
        logger.info(f"Bookmarklet runner initialized ({kind}): {status}")
        return status

    # --- single bookmarklet -------------------------------------------------

    def _lock(self) -> asyncio.Lock:
        # One bookmarklet or batch at a time per runner
        if self._busy is None:
            self._busy = asyncio.Lock()
        return self._busy

    async def execute(self, code: str, title: str = "Untitled") -> bool:
        async with self._lock():
            return await self._execute(code, title)

    async def _execute(self, code: str, title: str) -> bool:
        logger.info(f"Executing \"{title}\"")
        preview = code[:self.preview_chars] + ("..." if len(code) > self.preview_chars else "")
        logger.debug(f"Code: {preview}")

        try:
            if self.engine is not None:
                result = await self.engine.execute(code, title)
                if result.success:
                    logger.info(f"\"{title}\" executed successfully via {result.method}")
                    return True
                logger.info(f"Script engine failed ({result.error}), trying DOM action parsing")
            else:
                logger.info("No script engine available, using legacy methods")
                result = await self.legacy.execute(code, title)
                if result.success:
                    return True
        except Exception as e:
            logger.warning(f"Execution of \"{title}\" raised: {e}")

        return await self.run_parsed_actions(code, title)

    async def run_parsed_actions(self, code: str, title: str) -> bool:
        """Last resort: analyze the code and run the resulting DOM actions."""
        logger.info("Attempting to parse bookmarklet into DOM actions")
        actions = analyze(code)
        if not actions:
            logger.info(f"Could not parse \"{title}\" into actions. All execution methods failed.")
            return False

        logger.info(f"Parsed {len(actions)} action(s) from bookmarklet")
        all_succeeded = True
        for action in actions:
            result = await self.executor.execute(action)
            if not result.success:
                all_succeeded = False
                logger.info(f"Action failed: {action.model_dump(exclude_none=True)} {result.error}")
        return all_succeeded

    async def execute_from_url(self, bookmark: Optional[BookmarkLike]) -> bool:
        entry = self._coerce(bookmark)
        if entry is None or not entry.url:
            logger.info("No bookmark or URL provided")
            return False
        code = url_codec.parse(entry.url)
        if code is None:
            return False
        return await self.execute(code, entry.title or "Untitled")

    # --- batches ------------------------------------------------------------

    async def _to_script_item(self, entry: BookmarkEntry) -> Tuple[Optional[ScriptItem], Optional[str]]:
        title = entry.title or "Untitled"
        if entry.is_editor_bookmarklet:
            if self.editor_store is None or not entry.editor_bookmarklet_id:
                return None, f"Editor bookmarklet unavailable: {title}"
            bookmarklet = await self.editor_store.get(entry.editor_bookmarklet_id)
            if bookmarklet is None:
                return None, f"Editor bookmarklet not found: {entry.editor_bookmarklet_id}"
            if not bookmarklet.enabled:
                return None, f"Editor bookmarklet disabled: {bookmarklet.name}"
            return ScriptItem(code=compile_source(bookmarklet.code), title=bookmarklet.name,
                              delay_after=entry.delay_after), None

        code = url_codec.parse(entry.url)
        if code is None:
            return None, f"Failed to parse bookmarklet URL: {title}"
        return ScriptItem(code=code, title=title, delay_after=entry.delay_after), None

    async def execute_multiple(self, bookmarks: Optional[Sequence[BookmarkLike]]) -> BatchResult:
        """
        Run bookmarklets one after another. Regular links are skipped and not
        counted; malformed entries count as failures. Each item's delay_after
        (ms) is waited before the next item starts. A started batch always runs
        to the end, and no other bookmarklet runs on this runner meanwhile.
        """
        results = BatchResult()
        if bookmarks is None or not isinstance(bookmarks, (list, tuple)):
            logger.info("Invalid bookmarks array provided")
            return results

        entries = []
        for raw in bookmarks:
            entry = self._coerce(raw)
            if entry is not None and not entry.is_bookmarklet:
                continue
            entries.append((raw, entry))
        results.total = len(entries)
        if len(bookmarks) > results.total:
            logger.info(f"Skipping {len(bookmarks) - results.total} regular link(s)")
        logger.info(f"Processing {results.total} bookmarklet(s)")

        items: List[ScriptItem] = []
        for raw, entry in entries:
            if entry is None:
                results.failed += 1
                results.errors.append(f"Invalid bookmark entry: {raw!r}")
                continue
            item, error = await self._to_script_item(entry)
            if item is None:
                results.failed += 1
                results.errors.append(error)
            else:
                items.append(item)

        async with self._lock():
            for index, item in enumerate(items):
                try:
                    if await self._execute(item.code, item.title):
                        results.executed += 1
                    else:
                        results.failed += 1
                        results.errors.append(f"Failed to execute: {item.title}")
                except Exception as e:
                    logger.error(f"Unexpected error in \"{item.title}\": {e}", exc_info=True)
                    results.failed += 1
                    results.errors.append(f"Error in \"{item.title}\": {e}")

                if item.delay_after > 0 and index < len(items) - 1:
                    await asyncio.sleep(item.delay_after / 1000)

        logger.info(f"Finished. Executed: {results.executed}/{results.total}, Failed: {results.failed}")
        return results

    # --- public helpers -----------------------------------------------------

    @staticmethod
    def parse(url: Any) -> Optional[str]:
        return url_codec.parse(url)

    @staticmethod
    def is_bookmarklet(url: Any) -> bool:
        return url_codec.is_bookmarklet(url)

    @staticmethod
    def parse_to_actions(code: str) -> List[DomAction]:
        return analyze(code)

    async def action(self, dom_action: Union[DomAction, Dict[str, Any]]) -> ActionResult:
        return await self.executor.execute(dom_action)

    @staticmethod
    def _coerce(bookmark: Optional[BookmarkLike]) -> Optional[BookmarkEntry]:
        if bookmark is None or isinstance(bookmark, BookmarkEntry):
            return bookmark
        if isinstance(bookmark, dict):
            try:
                return BookmarkEntry.model_validate(bookmark)
            except ValidationError as e:
                logger.info(f"Invalid bookmark entry: {e}")
        return None
