import argparse
import asyncio
import json
import logging
import sys
from typing import Optional, Set

from dotenv import load_dotenv
from playwright.async_api import Page, async_playwright

from automation.bookmarklets import url_codec
from automation.bookmarklets.analyzer import analyze
from automation.bookmarklets.engine import CdpBackgroundChannel
from automation.bookmarklets.metadata import generate_bookmarklet, minify, parse_and_generate
from automation.bookmarklets.runner import BookmarkletRunner
from automation.config import get_settings
from automation.error_handler import AutomationError, create_error_message
from automation.models import EditorBookmarklet, PageLocation
from automation.stopwatch.notifier import NotificationHandOff
from automation.stopwatch.stopwatch import Stopwatch, StopwatchOverlay
from automation.storage import EditorBookmarkletStore, JsonFileStorage
from automation.triggers.domain_trigger import TRIGGER_PAGELOAD, DomainTriggerMonitor
from automation.utils.io_manager import IOManager

load_dotenv()

logger = logging.getLogger(__name__)


async def ask_confirmation(bookmarklet: EditorBookmarklet) -> bool:
    prompt = f"Run bookmarklet \"{bookmarklet.name}\"? {bookmarklet.description or 'Triggered by domain match'} [y/N] "
    answer = await asyncio.to_thread(input, prompt)
    return answer.strip().lower() in ("y", "yes")


async def start_stopwatch(page: Page, storage: JsonFileStorage, runner: BookmarkletRunner) -> Stopwatch:
    location = PageLocation.from_url(page.url)
    stopwatch = await Stopwatch.load(
        storage,
        location,
        on_notify=NotificationHandOff(page, location, runner),
        overlay=StopwatchOverlay(page),
    )
    await stopwatch.init()
    return stopwatch


class StopwatchSession:
    """Keeps exactly one stopwatch alive per loaded document of a page."""

    def __init__(self, page: Page, storage: JsonFileStorage, runner: BookmarkletRunner):
        self.page = page
        self.storage = storage
        self.runner = runner
        self.stopwatch: Optional[Stopwatch] = None
        self._lock: Optional[asyncio.Lock] = None
        self._tasks: Set[asyncio.Task] = set()

    async def reload(self):
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            try:
                if self.stopwatch is not None:
                    await self.stopwatch.destroy()
                    self.stopwatch = None
                self.stopwatch = await start_stopwatch(self.page, self.storage, self.runner)
            except Exception as e:
                logger.error(f"❌ Stopwatch reload failed: {e}", exc_info=True)

    def on_load(self, _page=None):
        task = asyncio.create_task(self.reload())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def close(self):
        if self._tasks:
            await asyncio.gather(*list(self._tasks))
        if self.stopwatch is not None:
            await self.stopwatch.destroy()
            self.stopwatch = None


async def run_session(url: str, storage_path: str, headless: bool, confirm: bool, duration: Optional[float]):
    storage = JsonFileStorage(storage_path)
    editor_store = EditorBookmarkletStore(storage)

    async with async_playwright() as p:
        browser = await p.chromium.launch(headless=headless)
        context = await browser.new_context()
        page = await context.new_page()
        await page.goto(url)

        runner = BookmarkletRunner(page, background=CdpBackgroundChannel(page), editor_store=editor_store)
        await runner.log_status()

        monitor = DomainTriggerMonitor(page, runner, editor_store,
                                       confirm_callback=ask_confirmation if confirm else None)
        await monitor.check_domain_triggers(TRIGGER_PAGELOAD)
        monitor.attach()

        session = StopwatchSession(page, storage, runner)
        await session.reload()
        page.on("load", session.on_load)

        closed = asyncio.Event()
        page.on("close", lambda _: closed.set())
        try:
            await asyncio.wait_for(closed.wait(), timeout=duration)
        except asyncio.TimeoutError:
            logger.info(f"Session ended after {duration}s")
        finally:
            await session.close()
            await browser.close()


def cmd_run(args) -> int:
    settings = get_settings()
    asyncio.run(run_session(
        args.url,
        args.storage or settings.STORAGE_PATH,
        args.headless or settings.HEADLESS,
        args.confirm,
        args.duration,
    ))
    return 0


def _read_source(path: str) -> str:
    source = IOManager.read_text_sync(path)
    if source is None:
        raise AutomationError(f"Could not read {path}")
    return source


def cmd_actions(args) -> int:
    source = _read_source(args.file).strip()
    if url_codec.is_bookmarklet(source):
        source = url_codec.parse(source)
        if source is None:
            raise AutomationError("Could not decode bookmarklet URL")
    actions = analyze(source)
    print(json.dumps([a.model_dump(exclude_none=True) for a in actions], indent=2))
    return 0


def cmd_decode(args) -> int:
    code = url_codec.parse(args.url)
    if code is None:
        print(create_error_message("Not a decodable bookmarklet URL"), file=sys.stderr)
        return 1
    print(code)
    return 0


def cmd_build(args) -> int:
    parsed = parse_and_generate(_read_source(args.file))
    errors = parsed.errors or []
    for error in errors:
        print(create_error_message(error), file=sys.stderr)
    if errors:
        return 1
    print(generate_bookmarklet(minify(parsed.code), parsed.options) if args.minify else parsed.url)
    return 0


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Domain-scoped browser automation")
    parser.add_argument("--version", action="version", version=f"{settings.APP_NAME} {settings.VERSION}")
    parser.add_argument("--log-level", type=str, default=None, help="Overrides LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Open a page and run the stopwatch and domain triggers on it")
    run.add_argument("url", help="Page to open")
    run.add_argument("--storage", type=str, default=None, help="Settings JSON file (defaults to STORAGE_PATH)")
    run.add_argument("--headless", action="store_true", help="Run the browser headless")
    run.add_argument("--confirm", action="store_true", help="Ask before running non auto-run domain bookmarklets")
    run.add_argument("--duration", type=float, default=None, help="Stop after this many seconds")
    run.set_defaults(func=cmd_run)

    actions = sub.add_parser("actions", help="Print the DOM actions recognised in bookmarklet code")
    actions.add_argument("file", help="File with bookmarklet code or a javascript: URL")
    actions.set_defaults(func=cmd_actions)

    decode = sub.add_parser("decode", help="Decode a javascript: bookmarklet URL")
    decode.add_argument("url")
    decode.set_defaults(func=cmd_decode)

    build = sub.add_parser("build", help="Build a bookmarklet URL from source with a metadata block")
    build.add_argument("file")
    build.add_argument("--minify", action="store_true", help="Strip comments and whitespace first")
    build.set_defaults(func=cmd_build)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    level = (args.log_level or get_settings().LOG_LEVEL).upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO),
                        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    try:
        return args.func(args)
    except AutomationError as e:
        print(create_error_message(e), file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
