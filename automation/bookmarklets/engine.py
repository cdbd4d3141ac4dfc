import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from playwright.async_api import Page

from automation.error_handler import EngineUnavailableError
from automation.models import BatchResult, EngineResult, ScriptItem
from automation.utils.browser_scripts import (
    JS_PROBE_EVAL,
    JS_PROBE_SCRIPT_FLAG,
    JS_RUN_EVAL,
    JS_RUN_FUNCTION,
    SCRIPT_PROBE_FLAG,
    SCRIPT_TAG_TEMPLATE,
)

logger = logging.getLogger(__name__)


class ScriptEngine(ABC):
    """
    Contract of a script execution engine: something that can run bookmarklet
    code in the page through one or more injection strategies.
    """

    @abstractmethod
    async def execute(self, code: str, title: str = "Untitled") -> EngineResult:
        pass

    @abstractmethod
    async def execute_multiple(self, items: List[ScriptItem]) -> BatchResult:
        pass

    @abstractmethod
    async def execute_via_background(self, code: str, title: str = "Untitled") -> EngineResult:
        pass

    @abstractmethod
    async def is_eval_available(self) -> bool:
        pass

    @abstractmethod
    async def is_script_injection_available(self) -> bool:
        pass

    @abstractmethod
    def is_extension_context_valid(self) -> bool:
        pass

    async def get_method_status(self) -> Dict[str, bool]:
        return {
            "scriptInjection": await self.is_script_injection_available(),
            "eval": await self.is_eval_available(),
            "extensionContext": self.is_extension_context_valid(),
        }


class BackgroundChannel(ABC):
    """Privileged execution path that is not subject to the page's CSP."""

    @abstractmethod
    async def execute(self, code: str, title: str) -> bool:
        pass

    @abstractmethod
    def is_available(self) -> bool:
        pass


class CdpBackgroundChannel(BackgroundChannel):
    """Runs code through a Chrome DevTools Protocol session (Chromium only)."""

    def __init__(self, page: Page):
        self.page = page
        self._session = None

    def is_available(self) -> bool:
        return not self.page.is_closed()

    async def execute(self, code: str, title: str) -> bool:
        if not self.is_available():
            return False
        if self._session is None:
            try:
                self._session = await self.page.context.new_cdp_session(self.page)
            except Exception as e:
                raise EngineUnavailableError(f"CDP session unavailable: {e}") from e
        response = await self._session.send("Runtime.evaluate", {
            "expression": code,
            "allowUnsafeEvalBlockedByCSP": True,
            "awaitPromise": False,
            "userGesture": True,
        })
        if response.get("exceptionDetails"):
            details = response["exceptionDetails"]
            logger.info(f"Background execution of \"{title}\" threw: {details.get('text', details)}")
            return False
        return True


class LegacyFallback(ScriptEngine):
    """
    Engine used when no external engine was injected. Tries, in order:
    script tag injection, eval / new Function, then the background channel.
    """

    def __init__(self, page: Page, background: Optional[BackgroundChannel] = None):
        self.page = page
        self.background = background

    async def is_script_injection_available(self) -> bool:
        try:
            tag = await self.page.add_script_tag(content=f"window.{SCRIPT_PROBE_FLAG} = true;")
            await tag.evaluate("(el) => el.remove()")
            return bool(await self.page.evaluate(JS_PROBE_SCRIPT_FLAG, SCRIPT_PROBE_FLAG))
        except Exception as e:
            logger.debug(f"Script injection probe failed: {e}")
            return False

    async def is_eval_available(self) -> bool:
        try:
            return bool(await self.page.evaluate(JS_PROBE_EVAL))
        except Exception as e:
            logger.debug(f"Eval probe failed: {e}")
            return False

    def is_extension_context_valid(self) -> bool:
        if self.background is None:
            return False
        try:
            return self.background.is_available()
        except Exception:
            return False

    async def execute_via_script_tag(self, code: str) -> bool:
        try:
            tag = await self.page.add_script_tag(content=SCRIPT_TAG_TEMPLATE.format(code=code))
            await tag.evaluate("(el) => el.remove()")
            return True
        except Exception as e:
            logger.info(f"Script tag injection failed: {e}")
            return False

    async def execute_via_eval(self, code: str) -> bool:
        stripped = code.strip()
        # eval only for expressions that invoke themselves
        script = JS_RUN_EVAL if stripped.startswith(("(", "!", "void")) else JS_RUN_FUNCTION
        try:
            await self.page.evaluate(script, code)
            return True
        except Exception as e:
            logger.info(f"eval failed: {e}")
            return False

    async def execute_via_background(self, code: str, title: str = "Untitled") -> EngineResult:
        if not self.is_extension_context_valid():
            logger.info("Background channel not available")
            return EngineResult(success=False, method="background", error="Background channel not available")
        try:
            success = await self.background.execute(code, title)
        except Exception as e:
            logger.info(f"Background execution failed: {e}")
            return EngineResult(success=False, method="background", error=str(e))
        if success:
            logger.info(f"\"{title}\" executed successfully via background")
        return EngineResult(success=success, method="background", error=None if success else "Background execution failed")

    async def execute(self, code: str, title: str = "Untitled") -> EngineResult:
        if await self.is_script_injection_available():
            if await self.execute_via_script_tag(code):
                logger.info(f"\"{title}\" executed via script injection")
                return EngineResult(success=True, method="scriptTag")

        if await self.is_eval_available():
            if await self.execute_via_eval(code):
                logger.info(f"\"{title}\" executed via eval")
                return EngineResult(success=True, method="eval")

        result = await self.execute_via_background(code, title)
        if result.success:
            return result
        return EngineResult(success=False, method=None, error="All legacy execution methods failed")

    async def execute_multiple(self, items: List[ScriptItem]) -> BatchResult:
        results = BatchResult(total=len(items))
        for index, item in enumerate(items):
            outcome = await self.execute(item.code, item.title)
            if outcome.success:
                results.executed += 1
            else:
                results.failed += 1
                results.errors.append(f"Failed to execute: {item.title}")
            if item.delay_after > 0 and index < len(items) - 1:
                await asyncio.sleep(item.delay_after / 1000)
        return results
