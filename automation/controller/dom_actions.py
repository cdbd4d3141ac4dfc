import logging
from typing import Any, Dict, List, Optional, Union

from playwright.async_api import ElementHandle, Page
from pydantic import ValidationError

from automation.config import get_settings
from automation.models import ActionResult, DomAction
from automation.utils.browser_scripts import (
    JS_ALERT,
    JS_BODY_TEXT,
    JS_ELEMENT_TYPE,
    JS_GET_TEXT,
    JS_NATIVE_CLICK,
    JS_SET_CHECKED,
    JS_SET_VALUE,
)

logger = logging.getLogger(__name__)


class DomActionExecutor:
    """
    Runs structured DOM actions against the live page without evaluating
    arbitrary code. Used as the last resort when every script execution
    strategy is blocked.

    Supported types: check, uncheck, click, setValue, focus, getText,
    hasText, alert. With `all=True` the action applies to every match of the
    selector, otherwise to the first one.
    """

    def __init__(self, page: Page, default_alert_message: Optional[str] = None):
        self.page = page
        self.default_alert_message = default_alert_message or get_settings().DEFAULT_ALERT_MESSAGE

    async def _query(self, selector: str, all_matches: bool) -> List[ElementHandle]:
        if all_matches:
            return list(await self.page.query_selector_all(selector))
        element = await self.page.query_selector(selector)
        return [element] if element else []

    async def execute(self, action: Union[DomAction, Dict[str, Any], None]) -> ActionResult:
        if isinstance(action, dict):
            try:
                action = DomAction.model_validate(action)
            except ValidationError as e:
                return ActionResult(success=False, error=f"Invalid action: {e}")

        if not action or not action.type:
            logger.info("Invalid action - missing type")
            return ActionResult(success=False, error="Missing action type")

        logger.info(f"Executing DOM action: {action.type} {action.model_dump(exclude_none=True)}")

        try:
            elements: List[ElementHandle] = []
            if action.selector:
                elements = await self._query(action.selector, action.all)
                if not elements:
                    logger.info(f"No elements found for selector: {action.selector}")
                    return ActionResult(success=False, error=f"No elements found: {action.selector}", elements_found=0)
                logger.info(f"Found {len(elements)} element(s) for selector: {action.selector}")

            handler = getattr(self, f"_do_{action.type}", None)
            if handler is None:
                return ActionResult(success=False, error=f"Unknown action type: {action.type}")
            return await handler(action, elements)
        except Exception as e:
            logger.info(f"DOM action failed: {e}")
            return ActionResult(success=False, error=str(e))

    async def _do_check(self, action: DomAction, elements: List[ElementHandle]) -> ActionResult:
        for el in elements:
            if await el.evaluate(JS_ELEMENT_TYPE) in ("checkbox", "radio"):
                await el.evaluate(JS_SET_CHECKED, True)
        return ActionResult(success=True, elements_modified=len(elements))

    async def _do_uncheck(self, action: DomAction, elements: List[ElementHandle]) -> ActionResult:
        for el in elements:
            if await el.evaluate(JS_ELEMENT_TYPE) == "checkbox":
                await el.evaluate(JS_SET_CHECKED, False)
        return ActionResult(success=True, elements_modified=len(elements))

    async def _do_click(self, action: DomAction, elements: List[ElementHandle]) -> ActionResult:
        for el in elements:
            await el.evaluate(JS_NATIVE_CLICK)
        return ActionResult(success=True, elements_clicked=len(elements))

    async def _do_setValue(self, action: DomAction, elements: List[ElementHandle]) -> ActionResult:
        for el in elements:
            await el.evaluate(JS_SET_VALUE, action.value or "")
        return ActionResult(success=True, elements_modified=len(elements))

    async def _do_focus(self, action: DomAction, elements: List[ElementHandle]) -> ActionResult:
        if not elements:
            return ActionResult(success=False, error="No element to focus")
        await elements[0].focus()
        return ActionResult(success=True)

    async def _do_getText(self, action: DomAction, elements: List[ElementHandle]) -> ActionResult:
        if not elements:
            return ActionResult(success=False, error="No element found")
        text = await elements[0].evaluate(JS_GET_TEXT)
        return ActionResult(success=True, text=text or "")

    async def _do_hasText(self, action: DomAction, elements: List[ElementHandle]) -> ActionResult:
        search_text = (action.value or "").lower()
        body_text = (await self.page.evaluate(JS_BODY_TEXT) or "").lower()
        return ActionResult(success=True, found=search_text in body_text, search_text=action.value)

    async def _do_alert(self, action: DomAction, elements: List[ElementHandle]) -> ActionResult:
        await self.page.evaluate(JS_ALERT, action.value or self.default_alert_message)
        return ActionResult(success=True)
