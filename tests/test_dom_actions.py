import pytest
from unittest.mock import AsyncMock, MagicMock

from automation.bookmarklets.analyzer import analyze
from automation.controller.dom_actions import DomActionExecutor
from automation.models import DomAction
from automation.utils.browser_scripts import (
    JS_ALERT,
    JS_BODY_TEXT,
    JS_ELEMENT_TYPE,
    JS_GET_TEXT,
    JS_NATIVE_CLICK,
    JS_SET_CHECKED,
    JS_SET_VALUE,
)


def make_element(input_type: str = "checkbox", text: str = ""):
    """Element handle stub answering the type and text probes."""
    element = MagicMock()

    async def evaluate(script, *args):
        if script == JS_ELEMENT_TYPE:
            return input_type
        if script == JS_GET_TEXT:
            return text
        return None

    element.evaluate = AsyncMock(side_effect=evaluate)
    element.focus = AsyncMock()
    return element


@pytest.fixture
def page():
    """
    Fixture to provide a mocked Playwright page.
    """
    page = MagicMock()
    page.query_selector = AsyncMock(return_value=None)
    page.query_selector_all = AsyncMock(return_value=[])
    page.evaluate = AsyncMock(return_value=None)
    return page


@pytest.mark.asyncio
async def test_analyzed_check_runs_against_checkbox(page):
    """
    The analyzer's check action sets the checkbox and reports one modified element.
    """
    checkbox = make_element("checkbox")
    page.query_selector.return_value = checkbox

    actions = analyze("var x = document.querySelector('#foo'); x.checked = true;")
    result = await DomActionExecutor(page).execute(actions[0])

    assert result.success is True
    assert result.elements_modified == 1
    page.query_selector.assert_awaited_once_with("#foo")
    checkbox.evaluate.assert_any_await(JS_SET_CHECKED, True)
    assert result.model_dump(by_alias=True, exclude_none=True) == {"success": True, "elementsModified": 1}


@pytest.mark.asyncio
async def test_check_ignores_non_checkable_elements(page):
    """
    Only checkboxes and radios are checked.
    """
    text_input = make_element("text")
    radio = make_element("radio")
    page.query_selector_all.return_value = [text_input, radio]

    result = await DomActionExecutor(page).execute({"type": "check", "selector": "input", "all": True})

    assert result.success is True
    assert result.elements_modified == 2
    assert call_count(text_input, JS_SET_CHECKED) == 0
    radio.evaluate.assert_any_await(JS_SET_CHECKED, True)


@pytest.mark.asyncio
async def test_uncheck_only_touches_checkboxes(page):
    """
    Radios are left alone by uncheck.
    """
    radio = make_element("radio")
    checkbox = make_element("checkbox")
    page.query_selector_all.return_value = [radio, checkbox]

    await DomActionExecutor(page).execute(DomAction(type="uncheck", selector="input", all=True))

    assert call_count(radio, JS_SET_CHECKED) == 0
    checkbox.evaluate.assert_any_await(JS_SET_CHECKED, False)


def call_count(element, script) -> int:
    return sum(1 for c in element.evaluate.await_args_list if c.args and c.args[0] == script)


@pytest.mark.asyncio
async def test_selector_miss_is_a_structured_failure(page):
    """
    No matching element returns a failure instead of raising.
    """
    result = await DomActionExecutor(page).execute({"type": "click", "selector": "#missing"})
    assert result.success is False
    assert result.error == "No elements found: #missing"
    assert result.elements_found == 0


@pytest.mark.asyncio
async def test_click_all(page):
    """
    click with all=True clicks every match natively.
    """
    buttons = [make_element("button"), make_element("button")]
    page.query_selector_all.return_value = buttons

    result = await DomActionExecutor(page).execute({"type": "click", "selector": "button", "all": True})

    assert result.elements_clicked == 2
    for button in buttons:
        button.evaluate.assert_awaited_once_with(JS_NATIVE_CLICK)


@pytest.mark.asyncio
async def test_set_value_defaults_to_empty_string(page):
    """
    setValue without a value clears the field.
    """
    field = make_element("text")
    page.query_selector.return_value = field

    result = await DomActionExecutor(page).execute({"type": "setValue", "selector": "#q"})

    assert result.success is True
    field.evaluate.assert_awaited_once_with(JS_SET_VALUE, "")


@pytest.mark.asyncio
async def test_focus_first_match(page):
    """
    focus targets the first element only.
    """
    first, second = make_element("text"), make_element("text")
    page.query_selector_all.return_value = [first, second]

    result = await DomActionExecutor(page).execute({"type": "focus", "selector": "input", "all": True})

    assert result.success is True
    first.focus.assert_awaited_once()
    second.focus.assert_not_awaited()


@pytest.mark.asyncio
async def test_focus_without_selector_fails(page):
    """
    There is nothing to focus without a selector.
    """
    result = await DomActionExecutor(page).execute({"type": "focus"})
    assert result.success is False
    assert result.error == "No element to focus"


@pytest.mark.asyncio
async def test_get_text(page):
    """
    getText reads the first match.
    """
    page.query_selector.return_value = make_element("", text="Episode 4")
    result = await DomActionExecutor(page).execute({"type": "getText", "selector": "h1"})
    assert result.success is True
    assert result.text == "Episode 4"


@pytest.mark.asyncio
async def test_has_text_is_case_insensitive_and_always_succeeds(page):
    """
    hasText searches the body text and reports found.
    """
    page.evaluate.return_value = "Next Episode starts in 5"
    executor = DomActionExecutor(page)

    found = await executor.execute({"type": "hasText", "value": "next episode"})
    missing = await executor.execute({"type": "hasText", "value": "credits"})

    assert found.success is True and found.found is True
    assert missing.success is True and missing.found is False
    assert missing.search_text == "credits"
    page.evaluate.assert_awaited_with(JS_BODY_TEXT)


@pytest.mark.asyncio
async def test_alert_message_and_default(page):
    """
    alert shows the given message or the default one.
    """
    executor = DomActionExecutor(page, default_alert_message="Done")
    await executor.execute({"type": "alert", "value": "Hi"})
    page.evaluate.assert_awaited_with(JS_ALERT, "Hi")
    await executor.execute({"type": "alert"})
    page.evaluate.assert_awaited_with(JS_ALERT, "Done")


@pytest.mark.asyncio
async def test_invalid_actions(page):
    """
    Missing or unknown types are reported, not raised.
    """
    executor = DomActionExecutor(page)
    assert (await executor.execute(None)).error == "Missing action type"
    assert (await executor.execute({"type": ""})).error == "Missing action type"
    assert (await executor.execute({"type": "dance"})).error == "Unknown action type: dance"
    invalid = await executor.execute({"selector": "#x"})
    assert invalid.success is False
    assert invalid.error.startswith("Invalid action")


@pytest.mark.asyncio
async def test_exceptions_become_failures(page):
    """
    Errors raised by the page are caught into the result.
    """
    page.query_selector.side_effect = RuntimeError("Target closed")
    result = await DomActionExecutor(page).execute({"type": "click", "selector": "#x"})
    assert result.success is False
    assert result.error == "Target closed"
