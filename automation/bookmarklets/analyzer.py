"""
Best-effort conversion of bookmarklet JavaScript into DOM actions.

This is a heuristic, regex based scan for a handful of common idioms
(checking boxes, clicking, filling inputs). It does not parse JavaScript
and cannot model conditional logic: code that branches simply yields fewer
actions, or none.
"""

import logging
import re
from typing import Dict, List, Optional, Set, Tuple

from automation.models import DomAction

logger = logging.getLogger(__name__)

QUERY_SELECTOR = re.compile(r"document\.querySelector\(\s*(['\"])")
QUERY_SELECTOR_ALL = re.compile(r"document\.querySelectorAll\(\s*(['\"])")
VAR_QUERY_SELECTOR = re.compile(r"(?:var|let|const)\s+(\w+)\s*=\s*document\.querySelector\(\s*(['\"])")
VAR_GET_BY_ID = re.compile(r"(?:var|let|const)\s+(\w+)\s*=\s*document\.getElementById\(\s*['\"]([\w-]+)['\"]\s*\)")

CHECK_BY_ID = re.compile(r"document\.getElementById\(\s*['\"]([\w-]+)['\"]\s*\)\s*\.\s*checked\s*=\s*true")
UNCHECK_BY_ID = re.compile(r"document\.getElementById\(\s*['\"]([\w-]+)['\"]\s*\)\s*\.\s*checked\s*=\s*false")
VALUE_BY_ID = re.compile(r"document\.getElementById\(\s*['\"]([\w-]+)['\"]\s*\)\s*\.\s*value\s*=\s*['\"](.*?)['\"]")
CLICK_BY_ID = re.compile(r"document\.getElementById\(\s*['\"]([\w-]+)['\"]\s*\)\s*\.\s*click\s*\(\s*\)")

VAR_CHECK = re.compile(r"(\w+)\.checked\s*=\s*true")
VAR_VALUE = re.compile(r"(\w+)\.value\s*=\s*['\"](.*?)['\"]")
VAR_CLICK = re.compile(r"(\w+)\.click\(\)")

AFTER_CHECK = re.compile(r"^\s*\)\s*\.\s*checked\s*=\s*true")
AFTER_UNCHECK = re.compile(r"^\s*\)\s*\.\s*checked\s*=\s*false")
AFTER_CLICK = re.compile(r"^\s*\)\s*\.\s*click\s*\(\s*\)")
AFTER_VALUE = re.compile(r"^\s*\)\s*\.\s*value\s*=\s*['\"](.*?)['\"]")
AFTER_ALL_CHECK = re.compile(r"^\s*\).*?\.checked\s*=\s*true")
AFTER_ALL_CLICK = re.compile(r"^\s*\).*?\.click\s*\(\s*\)")

# How far past a selector literal the trailing member access is looked for
SHORT_WINDOW = 50
VALUE_WINDOW = 100
ALL_WINDOW = 200


def extract_selector(code: str, start: int) -> Optional[Tuple[str, int]]:
    """
    Read the string literal opening at `start`.

    Escaped characters are kept verbatim; the literal ends at the first
    unescaped quote of the opening kind, so the other kind may appear inside
    ('input[name="foo"]'). Returns (selector, index of the closing quote) or
    None for an unterminated literal.
    """
    if start >= len(code):
        return None
    quote = code[start]
    if quote not in ("'", '"'):
        return None

    result = []
    i = start + 1
    while i < len(code):
        char = code[i]
        if char == "\\" and i + 1 < len(code):
            result.append(char + code[i + 1])
            i += 2
            continue
        if char == quote:
            return "".join(result), i
        result.append(char)
        i += 1
    return None


class _ActionCollector:
    def __init__(self):
        self.actions: List[DomAction] = []
        self._seen: Set[tuple] = set()

    def add(self, **fields):
        action = DomAction(**fields)
        key = action.dedup_key()
        if key not in self._seen:
            self._seen.add(key)
            self.actions.append(action)


def _literal_matches(code: str, opener: re.Pattern, window: int):
    """Yield (selector, text following the literal) for each opener hit."""
    for match in opener.finditer(code):
        extracted = extract_selector(code, match.end() - 1)
        if extracted:
            selector, end = extracted
            yield selector, code[end + 1:end + 1 + window]


def build_selector_map(code: str) -> Dict[str, str]:
    """Map variable names bound to querySelector / getElementById results."""
    selector_map: Dict[str, str] = {}

    for match in VAR_QUERY_SELECTOR.finditer(code):
        extracted = extract_selector(code, match.end() - 1)
        if extracted:
            selector_map[match.group(1)] = extracted[0]
            logger.debug(f"Found variable {match.group(1)} = querySelector('{extracted[0]}')")

    for match in VAR_GET_BY_ID.finditer(code):
        selector_map[match.group(1)] = "#" + match.group(2)
        logger.debug(f"Found variable {match.group(1)} = getElementById('{match.group(2)}')")

    return selector_map


def analyze(code: str) -> List[DomAction]:
    """Convert bookmarklet source into a de-duplicated list of DOM actions."""
    if not code:
        return []

    selector_map = build_selector_map(code)
    collector = _ActionCollector()

    # check
    for selector, after in _literal_matches(code, QUERY_SELECTOR, SHORT_WINDOW):
        if AFTER_CHECK.match(after):
            collector.add(type="check", selector=selector)
    for match in CHECK_BY_ID.finditer(code):
        collector.add(type="check", selector="#" + match.group(1))
    for match in VAR_CHECK.finditer(code):
        if match.group(1) in selector_map:
            collector.add(type="check", selector=selector_map[match.group(1)])
    for selector, after in _literal_matches(code, QUERY_SELECTOR_ALL, ALL_WINDOW):
        if AFTER_ALL_CHECK.match(after):
            collector.add(type="check", selector=selector, all=True)

    # uncheck (direct calls only)
    for selector, after in _literal_matches(code, QUERY_SELECTOR, SHORT_WINDOW):
        if AFTER_UNCHECK.match(after):
            collector.add(type="uncheck", selector=selector)
    for match in UNCHECK_BY_ID.finditer(code):
        collector.add(type="uncheck", selector="#" + match.group(1))

    # click on every match
    for selector, after in _literal_matches(code, QUERY_SELECTOR_ALL, ALL_WINDOW):
        if AFTER_ALL_CLICK.match(after):
            collector.add(type="click", selector=selector, all=True)

    # setValue
    for selector, after in _literal_matches(code, QUERY_SELECTOR, VALUE_WINDOW):
        value_match = AFTER_VALUE.match(after)
        if value_match:
            collector.add(type="setValue", selector=selector, value=value_match.group(1))
    for match in VALUE_BY_ID.finditer(code):
        collector.add(type="setValue", selector="#" + match.group(1), value=match.group(2))
    for match in VAR_VALUE.finditer(code):
        if match.group(1) in selector_map:
            collector.add(type="setValue", selector=selector_map[match.group(1)], value=match.group(2))

    # click
    for selector, after in _literal_matches(code, QUERY_SELECTOR, SHORT_WINDOW):
        if AFTER_CLICK.match(after):
            collector.add(type="click", selector=selector)
    for match in CLICK_BY_ID.finditer(code):
        collector.add(type="click", selector="#" + match.group(1))
    for match in VAR_CLICK.finditer(code):
        if match.group(1) in selector_map:
            collector.add(type="click", selector=selector_map[match.group(1)])

    # alert() calls are skipped: they are usually conditional error messages
    return collector.actions
