import logging
import re
from typing import Any, Optional, Tuple
from urllib.parse import unquote

from automation.config import get_settings

logger = logging.getLogger(__name__)

BOOKMARKLET_PREFIX = "javascript:"

_MALFORMED_ESCAPE = re.compile(r"%(?![0-9a-fA-F]{2})")


def decode_uri_component(text: str) -> str:
    """
    Percent-decode like JavaScript's decodeURIComponent: a stray '%' or an
    invalid UTF-8 sequence raises ValueError instead of passing through.
    """
    if _MALFORMED_ESCAPE.search(text):
        raise ValueError("URI malformed")
    try:
        return unquote(text, encoding="utf-8", errors="strict")
    except UnicodeDecodeError as e:
        raise ValueError("URI malformed") from e


def is_bookmarklet(url: Any) -> bool:
    return isinstance(url, str) and url.startswith(BOOKMARKLET_PREFIX)


def decode_bookmarklet(url: Any, max_passes: Optional[int] = None) -> Tuple[Optional[str], int]:
    """
    Strip the javascript: prefix and undo up to `max_passes` rounds of
    percent-encoding. Stops early when a pass fails or changes nothing, and
    keeps the last good value.

    Returns (code, passes); code is None when `url` is not a bookmarklet.
    """
    if not url or not isinstance(url, str):
        logger.info("Invalid bookmarklet URL provided")
        return None, 0
    if not is_bookmarklet(url):
        logger.info(f"URL does not start with javascript: {url[:80]}")
        return None, 0

    max_passes = max_passes if max_passes is not None else get_settings().MAX_DECODE_PASSES
    code = url[len(BOOKMARKLET_PREFIX):]
    passes = 0

    while passes < max_passes:
        try:
            decoded = decode_uri_component(code)
        except ValueError:
            break
        if decoded == code:
            break
        code = decoded
        passes += 1

    if passes > 1:
        logger.info(f"Decoded {passes} times (was multi-encoded)")
    return code, passes


def parse(url: Any) -> Optional[str]:
    """Decoded JavaScript of a bookmarklet URL, or None if it is not one."""
    return decode_bookmarklet(url)[0]
