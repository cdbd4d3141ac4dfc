"""
Per-domain override resolution.

Precedence (first hit wins):
    1. exact hostname key
    2. pattern keys other than "*" (longest pattern first, then insertion order)
    3. the global wildcard "*"
    4. the caller's fallback
"""

import logging
from typing import Dict, List, Mapping, Optional, Tuple, TypeVar

from automation.matching.patterns import GLOBAL_WILDCARD, matches
from automation.models import BookmarkEntry, PageLocation

logger = logging.getLogger(__name__)

V = TypeVar("V")


def match_target(pattern: str, hostname: str, url: str) -> str:
    if "/" in pattern and not pattern.startswith("*://"):
        return url
    return hostname


def _ordered_patterns(overrides: Mapping[str, V]) -> List[str]:
    keys = [k for k in overrides if k != GLOBAL_WILDCARD]
    # sorted() is stable, so equal lengths keep insertion order
    return sorted(keys, key=len, reverse=True)


def find_pattern_match(overrides: Mapping[str, V], hostname: str, url: str) -> Optional[Tuple[str, V]]:
    """Steps 1 and 2 of the precedence chain. Returns (key, value) or None."""
    if not overrides:
        return None

    if hostname in overrides:
        return hostname, overrides[hostname]

    for pattern in _ordered_patterns(overrides):
        if matches(match_target(pattern, hostname, url), pattern, hostname):
            return pattern, overrides[pattern]
    return None


def resolve(overrides: Optional[Mapping[str, V]], hostname: str, url: str, fallback: V) -> V:
    if not overrides:
        return fallback

    hit = find_pattern_match(overrides, hostname, url)
    if hit is not None:
        return hit[1]

    if GLOBAL_WILDCARD in overrides:
        return overrides[GLOBAL_WILDCARD]
    return fallback


def resolve_for(overrides: Optional[Mapping[str, V]], location: PageLocation, fallback: V) -> V:
    return resolve(overrides, location.hostname, location.url, fallback)


def get_bookmarks_for_domain(
    bookmarks_by_domain: Optional[Dict[str, List[BookmarkEntry]]],
    location: PageLocation,
    global_bookmarklet_ids: Optional[List[str]] = None,
) -> List[BookmarkEntry]:
    """
    Bookmarks for the current page.

    The domain-specific list is chosen with the normal precedence; entries
    registered under "*" are always appended to it (concatenation, no
    de-duplication). Globally selected editor bookmarklets come last and are
    resolved by id only when they run.
    """
    bookmarks_by_domain = bookmarks_by_domain or {}
    result: List[BookmarkEntry] = []

    hit = find_pattern_match(bookmarks_by_domain, location.hostname, location.url)
    if hit is not None:
        logger.debug(f"Bookmarks matched pattern '{hit[0]}' for {location.hostname}")
        result.extend(hit[1])

    result.extend(bookmarks_by_domain.get(GLOBAL_WILDCARD, []))

    for bookmarklet_id in global_bookmarklet_ids or []:
        result.append(BookmarkEntry(
            id=f"global-{bookmarklet_id}",
            title=bookmarklet_id,
            is_editor_bookmarklet=True,
            editor_bookmarklet_id=bookmarklet_id,
        ))
    return result
