"""
Domain / URL pattern matching.

A pattern is one of:
    - an exact hostname ("example.com"), which also matches every subdomain,
    - a glob containing any of * ? [ { (case-insensitive),
    - the global wildcard "*".

Patterns containing "/" are URL patterns and are matched against the full
URL. A lone "*" inside a URL pattern spans path segments.
"""

import re
from functools import lru_cache
from typing import List, Optional

GLOB_CHARS = ("*", "?", "[", "{")
GLOBAL_WILDCARD = "*"

_STANDALONE_STAR = re.compile(r"(?<!\*)\*(?!\*)")


def has_glob(pattern: str) -> bool:
    return any(c in pattern for c in GLOB_CHARS)


def is_url_pattern(pattern: str) -> bool:
    return "/" in pattern or "://" in pattern


def _split_top_level(body: str) -> List[str]:
    parts, depth, current = [], 0, ""
    for ch in body:
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
        if ch == "," and depth == 0:
            parts.append(current)
            current = ""
        else:
            current += ch
    parts.append(current)
    return parts


def expand_braces(pattern: str) -> List[str]:
    """Expand {a,b} alternations (nested groups included) into plain globs."""
    depth = 0
    start = None
    for i, ch in enumerate(pattern):
        if ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                options = _split_top_level(pattern[start + 1:i])
                if len(options) < 2:
                    # "{a}" stays literal
                    continue
                prefix, suffix = pattern[:start], pattern[i + 1:]
                expanded = []
                for option in options:
                    expanded.extend(expand_braces(prefix + option + suffix))
                return expanded
    return [pattern]


def _translate(glob: str) -> str:
    i, n = 0, len(glob)
    out = []
    while i < n:
        c = glob[i]
        if c == "*":
            if glob.startswith("**", i):
                while i < n and glob[i] == "*":
                    i += 1
                out.append(".*")
                continue
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "[":
            j = i + 1
            if j < n and glob[j] in "!^":
                j += 1
            if j < n and glob[j] == "]":
                j += 1
            while j < n and glob[j] != "]":
                j += 1
            if j >= n:
                out.append(r"\[")
            else:
                stuff = glob[i + 1:j].replace("\\", "\\\\")
                if stuff[0] in "!^":
                    stuff = "^" + stuff[1:]
                out.append(f"[{stuff}]")
                i = j + 1
                continue
        elif c == "\\" and i + 1 < n:
            out.append(re.escape(glob[i + 1]))
            i += 2
            continue
        else:
            out.append(re.escape(c))
        i += 1
    return "^(?:" + "".join(out) + ")$"


@lru_cache(maxsize=512)
def _compile(pattern: str) -> List[re.Pattern]:
    return [re.compile(_translate(alt), re.IGNORECASE) for alt in expand_braces(pattern)]


def glob_match(candidate: str, pattern: str) -> bool:
    return any(rx.match(candidate) for rx in _compile(pattern))


def matches(candidate: Optional[str], pattern: Optional[str], hostname: Optional[str]) -> bool:
    """
    Decide whether `candidate` (a hostname or a full URL) matches `pattern`.

    Glob patterns are matched against the candidate only. Plain patterns match
    the candidate exactly, the hostname exactly, or any subdomain of the
    pattern through the hostname. Both kinds ignore case.
    """
    if not pattern or not candidate:
        return False

    if has_glob(pattern):
        glob = _STANDALONE_STAR.sub("**", pattern) if is_url_pattern(pattern) else pattern
        return glob_match(candidate, glob)

    pattern = pattern.lower()
    hostname = (hostname or "").lower()
    return candidate.lower() == pattern or hostname == pattern or hostname.endswith("." + pattern)


def matches_trigger_pattern(pattern: str, hostname: str, url: str) -> bool:
    """
    Domain-trigger patterns: "*keyword*", "*suffix", "prefix*" or a plain
    hostname (subdomains included).
    """
    p = (pattern or "").lower()
    if not p:
        return False
    hostname = (hostname or "").lower()
    target = (url or "").lower() if "/" in p and not p.startswith("*://") else hostname

    if p.startswith("*") and p.endswith("*") and len(p) > 2:
        return p[1:-1] in target
    if p.startswith("*"):
        return target.endswith(p[1:])
    if p.endswith("*"):
        return target.startswith(p[:-1])
    return hostname == p or hostname.endswith("." + p)


def parse_domain_list(raw: Optional[str]) -> List[str]:
    """Split a comma separated allow-list into lower-cased patterns."""
    if not raw or not isinstance(raw, str):
        return []
    return [d.strip().lower() for d in raw.split(",") if d.strip()]


def is_domain_included(included_domains: Optional[str], hostname: str, url: str) -> bool:
    """An empty allow-list admits every page."""
    included = parse_domain_list(included_domains)
    if not included:
        return True

    for pattern in included:
        target = url if is_url_pattern(pattern) else hostname
        if matches(target, pattern, hostname):
            return True
    return False
