"""
Bookmarklet metadata blocks and bookmarklet URL generation.

A metadata block is a run of line comments between "==Bookmarklet==" and
"==/Bookmarklet==":

    // ==Bookmarklet==
    // @name Highlight Links
    // @script !loadOnce https://code.jquery.com/jquery-3.6.0.min.js
    // ==/Bookmarklet==

@script and @style entries are turned into loader code wrapped around the
body when the bookmarklet is generated.
"""

import math
import re
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

from pydantic import BaseModel

from automation.bookmarklets.url_codec import BOOKMARKLET_PREFIX

STRING_KEYS = {"name", "version", "description", "author", "repository", "license"}
LIST_KEYS = {"script", "style"}

OPEN_TAG = "==Bookmarklet=="
CLOSE_TAG = "==/Bookmarklet=="

COMMENT_PREFIX = re.compile(r"^(\s*//\s*)")
METADATA_LINE = re.compile(r"^@(\w+)\s+(.*)$")
OPTION_PREFIX = re.compile(r"^(!\w+(?:=\w+)?)\s+")

# Characters encodeURIComponent leaves alone
URI_COMPONENT_SAFE = "-_.!~*'()"


class ParsedBookmarklet(BaseModel):
    code: str
    options: Dict[str, Any] = {}
    errors: Optional[List[str]] = None
    url: Optional[str] = None


def _canonical(tag: str) -> str:
    return re.sub(r"\s+", "", tag.lower())


def simple_hash(text: str) -> str:
    """7 hex chars of a 32-bit string hash (UTF-16 code units)."""
    h = 0
    units = text.encode("utf-16-le")
    for i in range(0, len(units), 2):
        code = units[i] | (units[i + 1] << 8)
        h = ((h << 5) - h + code) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return format(abs(h), "x").rjust(7, "0")[:7]


def escape_quotes(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"').replace("'", "\\'")


def _option_value(raw: Optional[str]) -> Any:
    if raw is None or raw == "true":
        return True
    if raw == "false":
        return False
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        number = float(raw)
    except ValueError:
        return raw
    return number if math.isfinite(number) else raw


def extract_options(entry: str) -> Tuple[str, Dict[str, Any]]:
    """Split "!loadOnce !key=value path" into (path, options)."""
    options: Dict[str, Any] = {}
    path = entry.strip()
    while True:
        match = OPTION_PREFIX.match(path)
        if not match:
            break
        path = path[match.end():]
        key, _, value = match.group(1)[1:].partition("=")
        options[key] = _option_value(value if value else None)
    return path, options


def generate_script_loader(inner_code: str, script_url: str, load_once: bool = False) -> str:
    element_id = f"bookmarklet__script_{simple_hash(script_url)}"
    once = "true" if load_once else "false"
    id_line = f's.id="{element_id}";' if load_once else ""
    return f"""
function callback(){{
  {inner_code}
}}
if(!{once}||!document.getElementById("{element_id}")){{
  var s=document.createElement("script");
  if(s.addEventListener){{
    s.addEventListener("load",callback,false);
  }}else if(s.readyState){{
    s.onreadystatechange=callback;
  }}
  {id_line}
  s.src="{escape_quotes(script_url)}";
  document.body.appendChild(s);
}}else{{
  callback();
}}
""".strip()


def generate_style_loader(inner_code: str, style_url: str, load_once: bool = False) -> str:
    element_id = f"bookmarklet__style_{simple_hash(style_url)}"
    once = "true" if load_once else "false"
    id_line = f'link.id="{element_id}";' if load_once else ""
    return f"""{inner_code}
if(!{once}||!document.getElementById("{element_id}")){{
  var link=document.createElement("link");
  {id_line}
  link.rel="stylesheet";
  link.href="{escape_quotes(style_url)}";
  document.body.appendChild(link);
}}"""


def parse_metadata_block(code: str) -> ParsedBookmarklet:
    in_block = False
    options: Dict[str, Any] = {}
    clean: List[str] = []
    errors: List[str] = []

    for line in re.split(r"\r?\n", code):
        prefix = COMMENT_PREFIX.match(line)
        if not prefix:
            clean.append(line)
            continue

        comment = line[prefix.end():].strip()
        canonical = _canonical(comment)

        if not in_block:
            if canonical == _canonical(OPEN_TAG):
                in_block = True
            else:
                clean.append(line)
            continue

        if canonical == _canonical(CLOSE_TAG):
            in_block = False
            continue

        match = METADATA_LINE.match(comment)
        if match:
            key, value = match.group(1).lower(), match.group(2).strip()
            if key in LIST_KEYS:
                options.setdefault(key, []).append(value)
            elif key in STRING_KEYS:
                options[key] = value

    if in_block:
        errors.append(f"Missing metadata block closing '{CLOSE_TAG}'")

    return ParsedBookmarklet(code="\n".join(clean).strip(), options=options, errors=errors or None)


def generate_source(code: str, options: Optional[Dict[str, Any]] = None) -> str:
    """Wrap `code` with its script/style loaders and an IIFE."""
    options = options or {}
    result = code

    # reversed so the first @script ends up outermost and loads first
    for entry in reversed(options.get("script") or []):
        path, entry_options = extract_options(entry)
        result = generate_script_loader(result, path, bool(entry_options.get("loadOnce", False)))

    for entry in options.get("style") or []:
        path, entry_options = extract_options(entry)
        result = generate_style_loader(result, path, bool(entry_options.get("loadOnce", False)))

    return f"(function(){{{result}}})()"


def encode_uri_component(text: str) -> str:
    return quote(text, safe=URI_COMPONENT_SAFE)


def generate_bookmarklet(code: str, options: Optional[Dict[str, Any]] = None) -> str:
    return BOOKMARKLET_PREFIX + encode_uri_component(generate_source(code, options))


def parse_and_generate(raw_code: str) -> ParsedBookmarklet:
    parsed = parse_metadata_block(raw_code)
    parsed.url = generate_bookmarklet(parsed.code, parsed.options)
    return parsed


def compile_source(raw_code: str) -> str:
    """Runnable source for raw editor code, with metadata applied."""
    parsed = parse_metadata_block(raw_code)
    return generate_source(parsed.code, parsed.options)


def minify(code: str) -> str:
    """
    Naive minifier: drops comments and collapses whitespace. Strings that
    contain comment markers or significant spacing are not protected.
    """
    result = re.sub(r"/\*[\s\S]*?\*/", "", code)
    result = re.sub(r"(?<!:)//[^\n]*", "", result)
    result = re.sub(r"\s+", " ", result)
    result = re.sub(r"\s*([{}();,=+\-*/<>!&|])\s*", r"\1", result)
    return result.strip()
