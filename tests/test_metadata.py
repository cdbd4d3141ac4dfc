from automation.bookmarklets.metadata import (
    compile_source,
    extract_options,
    generate_bookmarklet,
    generate_source,
    minify,
    parse_and_generate,
    parse_metadata_block,
    simple_hash,
)

SOURCE = """// ==Bookmarklet==
// @name Skip Intro
// @version 1.2
// @script https://cdn.example.com/a.js
// @style !loadOnce https://cdn.example.com/s.css
// @homepage https://ignored.example.com
// ==/Bookmarklet==
// keep me
document.querySelector('.skip').click();"""


def test_metadata_block_is_parsed_and_removed():
    """
    Known keys become options, unknown keys are dropped, the block leaves the code.
    """
    parsed = parse_metadata_block(SOURCE)
    assert parsed.options == {
        "name": "Skip Intro",
        "version": "1.2",
        "script": ["https://cdn.example.com/a.js"],
        "style": ["!loadOnce https://cdn.example.com/s.css"],
    }
    assert parsed.code == "// keep me\ndocument.querySelector('.skip').click();"
    assert parsed.errors is None


def test_tags_ignore_case_and_spacing():
    """
    The opening and closing tags match regardless of case and inner spaces.
    """
    parsed = parse_metadata_block("//  == bookmarklet ==\n// @name X\n// == /BOOKMARKLET ==\ngo();")
    assert parsed.options == {"name": "X"}
    assert parsed.code == "go();"


def test_unclosed_block_reports_error():
    """
    A block without closing tag is reported.
    """
    parsed = parse_metadata_block("// ==Bookmarklet==\n// @name X\ngo();")
    assert parsed.errors == ["Missing metadata block closing '==/Bookmarklet=='"]


def test_code_without_block():
    """
    Plain code passes through untouched.
    """
    parsed = parse_metadata_block("go();")
    assert parsed.code == "go();"
    assert parsed.options == {}


def test_extract_options():
    """
    Leading !flags are parsed into typed options.
    """
    path, options = extract_options("!loadOnce !retries=3 !debug=false https://x.example.com/y.js")
    assert path == "https://x.example.com/y.js"
    assert options == {"loadOnce": True, "retries": 3, "debug": False}
    assert extract_options("https://x.example.com/y.js") == ("https://x.example.com/y.js", {})


def test_simple_hash():
    """
    32-bit string hash rendered as 7 hex characters.
    """
    assert simple_hash("hello") == "5e918d2"
    assert simple_hash("a") == "0000061"
    assert len(simple_hash("x" * 50)) == 7


def test_generate_source_wraps_in_iife():
    """
    Code without options is wrapped in an IIFE.
    """
    assert generate_source("go()") == "(function(){go()})()"
    assert compile_source("go()") == "(function(){go()})()"


def test_script_loaders_nest_in_declared_order():
    """
    The first @script is the outermost loader, so it loads first.
    """
    source = generate_source("go()", {"script": [
        "!loadOnce https://x.example.com/a.js",
        "https://x.example.com/b.js",
    ]})
    outer = source.index('s.src="https://x.example.com/a.js"')
    inner = source.index('s.src="https://x.example.com/b.js"')
    assert inner < outer
    assert f'id="bookmarklet__script_{simple_hash("https://x.example.com/a.js")}"' in source
    assert f"bookmarklet__script_{simple_hash('https://x.example.com/b.js')}" in source
    assert source.startswith("(function(){") and source.endswith("})()")


def test_style_loader():
    """
    @style entries append a stylesheet link after the code.
    """
    source = generate_source("go()", {"style": ["https://x.example.com/s.css"]})
    assert source.index("go()") < source.index('link.href="https://x.example.com/s.css"')


def test_generate_bookmarklet_uses_component_encoding():
    """
    The URL is encodeURIComponent-encoded after the javascript: prefix.
    """
    assert generate_bookmarklet("alert('a b')") == "javascript:(function()%7Balert('a%20b')%7D)()"


def test_parse_and_generate():
    """
    Raw source with metadata becomes a bookmarklet URL.
    """
    parsed = parse_and_generate(SOURCE)
    assert parsed.url.startswith("javascript:(function()%7B")
    assert "cdn.example.com%2Fa.js" in parsed.url


def test_minify():
    """
    Comments are dropped and whitespace collapsed, URLs survive.
    """
    assert minify("a = 1; // note\n/* block */ b = 2;") == "a=1;b=2;"
    assert minify("var u = 'http://x';") == "var u='http://x';"
