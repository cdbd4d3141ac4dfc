import pytest
from urllib.parse import quote

from automation.bookmarklets.metadata import encode_uri_component
from automation.bookmarklets.url_codec import decode_bookmarklet, decode_uri_component, is_bookmarklet, parse


def test_plain_bookmarklet_needs_no_decoding():
    """
    An unencoded bookmarklet is returned as is after zero passes.
    """
    assert decode_bookmarklet("javascript:alert(1)") == ("alert(1)", 0)
    assert parse("javascript:alert(1)") == "alert(1)"


def test_double_encoded_bookmarklet():
    """
    Two rounds of component encoding are undone in exactly two passes.
    """
    code = "alert('hi there')"
    url = "javascript:" + encode_uri_component(encode_uri_component(code))
    assert decode_bookmarklet(url, max_passes=3) == (code, 2)


def test_decoding_stops_after_three_passes():
    """
    At most three passes run, leaving deeper encodings partly encoded.
    """
    code = "a b"
    encoded = code
    for _ in range(4):
        encoded = quote(encoded, safe="")
    decoded, passes = decode_bookmarklet("javascript:" + encoded, max_passes=3)
    assert passes == 3
    assert decoded == quote(code, safe="")


def test_malformed_escape_keeps_last_good_value():
    """
    A pass that fails aborts decoding and keeps the previous value.
    """
    assert decode_bookmarklet("javascript:alert('100%')", max_passes=3) == ("alert('100%')", 0)

    once = "javascript:" + quote("alert('50% off')", safe="")
    assert decode_bookmarklet(once, max_passes=3) == ("alert('50% off')", 1)


def test_decode_uri_component_rejects_malformed_input():
    """
    Stray percent signs and invalid UTF-8 raise ValueError.
    """
    with pytest.raises(ValueError):
        decode_uri_component("100%")
    with pytest.raises(ValueError):
        decode_uri_component("%zz")
    with pytest.raises(ValueError):
        decode_uri_component("%ff")
    assert decode_uri_component("caf%C3%A9") == "café"


@pytest.mark.parametrize("value", [None, "", 42, "https://example.com/", "JAVASCRIPT:alert(1)"])
def test_non_bookmarklets(value):
    """
    Anything that is not a javascript: URL string is rejected.
    """
    assert is_bookmarklet(value) is False
    assert parse(value) is None
