import pytest

from scribo.api.hawk import (
    Credentials,
    build_authorization_header,
    calculate_mac,
    calculate_payload_hash,
    macs_equal,
    normalized_string,
    parse_authorization_header,
    split_host,
)
from scribo.common.errors import AuthInvalid

KEY = "werxhqb98rpaxn39848xrunpaw3489ruxnpa98w4rxn"
TS = 1353832234
NONCE = "j4h3g2"


# -------------------------------
# Known vectors
# -------------------------------

def test_normalized_string_layout():
    normalized = normalized_string(
        TS, NONCE, "get", "/resource/1?b=1&a=2", "Example.com", 8000, ext="some-app-ext-data"
    )
    assert normalized == (
        "hawk.1.header\n1353832234\nj4h3g2\nGET\n/resource/1?b=1&a=2\n"
        "example.com\n8000\n\nsome-app-ext-data\n"
    )


def test_request_mac_matches_reference_vector():
    normalized = normalized_string(
        TS, NONCE, "GET", "/resource/1?b=1&a=2", "example.com", 8000, ext="some-app-ext-data"
    )
    assert calculate_mac(KEY, normalized) == "6R4rV5iE+NPoym+WwjeHzjAGXUtLNIxmo1vpMofpLAE="


def test_payload_hash_matches_reference_vector():
    digest = calculate_payload_hash(b"Thank you for flying Hawk", "text/plain")
    assert digest == "Yi9LfIIFRtBEPt74PVmbTF/xVAwPn7ub15ePICfgnuY="


def test_payload_hash_ignores_content_type_parameters():
    plain = calculate_payload_hash(b"{}", "application/json")
    assert calculate_payload_hash(b"{}", "Application/JSON; charset=UTF-8") == plain


def test_app_and_dlg_extend_the_normalized_string():
    normalized = normalized_string(TS, NONCE, "GET", "/", "h", 80, app="app1", dlg="dlg1")
    assert normalized.endswith("\n\napp1\ndlg1\n")


def test_macs_equal():
    assert macs_equal("abc=", "abc=")
    assert not macs_equal("abc=", "abd=")


# -------------------------------
# Header parsing
# -------------------------------

def test_build_and_parse_header():
    credentials = Credentials("dh37fgj492je", KEY)
    header = build_authorization_header(
        credentials, "POST", "/nodes", "localhost", 8080,
        payload=b'{"name":"apollo"}', content_type="application/json", ts=TS, nonce=NONCE,
    )
    parsed = parse_authorization_header(header)
    assert parsed.id == "dh37fgj492je"
    assert parsed.ts == TS
    assert parsed.nonce == NONCE
    assert parsed.hash == calculate_payload_hash(b'{"name":"apollo"}', "application/json")

    normalized = normalized_string(TS, NONCE, "POST", "/nodes", "localhost", 8080, parsed.hash)
    assert parsed.mac == calculate_mac(KEY, normalized)


def test_parse_header_with_optional_attributes():
    parsed = parse_authorization_header(
        'Hawk id="a", ts="1", nonce="n", ext="x y", mac="m=", app="p", dlg="d"'
    )
    assert (parsed.ext, parsed.app, parsed.dlg) == ("x y", "p", "d")
    assert parsed.hash is None


@pytest.mark.parametrize("header", [
    "",
    'Basic id="a", ts="1", nonce="n", mac="m"',
    "Hawk",
    'Hawk id="a", ts="1", nonce="n"',
    'Hawk id="a", ts="soon", nonce="n", mac="m"',
    'Hawk id="a", ts="1", nonce="n", mac="m", color="red"',
    'Hawk id="a", id="b", ts="1", nonce="n", mac="m"',
    'Hawk id="a", ts="1", nonce="n", mac=m',
    'Hawk id="é", ts="1", nonce="n", mac="m"',
])
def test_parse_rejects_malformed_headers(header):
    with pytest.raises(AuthInvalid):
        parse_authorization_header(header)


def test_build_rejects_unsendable_ext():
    with pytest.raises(ValueError):
        build_authorization_header(Credentials("a", KEY), "GET", "/", "h", 80, ext='say "hi"')


# -------------------------------
# Host handling
# -------------------------------

@pytest.mark.parametrize("host, scheme, expected", [
    ("example.com:8000", "http", ("example.com", 8000)),
    ("example.com", "http", ("example.com", 80)),
    ("example.com", "https", ("example.com", 443)),
    ("[::1]:8080", "http", ("::1", 8080)),
    ("[::1]", "https", ("::1", 443)),
])
def test_split_host(host, scheme, expected):
    assert split_host(host, scheme) == expected


def test_split_host_rejects_bad_port():
    with pytest.raises(AuthInvalid):
        split_host("example.com:http")
