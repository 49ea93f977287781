"""Tests for URL sanitization and canonicalization."""

import socket

import pytest

from utils.security import (
    InvalidUrlError,
    canonicalize_url,
    ensure_resolves_publicly,
    is_internal_host,
    parse_ipv4_host,
    sanitize_url,
)


class TestSanitizeUrl:
    @pytest.mark.parametrize(
        "url",
        [
            "https://127.0.0.1/",
            "http://localhost:8080/admin",
            "http://10.0.0.5/",
            "http://172.16.3.4/",
            "http://192.168.1.1/router",
            "http://169.254.169.254/latest/meta-data/",
            "http://[::1]/",
            "http://[::ffff:127.0.0.1]/",
            "http://0.0.0.0/",
            "http://2130706433/",
            "http://app.localhost/",
            "http://127.1/",
            "http://0x7f000001/",
            "http://0177.0.0.1/",
            "http://0x7f.0.0.1/",
            "http://10.1/",
            "http://192.168.257/",
        ],
    )
    def test_rejects_internal_hosts(self, url):
        with pytest.raises(InvalidUrlError):
            sanitize_url(url)

    @pytest.mark.parametrize(
        "url", ["ftp://example.com/file", "file:///etc/passwd", "javascript:alert(1)"]
    )
    def test_rejects_non_http_schemes(self, url):
        with pytest.raises(InvalidUrlError):
            sanitize_url(url)

    @pytest.mark.parametrize("port", [22, 23, 25, 53, 110, 143, 993, 995])
    def test_rejects_blocked_ports(self, port):
        with pytest.raises(InvalidUrlError, match=str(port)):
            sanitize_url(f"http://example.com:{port}/")

    @pytest.mark.parametrize("url", ["", "   ", "not a url", "http://", "https://example.com:99999/"])
    def test_rejects_malformed_input(self, url):
        with pytest.raises(InvalidUrlError):
            sanitize_url(url)

    def test_invalid_url_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            sanitize_url("http://localhost/")

    def test_strips_tracking_parameters(self):
        url = "https://Example.com/landing?utm_source=x&ref=home&fbclid=abc&gclid=1&utm_id=9&_ga=2"
        assert sanitize_url(url) == "https://example.com/landing?ref=home"

    def test_allows_public_hosts_and_custom_ports(self):
        assert sanitize_url("https://example.com:8443/pricing") == "https://example.com:8443/pricing"


class TestCanonicalizeUrl:
    def test_equivalent_urls_share_a_canonical_form(self):
        variants = [
            "https://example.com",
            "HTTPS://EXAMPLE.COM/",
            "https://example.com:443/",
            "https://example.com/#pricing",
            "https://example.com/?utm_campaign=spring",
        ]
        assert {canonicalize_url(v) for v in variants} == {"https://example.com/"}

    def test_keeps_query_order(self):
        assert canonicalize_url("http://example.com/?b=2&a=1") == "http://example.com/?b=2&a=1"


def test_public_ip_is_not_internal():
    assert is_internal_host("93.184.216.34") is False
    assert is_internal_host("example.com") is False


@pytest.mark.parametrize(
    "host,expected",
    [
        ("127.1", "127.0.0.1"),
        ("0x7f000001", "127.0.0.1"),
        ("0177.0.0.1", "127.0.0.1"),
        ("0x7f.0.0.1", "127.0.0.1"),
        ("10.1", "10.0.0.1"),
        ("192.168.257", "192.168.1.1"),
        ("2130706433", "127.0.0.1"),
        ("8.8.8.8.", "8.8.8.8"),
    ],
)
def test_ipv4_shorthand_is_expanded(host, expected):
    assert str(parse_ipv4_host(host)) == expected


@pytest.mark.parametrize(
    "host", ["example.com", "1.2.3.4.5", "256.0.0.1", "0x1g", "08.0.0.1", "1_0.0.0.1", "127.0.0.1.nip.io"]
)
def test_non_numeric_or_out_of_range_hosts_are_not_ipv4(host):
    assert parse_ipv4_host(host) is None


def test_public_shorthand_host_is_allowed():
    assert sanitize_url("http://8.8/") == "http://8.8/"


def _resolver(*addresses):
    async def resolve(host):
        return [(socket.AF_INET6 if ":" in a else socket.AF_INET, socket.SOCK_STREAM, 6, "", (a, 0)) for a in addresses]

    return resolve


class TestEnsureResolvesPublicly:
    @pytest.mark.asyncio
    async def test_public_addresses_pass(self):
        await ensure_resolves_publicly("https://example.com/", _resolver("93.184.216.34", "2606:2800:220:1::"))

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "addresses", [("127.0.0.1",), ("93.184.216.34", "192.168.0.10"), ("fe80::1%eth0",), ("169.254.169.254",)]
    )
    async def test_any_internal_address_rejects(self, addresses):
        with pytest.raises(InvalidUrlError, match="Internal network"):
            await ensure_resolves_publicly("https://rebind.example.net/", _resolver(*addresses))

    @pytest.mark.asyncio
    async def test_resolution_failure_rejects(self):
        async def resolve(host):
            raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")

        with pytest.raises(InvalidUrlError, match="Could not resolve"):
            await ensure_resolves_publicly("https://nowhere.example/", resolve)

    @pytest.mark.asyncio
    async def test_ip_literal_skips_lookup(self):
        async def resolve(host):
            raise AssertionError("resolver should not be called")

        await ensure_resolves_publicly("http://93.184.216.34/", resolve)
