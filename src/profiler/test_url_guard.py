import socket

import pytest

from profiler.errors import (
    BlockedHost,
    DisallowedProtocol,
    DnsRebindingBlocked,
    InvalidUrl,
    UnresolvableHost,
)
from profiler.url_guard import UrlGuard


def make_resolver(table):
    """table: {hostname: {"A": [...], "AAAA": [...]}}; a missing family fails like DNS would."""
    calls = []

    async def resolve(hostname, family):
        calls.append((hostname, family))
        key = "A" if family == socket.AF_INET else "AAAA"
        records = table.get(hostname, {})
        if key not in records:
            raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")
        return list(records[key])

    resolve.calls = calls
    return resolve


@pytest.fixture
def guard():
    return UrlGuard(resolver=make_resolver({
        "example.com": {"A": ["93.184.216.34"], "AAAA": ["2606:2800:220:1:248:1893:25c8:1946"]},
        "v4only.example": {"A": ["8.8.8.8"]},
        "v6only.example": {"AAAA": ["2001:4860:4860::8888"]},
        "rebind.example": {"A": ["127.0.0.1"]},
        "mixed.example": {"A": ["93.184.216.34", "10.0.0.5"]},
        "mapped.example": {"AAAA": ["::ffff:192.168.0.1"]},
    }))


@pytest.mark.asyncio
async def test_localhost_is_blocked(guard):
    with pytest.raises(BlockedHost):
        await guard.validate("http://localhost/x")
    with pytest.raises(BlockedHost):
        await guard.validate("http://LOCALHOST./x")


@pytest.mark.asyncio
async def test_metadata_hostnames_are_blocked(guard):
    with pytest.raises(BlockedHost):
        await guard.validate("http://metadata.google.internal/computeMetadata/v1/")


@pytest.mark.asyncio
async def test_non_http_scheme_is_rejected(guard):
    with pytest.raises(DisallowedProtocol):
        await guard.validate("ftp://example.com")
    with pytest.raises(DisallowedProtocol):
        await guard.validate("file:///etc/passwd")


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", ["not a url", "", "   ", "http://exa mple.com", "https://example.com:99999/"])
async def test_malformed_input_is_invalid(guard, raw):
    with pytest.raises(InvalidUrl):
        await guard.validate(raw)


@pytest.mark.asyncio
async def test_scheme_defaults_to_https(guard):
    resolved = await guard.validate("example.com/about#team")
    assert resolved.url == "https://example.com/about"
    assert resolved.scheme == "https"
    assert resolved.hostname == "example.com"
    assert set(resolved.addresses) == {"93.184.216.34", "2606:2800:220:1:248:1893:25c8:1946"}


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", [
    "http://127.0.0.1/",
    "http://10.1.2.3:8080/admin",
    "http://169.254.169.254/latest/meta-data/",
    "http://[::1]/",
    "http://[fd00::1]/",
])
async def test_private_ip_literals_are_blocked_without_dns(raw):
    resolver = make_resolver({})
    with pytest.raises(BlockedHost):
        await UrlGuard(resolver=resolver).validate(raw)
    assert resolver.calls == []


@pytest.mark.asyncio
async def test_public_ip_literal_is_allowed():
    resolved = await UrlGuard(resolver=make_resolver({})).validate("http://8.8.8.8/")
    assert resolved.addresses == ("8.8.8.8",)


@pytest.mark.asyncio
async def test_domain_resolving_to_loopback_is_rebinding(guard):
    with pytest.raises(DnsRebindingBlocked):
        await guard.validate("https://rebind.example/")


@pytest.mark.asyncio
async def test_any_private_address_in_answer_blocks(guard):
    with pytest.raises(DnsRebindingBlocked):
        await guard.validate("https://mixed.example/")
    with pytest.raises(DnsRebindingBlocked):
        await guard.validate("https://mapped.example/")


@pytest.mark.asyncio
async def test_one_failed_record_type_is_tolerated(guard):
    v4 = await guard.validate("https://v4only.example/")
    v6 = await guard.validate("https://v6only.example/")
    assert v4.addresses == ("8.8.8.8",)
    assert v6.addresses == ("2001:4860:4860::8888",)


@pytest.mark.asyncio
async def test_unresolvable_host(guard):
    with pytest.raises(UnresolvableHost):
        await guard.validate("https://nowhere.example/")


def test_parse_does_no_io():
    resolver = make_resolver({})
    parsed = UrlGuard(resolver=resolver).parse("Example.COM:8443/path?q=1")
    assert parsed.url == "https://example.com:8443/path?q=1"
    assert resolver.calls == []


def test_with_scheme_drops_default_port():
    parsed = UrlGuard().parse("https://example.com:443/contact")
    assert parsed.with_scheme("http") == "http://example.com/contact"
