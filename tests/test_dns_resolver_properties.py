"""
Property-based tests for DNS resolution and caching.

Lookups are replaced by an in-memory zone so the tests can count how often
the resolver actually goes to the network, and the cache clock is driven
by hand.
"""

import asyncio
import socket
from typing import Optional

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from wings_client.audit_logger import AuditLogger
from wings_client.enums import AddressFamily, LogLevel
from wings_client.dns_resolver import DnsCache, DnsResolver


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeZone:
    """In-memory zone standing in for getaddrinfo."""

    def __init__(self, records: Optional[dict] = None) -> None:
        self.records: dict[tuple[str, AddressFamily], list[str]] = records or {}
        self.calls: list[tuple[str, AddressFamily]] = []

    async def lookup(self, hostname: str, family: AddressFamily) -> list[str]:
        self.calls.append((hostname, family))
        addresses = self.records.get((hostname, family))
        if addresses is None:
            raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")
        return list(addresses)


# Strategies

hostname_strategy = st.from_regex(r"[a-z][a-z0-9]{0,10}\.example\.com", fullmatch=True)

ipv4_strategy = st.ip_addresses(v=4).map(str)
ipv6_strategy = st.ip_addresses(v=6).map(str)


class TestCacheReuseProperty:
    """A fresh cache entry is served without a second lookup."""

    @given(hostname=hostname_strategy, address=ipv4_strategy)
    @settings(max_examples=100)
    def test_second_resolve_within_ttl_uses_cache(self, hostname: str, address: str) -> None:
        clock = FakeClock()
        zone = FakeZone({(hostname, AddressFamily.IPV4): [address]})
        resolver = DnsResolver(cache=DnsCache(timeout=300, clock=clock), lookup=zone.lookup)

        async def run():
            first = await resolver.resolve(hostname)
            clock.now += 299
            second = await resolver.resolve(hostname)
            return first, second

        first, second = asyncio.run(run())

        assert first == address
        assert second == address
        assert len(zone.calls) == 1

    @given(hostname=hostname_strategy, old=ipv4_strategy, new=ipv4_strategy)
    @settings(max_examples=100)
    def test_stale_entry_is_refreshed(self, hostname: str, old: str, new: str) -> None:
        clock = FakeClock()
        zone = FakeZone({(hostname, AddressFamily.IPV4): [old]})
        cache = DnsCache(timeout=300, clock=clock)
        resolver = DnsResolver(cache=cache, lookup=zone.lookup)

        async def run():
            await resolver.resolve(hostname)
            zone.records[(hostname, AddressFamily.IPV4)] = [new]
            clock.now += 300
            return await resolver.resolve(hostname)

        assert asyncio.run(run()) == new
        assert len(zone.calls) == 2
        assert len(cache) == 1

    def test_hostnames_are_case_insensitive_in_cache(self) -> None:
        clock = FakeClock()
        cache = DnsCache(timeout=60, clock=clock)
        cache.put("Node.Example.com", AddressFamily.IPV4, "10.0.0.1")
        assert cache.get("node.example.com", AddressFamily.IPV4) == "10.0.0.1"
        assert cache.get("node.example.com", AddressFamily.IPV6) is None

    def test_zero_timeout_disables_caching(self) -> None:
        zone = FakeZone({("node.example.com", AddressFamily.IPV4): ["10.0.0.1"]})
        resolver = DnsResolver(cache=DnsCache(timeout=0, clock=FakeClock()), lookup=zone.lookup)

        async def run():
            await resolver.resolve("node.example.com")
            await resolver.resolve("node.example.com")

        asyncio.run(run())
        assert len(zone.calls) == 2


class TestFamilyFallback:
    """The preferred family is tried first, then the other one."""

    @given(hostname=hostname_strategy, address=ipv6_strategy)
    @settings(max_examples=50)
    def test_ipv6_fallback_cached_under_preferred_family(self, hostname: str, address: str) -> None:
        zone = FakeZone({(hostname, AddressFamily.IPV6): [address]})
        cache = DnsCache(clock=FakeClock())
        resolver = DnsResolver(cache=cache, lookup=zone.lookup)

        result = asyncio.run(resolver.resolve(hostname))

        assert result == address
        assert zone.calls == [(hostname, AddressFamily.IPV4), (hostname, AddressFamily.IPV6)]
        assert cache.get(hostname, AddressFamily.IPV4) == address

    def test_prefer_ipv6(self) -> None:
        zone = FakeZone({
            ("dual.example.com", AddressFamily.IPV4): ["10.0.0.1"],
            ("dual.example.com", AddressFamily.IPV6): ["fd00::1"],
        })
        resolver = DnsResolver(cache=DnsCache(clock=FakeClock()), lookup=zone.lookup)

        assert asyncio.run(resolver.resolve("dual.example.com", prefer_ipv6=True)) == "fd00::1"
        assert asyncio.run(resolver.resolve("dual.example.com")) == "10.0.0.1"

    def test_empty_answer_falls_back(self) -> None:
        zone = FakeZone({
            ("node.example.com", AddressFamily.IPV4): [],
            ("node.example.com", AddressFamily.IPV6): ["fd00::2"],
        })
        resolver = DnsResolver(cache=DnsCache(clock=FakeClock()), lookup=zone.lookup)
        assert asyncio.run(resolver.resolve("node.example.com")) == "fd00::2"


class TestFailuresDoNotRaise:
    """Lookup failures become None, an empty set, or a report entry."""

    @given(hostname=hostname_strategy)
    @settings(max_examples=50)
    def test_unresolvable_host(self, hostname: str) -> None:
        output = []

        class Sink:
            def write(self, text):
                output.append(text)

            def flush(self):
                pass

        logger = AuditLogger(output_stream=Sink(), min_level=LogLevel.WARN)
        cache = DnsCache(clock=FakeClock())
        resolver = DnsResolver(cache=cache, lookup=FakeZone().lookup, logger=logger)

        assert asyncio.run(resolver.resolve(hostname)) is None
        assert asyncio.run(resolver.resolve_all(hostname)) == set()
        assert len(cache) == 0
        assert any(e.level == LogLevel.WARN for e in logger.entries)
        assert all(e.component == DnsResolver.COMPONENT for e in logger.entries)

    def test_resolve_all_collects_both_families(self) -> None:
        zone = FakeZone({
            ("dual.example.com", AddressFamily.IPV4): ["10.0.0.1", "10.0.0.2"],
            ("dual.example.com", AddressFamily.IPV6): ["fd00::1"],
        })
        resolver = DnsResolver(lookup=zone.lookup)
        assert asyncio.run(resolver.resolve_all("dual.example.com")) == {"10.0.0.1", "10.0.0.2", "fd00::1"}


class TestResolutionReport:
    """test_resolution reports each family independently."""

    def test_partial_success(self) -> None:
        zone = FakeZone({("v4only.example.com", AddressFamily.IPV4): ["192.0.2.10"]})
        resolver = DnsResolver(lookup=zone.lookup)

        report = asyncio.run(resolver.test_resolution("v4only.example.com"))

        assert report.success
        assert report.ipv4 == "192.0.2.10"
        assert report.ipv6 is None
        assert report.all_ips == {"192.0.2.10"}
        assert "ipv6" in report.errors
        assert "ipv4" not in report.errors
        assert report.resolution_time_ms >= 0

    def test_total_failure(self) -> None:
        resolver = DnsResolver(lookup=FakeZone().lookup)
        report = asyncio.run(resolver.test_resolution("missing.example.com"))

        assert not report.success
        assert set(report.errors) == {"ipv4", "ipv6"}
        assert report.to_dict()["all_ips"] == []

    def test_empty_answer_is_reported(self) -> None:
        zone = FakeZone({
            ("odd.example.com", AddressFamily.IPV4): [],
            ("odd.example.com", AddressFamily.IPV6): ["fd00::3"],
        })
        report = asyncio.run(DnsResolver(lookup=zone.lookup).test_resolution("odd.example.com"))
        assert report.success
        assert report.errors == {"ipv4": "No records returned"}


class TestCacheStats:
    """Stats split entries into fresh and expired."""

    def test_stats(self) -> None:
        clock = FakeClock()
        cache = DnsCache(timeout=100, clock=clock)
        cache.put("a.example.com", AddressFamily.IPV4, "10.0.0.1")
        clock.now += 150
        cache.put("b.example.com", AddressFamily.IPV4, "10.0.0.2")

        stats = cache.stats()
        assert stats.total_entries == 2
        assert stats.valid_entries == 1
        assert stats.expired_entries == 1
        assert stats.cache_timeout == 100

    def test_clear_and_timeout_validation(self) -> None:
        resolver = DnsResolver(cache=DnsCache(clock=FakeClock()))
        resolver.cache.put("a.example.com", AddressFamily.IPV4, "10.0.0.1")
        resolver.clear_cache()
        assert resolver.cache_stats().total_entries == 0

        resolver.set_cache_timeout(10)
        assert resolver.cache.timeout == 10
        with pytest.raises(ValueError):
            resolver.set_cache_timeout(-1)


class TestSharedCacheConcurrency:
    """Concurrent resolves through resolvers sharing one cache agree on freshness."""

    @given(
        hostname=hostname_strategy,
        old=ipv4_strategy,
        new=ipv4_strategy,
        ttl=st.integers(min_value=2, max_value=3600),
        callers=st.integers(min_value=2, max_value=20),
    )
    @settings(max_examples=50, deadline=None)
    def test_concurrent_resolves_until_and_after_expiry(
        self, hostname: str, old: str, new: str, ttl: int, callers: int
    ) -> None:
        clock = FakeClock()
        cache = DnsCache(timeout=ttl, clock=clock)
        zone = FakeZone({(hostname, AddressFamily.IPV4): [old]})
        resolvers = [DnsResolver(cache=cache, lookup=zone.lookup) for _ in range(2)]

        async def burst() -> list[Optional[str]]:
            return await asyncio.gather(*(
                resolvers[i % 2].resolve(hostname) for i in range(callers)
            ))

        async def run():
            warm = await burst()
            clock.now += ttl - 1
            fresh_stats = cache.stats()
            cached = await burst()

            zone.records[(hostname, AddressFamily.IPV4)] = [new]
            clock.now += 1
            stale_stats = cache.stats()
            refreshed = await burst()
            return warm, cached, fresh_stats, stale_stats, refreshed

        warm, cached, fresh_stats, stale_stats, refreshed = asyncio.run(run())

        assert warm == [old] * callers
        assert cached == [old] * callers
        assert fresh_stats.valid_entries == 1
        assert stale_stats.expired_entries == 1
        assert refreshed == [new] * callers
        assert zone.calls == [(hostname, AddressFamily.IPV4)] * 2
        assert len(cache) == 1
        assert cache.stats().valid_entries == 1

    @given(hostname=hostname_strategy, address=ipv4_strategy)
    @settings(max_examples=30, deadline=None)
    def test_clearing_shared_cache_forces_lookup_for_every_resolver(self, hostname: str, address: str) -> None:
        cache = DnsCache(clock=FakeClock())
        zone = FakeZone({(hostname, AddressFamily.IPV4): [address]})
        first = DnsResolver(cache=cache, lookup=zone.lookup)
        second = DnsResolver(cache=cache, lookup=zone.lookup)

        async def run():
            await asyncio.gather(first.resolve(hostname), second.resolve(hostname))
            first.clear_cache()
            return await second.resolve(hostname)

        assert asyncio.run(run()) == address
        assert len(zone.calls) == 2
