"""
DNS resolution and connectivity diagnostics for node hosts.

Resolves hostnames to addresses with an IPv4/IPv6 fallback and caches the
answers per (hostname, family). Cached answers are served until they are
older than the cache timeout; stale entries are dropped the next time they
are read rather than by a background sweep.

Nothing in this module raises on a failed lookup: ``resolve`` returns None,
``resolve_all`` returns an empty set, and ``test_resolution`` records the
failure in its report.
"""

import asyncio
import socket
import threading
import time
from typing import Awaitable, Callable, Optional

from .audit_logger import AuditLogger
from .enums import AddressFamily, LogLevel
from .models import DnsCacheEntry, DnsCacheStats, DnsResolutionReport

LookupFn = Callable[[str, AddressFamily], Awaitable[list[str]]]

_SOCKET_FAMILIES = {
    AddressFamily.IPV4: socket.AF_INET,
    AddressFamily.IPV6: socket.AF_INET6,
}


async def getaddrinfo_lookup(hostname: str, family: AddressFamily) -> list[str]:
    """
    Resolve one address family via the event loop's getaddrinfo.

    Returns the addresses in resolver order, deduplicated.

    Raises:
        socket.gaierror: If the name cannot be resolved for this family
    """
    loop = asyncio.get_running_loop()
    results = await loop.getaddrinfo(
        hostname,
        None,
        family=_SOCKET_FAMILIES[family],
        type=socket.SOCK_STREAM,
    )
    # sockaddr is (ip, port) for IPv4 or (ip, port, flowinfo, scope_id) for IPv6.
    seen: set[str] = set()
    ips: list[str] = []
    for _family, _type, _proto, _canonname, sockaddr in results:
        ip_str = str(sockaddr[0])
        if ip_str not in seen:
            seen.add(ip_str)
            ips.append(ip_str)
    return ips


class DnsCache:
    """
    Keyed cache of resolved addresses.

    Writes are serialized by a lock; reads may see an entry that another
    task is about to evict. One instance can be shared by every resolver in
    the process to get process-wide caching.
    """

    def __init__(
        self,
        timeout: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: dict[tuple[str, AddressFamily], DnsCacheEntry] = {}
        self._timeout = timeout
        self._clock = clock
        self._lock = threading.Lock()

    @property
    def timeout(self) -> float:
        return self._timeout

    @timeout.setter
    def timeout(self, value: float) -> None:
        if value < 0:
            raise ValueError("Cache timeout must not be negative")
        self._timeout = value

    def get(self, hostname: str, family: AddressFamily) -> Optional[str]:
        """Return a fresh cached address, evicting the entry if it went stale."""
        key = (hostname.lower(), family)
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_fresh(self._clock(), self._timeout):
            return entry.address
        with self._lock:
            # Only evict if nobody replaced it in the meantime.
            if self._entries.get(key) is entry:
                del self._entries[key]
        return None

    def put(self, hostname: str, family: AddressFamily, address: str) -> None:
        key = (hostname.lower(), family)
        entry = DnsCacheEntry(
            hostname=hostname.lower(),
            family=family,
            address=address,
            resolved_at=self._clock(),
        )
        with self._lock:
            self._entries[key] = entry

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> DnsCacheStats:
        now = self._clock()
        entries = list(self._entries.values())
        valid = sum(1 for e in entries if e.is_fresh(now, self._timeout))
        return DnsCacheStats(
            total_entries=len(entries),
            valid_entries=valid,
            expired_entries=len(entries) - valid,
            cache_timeout=self._timeout,
        )

    def __len__(self) -> int:
        return len(self._entries)


class DnsResolver:
    """
    Resolves node hostnames with caching and family fallback.

    The lookup coroutine and the cache are injectable so tests can count
    lookups and control time.
    """

    COMPONENT = "dns_resolver"

    def __init__(
        self,
        cache: Optional[DnsCache] = None,
        lookup: Optional[LookupFn] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the resolver.

        Args:
            cache: Shared DnsCache; a private one is created if omitted
            lookup: Coroutine ``(hostname, family) -> [addresses]``
            logger: Optional audit logger for lookup failures
        """
        self._cache = cache if cache is not None else DnsCache()
        self._lookup = lookup or getaddrinfo_lookup
        self._logger = logger

    @property
    def cache(self) -> DnsCache:
        return self._cache

    def set_cache_timeout(self, timeout: float) -> None:
        self._cache.timeout = timeout

    def clear_cache(self) -> None:
        self._cache.clear()

    def cache_stats(self) -> DnsCacheStats:
        return self._cache.stats()

    async def resolve(self, hostname: str, prefer_ipv6: bool = False) -> Optional[str]:
        """
        Resolve a hostname to a single address.

        The cache is keyed by the preferred family, so a fallback answer is
        remembered under the family that was asked for.

        Args:
            hostname: Host to resolve
            prefer_ipv6: Try AAAA first instead of A

        Returns:
            An address, or None if neither family resolved
        """
        preferred = AddressFamily.IPV6 if prefer_ipv6 else AddressFamily.IPV4
        fallback = AddressFamily.IPV4 if prefer_ipv6 else AddressFamily.IPV6

        cached = self._cache.get(hostname, preferred)
        if cached is not None:
            return cached

        address = await self._first_address(hostname, preferred)
        if address is None:
            address = await self._first_address(hostname, fallback)

        if address is not None:
            self._cache.put(hostname, preferred, address)
        return address

    async def resolve_all(self, hostname: str) -> set[str]:
        """Every IPv4 and IPv6 address the host resolves to (uncached)."""
        ips: set[str] = set()
        for family in (AddressFamily.IPV4, AddressFamily.IPV6):
            try:
                ips.update(await self._lookup(hostname, family))
            except (OSError, UnicodeError, ValueError) as e:
                self._log_failure(hostname, family, e)
        return ips

    async def test_resolution(self, hostname: str) -> DnsResolutionReport:
        """
        Resolve both families independently and report what worked.

        Partial success (e.g. IPv4 resolved, IPv6 failed) still counts as
        success; the failing family's error is kept in ``errors``.
        """
        report = DnsResolutionReport(hostname=hostname)
        start_time = time.perf_counter()

        for family in (AddressFamily.IPV4, AddressFamily.IPV6):
            try:
                addresses = await self._lookup(hostname, family)
            except (OSError, UnicodeError, ValueError) as e:
                report.errors[family.value] = str(e) or type(e).__name__
                continue
            if addresses:
                setattr(report, family.value, addresses[0])
                report.all_ips.update(addresses)
                report.success = True
            else:
                report.errors[family.value] = "No records returned"

        report.resolution_time_ms = round((time.perf_counter() - start_time) * 1000, 2)
        return report

    async def _first_address(self, hostname: str, family: AddressFamily) -> Optional[str]:
        try:
            addresses = await self._lookup(hostname, family)
        except (OSError, UnicodeError, ValueError) as e:
            self._log_failure(hostname, family, e)
            return None
        return addresses[0] if addresses else None

    def _log_failure(self, hostname: str, family: AddressFamily, error: Exception) -> None:
        if self._logger:
            self._logger.log(
                LogLevel.WARN,
                self.COMPONENT,
                f"DNS resolution failed for {hostname}",
                {"hostname": hostname, "family": family.value, "error": str(error)},
            )
