"""
Data models for the Wings client.

This module defines the endpoint target, DNS cache entries and reports,
request attempts, and connection diagnostics structures.
"""

import ipaddress
from dataclasses import dataclass, field
from typing import Any, Optional

import idna

from .enums import AddressFamily, Protocol


def normalize_host(host: str) -> str:
    """
    Normalize a node host for use in URLs and DNS lookups.

    Strips surrounding whitespace, brackets and trailing slashes, and
    converts internationalized names to their ASCII (punycode) form.
    IP literals are returned unchanged.

    Raises:
        ValueError: If the host is empty or not a valid host name
    """
    host = host.strip().rstrip("/")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    if not host:
        raise ValueError("Host must not be empty")

    try:
        ipaddress.ip_address(host)
        return host
    except ValueError:
        pass

    if host.isascii():
        return host.lower()
    try:
        return idna.encode(host, uts46=True).decode("ascii")
    except idna.IDNAError as e:
        raise ValueError(f"Invalid host name {host!r}: {e}") from e


@dataclass(frozen=True)
class Endpoint:
    """
    The node agent's address. Immutable after construction.

    ``base_url`` is always ``protocol://host:port`` with no trailing slash.
    """

    host: str
    port: int = 8080
    protocol: str = "http"

    def __post_init__(self) -> None:
        object.__setattr__(self, "host", normalize_host(self.host))
        protocol = self.protocol.lower()
        if protocol not in {p.value for p in Protocol}:
            raise ValueError(f"Unsupported protocol: {self.protocol}")
        object.__setattr__(self, "protocol", protocol)
        if not 0 < self.port < 65536:
            raise ValueError(f"Port out of range: {self.port}")

    @property
    def is_ip_literal(self) -> bool:
        try:
            ipaddress.ip_address(self.host)
        except ValueError:
            return False
        return True

    @property
    def is_ipv6_literal(self) -> bool:
        try:
            return ipaddress.ip_address(self.host).version == 6
        except ValueError:
            return False

    @property
    def base_url(self) -> str:
        host = f"[{self.host}]" if self.is_ipv6_literal else self.host
        return f"{self.protocol}://{host}:{self.port}"


@dataclass(frozen=True)
class DnsCacheEntry:
    """A resolved address remembered for (hostname, family)."""

    hostname: str
    family: AddressFamily
    address: str
    resolved_at: float

    def is_fresh(self, now: float, timeout: float) -> bool:
        return now - self.resolved_at < timeout


@dataclass
class DnsCacheStats:
    """Snapshot of the DNS cache contents."""

    total_entries: int
    valid_entries: int
    expired_entries: int
    cache_timeout: float


@dataclass
class DnsResolutionReport:
    """Outcome of resolving one hostname over both address families."""

    hostname: str
    ipv4: Optional[str] = None
    ipv6: Optional[str] = None
    all_ips: set[str] = field(default_factory=set)
    resolution_time_ms: float = 0.0
    success: bool = False
    errors: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "hostname": self.hostname,
            "ipv4": self.ipv4,
            "ipv6": self.ipv6,
            "all_ips": sorted(self.all_ips),
            "resolution_time": self.resolution_time_ms,
            "success": self.success,
            "errors": dict(self.errors),
        }


@dataclass
class RequestAttempt:
    """One try of a request inside the retry loop."""

    method: str
    path: str
    body: Any
    headers: dict[str, str]
    attempt: int  # 0-indexed


@dataclass
class ReachabilityResult:
    """Result of probing the node agent once, without retries."""

    reachable: bool
    status_code: Optional[int] = None
    response_time_ms: float = 0.0
    error: Optional[str] = None


@dataclass
class DiagnosticsReport:
    """Complete connection diagnostics for one node."""

    base_url: str
    host: str
    protocol: str
    port: int
    timeout: float
    dns_resolution: DnsResolutionReport
    reachability: ReachabilityResult
    connection_test: bool
    warnings: list[str] = field(default_factory=list)
    timestamp: str = ""
    total_duration_ms: float = 0.0

    @property
    def healthy(self) -> bool:
        return self.dns_resolution.success and self.connection_test

    def to_dict(self) -> dict:
        return {
            "base_url": self.base_url,
            "host": self.host,
            "protocol": self.protocol,
            "port": self.port,
            "timeout": self.timeout,
            "dns_resolution": {
                **self.dns_resolution.to_dict(),
                "reachable": self.reachability.reachable,
                "reachable_error": self.reachability.error,
            },
            "connection_test": self.connection_test,
            "warnings": list(self.warnings),
            "timestamp": self.timestamp,
        }
