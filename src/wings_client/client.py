"""
Main entry point for talking to a Wings node.

WingsClient wires a WingsConnection, its DNS resolver and its token
generator together from one set of settings.
"""

from pathlib import Path
from typing import Optional, Union

import httpx

from .audit_logger import AuditLogger
from .config import ClientConfig, RetryConfig, TokenConfig, load_config_from_env
from .connection import WingsConnection
from .diagnostics import ConnectionDiagnostics
from .dns_resolver import DnsCache, DnsResolver
from .exceptions import NotConfiguredError
from .models import DiagnosticsReport, DnsResolutionReport
from .token_generator import TokenGenerator


class WingsClient:
    """
    Wings API client.

    Token issuing needs the node secret; until one is configured the
    ``tokens`` property raises NotConfiguredError instead of handing out a
    generator that cannot sign.
    """

    def __init__(
        self,
        host: str,
        port: int = 8080,
        protocol: str = "http",
        auth_token: str = "",
        timeout: float = 30.0,
        *,
        panel_url: str = "",
        connect_timeout: float = 10.0,
        verify_tls: bool = True,
        retry_config: Optional[RetryConfig] = None,
        token_config: Optional[TokenConfig] = None,
        dns_cache: Optional[DnsCache] = None,
        logger: Optional[AuditLogger] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Create a client for one node.

        Args:
            host: Node hostname or IP
            port: Node port
            protocol: 'http' or 'https'
            auth_token: Node secret
            timeout: Per-attempt timeout in seconds
            panel_url: Issuer stamped into tokens
            connect_timeout: Per-attempt connect timeout in seconds
            verify_tls: Verify the node's TLS certificate
            retry_config: Retry bound and overall deadline
            token_config: Token TTL/algorithm; audience defaults to the node URL
            dns_cache: Cache shared with other clients in the process
            logger: Optional audit logger
            transport: Custom httpx transport
        """
        token_config = token_config or TokenConfig()
        if panel_url and not token_config.issuer:
            token_config = TokenConfig(
                ttl_seconds=token_config.ttl_seconds,
                algorithm=token_config.algorithm,
                issuer=panel_url,
                audience=token_config.audience,
                not_before_skew_seconds=token_config.not_before_skew_seconds,
            )
        self._logger = logger
        self._dns = DnsResolver(cache=dns_cache, logger=logger)
        self._connection = WingsConnection(
            host,
            port,
            protocol,
            auth_token,
            timeout,
            connect_timeout=connect_timeout,
            verify_tls=verify_tls,
            retry_config=retry_config,
            token_config=token_config,
            dns_resolver=self._dns,
            logger=logger,
            transport=transport,
        )

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        logger: Optional[AuditLogger] = None,
        dns_cache: Optional[DnsCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "WingsClient":
        """
        Build a client from a ClientConfig.

        Raises:
            ValueError: If the configuration is invalid
        """
        problems = config.validate()
        if problems:
            raise ValueError("Invalid configuration: " + "; ".join(problems))
        if logger is None:
            logger = AuditLogger.from_config(config.logging)
        if dns_cache is None:
            dns_cache = DnsCache(timeout=config.dns.cache_timeout_seconds)
        return cls(
            config.endpoint.host,
            config.endpoint.port,
            config.endpoint.protocol,
            config.auth_token,
            config.endpoint.timeout,
            connect_timeout=config.endpoint.connect_timeout,
            verify_tls=config.endpoint.verify_tls,
            retry_config=config.retry,
            token_config=config.tokens,
            dns_cache=dns_cache,
            logger=logger,
            transport=transport,
        )

    @classmethod
    def from_env(cls, env_file: Optional[Union[str, Path]] = None) -> "WingsClient":
        """Build a client from ``WINGS_*`` environment variables."""
        return cls.from_config(load_config_from_env(env_file))

    async def __aenter__(self) -> "WingsClient":
        await self._connection.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self._connection.close()

    @property
    def connection(self) -> WingsConnection:
        return self._connection

    @property
    def dns(self) -> DnsResolver:
        return self._dns

    @property
    def tokens(self) -> TokenGenerator:
        """
        The token generator bound to this node.

        Raises:
            NotConfiguredError: If no node secret is configured
        """
        if not self._connection.credential.is_set:
            raise NotConfiguredError(
                code="not_configured",
                message="Token issuing requires a node secret; call set_auth_token() first",
                details={"base_url": self.base_url},
            )
        return self._connection.token_generator

    @property
    def has_tokens(self) -> bool:
        return self._connection.credential.is_set

    @property
    def base_url(self) -> str:
        return self._connection.base_url

    @property
    def auth_token(self) -> str:
        return self._connection.auth_token

    def set_auth_token(self, token: str) -> None:
        self._connection.set_auth_token(token)

    async def test_connection(self) -> bool:
        return await self._connection.test_connection()

    async def test_dns_resolution(self) -> DnsResolutionReport:
        return await self._dns.test_resolution(self._connection.endpoint.host)

    async def diagnostics(self) -> DiagnosticsReport:
        return await ConnectionDiagnostics(self._connection, self._logger).run()

    async def get_system_info(self, detailed: bool = False) -> dict:
        """
        ``GET /api/system`` (``?v=2`` for the detailed form).

        Returns an empty dict if the node answered with something other
        than a JSON object.
        """
        path = "/api/system?v=2" if detailed else "/api/system"
        response = await self._connection.get(path)
        return response.data if isinstance(response.data, dict) else {}

