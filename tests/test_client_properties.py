"""
Tests for the WingsClient facade and connection diagnostics.
"""

import asyncio
import socket
from io import StringIO

import httpx
import pytest

from wings_client.audit_logger import AuditLogger
from wings_client.client import WingsClient
from wings_client.config import MIN_SECRET_LENGTH, ClientConfig, EndpointConfig, RetryConfig, TokenConfig
from wings_client.connection import WingsConnection
from wings_client.diagnostics import ConnectionDiagnostics
from wings_client.dns_resolver import DnsResolver
from wings_client.enums import AddressFamily, LogLevel
from wings_client.exceptions import NotConfiguredError
from wings_client.retry_manager import RetryManager

SECRET = "node-secret-0123456789abcdefghijklmnop"


async def _no_sleep(delay: float) -> None:
    return None


def system_handler(request: httpx.Request) -> httpx.Response:
    if request.url.params.get("v") == "2":
        return httpx.Response(200, json={"version": "1.11.0", "system": {"cpu_threads": 8}})
    return httpx.Response(200, json={"version": "1.11.0"})


def unreachable_handler(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("[Errno 111] Connection refused")


def make_client(handler=system_handler, auth_token: str = SECRET, **kwargs) -> WingsClient:
    return WingsClient(
        "10.0.0.5",
        auth_token=auth_token,
        retry_config=RetryConfig(max_retries=0, total_deadline_seconds=None),
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestTokenAccess:
    """Token issuing is only available once a secret is configured."""

    def test_tokens_require_secret(self) -> None:
        client = make_client(auth_token="")

        assert not client.has_tokens
        with pytest.raises(NotConfiguredError) as exc_info:
            client.tokens
        assert exc_info.value.code == "not_configured"

        client.set_auth_token(SECRET)
        assert client.has_tokens
        token = client.tokens.generate_websocket_token("abc", "u1", ["console"])
        assert client.tokens.decode_token(token)["server_uuid"] == "abc"

    def test_panel_url_is_issuer(self) -> None:
        client = make_client(panel_url="https://panel.example.com")
        claims = client.tokens.decode_token(client.tokens.generate_transfer_token("srv"))

        assert claims["iss"] == "https://panel.example.com"
        assert claims["aud"] == "http://10.0.0.5:8080"

    def test_explicit_issuer_kept(self) -> None:
        client = make_client(
            panel_url="https://panel.example.com",
            token_config=TokenConfig(issuer="https://other.example.com", ttl_seconds=60),
        )
        assert client.tokens.issuer == "https://other.example.com"
        assert client.tokens.expiration == 60


class TestClientCalls:
    """Facade calls go through the connection."""

    def test_system_info(self) -> None:
        client = make_client()

        async def scenario():
            async with client:
                return await client.get_system_info(), await client.get_system_info(detailed=True)

        basic, detailed = asyncio.run(scenario())
        assert basic == {"version": "1.11.0"}
        assert detailed["system"]["cpu_threads"] == 8

    def test_system_info_non_object(self) -> None:
        client = make_client(lambda request: httpx.Response(200, json=["unexpected"]))
        assert asyncio.run(client.get_system_info()) == {}

    def test_connection_test(self) -> None:
        assert asyncio.run(make_client().test_connection()) is True
        assert asyncio.run(make_client(unreachable_handler).test_connection()) is False

    def test_from_config(self) -> None:
        config = ClientConfig(
            endpoint=EndpointConfig(host="10.0.0.5", port=2022),
            auth_token=SECRET,
        )
        client = WingsClient.from_config(config, transport=httpx.MockTransport(system_handler))

        assert client.base_url == "http://10.0.0.5:2022"
        assert client.auth_token == SECRET
        assert client.dns.cache.timeout == 300.0

    def test_from_config_rejects_invalid(self) -> None:
        config = ClientConfig(endpoint=EndpointConfig(host="10.0.0.5", port=0))
        with pytest.raises(ValueError):
            WingsClient.from_config(config)


class TestDiagnostics:
    """Diagnostics report problems instead of raising."""

    @staticmethod
    def _connection(handler, host: str = "node.example.com", **kwargs) -> WingsConnection:
        async def lookup(hostname: str, family: AddressFamily) -> list[str]:
            if family == AddressFamily.IPV4:
                return ["192.0.2.10"]
            raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")

        return WingsConnection(
            host,
            retry_manager=RetryManager(RetryConfig(max_retries=1), sleep=_no_sleep),
            dns_resolver=DnsResolver(lookup=lookup),
            transport=httpx.MockTransport(handler),
            **kwargs,
        )

    def test_healthy_node(self) -> None:
        logger = AuditLogger(output_stream=StringIO())
        connection = self._connection(system_handler, auth_token=SECRET, protocol="https")

        report = asyncio.run(ConnectionDiagnostics(connection, logger).run())

        assert report.healthy
        assert report.dns_resolution.ipv4 == "192.0.2.10"
        assert "ipv6" in report.dns_resolution.errors
        assert report.reachability.reachable
        assert report.connection_test
        assert report.warnings == []
        assert report.to_dict()["base_url"] == "https://node.example.com:8080"
        assert logger.entries[-1].level == LogLevel.INFO

    def test_unreachable_node(self) -> None:
        logger = AuditLogger(output_stream=StringIO())
        connection = self._connection(unreachable_handler, auth_token="")

        report = asyncio.run(ConnectionDiagnostics(connection, logger).run())

        assert not report.healthy
        assert not report.reachability.reachable
        assert not report.connection_test
        assert "Node secret is not configured" in report.warnings
        assert "Node secret is sent over plain HTTP" in report.warnings
        assert logger.entries[-1].level == LogLevel.WARN

    def test_validate_config(self) -> None:
        connection = WingsConnection(
            "node.example.com",
            protocol="https",
            auth_token=SECRET,
            verify_tls=False,
            retry_config=RetryConfig(max_retries=0, total_deadline_seconds=None),
        )
        result = ConnectionDiagnostics(connection).validate_config()

        assert result.valid
        assert "TLS certificate verification is disabled" in result.warnings
        assert any("max_retries" in w for w in result.warnings)
        assert "No overall request deadline configured" in result.warnings

    def test_short_secret_warned(self) -> None:
        connection = WingsConnection("node.example.com", protocol="https", auth_token="short-key")
        result = ConnectionDiagnostics(connection).validate_config()

        assert result.valid
        assert f"Node secret is shorter than {MIN_SECRET_LENGTH} bytes" in result.warnings


    def test_client_diagnostics_for_ip_literal(self) -> None:
        client = make_client()

        async def scenario():
            async with client:
                return await client.diagnostics(), await client.test_dns_resolution()

        report, dns_report = asyncio.run(scenario())

        assert report.connection_test
        assert report.healthy
        assert dns_report.ipv4 == "10.0.0.5"
