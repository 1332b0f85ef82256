"""
Configuration dataclasses for the Wings client.

This module defines all configuration structures used throughout the
package: the node agent endpoint, retry behaviour, token signing, the DNS
cache, and logging. Values can be built in code or read from ``WINGS_*``
environment variables (optionally from a ``.env`` file).
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv

from .enums import FailureCategory, Protocol

SUPPORTED_ALGORITHMS = ("HS256", "HS384", "HS512")

# HMAC keys shorter than 112 bits are rejected as weak by the signing library.
MIN_SECRET_LENGTH = 14


@dataclass
class EndpointConfig:
    """Where the node agent lives and how long to wait for it."""

    host: str
    port: int = 8080
    protocol: str = "http"
    timeout: float = 30.0
    connect_timeout: float = 10.0
    # Set to False only for self-signed development nodes.
    verify_tls: bool = True


@dataclass
class RetryConfig:
    """Retry behavior configuration."""

    max_retries: int = 3
    # Upper bound on a whole call, retries and backoff included. None disables it.
    total_deadline_seconds: Optional[float] = 120.0
    retryable_errors: list[str] = field(
        default_factory=lambda: [
            FailureCategory.DNS_RESOLUTION.value,
            FailureCategory.CONNECT.value,
            FailureCategory.TIMEOUT.value,
        ]
    )


@dataclass
class TokenConfig:
    """Signing configuration for issued tokens."""

    ttl_seconds: int = 600
    algorithm: str = "HS256"
    issuer: str = ""
    audience: str = ""
    not_before_skew_seconds: int = 300


@dataclass
class DnsConfig:
    """DNS cache configuration."""

    cache_timeout_seconds: float = 300.0


@dataclass
class LoggingConfig:
    """Logging and audit configuration."""

    level: str = "info"
    audit_mode: bool = False
    audit_signing_key: Optional[str] = None
    output_format: str = "text"  # 'json', 'text', 'both'


@dataclass
class ClientConfig:
    """Main client configuration combining all sub-configurations."""

    endpoint: EndpointConfig
    auth_token: str = ""
    retry: RetryConfig = field(default_factory=RetryConfig)
    tokens: TokenConfig = field(default_factory=TokenConfig)
    dns: DnsConfig = field(default_factory=DnsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def validate(self) -> list[str]:
        """
        Check the configuration for values the client cannot work with.

        Returns:
            A list of human-readable problems; empty when the config is usable
        """
        errors: list[str] = []

        if not self.endpoint.host or not self.endpoint.host.strip("/"):
            errors.append("Endpoint host is empty")
        if not 0 < self.endpoint.port < 65536:
            errors.append(f"Endpoint port out of range: {self.endpoint.port}")
        if self.endpoint.protocol not in {p.value for p in Protocol}:
            errors.append(f"Unsupported protocol: {self.endpoint.protocol}")
        if self.endpoint.timeout <= 0 or self.endpoint.connect_timeout <= 0:
            errors.append("Timeouts must be positive")
        if self.auth_token and len(self.auth_token.encode("utf-8")) < MIN_SECRET_LENGTH:
            errors.append(f"auth_token is shorter than {MIN_SECRET_LENGTH} bytes")
        if self.retry.max_retries < 0:
            errors.append("max_retries must not be negative")
        if (
            self.retry.total_deadline_seconds is not None
            and self.retry.total_deadline_seconds <= 0
        ):
            errors.append("total_deadline_seconds must be positive")
        if self.tokens.algorithm not in SUPPORTED_ALGORITHMS:
            errors.append(f"Unsupported token algorithm: {self.tokens.algorithm}")
        if self.tokens.ttl_seconds <= 0:
            errors.append("Token TTL must be positive")
        if self.tokens.not_before_skew_seconds < 0:
            errors.append("not_before_skew_seconds must not be negative")
        if self.dns.cache_timeout_seconds < 0:
            errors.append("DNS cache timeout must not be negative")
        if self.logging.output_format not in ("json", "text", "both"):
            errors.append(f"Invalid log output format: {self.logging.output_format}")

        return errors


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def _bool_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config_from_env(env_file: Optional[Union[str, Path]] = None) -> ClientConfig:
    """
    Build a ClientConfig from ``WINGS_*`` environment variables.

    A ``.env`` file is loaded first (without overriding variables that are
    already set). Unparseable numbers fall back to their defaults.
    ``WINGS_TOTAL_DEADLINE`` set to an empty string or ``none`` disables the
    overall deadline; any number, zero included, is kept for ``validate()``.

    Args:
        env_file: Optional path to a dotenv file; defaults to ``./.env``

    Returns:
        ClientConfig populated from the environment
    """
    if env_file is not None:
        load_dotenv(env_file)
    else:
        load_dotenv()

    deadline = os.getenv("WINGS_TOTAL_DEADLINE")
    total_deadline: Optional[float] = 120.0
    if deadline is not None:
        if deadline.strip().lower() in ("", "none"):
            total_deadline = None
        else:
            total_deadline = _float_env("WINGS_TOTAL_DEADLINE", 120.0)

    return ClientConfig(
        endpoint=EndpointConfig(
            host=os.getenv("WINGS_HOST", "").strip(),
            port=_int_env("WINGS_PORT", 8080),
            protocol=os.getenv("WINGS_PROTOCOL", "http").strip().lower(),
            timeout=_float_env("WINGS_TIMEOUT", 30.0),
            connect_timeout=_float_env("WINGS_CONNECT_TIMEOUT", 10.0),
            verify_tls=_bool_env("WINGS_VERIFY_TLS", True),
        ),
        auth_token=os.getenv("WINGS_TOKEN", "").strip(),
        retry=RetryConfig(
            max_retries=_int_env("WINGS_MAX_RETRIES", 3),
            total_deadline_seconds=total_deadline,
        ),
        tokens=TokenConfig(
            ttl_seconds=_int_env("WINGS_TOKEN_TTL", 600),
            algorithm=os.getenv("WINGS_TOKEN_ALGORITHM", "HS256").strip().upper(),
            issuer=os.getenv("WINGS_PANEL_URL", "").strip(),
        ),
        dns=DnsConfig(
            cache_timeout_seconds=_float_env("WINGS_DNS_CACHE_TIMEOUT", 300.0),
        ),
        logging=LoggingConfig(
            level=os.getenv("WINGS_LOG_LEVEL", "info").strip().lower(),
            output_format=os.getenv("WINGS_LOG_FORMAT", "text").strip().lower(),
        ),
    )
