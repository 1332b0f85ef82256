"""
Wings Client - resilient async client for Wings node agents.

This package provides the connection layer to a Wings node (request
dispatch with retry/backoff and DNS-failure recovery) and the issuer of
short-lived signed tokens that scope what a bearer may do against a server.
"""

__version__ = "0.1.0"
__author__ = "Wings Client Team"

from wings_client.exceptions import (
    WingsClientError,
    WingsConnectionError,
    WingsAuthenticationError,
    WingsRequestError,
    NotFoundError,
    RateLimitError,
    SigningError,
    InvalidTokenError,
    NotConfiguredError,
)
from wings_client.enums import (
    LogLevel,
    Protocol,
    FailureCategory,
    AddressFamily,
    TokenPurpose,
)
from wings_client.config import (
    EndpointConfig,
    RetryConfig,
    TokenConfig,
    DnsConfig,
    LoggingConfig,
    ClientConfig,
    load_config_from_env,
)
from wings_client.models import (
    Endpoint,
    DnsCacheEntry,
    DnsCacheStats,
    DnsResolutionReport,
    RequestAttempt,
    ReachabilityResult,
    DiagnosticsReport,
)
from wings_client.response import WingsResponse
from wings_client.credentials import Credential
from wings_client.audit_logger import (
    AuditLogger,
    LogEntry,
)
from wings_client.token_generator import (
    TokenGenerator,
    to_websocket_url,
)
from wings_client.dns_resolver import (
    DnsCache,
    DnsResolver,
)
from wings_client.retry_manager import (
    RetryManager,
    RetryResult,
    classify_failure,
)
from wings_client.connection import WingsConnection
from wings_client.diagnostics import (
    ConnectionDiagnostics,
    ConfigValidationResult,
)
from wings_client.client import WingsClient

__all__ = [
    # Exceptions
    "WingsClientError",
    "WingsConnectionError",
    "WingsAuthenticationError",
    "WingsRequestError",
    "NotFoundError",
    "RateLimitError",
    "SigningError",
    "InvalidTokenError",
    "NotConfiguredError",
    # Enums
    "LogLevel",
    "Protocol",
    "FailureCategory",
    "AddressFamily",
    "TokenPurpose",
    # Configuration
    "EndpointConfig",
    "RetryConfig",
    "TokenConfig",
    "DnsConfig",
    "LoggingConfig",
    "ClientConfig",
    "load_config_from_env",
    # Models
    "Endpoint",
    "DnsCacheEntry",
    "DnsCacheStats",
    "DnsResolutionReport",
    "RequestAttempt",
    "ReachabilityResult",
    "DiagnosticsReport",
    # Response
    "WingsResponse",
    # Credential
    "Credential",
    # Audit Logger
    "AuditLogger",
    "LogEntry",
    # Token Generator
    "TokenGenerator",
    "to_websocket_url",
    # DNS
    "DnsCache",
    "DnsResolver",
    # Retry Manager
    "RetryManager",
    "RetryResult",
    "classify_failure",
    # Connection
    "WingsConnection",
    # Diagnostics
    "ConnectionDiagnostics",
    "ConfigValidationResult",
    # Client
    "WingsClient",
]
