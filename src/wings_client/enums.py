"""
Enumeration types for the Wings client.

These enums provide type-safe constants for error categories, token
purposes, and configuration options throughout the package.
"""

from enum import Enum


class LogLevel(Enum):
    """Logging severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class Protocol(Enum):
    """Transport scheme used to reach the node agent."""

    HTTP = "http"
    HTTPS = "https"


class FailureCategory(Enum):
    """Classification of a failed request attempt."""

    DNS_RESOLUTION = "dns_resolution"
    CONNECT = "connect"
    TIMEOUT = "timeout"
    TLS = "tls"
    PROTOCOL = "protocol"
    FATAL = "fatal"


class AddressFamily(Enum):
    """IP address family used as part of the DNS cache key."""

    IPV4 = "ipv4"
    IPV6 = "ipv6"


class TokenPurpose(Enum):
    """What a signed token authorizes its bearer to do."""

    SERVER_ACTION = "server_action"
    WEBSOCKET = "websocket"
    BACKUP = "backup"
    BACKUP_DOWNLOAD = "backup_download"
    FILE = "file"
    FILE_DOWNLOAD = "file_download"
    FILE_UPLOAD = "file_upload"
    TRANSFER = "transfer"
    DOCKER = "docker"
    SYSTEM = "system"
    API = "api"
