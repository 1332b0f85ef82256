"""
Connection diagnostics for a Wings node.

Checks the client's own settings, resolves the node host over both address
families, probes the node once without retries, and finally runs a full
connection test through the normal request pipeline. Every step reports
into the result; nothing here raises because a node is unhealthy.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from .audit_logger import AuditLogger
from .config import MIN_SECRET_LENGTH
from .connection import WingsConnection
from .enums import LogLevel
from .models import DiagnosticsReport


@dataclass
class ConfigValidationResult:
    """Result of checking the connection settings."""

    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class ConnectionDiagnostics:
    """
    Runs connectivity checks against one node.

    Performs:
    1. Settings validation (credential present, TLS verification, retries)
    2. DNS resolution of the node host (IPv4 and IPv6)
    3. A single reachability probe
    4. A connection test through the retrying pipeline
    """

    COMPONENT = "diagnostics"

    def __init__(
        self,
        connection: WingsConnection,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the diagnostics.

        Args:
            connection: Connection to the node under test
            logger: Optional logger for the summary line
        """
        self._connection = connection
        self._logger = logger

    def validate_config(self) -> ConfigValidationResult:
        """
        Check the connection settings for problems.

        Returns:
            ConfigValidationResult with errors (unusable) and warnings (risky)
        """
        errors: list[str] = []
        warnings: list[str] = []
        connection = self._connection

        if not connection.auth_token:
            errors.append("Node secret is not configured")
        elif len(connection.auth_token.encode("utf-8")) < MIN_SECRET_LENGTH:
            warnings.append(f"Node secret is shorter than {MIN_SECRET_LENGTH} bytes")

        if connection.endpoint.protocol == "https" and not connection.verify_tls:
            warnings.append("TLS certificate verification is disabled")
        elif connection.endpoint.protocol == "http":
            warnings.append("Node secret is sent over plain HTTP")

        retry = connection.retry_manager.config
        if retry.max_retries < 1:
            warnings.append("max_retries is less than 1 - no retries will be performed")
        if retry.total_deadline_seconds is None:
            warnings.append("No overall request deadline configured")

        if connection.timeout <= 0:
            errors.append("Timeout must be positive")

        return ConfigValidationResult(
            valid=len(errors) == 0,
            errors=errors,
            warnings=warnings,
        )

    async def run(self) -> DiagnosticsReport:
        """
        Run all checks.

        Returns:
            DiagnosticsReport describing the node's reachability
        """
        start_time = time.perf_counter()
        connection = self._connection
        endpoint = connection.endpoint

        config_result = self.validate_config()
        dns_report = await connection.dns_resolver.test_resolution(endpoint.host)
        reachability = await connection.probe()
        connection_ok = False
        if reachability.reachable:
            connection_ok = await connection.test_connection()

        report = DiagnosticsReport(
            base_url=connection.base_url,
            host=endpoint.host,
            protocol=endpoint.protocol,
            port=endpoint.port,
            timeout=connection.timeout,
            dns_resolution=dns_report,
            reachability=reachability,
            connection_test=connection_ok,
            warnings=config_result.errors + config_result.warnings,
            timestamp=datetime.now(timezone.utc).isoformat(),
            total_duration_ms=(time.perf_counter() - start_time) * 1000,
        )

        if self._logger:
            self._logger.log(
                LogLevel.INFO if report.healthy else LogLevel.WARN,
                self.COMPONENT,
                f"Diagnostics for {report.base_url}: "
                f"{'healthy' if report.healthy else 'unhealthy'}",
                {
                    "dns_success": dns_report.success,
                    "reachable": reachability.reachable,
                    "connection_test": connection_ok,
                    "warnings": report.warnings,
                },
            )

        return report
