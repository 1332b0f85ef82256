"""
Audit logging for node agent traffic.

Entries are written as JSON lines, text lines, or both. Anything that could
carry the node secret or an issued token is scrubbed before an entry is
stored: values under sensitive keys, ``Bearer`` header values and compact
JWTs embedded in messages or URLs (signed download links carry their token
in the query string). In audit mode every entry is HMAC-SHA256 signed so a
log can be checked for tampering later.
"""

import hashlib
import hmac
import json
import re
import sys
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, TextIO

from .config import LoggingConfig
from .enums import FailureCategory, LogLevel

_LEVEL_ORDER = {
    LogLevel.DEBUG: 0,
    LogLevel.INFO: 1,
    LogLevel.WARN: 2,
    LogLevel.ERROR: 3,
}

_BEARER_PATTERN = re.compile(r"(Bearer\s+)\S+", re.IGNORECASE)
_JWT_PATTERN = re.compile(r"eyJ[\w-]*\.[\w-]+\.[\w-]+")


@dataclass
class LogEntry:
    """A single scrubbed log entry."""

    timestamp: str
    level: LogLevel
    component: str
    message: str
    data: dict = field(default_factory=dict)
    signature: Optional[str] = None

    def signable(self) -> dict:
        """Entry fields covered by the audit signature."""
        return {
            "timestamp": self.timestamp,
            "level": self.level.value,
            "component": self.component,
            "message": self.message,
            "data": self.data,
        }


class AuditLogger:
    """
    Structured logger shared by the connection, resolver and diagnostics.

    The most recent entries are kept in memory (bounded) so callers and
    tests can inspect what was logged without parsing the output stream.
    """

    SENSITIVE_KEYS = frozenset({
        'token', 'secret', 'authorization', 'bearer', 'credential',
        'password', 'api_key', 'signature_key',
    })

    MASK_VALUE = "***MASKED***"

    MAX_ENTRIES = 1000

    def __init__(
        self,
        output_format: str = "text",
        output_stream: Optional[TextIO] = None,
        min_level: LogLevel = LogLevel.INFO,
    ):
        """
        Args:
            output_format: 'json', 'text', or 'both'
            output_stream: Destination stream (defaults to sys.stderr)
            min_level: Entries below this level are dropped
        """
        if output_format not in ("json", "text", "both"):
            raise ValueError(f"Invalid output_format: {output_format}")

        self._output_format = output_format
        self._stream = output_stream or sys.stderr
        self._min_level = min_level
        self._signing_key: Optional[bytes] = None
        self._entries: deque[LogEntry] = deque(maxlen=self.MAX_ENTRIES)

    @classmethod
    def from_config(
        cls,
        config: LoggingConfig,
        output_stream: Optional[TextIO] = None,
    ) -> "AuditLogger":
        """Build a logger from a LoggingConfig; unknown levels fall back to info."""
        try:
            level = LogLevel(config.level)
        except ValueError:
            level = LogLevel.INFO
        logger = cls(
            output_format=config.output_format,
            output_stream=output_stream,
            min_level=level,
        )
        if config.audit_mode and config.audit_signing_key:
            logger.enable_audit_mode(config.audit_signing_key)
        return logger

    @property
    def output_format(self) -> str:
        return self._output_format

    @property
    def min_level(self) -> LogLevel:
        return self._min_level

    @property
    def audit_mode(self) -> bool:
        return self._signing_key is not None

    @property
    def entries(self) -> list[LogEntry]:
        """Most recent entries, oldest first."""
        return list(self._entries)

    def enable_audit_mode(self, signing_key: str) -> None:
        """Sign every following entry with HMAC-SHA256 under ``signing_key``."""
        if not signing_key:
            raise ValueError("Signing key cannot be empty")
        self._signing_key = signing_key.encode('utf-8')

    def is_enabled_for(self, level: LogLevel) -> bool:
        return _LEVEL_ORDER[level] >= _LEVEL_ORDER[self._min_level]

    def log(
        self,
        level: LogLevel,
        component: str,
        message: str,
        data: Optional[dict] = None,
    ) -> Optional[LogEntry]:
        """
        Scrub, store and write an entry.

        Returns:
            The stored LogEntry, or None if the level is filtered out
        """
        if not self.is_enabled_for(level):
            return None

        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            level=level,
            component=component,
            message=self.scrub_text(message),
            data=self.mask_sensitive_data(data or {}),
        )
        if self._signing_key is not None:
            entry.signature = self._sign(entry)

        self._entries.append(entry)
        self._write(entry)
        return entry

    def log_failure(
        self,
        component: str,
        message: str,
        *,
        error: Optional[BaseException] = None,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        category: Optional[FailureCategory] = None,
        attempts: Optional[int] = None,
        data: Optional[dict] = None,
    ) -> Optional[LogEntry]:
        """
        Log a failed node agent call at ERROR level.

        Only the context that is known is recorded: the exception, the
        request URL, the HTTP status for error responses, and the failure
        category and attempt count for transport failures.
        """
        context: dict[str, Any] = dict(data or {})
        if error is not None:
            context["error_type"] = type(error).__name__
            context["error_message"] = str(error)
        if url is not None:
            context["url"] = url
        if status_code is not None:
            context["status_code"] = status_code
        if category is not None:
            context["category"] = category.value
        if attempts is not None:
            context["attempts"] = attempts
        return self.log(LogLevel.ERROR, component, message, context)

    def mask_sensitive_data(self, data: dict) -> dict:
        """
        Return a copy of ``data`` with secrets removed.

        Values under sensitive keys are replaced outright; other strings,
        at any depth, have bearer values and embedded JWTs scrubbed.
        """
        return {key: self._mask_value(key, value) for key, value in data.items()}

    def scrub_text(self, text: str) -> str:
        """Mask bearer header values and compact JWTs inside free text."""
        text = _BEARER_PATTERN.sub(lambda m: m.group(1) + self.MASK_VALUE, text)
        return _JWT_PATTERN.sub(self.MASK_VALUE, text)

    def verify_signature(self, entry: LogEntry) -> bool:
        """True if the entry carries a signature that matches its contents."""
        if not entry.signature or self._signing_key is None:
            return False
        return hmac.compare_digest(entry.signature, self._sign(entry))

    def _mask_value(self, key: Any, value: Any) -> Any:
        key_lower = str(key).lower()
        if any(sensitive in key_lower for sensitive in self.SENSITIVE_KEYS):
            return self.MASK_VALUE
        if isinstance(value, dict):
            return self.mask_sensitive_data(value)
        if isinstance(value, (list, tuple)):
            return [self._mask_value("", item) for item in value]
        if isinstance(value, str):
            return self.scrub_text(value)
        return value

    def _sign(self, entry: LogEntry) -> str:
        content = json.dumps(entry.signable(), sort_keys=True, ensure_ascii=False, default=str)
        return hmac.new(self._signing_key, content.encode('utf-8'), hashlib.sha256).hexdigest()

    def _write(self, entry: LogEntry) -> None:
        if self._output_format in ("json", "both"):
            self._stream.write(self._format_json(entry) + "\n")
        if self._output_format in ("text", "both"):
            self._stream.write(self._format_text(entry) + "\n")
        self._stream.flush()

    @staticmethod
    def _format_json(entry: LogEntry) -> str:
        obj = entry.signable()
        if entry.signature:
            obj["signature"] = entry.signature
        return json.dumps(obj, ensure_ascii=False, default=str)

    @staticmethod
    def _format_text(entry: LogEntry) -> str:
        # [TIMESTAMP] LEVEL [component] message {data} [sig:...]
        line = f"[{entry.timestamp}] {entry.level.value.upper()} [{entry.component}] {entry.message}"
        if entry.data:
            line += " " + json.dumps(entry.data, ensure_ascii=False, default=str)
        if entry.signature:
            line += f" [sig:{entry.signature[:16]}...]"
        return line
