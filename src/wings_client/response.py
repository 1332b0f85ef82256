"""
Response envelope returned by every successful node agent call.
"""

import json
from dataclasses import dataclass
from typing import Any, Union

Payload = Union[dict, list, str, bytes]


@dataclass(frozen=True)
class WingsResponse:
    """
    Immutable wrapper around a node agent response.

    ``data`` is the decoded JSON payload, or the raw body (``bytes`` or
    ``str``) for endpoints that do not speak JSON. Success is derived from
    the status code alone.
    """

    data: Payload
    status_code: int = 200

    @property
    def is_successful(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def is_structured(self) -> bool:
        return isinstance(self.data, (dict, list))

    @property
    def error(self) -> str:
        """Error message from the payload: ``error``, then ``message``."""
        if isinstance(self.data, dict):
            if self.data.get("error") is not None:
                return str(self.data["error"])
            if self.data.get("message") is not None:
                return str(self.data["message"])
        return "Unknown error"

    @property
    def raw_body(self) -> str:
        if isinstance(self.data, bytes):
            return self.data.decode("utf-8", errors="replace")
        if isinstance(self.data, str):
            return self.data
        return json.dumps(self.data)

    def get(self, key: str, default: Any = None) -> Any:
        if isinstance(self.data, dict):
            value = self.data.get(key)
            return default if value is None else value
        return default

    def has(self, key: str) -> bool:
        return isinstance(self.data, dict) and self.data.get(key) is not None

    def to_dict(self) -> dict:
        """Full payload as a dict; raw payloads are wrapped as ``{"content": raw}``."""
        if isinstance(self.data, dict):
            return dict(self.data)
        return {"content": self.data}
