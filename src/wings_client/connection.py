"""
Connection to a Wings node agent.

This module owns the outbound HTTP channel to the node: it builds URLs from
the endpoint, injects default and auth headers, retries transient failures
with backoff, and turns HTTP error statuses into typed exceptions.

Error mapping:
- 401/403 -> WingsAuthenticationError (never retried)
- 404 -> NotFoundError, 429 -> RateLimitError, other >= 400 -> WingsRequestError
- DNS, connect and timeout failures -> retried, then WingsConnectionError
- TLS and protocol failures -> WingsConnectionError immediately
"""

import json
import socket
import time
from typing import Any, Optional, Union

import httpx

from . import __version__
from .audit_logger import AuditLogger
from .config import ClientConfig, RetryConfig, TokenConfig
from .credentials import Credential
from .dns_resolver import DnsResolver
from .enums import FailureCategory, LogLevel
from .exceptions import (
    NotFoundError,
    RateLimitError,
    WingsAuthenticationError,
    WingsClientError,
    WingsConnectionError,
    WingsRequestError,
)
from .models import Endpoint, ReachabilityResult, RequestAttempt
from .response import WingsResponse
from .retry_manager import RetryManager, RetryResult, classify_failure
from .token_generator import TokenGenerator

RawBody = Union[str, bytes]


class WingsConnection:
    """
    Async HTTP client for one Wings node.

    Every call runs through the same pipeline: merge headers, send, classify
    the outcome, and retry transient transport failures. The node secret is
    held in a Credential shared with the connection's TokenGenerator, so
    ``set_auth_token`` rotates the Authorization header and the token
    signing key together.
    """

    COMPONENT = "wings_connection"
    USER_AGENT = f"wings-client/{__version__}"
    MAX_REDIRECTS = 3
    KEEPALIVE_EXPIRY = 60.0

    def __init__(
        self,
        host: str,
        port: int = 8080,
        protocol: str = "http",
        auth_token: str = "",
        timeout: float = 30.0,
        *,
        connect_timeout: float = 10.0,
        verify_tls: bool = True,
        retry_config: Optional[RetryConfig] = None,
        token_config: Optional[TokenConfig] = None,
        retry_manager: Optional[RetryManager] = None,
        dns_resolver: Optional[DnsResolver] = None,
        logger: Optional[AuditLogger] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the connection.

        Args:
            host: Node hostname or IP address
            port: Node port
            protocol: 'http' or 'https'
            auth_token: Node secret sent as a bearer token
            timeout: Total timeout per attempt in seconds
            connect_timeout: Connect timeout per attempt in seconds
            verify_tls: Verify the node's certificate (disable only for
                self-signed development nodes)
            retry_config: Retry count and overall deadline
            token_config: Settings for the connection's TokenGenerator
            retry_manager: Pre-built retry manager (overrides retry_config)
            dns_resolver: Resolver consulted when classifying connect failures
            logger: Optional audit logger
            transport: Custom httpx transport (e.g. ``httpx.MockTransport``)
        """
        self._endpoint = Endpoint(host=host, port=port, protocol=protocol)
        self._timeout = timeout
        self._connect_timeout = connect_timeout
        self._verify_tls = verify_tls
        self._credential = Credential(auth_token)
        self._retry = retry_manager or RetryManager(retry_config)
        self._dns = dns_resolver or DnsResolver(logger=logger)
        self._logger = logger
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        token_config = token_config or TokenConfig()
        if not token_config.audience:
            token_config = TokenConfig(
                ttl_seconds=token_config.ttl_seconds,
                algorithm=token_config.algorithm,
                issuer=token_config.issuer,
                audience=self._endpoint.base_url,
                not_before_skew_seconds=token_config.not_before_skew_seconds,
            )
        self._token_generator = TokenGenerator(self._credential, token_config)

        if not verify_tls and self._endpoint.protocol == "https":
            self._log(
                LogLevel.WARN,
                "TLS certificate verification is disabled for this node",
                {"base_url": self.base_url},
            )

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        logger: Optional[AuditLogger] = None,
        dns_resolver: Optional[DnsResolver] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "WingsConnection":
        return cls(
            host=config.endpoint.host,
            port=config.endpoint.port,
            protocol=config.endpoint.protocol,
            auth_token=config.auth_token,
            timeout=config.endpoint.timeout,
            connect_timeout=config.endpoint.connect_timeout,
            verify_tls=config.endpoint.verify_tls,
            retry_config=config.retry,
            token_config=config.tokens,
            dns_resolver=dns_resolver,
            logger=logger,
            transport=transport,
        )

    async def __aenter__(self) -> "WingsConnection":
        self._get_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    # -- configuration ---------------------------------------------------

    @property
    def endpoint(self) -> Endpoint:
        return self._endpoint

    @property
    def base_url(self) -> str:
        return self._endpoint.base_url

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def verify_tls(self) -> bool:
        return self._verify_tls

    @property
    def auth_token(self) -> str:
        return self._credential.value

    @property
    def credential(self) -> Credential:
        return self._credential

    def set_auth_token(self, token: str) -> None:
        """Rotate the node secret for both request auth and token signing."""
        self._credential.rotate(token)
        self._log(LogLevel.INFO, "Node secret rotated", {"base_url": self.base_url})

    @property
    def token_generator(self) -> TokenGenerator:
        return self._token_generator

    @property
    def dns_resolver(self) -> DnsResolver:
        return self._dns

    @property
    def retry_manager(self) -> RetryManager:
        return self._retry

    # -- verbs -----------------------------------------------------------

    async def get(
        self,
        path: str,
        headers: Optional[dict[str, str]] = None,
        max_retries: Optional[int] = None,
    ) -> WingsResponse:
        return await self.request("GET", path, None, headers, max_retries)

    async def post(
        self,
        path: str,
        data: Any = None,
        headers: Optional[dict[str, str]] = None,
        max_retries: Optional[int] = None,
    ) -> WingsResponse:
        return await self.request("POST", path, data, headers, max_retries)

    async def put(
        self,
        path: str,
        data: Any = None,
        headers: Optional[dict[str, str]] = None,
        max_retries: Optional[int] = None,
    ) -> WingsResponse:
        return await self.request("PUT", path, data, headers, max_retries)

    async def patch(
        self,
        path: str,
        data: Any = None,
        headers: Optional[dict[str, str]] = None,
        max_retries: Optional[int] = None,
    ) -> WingsResponse:
        return await self.request("PATCH", path, data, headers, max_retries)

    async def delete(
        self,
        path: str,
        headers: Optional[dict[str, str]] = None,
        max_retries: Optional[int] = None,
    ) -> WingsResponse:
        return await self.request("DELETE", path, None, headers, max_retries)

    async def request(
        self,
        method: str,
        path: str,
        data: Any = None,
        headers: Optional[dict[str, str]] = None,
        max_retries: Optional[int] = None,
    ) -> WingsResponse:
        """
        Send a JSON request to the node agent.

        Args:
            method: HTTP method
            path: API path, e.g. ``/api/servers/<uuid>``
            data: JSON-serializable body; empty data is sent as ``{}``
            headers: Extra headers; they win over the defaults
            max_retries: Retry bound for transient failures (default 3)

        Returns:
            WingsResponse with the decoded payload

        Raises:
            WingsConnectionError: Transport failure after retries
            WingsAuthenticationError: HTTP 401/403
            WingsRequestError: Any other HTTP error status
        """
        body = json.dumps(data) if data else "{}"
        return await self._dispatch(
            method.upper(),
            path,
            body.encode("utf-8"),
            headers,
            max_retries,
            raw=False,
        )

    async def get_raw(
        self,
        path: str,
        headers: Optional[dict[str, str]] = None,
        max_retries: Optional[int] = None,
    ) -> bytes:
        """GET and return the body verbatim (file contents, archives)."""
        response = await self._dispatch(
            "GET", path, None, headers, max_retries, raw=True
        )
        return response.data if isinstance(response.data, bytes) else b""

    async def post_raw(
        self,
        path: str,
        body: RawBody,
        headers: Optional[dict[str, str]] = None,
        max_retries: Optional[int] = None,
    ) -> Union[dict, list]:
        """
        POST a body without JSON encoding (file writes).

        ``Content-Type`` defaults to ``text/plain`` unless the caller sets
        one. The reply is decoded as JSON when possible, otherwise ``{}``.
        """
        content = body.encode("utf-8") if isinstance(body, str) else body
        response = await self._dispatch(
            "POST",
            path,
            content,
            headers,
            max_retries,
            raw=True,
            content_type="text/plain",
        )
        if not isinstance(response.data, bytes) or not response.data:
            return {}
        try:
            decoded = json.loads(response.data)
        except ValueError:
            return {}
        return decoded if isinstance(decoded, (dict, list)) else {}

    # -- health ----------------------------------------------------------

    async def test_connection(self) -> bool:
        """True if ``GET /api/system`` succeeds."""
        try:
            await self.get("/api/system")
        except WingsClientError:
            return False
        return True

    async def probe(self, path: str = "/api/system") -> ReachabilityResult:
        """
        Send a single request without retries or status classification.

        Any HTTP answer, even an error status, means the node is reachable.
        """
        start_time = time.perf_counter()
        try:
            response = await self._get_client().get(
                self._url(path), headers=self._build_headers(None, "application/json")
            )
        except httpx.HTTPError as e:
            return ReachabilityResult(
                reachable=False,
                response_time_ms=self._elapsed_ms(start_time),
                error=str(e) or type(e).__name__,
            )
        return ReachabilityResult(
            reachable=True,
            status_code=response.status_code,
            response_time_ms=self._elapsed_ms(start_time),
        )

    # -- pipeline --------------------------------------------------------

    async def _dispatch(
        self,
        method: str,
        path: str,
        content: Optional[bytes],
        headers: Optional[dict[str, str]],
        max_retries: Optional[int],
        raw: bool,
        content_type: str = "application/json",
    ) -> WingsResponse:
        url = self._url(path)
        client = self._get_client()
        attempt_number = 0

        async def attempt() -> WingsResponse:
            nonlocal attempt_number
            request_attempt = RequestAttempt(
                method=method,
                path=path,
                body=content,
                headers=dict(self._build_headers(headers, content_type)),
                attempt=attempt_number,
            )
            attempt_number += 1
            response = await client.request(
                request_attempt.method,
                url,
                content=request_attempt.body,
                headers=request_attempt.headers,
            )
            return self._handle_response(response, path, raw)

        def on_retry(attempts: int, error: Exception, delay: int) -> None:
            category = classify_failure(error)
            self._log(
                LogLevel.WARN,
                f"{self._describe(category)} for {url}, retrying in {delay}s "
                f"(attempt {attempts}/{self._effective_retries(max_retries)})",
                {"method": method, "url": url, "error": str(error), "category": category.value},
            )

        result = await self._retry.execute_with_retry(
            attempt,
            is_retryable=self._is_transient,
            max_retries=max_retries,
            on_retry=on_retry,
        )
        if result.success:
            return result.result

        error = result.last_error
        if isinstance(error, WingsClientError):
            raise error
        raise await self._connection_error(result, method, url)

    def _is_transient(self, error: Exception) -> bool:
        if isinstance(error, WingsClientError):
            return False
        return self._retry.should_retry(error)

    async def _connection_error(
        self, result: RetryResult, method: str, url: str
    ) -> WingsConnectionError:
        error = result.last_error
        category = result.category or FailureCategory.FATAL
        message = (str(error) or type(error).__name__) if error else "Unknown error"

        # A refused connect with a name that no longer resolves is a DNS problem.
        if category == FailureCategory.CONNECT and not self._endpoint.is_ip_literal:
            if await self._dns.resolve(self._endpoint.host) is None:
                category = FailureCategory.DNS_RESOLUTION

        details = {
            "method": method,
            "url": url,
            "attempts": result.attempts,
            "category": category.value,
            "last_error": message,
        }

        if result.deadline_exceeded:
            code = "deadline_exceeded"
            text = f"Request deadline exceeded after {result.attempts} attempt(s). Last error: {message}"
        elif self._retry.is_retryable_error(category) and result.attempts > 1:
            code = "retries_exhausted"
            text = f"All retry attempts failed. Last error: {message}"
        elif category == FailureCategory.TLS:
            code = "tls_error"
            text = f"TLS connection error: {message}"
        else:
            code = "connection_failed"
            text = f"Connection failed: {message}"

        self._log_error(
            text,
            url,
            error=error,
            category=category,
            attempts=result.attempts,
            data={"method": method, "code": code},
        )
        exc = WingsConnectionError(code=code, message=text, details=details)
        exc.__cause__ = error
        return exc

    def _handle_response(self, response: httpx.Response, path: str, raw: bool) -> WingsResponse:
        status = response.status_code
        if status >= 400:
            self._raise_for_status(status, response, path)
        if status == 204:
            return WingsResponse(data=b"" if raw else {}, status_code=204)
        if raw:
            return WingsResponse(data=response.content, status_code=status)
        return WingsResponse(data=self._decode_json(response), status_code=status)

    def _raise_for_status(self, status: int, response: httpx.Response, path: str) -> None:
        payload = self._decode_json(response)
        error_message = "Unknown error"
        if isinstance(payload, dict) and payload.get("error"):
            error_message = str(payload["error"])
        details = {"path": path, "response": payload}

        if status == 401:
            exc: WingsClientError = WingsAuthenticationError(
                "unauthorized", f"Authentication failed: {error_message}", status, details
            )
        elif status == 403:
            exc = WingsAuthenticationError(
                "forbidden", f"Access forbidden: {error_message}", status, details
            )
        elif status == 404:
            exc = NotFoundError("not_found", f"Endpoint not found: {path}", status, details)
        elif status == 429:
            exc = RateLimitError("rate_limited", f"Rate limit exceeded: {error_message}", status, details)
        elif status == 500:
            exc = WingsRequestError("server_error", f"Server error: {error_message}", status, details)
        else:
            exc = WingsRequestError("http_error", f"HTTP {status}: {error_message}", status, details)

        self._log_error(exc.message, str(response.request.url), status_code=status)
        raise exc

    @staticmethod
    def _decode_json(response: httpx.Response) -> Any:
        if not response.content:
            return {}
        try:
            decoded = response.json()
        except ValueError:
            return response.text
        return {} if decoded is None else decoded

    # -- helpers ---------------------------------------------------------

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            transport = self._transport
            if transport is None:
                transport = httpx.AsyncHTTPTransport(
                    verify=self._verify_tls,
                    socket_options=[(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)],
                    limits=httpx.Limits(keepalive_expiry=self.KEEPALIVE_EXPIRY),
                )
            self._client = httpx.AsyncClient(
                verify=self._verify_tls,
                timeout=httpx.Timeout(self._timeout, connect=self._connect_timeout),
                follow_redirects=True,
                max_redirects=self.MAX_REDIRECTS,
                transport=transport,
            )
        return self._client

    def _url(self, path: str) -> str:
        if not path.startswith("/"):
            path = "/" + path
        return self.base_url + path

    def _build_headers(
        self, extra: Optional[dict[str, str]], content_type: str
    ) -> httpx.Headers:
        headers = httpx.Headers({
            "Accept": "application/json",
            "User-Agent": self.USER_AGENT,
            "Content-Type": content_type,
            "Connection": "keep-alive",
        })
        authorization = self._credential.authorization_header()
        if authorization:
            headers["Authorization"] = authorization
        if extra:
            headers.update(extra)
        return headers

    def _effective_retries(self, max_retries: Optional[int]) -> int:
        return self._retry.config.max_retries if max_retries is None else max_retries

    @staticmethod
    def _describe(category: FailureCategory) -> str:
        return {
            FailureCategory.DNS_RESOLUTION: "DNS resolution failed",
            FailureCategory.CONNECT: "Connection failed",
            FailureCategory.TIMEOUT: "Request timeout",
        }.get(category, "Request failed")

    @staticmethod
    def _elapsed_ms(start_time: float) -> float:
        return (time.perf_counter() - start_time) * 1000

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, self.COMPONENT, message, data)

    def _log_error(
        self,
        message: str,
        url: str,
        *,
        error: Optional[Exception] = None,
        status_code: Optional[int] = None,
        category: Optional[FailureCategory] = None,
        attempts: Optional[int] = None,
        data: Optional[dict] = None,
    ) -> None:
        if self._logger:
            self._logger.log_failure(
                self.COMPONENT,
                message,
                error=error,
                url=url,
                status_code=status_code,
                category=category,
                attempts=attempts,
                data=data,
            )
