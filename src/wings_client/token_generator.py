"""
Token Generator for the Wings client.

Mints short-lived HMAC-signed JWTs that scope what a bearer may do against a
single server on a node: websocket sessions, file transfers, backups,
server-to-server transfers, and generic API actions. Every token kind goes
through the same claim assembly, which stamps ``iss``, ``aud``, ``iat``,
``nbf``, ``exp`` and a random ``jti`` before the purpose-specific claims are
merged in.
"""

import secrets
import time
from typing import Any, Callable, Optional, Union
from urllib.parse import urlencode

from joserfc import jwt
from joserfc.errors import ExpiredTokenError, JoseError
from joserfc.jwk import OctKey

from .config import SUPPORTED_ALGORITHMS, TokenConfig
from .credentials import Credential
from .enums import TokenPurpose
from .exceptions import InvalidTokenError, SigningError

# Claims stamped by the generator itself; purpose claims may not replace them.
RESERVED_CLAIMS = frozenset({"iss", "aud", "iat", "nbf", "exp", "jti"})


class TokenGenerator:
    """
    Issues and verifies scoped tokens for the node agent.

    The signing key is read from a shared Credential, so rotating the node
    secret on the connection also changes the key used here.
    """

    def __init__(
        self,
        credential: Optional[Union[Credential, str]] = None,
        config: Optional[TokenConfig] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the token generator.

        Args:
            credential: Shared Credential or a plain secret string
            config: TTL, algorithm, issuer, audience and nbf skew
            clock: Source of the current UNIX time (injectable for tests)
        """
        if isinstance(credential, Credential):
            self._credential = credential
        else:
            self._credential = Credential(credential or "")

        config = config or TokenConfig()
        if config.algorithm not in SUPPORTED_ALGORITHMS:
            raise ValueError(f"Unsupported algorithm: {config.algorithm}")
        self._algorithm = config.algorithm
        self._ttl = config.ttl_seconds
        self._issuer = config.issuer
        self._audience = config.audience
        self._nbf_skew = config.not_before_skew_seconds
        self._clock = clock

    # -- configuration ---------------------------------------------------

    @property
    def credential(self) -> Credential:
        return self._credential

    @property
    def secret(self) -> str:
        return self._credential.value

    def set_secret(self, secret: str) -> None:
        self._credential.rotate(secret)

    @property
    def algorithm(self) -> str:
        return self._algorithm

    def set_algorithm(self, algorithm: str) -> None:
        if algorithm not in SUPPORTED_ALGORITHMS:
            raise ValueError(f"Unsupported algorithm: {algorithm}")
        self._algorithm = algorithm

    @property
    def expiration(self) -> int:
        """Default token lifetime in seconds."""
        return self._ttl

    def set_expiration(self, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            raise ValueError("Token TTL must be positive")
        self._ttl = ttl_seconds

    @property
    def issuer(self) -> str:
        return self._issuer

    def set_issuer(self, issuer: str) -> None:
        self._issuer = issuer

    @property
    def audience(self) -> str:
        return self._audience

    def set_audience(self, audience: str) -> None:
        self._audience = audience

    # -- issuing ---------------------------------------------------------

    def build_claims(
        self,
        purpose_claims: Optional[dict[str, Any]] = None,
        ttl: Optional[int] = None,
    ) -> dict[str, Any]:
        """
        Assemble a full claim set without signing it.

        Raises:
            SigningError: If the TTL is not positive or a purpose claim
                collides with a standard claim
        """
        ttl = self._ttl if ttl is None else ttl
        if ttl <= 0:
            raise SigningError(
                code="invalid_claims",
                message=f"Token TTL must be positive, got {ttl}",
            )

        purpose_claims = purpose_claims or {}
        collisions = RESERVED_CLAIMS.intersection(purpose_claims)
        if collisions:
            raise SigningError(
                code="invalid_claims",
                message=f"Purpose claims may not override standard claims: {sorted(collisions)}",
                details={"claims": sorted(collisions)},
            )

        issued_at = int(self._clock())
        claims: dict[str, Any] = {
            "iss": self._issuer,
            "aud": self._audience,
            "iat": issued_at,
            "nbf": issued_at - self._nbf_skew,
            "exp": issued_at + ttl,
            "jti": self._generate_jti(),
        }
        claims.update(purpose_claims)
        return claims

    def issue(
        self,
        purpose: TokenPurpose,
        claims: Optional[dict[str, Any]] = None,
        ttl: Optional[int] = None,
    ) -> str:
        """
        Sign a token for the given purpose.

        Args:
            purpose: What the token is for (used in error details)
            claims: Purpose-specific claims merged over the standard ones
            ttl: Lifetime override in seconds

        Returns:
            The compact JWT string

        Raises:
            SigningError: If no secret is configured or encoding fails
        """
        key = self._signing_key()
        payload = self.build_claims(claims, ttl)
        try:
            return jwt.encode(
                {"alg": self._algorithm, "typ": "JWT"},
                payload,
                key,
                algorithms=[self._algorithm],
            )
        except (JoseError, TypeError, ValueError) as e:
            raise SigningError(
                code="encode_failed",
                message=f"Failed to encode token: {e}",
                details={"purpose": purpose.value},
            ) from e

    def generate_api_token(
        self,
        server_uuid: str,
        user_uuid: str,
        permissions: Optional[list[str]] = None,
        additional_claims: Optional[dict[str, Any]] = None,
        purpose: TokenPurpose = TokenPurpose.API,
        ttl: Optional[int] = None,
    ) -> str:
        """Generic server-scoped token; the other scoped builders go through here."""
        claims: dict[str, Any] = {
            "user_uuid": user_uuid,
            "server_uuid": server_uuid,
            "permissions": self._permission_list(permissions),
        }
        claims.update(additional_claims or {})
        return self.issue(purpose, claims, ttl)

    def generate_server_action_token(
        self,
        server_uuid: str,
        user_uuid: str,
        permissions: Optional[list[str]] = None,
        action: str = "",
        ttl: Optional[int] = None,
    ) -> str:
        extra = {"action": action} if action else {}
        return self.generate_api_token(
            server_uuid, user_uuid, permissions, extra, TokenPurpose.SERVER_ACTION, ttl
        )

    def generate_websocket_token(
        self,
        server_uuid: str,
        user_uuid: str,
        permissions: Optional[list[str]] = None,
        ttl: Optional[int] = None,
    ) -> str:
        return self.generate_api_token(
            server_uuid, user_uuid, permissions, None, TokenPurpose.WEBSOCKET, ttl
        )

    def generate_backup_operation_token(
        self,
        server_uuid: str,
        user_uuid: str,
        permissions: Optional[list[str]] = None,
        backup_uuid: str = "",
        operation: str = "",
        ttl: Optional[int] = None,
    ) -> str:
        extra: dict[str, Any] = {"type": "backup"}
        if backup_uuid:
            extra["backup_uuid"] = backup_uuid
        if operation:
            extra["operation"] = operation
        return self.generate_api_token(
            server_uuid, user_uuid, permissions, extra, TokenPurpose.BACKUP, ttl
        )

    def generate_file_operation_token(
        self,
        server_uuid: str,
        user_uuid: str,
        permissions: Optional[list[str]] = None,
        operation: str = "",
        file_path: str = "",
        ttl: Optional[int] = None,
    ) -> str:
        extra: dict[str, Any] = {"type": "file"}
        if operation:
            extra["operation"] = operation
        if file_path:
            extra["file_path"] = file_path
        return self.generate_api_token(
            server_uuid, user_uuid, permissions, extra, TokenPurpose.FILE, ttl
        )

    def generate_docker_operation_token(
        self,
        server_uuid: str,
        user_uuid: str,
        permissions: Optional[list[str]] = None,
        operation: str = "",
        ttl: Optional[int] = None,
    ) -> str:
        extra: dict[str, Any] = {"type": "docker"}
        if operation:
            extra["operation"] = operation
        return self.generate_api_token(
            server_uuid, user_uuid, permissions, extra, TokenPurpose.DOCKER, ttl
        )

    def generate_system_operation_token(
        self,
        server_uuid: str,
        user_uuid: str,
        permissions: Optional[list[str]] = None,
        operation: str = "",
        ttl: Optional[int] = None,
    ) -> str:
        extra: dict[str, Any] = {"type": "system"}
        if operation:
            extra["operation"] = operation
        return self.generate_api_token(
            server_uuid, user_uuid, permissions, extra, TokenPurpose.SYSTEM, ttl
        )

    def generate_file_download_token(
        self,
        server_uuid: str,
        file_path: str,
        unique_id: str = "",
        ttl: Optional[int] = None,
    ) -> str:
        return self.issue(
            TokenPurpose.FILE_DOWNLOAD,
            {
                "file_path": file_path,
                "server_uuid": server_uuid,
                "unique_id": unique_id or self._generate_unique_id(),
            },
            ttl,
        )

    def generate_file_upload_token(
        self,
        server_uuid: str,
        user_uuid: str,
        unique_id: str = "",
        ttl: Optional[int] = None,
    ) -> str:
        return self.issue(
            TokenPurpose.FILE_UPLOAD,
            {
                "server_uuid": server_uuid,
                "user_uuid": user_uuid,
                "unique_id": unique_id or self._generate_unique_id(),
            },
            ttl,
        )

    def generate_backup_download_token(
        self,
        server_uuid: str,
        backup_uuid: str,
        unique_id: str = "",
        ttl: Optional[int] = None,
    ) -> str:
        return self.issue(
            TokenPurpose.BACKUP_DOWNLOAD,
            {
                "server_uuid": server_uuid,
                "backup_uuid": backup_uuid,
                "unique_id": unique_id or self._generate_unique_id(),
            },
            ttl,
        )

    def generate_transfer_token(self, server_uuid: str, ttl: Optional[int] = None) -> str:
        """Minimal token authorizing a node-to-node transfer handshake."""
        return self.issue(TokenPurpose.TRANSFER, {"subject": server_uuid}, ttl)

    # -- signed URLs -----------------------------------------------------

    def generate_file_download_url(
        self, base_url: str, server_uuid: str, file_path: str, unique_id: str = ""
    ) -> str:
        token = self.generate_file_download_token(server_uuid, file_path, unique_id)
        query = urlencode({"token": token, "server": server_uuid, "file": file_path})
        return f"{base_url.rstrip('/')}/download/file?{query}"

    def generate_file_upload_url(
        self, base_url: str, server_uuid: str, user_uuid: str, unique_id: str = ""
    ) -> str:
        token = self.generate_file_upload_token(server_uuid, user_uuid, unique_id)
        query = urlencode({"token": token, "server": server_uuid})
        return f"{base_url.rstrip('/')}/upload/file?{query}"

    def generate_backup_download_url(
        self, base_url: str, server_uuid: str, backup_uuid: str, unique_id: str = ""
    ) -> str:
        token = self.generate_backup_download_token(server_uuid, backup_uuid, unique_id)
        query = urlencode({"token": token, "server": server_uuid, "backup": backup_uuid})
        return f"{base_url.rstrip('/')}/download/backup?{query}"

    def generate_websocket_url(
        self,
        base_url: str,
        server_uuid: str,
        user_uuid: str,
        permissions: Optional[list[str]] = None,
    ) -> str:
        token = self.generate_websocket_token(server_uuid, user_uuid, permissions)
        ws_url = to_websocket_url(base_url.rstrip("/"))
        return f"{ws_url}/api/servers/{server_uuid}/ws?{urlencode({'token': token})}"

    # -- verification ----------------------------------------------------

    def decode_token(self, token: str) -> dict[str, Any]:
        """
        Verify a token's signature and time claims and return its claims.

        Raises:
            SigningError: If no secret is configured
            InvalidTokenError: If the token is malformed, forged, expired,
                or not yet valid
        """
        key = self._signing_key()
        try:
            decoded = jwt.decode(token, key, algorithms=[self._algorithm])
            registry = jwt.JWTClaimsRegistry(now=int(self._clock()))
            registry.validate(decoded.claims)
        except ExpiredTokenError as e:
            raise InvalidTokenError(
                code="token_expired",
                message="Invalid token: token has expired",
            ) from e
        except (JoseError, ValueError, TypeError) as e:
            raise InvalidTokenError(
                code="invalid_token",
                message=f"Invalid token: {e}",
            ) from e
        return dict(decoded.claims)

    def is_token_expired(self, token: str) -> bool:
        """True if the token is expired or cannot be verified at all."""
        try:
            claims = self.decode_token(token)
        except SigningError:
            return True
        exp = claims.get("exp")
        return exp is not None and exp < self._clock()

    def get_token_expiration(self, token: str) -> Optional[int]:
        """The token's ``exp`` claim, or None if it cannot be verified."""
        try:
            claims = self.decode_token(token)
        except SigningError:
            return None
        return claims.get("exp")

    # -- internals -------------------------------------------------------

    def _signing_key(self) -> OctKey:
        secret = self._credential.value
        if not secret:
            raise SigningError(
                code="missing_secret",
                message="JWT secret is not set",
            )
        return OctKey.import_key(secret)

    @staticmethod
    def _permission_list(permissions: Optional[list[str]]) -> list[str]:
        if permissions is None:
            return []
        if isinstance(permissions, str) or not all(isinstance(p, str) for p in permissions):
            raise SigningError(
                code="invalid_claims",
                message="Permissions must be a list of strings",
            )
        return list(permissions)

    @staticmethod
    def _generate_jti() -> str:
        return secrets.token_hex(16)

    @staticmethod
    def _generate_unique_id() -> str:
        return f"wings_{secrets.token_hex(12)}"


def to_websocket_url(url: str) -> str:
    """Swap an http(s) URL's scheme for its websocket equivalent."""
    if url.startswith("https://"):
        return "wss://" + url[len("https://"):]
    if url.startswith("http://"):
        return "ws://" + url[len("http://"):]
    return url
