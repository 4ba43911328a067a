"""Ephemeral GitHub App installation credentials.

Exchanges a short-lived RS256 app assertion for an installation-scoped
access token. Tokens are requested fresh for every clone, pull, or remote
refresh unless caching is explicitly enabled, which keeps token expiry out
of the callers' concerns.

Source:
- src/workspaces/config.py (github_app_id, github_app_private_key)
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

import httpx
import jwt

from src.workspaces.errors import AuthError

logger = logging.getLogger(__name__)

# GitHub rejects app assertions valid for longer than 10 minutes
APP_JWT_LIFETIME_SECONDS = 540
# Tolerates clock drift between this host and GitHub
APP_JWT_BACKDATE_SECONDS = 60


@dataclass(frozen=True)
class InstallationToken:
    """Installation access token and its expiry."""

    token: str
    expires_at: Optional[datetime] = None

    def is_fresh(self, margin_seconds: int) -> bool:
        if self.expires_at is None:
            return False
        remaining = self.expires_at.timestamp() - time.time()
        return remaining > margin_seconds


class CredentialProvider(Protocol):
    """Anything that can mint an installation token."""

    async def get_token(
        self, installation_id: int, force_refresh: bool = False
    ) -> str: ...


class GitHubAppCredentialProvider:
    """Mints installation tokens through the GitHub App authentication flow.

    Attributes:
        app_id: GitHub App identifier used as the JWT issuer.
        private_key: PEM-encoded RSA key of the app.
        base_url: Base URL for GitHub API (GitHub Enterprise supported).
        cache_enabled: Reuse tokens until ``cache_margin_seconds`` before expiry.
        cache_margin_seconds: Safety margin applied to cached tokens.
        timeout: HTTP request timeout in seconds.

    Example:
        >>> provider = GitHubAppCredentialProvider(app_id="123", private_key=pem)
        >>> async with provider:
        ...     token = await provider.get_token(4567)
    """

    def __init__(
        self,
        app_id: Optional[str],
        private_key: Optional[str],
        base_url: str = "https://api.github.com",
        cache_enabled: bool = False,
        cache_margin_seconds: int = 600,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.app_id = app_id
        self.private_key = private_key
        self.base_url = base_url.rstrip("/")
        self.cache_enabled = cache_enabled
        self.cache_margin_seconds = cache_margin_seconds
        self.timeout = timeout
        self._client = client
        self._cache: Dict[int, InstallationToken] = {}

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating it if necessary."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GitHubAppCredentialProvider":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def get_token(
        self, installation_id: int, force_refresh: bool = False
    ) -> str:
        """Return an access token for ``installation_id``.

        No retry is attempted; callers treat failure as fatal to the
        enclosing operation.

        Args:
            installation_id: GitHub App installation to scope the token to.
            force_refresh: Bypass the cache even when it holds a fresh token.

        Returns:
            The bearer token string.

        Raises:
            AuthError: If the app is not configured or GitHub refuses.
        """
        if self.cache_enabled and not force_refresh:
            cached = self._cache.get(installation_id)
            if cached is not None and cached.is_fresh(self.cache_margin_seconds):
                return cached.token

        issued = await self._request_installation_token(installation_id)
        if self.cache_enabled:
            self._cache[installation_id] = issued
        return issued.token

    def build_app_jwt(self) -> str:
        """Sign the app assertion exchanged for installation tokens.

        Raises:
            AuthError: If app id or private key is missing or unusable.
        """
        if not self.app_id or not self.private_key:
            raise AuthError(
                None, "GitHub App ID and private key must be configured"
            )
        now = int(time.time())
        payload = {
            "iat": now - APP_JWT_BACKDATE_SECONDS,
            "exp": now + APP_JWT_LIFETIME_SECONDS,
            "iss": str(self.app_id),
        }
        try:
            return jwt.encode(payload, self.private_key, algorithm="RS256")
        except (ValueError, TypeError, jwt.PyJWTError) as exc:
            raise AuthError(
                None, f"Invalid GitHub App private key: {exc}", original_error=exc
            ) from exc

    async def _request_installation_token(
        self, installation_id: int
    ) -> InstallationToken:
        app_jwt = self.build_app_jwt()
        path = f"/app/installations/{installation_id}/access_tokens"

        try:
            response = await self.client.post(
                path,
                headers={
                    "Authorization": f"Bearer {app_jwt}",
                    "Accept": "application/vnd.github+json",
                    "X-GitHub-Api-Version": "2022-11-28",
                    "User-Agent": "RepoWorkspaces/1.0",
                },
            )
        except httpx.RequestError as exc:
            raise AuthError(
                installation_id, f"request failed: {exc}", original_error=exc
            ) from exc

        if response.status_code >= 400:
            logger.error(
                "Installation token request rejected",
                extra={
                    "installation_id": installation_id,
                    "status_code": response.status_code,
                    "response_body": response.text[:500],
                },
            )
            raise AuthError(
                installation_id, f"GitHub API error: {response.status_code}"
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise AuthError(
                installation_id, "invalid token payload", original_error=exc
            ) from exc

        token = str(payload.get("token") or "").strip() if isinstance(payload, dict) else ""
        if not token:
            raise AuthError(installation_id, "response did not contain a token")

        logger.debug(
            "Issued installation token",
            extra={"installation_id": installation_id},
        )
        return InstallationToken(
            token=token,
            expires_at=_parse_expiry(payload.get("expires_at")),
        )


def _parse_expiry(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
