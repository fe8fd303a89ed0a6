"""
Remote JSON Web Key Set used to verify delegated identity tokens.

The application owns one :class:`RemoteKeySet` per issuer, created in
``create_app`` and closed at shutdown. Keys are cached for
``cache_seconds``; a token signed with a key id the cache does not know
triggers one immediate refetch so that issuer key rotation is picked up
without waiting for the cache to expire.
"""

import logging
import time
from typing import Optional

import httpx
import jwt

logger = logging.getLogger(__name__)


class KeySetUnavailableError(Exception):
    """The key set could not be fetched or holds no key for the token."""


class RemoteKeySet:
    def __init__(
        self,
        url: str,
        *,
        cache_seconds: int = 3600,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self.cache_seconds = cache_seconds
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None
        self._key_set: Optional[jwt.PyJWKSet] = None
        self._fetched_at: float = 0.0

    @property
    def is_stale(self) -> bool:
        return (
            self._key_set is None
            or time.monotonic() - self._fetched_at >= self.cache_seconds
        )

    async def refresh(self) -> jwt.PyJWKSet:
        """Fetch the key set from the issuer and replace the cached copy."""
        try:
            response = await self._client.get(self.url)
            response.raise_for_status()
            key_set = jwt.PyJWKSet.from_dict(response.json())
        except (httpx.HTTPError, ValueError, jwt.PyJWTError) as exc:
            logger.error(f"Failed to fetch key set from {self.url}: {exc}")
            raise KeySetUnavailableError(f"Key set unavailable: {exc}") from exc

        self._key_set = key_set
        self._fetched_at = time.monotonic()
        logger.info(f"Fetched {len(key_set.keys)} signing keys from {self.url}")
        return key_set

    async def get_signing_key(self, token: str) -> jwt.PyJWK:
        """Return the key that signed ``token``."""
        try:
            kid = jwt.get_unverified_header(token).get("kid")
        except jwt.PyJWTError as exc:
            raise KeySetUnavailableError("Token header is malformed") from exc

        key_set = await self.refresh() if self.is_stale else self._key_set
        key = self._match(key_set, kid)
        if key is None:
            key = self._match(await self.refresh(), kid)
        if key is None:
            raise KeySetUnavailableError(f"No signing key found for kid {kid!r}")
        return key

    @staticmethod
    def _match(key_set: jwt.PyJWKSet, kid: Optional[str]) -> Optional[jwt.PyJWK]:
        if kid is None:
            return key_set.keys[0] if len(key_set.keys) == 1 else None
        for key in key_set.keys:
            if key.key_id == kid:
                return key
        return None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
