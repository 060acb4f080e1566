"""
Identity Resolution
===================

Turns an ``Authorization: Bearer <value>`` header into a resolved Identity.

Two credential kinds are accepted:
- Opaque API keys (``ak_live_`` + 64 hex chars), looked up by SHA-256 hash.
- Signed tokens (JWT, asymmetric algorithms only), verified against the
  trusted issuer's published key set.
"""

import asyncio
import string
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional, Set, Tuple

import httpx
import jwt
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from docgate.config import Settings
from docgate.errors import InvalidCredential, MalformedCredential, MissingCredential
from docgate.models.db_models import hash_key
from docgate.repositories import KeyStore

API_KEY_HEX_LENGTH = 64
_HEX = frozenset(string.hexdigits.lower())


class AuthMethod(str, Enum):
    API_KEY = "api_key"
    BEARER_TOKEN = "bearer_token"


@dataclass(frozen=True)
class Identity:
    """A verified caller. ``user_id`` is only known up front for API keys."""
    email: str
    auth_method: AuthMethod
    user_id: Optional[str] = None
    roles: Tuple[str, ...] = ()
    is_admin: bool = False
    key_prefix: Optional[str] = None


@dataclass
class RequestContext:
    """
    Per-request state threaded from the HTTP layer into the services.

    ``identity`` is None until the credential has been resolved.
    """
    endpoint: str
    method: str = "POST"
    request_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    identity: Optional[Identity] = None
    started_at: float = field(default_factory=time.perf_counter)

    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self.started_at) * 1000)


def looks_like_api_key(value: str, prefix: str) -> bool:
    """Shape check only: fixed prefix followed by exactly 64 lower-case hex chars."""
    if not value.startswith(prefix):
        return False
    suffix = value[len(prefix):]
    return len(suffix) == API_KEY_HEX_LENGTH and all(c in _HEX for c in suffix)


# =============================================================================
# Key Set Cache
# =============================================================================

@dataclass
class _CachedKeySet:
    keys: Dict[str, jwt.PyJWK]
    fetched_at: float


class JWKSCache:
    """
    TTL cache of published signing keys, one entry per key set URL.

    A stale entry is refreshed on the next lookup; an unknown key id forces
    one refresh. If a refresh fails while an older set is cached, the older
    set keeps being served.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        ttl: float = 3600,
        timeout: float = 10.0,
        logger=None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._http = http_client
        self._ttl = ttl
        self._timeout = timeout
        self._logger = logger or structlog.get_logger(__name__)
        self._clock = clock
        self._entries: Dict[str, _CachedKeySet] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _is_fresh(self, entry: Optional[_CachedKeySet]) -> bool:
        return entry is not None and (self._clock() - entry.fetched_at) < self._ttl

    async def get_signing_key(self, url: str, kid: str) -> jwt.PyJWK:
        keys = await self._get(url)
        if kid not in keys:
            keys = await self._get(url, force=True)
        if kid not in keys:
            self._logger.warning("Unknown signing key id", kid=kid)
            raise InvalidCredential("Token signed with an unknown key")
        return keys[kid]

    async def _get(self, url: str, force: bool = False) -> Dict[str, jwt.PyJWK]:
        seen = self._entries.get(url)
        if not force and self._is_fresh(seen):
            return seen.keys

        lock = self._locks.setdefault(url, asyncio.Lock())
        async with lock:
            entry = self._entries.get(url)
            # Another caller refreshed while we waited.
            if entry is not seen and self._is_fresh(entry):
                return entry.keys

            try:
                keys = await self._fetch(url)
            except (httpx.HTTPError, ValueError) as e:
                if entry is not None:
                    self._logger.warning("Key set refresh failed, serving cached keys", url=url, error=str(e))
                    return entry.keys
                self._logger.error("Key set unavailable", url=url, error=str(e))
                raise InvalidCredential("Unable to verify token signature") from e

            self._entries[url] = _CachedKeySet(keys=keys, fetched_at=self._clock())
            self._logger.debug("Fetched key set", url=url, keys=len(keys))
            return keys

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _fetch(self, url: str) -> Dict[str, jwt.PyJWK]:
        response = await self._http.get(url, timeout=self._timeout)
        response.raise_for_status()
        document = response.json()

        keys: Dict[str, jwt.PyJWK] = {}
        for jwk in document.get("keys", []):
            kid = jwk.get("kid")
            if not kid:
                continue
            try:
                keys[kid] = jwt.PyJWK(jwk)
            except (jwt.exceptions.PyJWKError, jwt.exceptions.InvalidKeyError) as e:
                self._logger.warning("Skipping unusable key", kid=kid, error=str(e))
        return keys


# =============================================================================
# Resolver
# =============================================================================

class IdentityResolver:
    """Verify bearer credentials and produce an Identity."""

    def __init__(
        self,
        settings: Settings,
        key_store: KeyStore,
        jwks_cache: JWKSCache,
        logger=None,
    ):
        self.settings = settings
        self.key_store = key_store
        self.jwks_cache = jwks_cache
        self.logger = logger or structlog.get_logger(__name__)
        self._pending: Set[asyncio.Task] = set()

    async def resolve(self, authorization: Optional[str], allow_api_key: bool = True) -> Identity:
        """
        Resolve an Authorization header value.

        Args:
            authorization: Raw header value, or None if absent.
            allow_api_key: False for endpoints that only accept signed tokens.
        """
        if not authorization or not authorization.strip():
            raise MissingCredential("Authorization header required")

        scheme, _, value = authorization.strip().partition(" ")
        value = value.strip()
        if scheme.lower() != "bearer" or not value:
            raise MalformedCredential("Authorization header must use the format 'Bearer <token>'")

        if looks_like_api_key(value, self.settings.api_key_prefix):
            if not allow_api_key:
                raise InvalidCredential("API keys are not accepted on this endpoint")
            return await self._resolve_api_key(value)

        return await self._resolve_signed_token(value)

    # -------------------------------------------------------------------------
    # Opaque keys
    # -------------------------------------------------------------------------

    async def _resolve_api_key(self, raw_key: str) -> Identity:
        key_hash = hash_key(raw_key)
        api_key = await self.key_store.get_by_hash(key_hash)

        if api_key is None:
            self.logger.info("Unknown API key presented", key_prefix=raw_key[:16])
            raise InvalidCredential("Invalid API key")
        if not api_key.is_active:
            raise InvalidCredential("API key is inactive")
        if api_key.is_expired():
            raise InvalidCredential("API key has expired")

        self._track(self._touch(key_hash))
        return Identity(
            email=api_key.email,
            auth_method=AuthMethod.API_KEY,
            user_id=api_key.user_id,
            key_prefix=api_key.key_prefix,
        )

    async def _touch(self, key_hash: str) -> None:
        try:
            await self.key_store.touch(key_hash)
        except Exception as e:
            self.logger.warning("Failed to update API key usage", error=str(e))

    def _track(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def wait_idle(self) -> None:
        """Wait for background key usage updates to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # -------------------------------------------------------------------------
    # Signed tokens
    # -------------------------------------------------------------------------

    async def _resolve_signed_token(self, token: str) -> Identity:
        issuer = self.settings.auth_issuer_url
        jwks_url = self.settings.jwks_url
        if not issuer or not jwks_url:
            raise InvalidCredential("Signed tokens are not accepted: no trusted issuer configured")

        try:
            header = jwt.get_unverified_header(token)
        except jwt.PyJWTError as e:
            raise InvalidCredential("Malformed token") from e

        algorithm = header.get("alg")
        if algorithm not in self.settings.auth_algorithms:
            raise InvalidCredential(f"Unsupported token algorithm: {algorithm}")
        kid = header.get("kid")
        if not kid:
            raise InvalidCredential("Token header is missing a key id")

        signing_key = await self.jwks_cache.get_signing_key(jwks_url, kid)

        try:
            claims = jwt.decode(
                token,
                signing_key.key,
                algorithms=[algorithm],
                issuer=issuer,
                options={"require": ["exp", "iss"], "verify_aud": False},
            )
        except jwt.ExpiredSignatureError as e:
            raise InvalidCredential("Token has expired") from e
        except jwt.InvalidIssuerError as e:
            raise InvalidCredential("Token issuer is not trusted") from e
        except jwt.PyJWTError as e:
            self.logger.info("Token verification failed", error=str(e))
            raise InvalidCredential("Invalid token") from e

        email = claims.get(self.settings.auth_email_claim)
        if not isinstance(email, str) or not email.strip():
            raise InvalidCredential("Token is missing an email claim")

        roles = _role_names(claims.get(self.settings.auth_roles_claim))
        return Identity(
            email=email.strip(),
            auth_method=AuthMethod.BEARER_TOKEN,
            roles=roles,
            is_admin=self.settings.auth_admin_role in roles,
        )


def _role_names(value: Any) -> Tuple[str, ...]:
    """Roles may arrive as a list of names, a single name, or a mapping keyed by name."""
    if isinstance(value, str):
        return (value,)
    if isinstance(value, dict):
        return tuple(str(k) for k in value)
    if isinstance(value, (list, tuple)):
        return tuple(str(v) for v in value if isinstance(v, (str, int)))
    return ()
