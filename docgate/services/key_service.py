"""
API Key Service
===============

Business logic for API key management with database persistence.
Each account holds at most one key; creating a key replaces the old one.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import structlog
from sqlalchemy.exc import IntegrityError

from docgate.config import Settings
from docgate.errors import InternalError, KeyNotFound, ValidationError
from docgate.models.db_models import APIKey, generate_api_key, hash_key, utcnow
from docgate.repositories import KeyStore
from docgate.services.identity import looks_like_api_key


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class APIKeyService:
    """Service for managing API keys."""

    def __init__(self, settings: Settings, keys: KeyStore, logger=None):
        self.settings = settings
        self.keys = keys
        self.logger = logger or structlog.get_logger(__name__)

    def _check_expiry(self, expires_at: Optional[datetime], now: datetime) -> Optional[datetime]:
        if expires_at is None:
            return None
        expires_at = _naive_utc(expires_at)
        if expires_at <= now:
            raise ValidationError("Expiration date must be in the future")
        if expires_at > now + timedelta(days=self.settings.api_key_max_lifetime_days):
            raise ValidationError("Expiration date cannot be more than 1 year in the future")
        return expires_at

    async def create_key(
        self,
        user_id: str,
        email: str,
        key_name: str,
        expires_at: Optional[datetime] = None,
    ) -> tuple[APIKey, str]:
        """
        Create a new API key, revoking any key the account already has.

        Returns:
            Tuple of (APIKey, full_key)
            The full_key is only available at creation.
        """
        now = utcnow()
        expires_at = self._check_expiry(expires_at, now)

        # A concurrent create for the same account trips the unique user_id; retry once.
        for attempt in range(2):
            full_key, key_hash, display_prefix = generate_api_key(self.settings.api_key_prefix)
            api_key = APIKey(
                user_id=user_id,
                email=email,
                key_name=key_name,
                key_hash=key_hash,
                key_prefix=display_prefix,
                is_active=True,
                usage_count=0,
                expires_at=expires_at,
                created_at=now,
                updated_at=now,
            )
            try:
                async with self.keys.transaction() as session:
                    revoked = await self.keys.revoke_all_for_account(user_id, session=session)
                    await self.keys.create(api_key, session=session)
            except IntegrityError:
                self.logger.warning("Concurrent API key creation", user_id=user_id, attempt=attempt)
                continue

            self.logger.info("API key created", user_id=user_id, key_prefix=display_prefix, revoked=revoked)
            return api_key, full_key

        raise InternalError("Failed to create API key")

    async def get_key(self, user_id: str) -> APIKey:
        api_key = await self.keys.get_for_account(user_id)
        if api_key is None:
            raise KeyNotFound("No API key found")
        return api_key

    async def update_key(
        self,
        user_id: str,
        key_name: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> APIKey:
        fields: Dict[str, Any] = {}
        if key_name is not None:
            fields["key_name"] = key_name
        if is_active is not None:
            fields["is_active"] = is_active
        if not fields:
            raise ValidationError("At least one field (keyName or isActive) must be provided")

        api_key = await self.keys.update(user_id, **fields)
        if api_key is None:
            raise KeyNotFound("No API key found")
        self.logger.info("API key updated", user_id=user_id, fields=sorted(fields))
        return api_key

    async def revoke_key(self, user_id: str) -> None:
        removed = await self.keys.revoke_all_for_account(user_id)
        if not removed:
            raise KeyNotFound("No API key found")
        self.logger.info("API key revoked", user_id=user_id)

    async def get_stats(self, user_id: str) -> Dict[str, Any]:
        api_key = await self.keys.get_for_account(user_id)
        if api_key is None:
            return {
                "total_keys": 0,
                "active_keys": 0,
                "inactive_keys": 0,
                "expired_keys": 0,
                "total_usage": 0,
            }

        now = utcnow()
        expired = api_key.is_expired(now)
        active = api_key.is_valid(now)
        return {
            "total_keys": 1,
            "active_keys": 1 if active else 0,
            "inactive_keys": 0 if api_key.is_active else 1,
            "expired_keys": 1 if expired else 0,
            "total_usage": api_key.usage_count,
            "last_used_at": api_key.last_used_at,
            "created_at": api_key.created_at,
            "days_until_expiry": api_key.days_until_expiry(now),
        }

    async def validate_key(self, full_key: str) -> tuple[bool, str, Optional[APIKey]]:
        """
        Check a presented key without authenticating with it.

        Returns:
            Tuple of (valid, message, APIKey or None)
        """
        if not looks_like_api_key(full_key, self.settings.api_key_prefix):
            return False, "Invalid API key format", None

        api_key = await self.keys.get_by_hash(hash_key(full_key))
        if api_key is None:
            return False, "API key not found", None
        if not api_key.is_active:
            return False, "API key is inactive", api_key
        if api_key.is_expired():
            return False, "API key has expired", api_key
        return True, "API key is valid", api_key
