"""
Database Models
===============

SQLAlchemy ORM models for persistent storage.
"""

import hashlib
import secrets
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import (
    String, Integer, Boolean, DateTime, Text, Index, CheckConstraint
)
from sqlalchemy.orm import Mapped, mapped_column

from docgate.database import Base


API_KEY_SECRET_BYTES = 32


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def hash_key(key: str) -> str:
    """Hash an API key for secure storage."""
    return hashlib.sha256(key.encode()).hexdigest()


def generate_api_key(prefix: str) -> tuple[str, str, str]:
    """
    Generate a new API key.

    Returns:
        Tuple of (full_key, key_hash, display_prefix).
        The full key is prefix + 64 hex chars and is only available here.
    """
    random_hex = secrets.token_hex(API_KEY_SECRET_BYTES)
    full_key = f"{prefix}{random_hex}"
    return full_key, hash_key(full_key), f"{prefix}{random_hex[:8]}"


def generate_token_code() -> str:
    """Generate a redeemable credit token code (32 hex chars)."""
    return secrets.token_hex(16)


class Account(Base):
    """
    A credit-holding user account.

    The balance is only ever changed through conditional UPDATEs issued by
    the ledger, and the CHECK constraint backs the non-negative invariant.
    """
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    balance: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_accounts_balance_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Account {self.user_id} ({self.balance} credits)>"


class APIKey(Base):
    """
    API key (opaque bearer credential) owned by an account.

    The actual key is only shown once on creation.
    We store a hash for validation.
    """
    __tablename__ = "api_keys"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    key_name: Mapped[str] = mapped_column(String(50), nullable=False)
    key_hash: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    key_prefix: Mapped[str] = mapped_column(String(32), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    usage_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_used_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<APIKey {self.key_prefix} ({self.user_id})>"

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or utcnow())

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        return self.is_active and not self.is_expired(now)

    def days_until_expiry(self, now: Optional[datetime] = None) -> Optional[int]:
        if self.expires_at is None:
            return None
        days = int((self.expires_at - (now or utcnow())).total_seconds() // 86400)
        return max(days, 0)


class UsageRecord(Base):
    """
    Usage record for one metered request outcome. Append-only.
    """
    __tablename__ = "usage_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)

    # Request info
    operation_name: Mapped[str] = mapped_column(String(50), nullable=False)
    endpoint: Mapped[str] = mapped_column(String(200), nullable=False)
    method: Mapped[str] = mapped_column(String(10), default="POST", nullable=False)
    request_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    auth_method: Mapped[str] = mapped_column(String(20), nullable=False)

    # Outcome
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    credits_charged: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    processing_time_ms: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Timestamp
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    # Indexes for common queries
    __table_args__ = (
        Index("idx_usage_created", "created_at"),
        Index("idx_usage_user_created", "user_id", "created_at"),
        Index("idx_usage_operation_created", "operation_name", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<UsageRecord {self.operation_name} {self.user_id} ({self.credits_charged} credits)>"


class CreditToken(Base):
    """
    Admin-issued code that grants credits once to whoever redeems it.
    """
    __tablename__ = "credit_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    credits: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    created_by: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    is_used: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    used_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    used_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint("credits > 0", name="ck_credit_tokens_credits_positive"),
    )

    def __repr__(self) -> str:
        return f"<CreditToken {self.code[:8]}... ({self.credits} credits)>"

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) > self.expires_at
