"""
Repositories
============

Persistence collaborators for accounts, API keys, usage records and credit
tokens. Each method runs in its own short transaction unless the caller
passes a session to share one.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docgate.models.db_models import Account, APIKey, CreditToken, UsageRecord, utcnow


class _Store:
    """Shared session handling for the stores."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self, session: Optional[AsyncSession] = None) -> AsyncIterator[AsyncSession]:
        if session is not None:
            yield session
            return
        async with self._session_factory() as new_session:
            async with new_session.begin():
                yield new_session

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Open a transaction that several store calls can share."""
        async with self._session() as session:
            yield session


# =============================================================================
# Accounts
# =============================================================================

class AccountStore(_Store):

    async def get(self, user_id: str, session: Optional[AsyncSession] = None) -> Optional[Account]:
        async with self._session(session) as s:
            result = await s.execute(select(Account).where(Account.user_id == user_id))
            return result.scalar_one_or_none()

    async def get_by_email(self, email: str, session: Optional[AsyncSession] = None) -> Optional[Account]:
        async with self._session(session) as s:
            result = await s.execute(select(Account).where(Account.email == email))
            return result.scalar_one_or_none()

    async def create(
        self,
        user_id: str,
        email: str,
        session: Optional[AsyncSession] = None,
    ) -> Account:
        """Insert an account with a zero balance. Raises IntegrityError on duplicates."""
        async with self._session(session) as s:
            account = Account(user_id=user_id, email=email, balance=0)
            s.add(account)
            await s.flush()
            return account

    async def delete(self, user_id: str, session: Optional[AsyncSession] = None) -> bool:
        async with self._session(session) as s:
            result = await s.execute(delete(Account).where(Account.user_id == user_id))
            return result.rowcount > 0

    async def debit_if_sufficient(
        self,
        user_id: str,
        amount: int,
        session: Optional[AsyncSession] = None,
    ) -> Optional[int]:
        """
        Decrement the balance iff it covers the amount, in one statement.

        Returns:
            The new balance, or None when the account is missing or short.
        """
        stmt = (
            update(Account)
            .where(Account.user_id == user_id, Account.balance >= amount)
            .values(balance=Account.balance - amount, updated_at=utcnow())
            .returning(Account.balance)
            .execution_options(synchronize_session=False)
        )
        async with self._session(session) as s:
            result = await s.execute(stmt)
            return result.scalar_one_or_none()

    async def credit(
        self,
        user_id: str,
        amount: int,
        session: Optional[AsyncSession] = None,
    ) -> Optional[int]:
        """Increment the balance. Returns the new balance, or None if the account is missing."""
        stmt = (
            update(Account)
            .where(Account.user_id == user_id)
            .values(balance=Account.balance + amount, updated_at=utcnow())
            .returning(Account.balance)
            .execution_options(synchronize_session=False)
        )
        async with self._session(session) as s:
            result = await s.execute(stmt)
            return result.scalar_one_or_none()

    async def list_all(self) -> List[Account]:
        async with self._session() as s:
            result = await s.execute(select(Account).order_by(Account.created_at.desc()))
            return list(result.scalars().all())

    async def count(self) -> int:
        async with self._session() as s:
            return (await s.execute(select(func.count(Account.id)))).scalar_one()

    async def total_balance(self) -> int:
        async with self._session() as s:
            return (await s.execute(select(func.coalesce(func.sum(Account.balance), 0)))).scalar_one()


# =============================================================================
# API Keys
# =============================================================================

class KeyStore(_Store):

    async def get_by_hash(self, key_hash: str) -> Optional[APIKey]:
        async with self._session() as s:
            result = await s.execute(select(APIKey).where(APIKey.key_hash == key_hash))
            return result.scalar_one_or_none()

    async def get_for_account(self, user_id: str) -> Optional[APIKey]:
        async with self._session() as s:
            result = await s.execute(
                select(APIKey).where(APIKey.user_id == user_id).order_by(APIKey.created_at.desc()).limit(1)
            )
            return result.scalar_one_or_none()

    async def create(self, api_key: APIKey, session: Optional[AsyncSession] = None) -> APIKey:
        async with self._session(session) as s:
            s.add(api_key)
            await s.flush()
            return api_key

    async def update(self, user_id: str, **fields: Any) -> Optional[APIKey]:
        fields["updated_at"] = utcnow()
        async with self._session() as s:
            await s.execute(
                update(APIKey)
                .where(APIKey.user_id == user_id)
                .values(**fields)
                .execution_options(synchronize_session=False)
            )
            result = await s.execute(select(APIKey).where(APIKey.user_id == user_id))
            return result.scalar_one_or_none()

    async def revoke_all_for_account(self, user_id: str, session: Optional[AsyncSession] = None) -> int:
        """Delete every key the account holds. Returns how many were removed."""
        async with self._session(session) as s:
            result = await s.execute(delete(APIKey).where(APIKey.user_id == user_id))
            return result.rowcount

    async def touch(self, key_hash: str) -> None:
        """Bump usage_count and last_used_at for a presented key."""
        now = utcnow()
        async with self._session() as s:
            await s.execute(
                update(APIKey)
                .where(APIKey.key_hash == key_hash)
                .values(usage_count=APIKey.usage_count + 1, last_used_at=now)
                .execution_options(synchronize_session=False)
            )


# =============================================================================
# Usage Records
# =============================================================================

USAGE_DIMENSIONS = ("operation", "user", "user_operation")


class UsageStore(_Store):

    async def append(self, record: UsageRecord) -> None:
        async with self._session() as s:
            s.add(record)

    @staticmethod
    def _date_filter(stmt, start: Optional[datetime], end: Optional[datetime]):
        if start is not None:
            stmt = stmt.where(UsageRecord.created_at >= start)
        if end is not None:
            stmt = stmt.where(UsageRecord.created_at < end)
        return stmt

    async def aggregate_by(
        self,
        dimension: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        operation: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Group usage records by operation, user, or (user, operation).

        Returns rows with total/success/failed call counts and credits charged,
        busiest first.
        """
        if dimension not in USAGE_DIMENSIONS:
            raise ValueError(f"Unknown usage dimension: {dimension}")

        total_calls = func.count(UsageRecord.id).label("total_calls")
        success_calls = func.sum(case((UsageRecord.success.is_(True), 1), else_=0)).label("success_calls")
        failed_calls = func.sum(case((UsageRecord.success.is_(True), 0), else_=1)).label("failed_calls")
        total_credits = func.coalesce(func.sum(UsageRecord.credits_charged), 0).label("total_credits")
        aggregates = [total_calls, success_calls, failed_calls, total_credits]

        if dimension == "operation":
            columns = [UsageRecord.operation_name.label("service_name")]
            group_by = [UsageRecord.operation_name]
        elif dimension == "user":
            columns = [UsageRecord.user_id, func.max(UsageRecord.email).label("email")]
            group_by = [UsageRecord.user_id]
        else:
            columns = [
                UsageRecord.user_id,
                func.max(UsageRecord.email).label("email"),
                UsageRecord.operation_name.label("service_name"),
            ]
            aggregates.append(func.max(UsageRecord.created_at).label("last_used"))
            group_by = [UsageRecord.user_id, UsageRecord.operation_name]

        stmt = select(*columns, *aggregates).group_by(*group_by)
        stmt = self._date_filter(stmt, start, end)
        if operation:
            stmt = stmt.where(UsageRecord.operation_name == operation)
        stmt = stmt.order_by(total_calls.desc())

        async with self._session() as s:
            result = await s.execute(stmt)
            return [dict(row._mapping) for row in result]

    async def history(
        self,
        user_id: Optional[str] = None,
        operation: Optional[str] = None,
        limit: int = 50,
        skip: int = 0,
    ) -> List[UsageRecord]:
        stmt = select(UsageRecord)
        if user_id is not None:
            stmt = stmt.where(UsageRecord.user_id == user_id)
        if operation is not None:
            stmt = stmt.where(UsageRecord.operation_name == operation)
        stmt = stmt.order_by(UsageRecord.created_at.desc(), UsageRecord.id.desc()).offset(skip).limit(limit)

        async with self._session() as s:
            result = await s.execute(stmt)
            return list(result.scalars().all())


# =============================================================================
# Credit Tokens
# =============================================================================

class TokenStore(_Store):

    async def create(self, token: CreditToken) -> CreditToken:
        async with self._session() as s:
            s.add(token)
            await s.flush()
            return token

    async def get_by_code(self, code: str, session: Optional[AsyncSession] = None) -> Optional[CreditToken]:
        async with self._session(session) as s:
            result = await s.execute(select(CreditToken).where(CreditToken.code == code))
            return result.scalar_one_or_none()

    async def get_by_id(self, token_id: int) -> Optional[CreditToken]:
        async with self._session() as s:
            result = await s.execute(select(CreditToken).where(CreditToken.id == token_id))
            return result.scalar_one_or_none()

    async def list(self, created_by: Optional[str] = None, is_used: Optional[bool] = None) -> List[CreditToken]:
        stmt = select(CreditToken)
        if created_by is not None:
            stmt = stmt.where(CreditToken.created_by == created_by)
        if is_used is not None:
            stmt = stmt.where(CreditToken.is_used.is_(is_used))
        stmt = stmt.order_by(CreditToken.created_at.desc(), CreditToken.id.desc())

        async with self._session() as s:
            result = await s.execute(stmt)
            return list(result.scalars().all())

    async def mark_used(
        self,
        code: str,
        used_by: str,
        used_at: datetime,
        session: Optional[AsyncSession] = None,
    ) -> bool:
        """Flip is_used false -> true. False if the token was already used (or is missing)."""
        stmt = (
            update(CreditToken)
            .where(CreditToken.code == code, CreditToken.is_used.is_(False))
            .values(is_used=True, used_by=used_by, used_at=used_at)
            .execution_options(synchronize_session=False)
        )
        async with self._session(session) as s:
            result = await s.execute(stmt)
            return result.rowcount == 1

    async def delete(self, token_id: int) -> bool:
        """Delete an unused token. False if it is gone or was redeemed meanwhile."""
        async with self._session() as s:
            result = await s.execute(
                delete(CreditToken).where(CreditToken.id == token_id, CreditToken.is_used.is_(False))
            )
            return result.rowcount == 1
