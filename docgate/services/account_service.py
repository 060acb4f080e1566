"""
Account Service
===============

Account lookup, auto-provisioning, registration and admin views.
"""

from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy.exc import IntegrityError

from docgate.config import Settings
from docgate.errors import AccountNotFound, ConflictError, InternalError
from docgate.models.db_models import Account
from docgate.repositories import AccountStore
from docgate.services.identity import Identity
from docgate.services.ledger import CreditLedger


class AccountService:
    """Service for managing credit-holding accounts."""

    def __init__(
        self,
        settings: Settings,
        accounts: AccountStore,
        ledger: CreditLedger,
        logger=None,
    ):
        self.settings = settings
        self.accounts = accounts
        self.ledger = ledger
        self.logger = logger or structlog.get_logger(__name__)

    async def get_or_provision(self, identity: Identity) -> Account:
        """
        Find the caller's account, creating it on first contact.

        API keys always belong to an existing account. Signed-token callers
        are matched by email and get a fresh account with the starting
        balance when none exists.
        """
        if identity.user_id is not None:
            account = await self.accounts.get(identity.user_id)
            if account is None:
                raise AccountNotFound()
            return account

        account = await self.accounts.get_by_email(identity.email)
        if account is not None:
            return account
        return await self.provision(identity.email, identity.email)

    async def provision(self, user_id: str, email: str) -> Account:
        """
        Create an account and grant the starting balance in one transaction.

        If a concurrent request created the same account first, that
        account is returned instead.
        """
        try:
            async with self.accounts.transaction() as session:
                await self.accounts.create(user_id, email, session=session)
                if self.settings.starting_balance > 0:
                    await self.ledger.credit(user_id, self.settings.starting_balance, session=session)
        except IntegrityError:
            existing = await self.accounts.get_by_email(email) or await self.accounts.get(user_id)
            if existing is None:
                raise InternalError("Account provisioning failed")
            self.logger.info("Account provisioned concurrently", user_id=existing.user_id)
            return existing

        account = await self.accounts.get(user_id)
        if account is None:
            raise InternalError("Account provisioning failed")
        self.logger.info(
            "Account provisioned",
            user_id=user_id,
            starting_balance=self.settings.starting_balance,
        )
        return account

    async def register(self, identity: Identity, user_id: Optional[str] = None) -> Account:
        user_id = (user_id or "").strip() or identity.email
        if await self.accounts.get_by_email(identity.email) is not None:
            raise ConflictError("User already registered")
        if await self.accounts.get(user_id) is not None:
            raise ConflictError("User ID already taken")

        account = await self.provision(user_id, identity.email)
        if account.user_id != user_id:
            raise ConflictError("User already registered")
        return account

    # -------------------------------------------------------------------------
    # Admin views
    # -------------------------------------------------------------------------

    async def get(self, user_id: str) -> Account:
        account = await self.accounts.get(user_id)
        if account is None:
            raise AccountNotFound()
        return account

    async def list_accounts(self) -> List[Account]:
        return await self.accounts.list_all()

    async def stats(self) -> Dict[str, Any]:
        total_users = await self.accounts.count()
        total_credits = await self.accounts.total_balance()
        return {
            "total_users": total_users,
            "total_credits": total_credits,
            "avg_credits": (total_credits / total_users) if total_users else 0.0,
        }
