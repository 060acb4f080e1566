"""
Credit Ledger
=============

The only code path that changes an account balance.
"""

from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from docgate.errors import AccountNotFound, InsufficientCreditsError, ValidationError
from docgate.repositories import AccountStore


class CreditLedger:
    """
    Balance reads, conditional debits and credit additions.

    Debits are a single conditional UPDATE, so concurrent debits against
    one account can never take the balance below zero.
    """

    def __init__(self, accounts: AccountStore, logger=None):
        self.accounts = accounts
        self.logger = logger or structlog.get_logger(__name__)

    async def get_balance(self, user_id: str) -> int:
        account = await self.accounts.get(user_id)
        if account is None:
            raise AccountNotFound()
        return account.balance

    async def debit(self, user_id: str, amount: int, session: Optional[AsyncSession] = None) -> int:
        """
        Decrement the balance iff it covers ``amount``.

        Returns:
            The new balance.

        Raises:
            InsufficientCreditsError: the balance is lower than ``amount``.
            AccountNotFound: no such account.
        """
        if amount <= 0:
            raise ValidationError("Debit amount must be positive")

        new_balance = await self.accounts.debit_if_sufficient(user_id, amount, session=session)
        if new_balance is not None:
            self.logger.info("Credits debited", user_id=user_id, amount=amount, balance=new_balance)
            return new_balance

        # The conditional update matched nothing: find out which condition failed.
        account = await self.accounts.get(user_id, session=session)
        if account is None:
            raise AccountNotFound()
        raise InsufficientCreditsError(required=amount, available=account.balance)

    async def credit(self, user_id: str, amount: int, session: Optional[AsyncSession] = None) -> int:
        if amount <= 0:
            raise ValidationError("Credit amount must be positive")

        new_balance = await self.accounts.credit(user_id, amount, session=session)
        if new_balance is None:
            raise AccountNotFound()
        self.logger.info("Credits added", user_id=user_id, amount=amount, balance=new_balance)
        return new_balance
