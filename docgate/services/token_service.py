"""
Credit Token Service
====================

Admin-issued codes that grant credits once to whoever redeems them.
"""

from datetime import timedelta
from typing import List, Optional

import structlog

from docgate.config import Settings
from docgate.errors import AuthorizationError, TokenNotFound, TokenStateError, ValidationError
from docgate.models.db_models import CreditToken, generate_token_code, utcnow
from docgate.repositories import TokenStore
from docgate.services.ledger import CreditLedger


class TokenService:
    """Generate, redeem, list and delete redeemable credit tokens."""

    def __init__(self, settings: Settings, tokens: TokenStore, ledger: CreditLedger, logger=None):
        self.settings = settings
        self.tokens = tokens
        self.ledger = ledger
        self.logger = logger or structlog.get_logger(__name__)

    async def generate(self, created_by: str, credits: int, description: Optional[str] = None) -> CreditToken:
        if credits <= 0:
            raise ValidationError("Credits must be greater than 0")

        now = utcnow()
        token = CreditToken(
            code=generate_token_code(),
            credits=credits,
            description=description,
            created_by=created_by,
            created_at=now,
            expires_at=now + timedelta(days=self.settings.credit_token_ttl_days),
            is_used=False,
        )
        token = await self.tokens.create(token)
        self.logger.info("Credit token generated", created_by=created_by, credits=credits, token_id=token.id)
        return token

    async def redeem(self, code: str, user_id: str) -> tuple[CreditToken, int]:
        """
        Redeem a token for ``user_id``.

        Marking the token used and crediting the account share one
        transaction, so a token pays out at most once.

        Returns:
            Tuple of (token, new balance)
        """
        code = code.strip()
        now = utcnow()

        async with self.tokens.transaction() as session:
            token = await self.tokens.get_by_code(code, session=session)
            if token is None:
                raise TokenNotFound("Invalid token")
            if token.is_used:
                raise TokenStateError("Token has already been used")
            if token.is_expired(now):
                raise TokenStateError("Token has expired")

            if not await self.tokens.mark_used(code, used_by=user_id, used_at=now, session=session):
                raise TokenStateError("Token has already been used")
            balance = await self.ledger.credit(user_id, token.credits, session=session)

        token.is_used, token.used_by, token.used_at = True, user_id, now
        self.logger.info("Credit token redeemed", token_id=token.id, user_id=user_id, credits=token.credits)
        return token, balance

    async def list_tokens(self, created_by: Optional[str] = None, is_used: Optional[bool] = None) -> List[CreditToken]:
        return await self.tokens.list(created_by=created_by, is_used=is_used)

    async def delete(self, token_id: int, requested_by: str) -> None:
        token = await self.tokens.get_by_id(token_id)
        if token is None:
            raise TokenNotFound()
        if token.created_by != requested_by:
            raise AuthorizationError("You can only delete tokens you created")
        if token.is_used:
            raise TokenStateError("Cannot delete a token that has already been used")
        if not await self.tokens.delete(token_id):
            raise TokenStateError("Cannot delete a token that has already been used")
        self.logger.info("Credit token deleted", token_id=token_id, requested_by=requested_by)
