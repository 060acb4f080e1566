"""ORM models and Pydantic request/response schemas."""

from docgate.models.db_models import (
    Account,
    APIKey,
    CreditToken,
    UsageRecord,
)

__all__ = [
    "Account",
    "APIKey",
    "CreditToken",
    "UsageRecord",
]
