"""Service layer: identity, credits, usage, error translation and the metered pipeline."""

from docgate.services.account_service import AccountService
from docgate.services.error_translator import ErrorTranslator
from docgate.services.identity import AuthMethod, Identity, IdentityResolver, JWKSCache, RequestContext
from docgate.services.key_service import APIKeyService
from docgate.services.ledger import CreditLedger
from docgate.services.orchestrator import MeteredOperationOrchestrator
from docgate.services.token_service import TokenService
from docgate.services.usage_recorder import UsageEntry, UsageRecorder

__all__ = [
    "AccountService",
    "APIKeyService",
    "AuthMethod",
    "CreditLedger",
    "ErrorTranslator",
    "Identity",
    "IdentityResolver",
    "JWKSCache",
    "MeteredOperationOrchestrator",
    "RequestContext",
    "TokenService",
    "UsageEntry",
    "UsageRecorder",
]
