"""
Application Wiring
==================

Builds every component once per application and exposes them to routes
through FastAPI dependencies. Nothing here is a module-level singleton:
each app created by ``create_app`` owns its own set.
"""

from dataclasses import dataclass
from typing import Optional

import httpx
import structlog
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from docgate.config import Settings
from docgate.database import close_db, create_engine, create_session_factory
from docgate.repositories import AccountStore, KeyStore, TokenStore, UsageStore
from docgate.services.account_service import AccountService
from docgate.services.error_translator import ErrorTranslator
from docgate.services.identity import IdentityResolver, JWKSCache, RequestContext
from docgate.services.key_service import APIKeyService
from docgate.services.ledger import CreditLedger
from docgate.services.operations import build_operations
from docgate.services.orchestrator import MeteredOperationOrchestrator
from docgate.services.token_service import TokenService
from docgate.services.usage_recorder import UsageRecorder


@dataclass
class Services:
    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    http_client: httpx.AsyncClient
    usage_store: UsageStore
    identity: IdentityResolver
    ledger: CreditLedger
    recorder: UsageRecorder
    translator: ErrorTranslator
    accounts: AccountService
    keys: APIKeyService
    tokens: TokenService
    orchestrator: MeteredOperationOrchestrator
    owns_http_client: bool = True

    @classmethod
    def build(
        cls,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
        logger=None,
    ) -> "Services":
        """
        Wire the component graph for one application.

        Args:
            settings: Configuration every component reads from.
            http_client: Shared client for upstream calls and key set
                fetches. Created (and later closed) here when omitted.
            logger: Base structlog logger; each component gets a bound child.
        """
        logger = logger or structlog.get_logger("docgate")

        engine = create_engine(settings.database_url)
        session_factory = create_session_factory(engine)
        owns_http_client = http_client is None
        http = http_client or httpx.AsyncClient(timeout=httpx.Timeout(60.0, connect=10.0))

        account_store = AccountStore(session_factory)
        key_store = KeyStore(session_factory)
        usage_store = UsageStore(session_factory)
        token_store = TokenStore(session_factory)

        jwks_cache = JWKSCache(
            http,
            ttl=settings.auth_jwks_cache_ttl,
            timeout=settings.auth_jwks_timeout,
            logger=logger.bind(component="jwks"),
        )
        identity = IdentityResolver(settings, key_store, jwks_cache, logger=logger.bind(component="identity"))
        ledger = CreditLedger(account_store, logger=logger.bind(component="ledger"))
        recorder = UsageRecorder.from_settings(usage_store, settings, logger=logger.bind(component="usage"))
        translator = ErrorTranslator()
        accounts = AccountService(settings, account_store, ledger, logger=logger.bind(component="accounts"))

        orchestrator = MeteredOperationOrchestrator(
            identity=identity,
            accounts=accounts,
            ledger=ledger,
            recorder=recorder,
            translator=translator,
            adapters=build_operations(settings, http, logger=logger.bind(component="upstream")),
            logger=logger.bind(component="orchestrator"),
        )

        return cls(
            settings=settings,
            engine=engine,
            session_factory=session_factory,
            http_client=http,
            usage_store=usage_store,
            identity=identity,
            ledger=ledger,
            recorder=recorder,
            translator=translator,
            accounts=accounts,
            keys=APIKeyService(settings, key_store, logger=logger.bind(component="keys")),
            tokens=TokenService(settings, token_store, ledger, logger=logger.bind(component="tokens")),
            orchestrator=orchestrator,
            owns_http_client=owns_http_client,
        )

    async def aclose(self) -> None:
        await self.recorder.drain()
        await self.identity.wait_idle()
        if self.owns_http_client:
            await self.http_client.aclose()
        await close_db(self.engine)


def get_services(request: Request) -> Services:
    return request.app.state.services


def client_ip(request: Request) -> Optional[str]:
    """First X-Forwarded-For hop, then X-Real-IP, then the peer address."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None


def request_context(request: Request) -> RequestContext:
    return RequestContext(
        endpoint=request.url.path,
        method=request.method,
        request_id=getattr(request.state, "request_id", None),
        ip_address=client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )
