"""
Metered Operation Pipeline
==========================

One request lifecycle shared by every upstream operation:

    authenticate -> look up operation -> validate body
    -> resolve account (auto-provision) -> check balance -> call upstream
    -> settle -> record usage -> shape response

Every exit, successful or not, submits exactly one usage record. An
upstream ``success=false`` is recorded as successful only when it was
charged.
"""

import asyncio
from typing import Any, Dict, Mapping, Optional, Union

import pydantic
import structlog

from docgate.errors import (
    GatewayError,
    InsufficientCreditsError,
    InternalError,
    NotFoundError,
    SettlementError,
    UpstreamSemanticFailure,
    UpstreamUnavailableError,
    ValidationError,
)
from docgate.models.db_models import utcnow
from docgate.models.schemas import OperationRequest, OperationResponse
from docgate.services.account_service import AccountService
from docgate.services.error_translator import ErrorTranslator
from docgate.services.identity import AuthMethod, IdentityResolver, RequestContext
from docgate.services.ledger import CreditLedger
from docgate.services.operations import OPERATIONS, ExternalOperation, OperationDescriptor
from docgate.services.usage_recorder import UsageEntry, UsageRecorder

ANONYMOUS = "anonymous"


def describe_validation_error(exc: pydantic.ValidationError) -> str:
    """First validation problem as a short human-readable sentence."""
    errors = exc.errors()
    if not errors:
        return "Invalid request body"
    first = errors[0]
    if first.get("type") == "json_invalid":
        return "Invalid JSON in request body"
    message = first.get("msg", "Invalid value")
    if message.startswith("Value error, "):
        return message[len("Value error, "):]
    field = ".".join(str(p) for p in first.get("loc", ()))
    return f"{field}: {message}" if field else message


class MeteredOperationOrchestrator:
    """Runs one metered upstream operation for one request."""

    def __init__(
        self,
        identity: IdentityResolver,
        accounts: AccountService,
        ledger: CreditLedger,
        recorder: UsageRecorder,
        translator: ErrorTranslator,
        adapters: Mapping[str, ExternalOperation],
        descriptors: Mapping[str, OperationDescriptor] = OPERATIONS,
        logger=None,
    ):
        self.identity = identity
        self.accounts = accounts
        self.ledger = ledger
        self.recorder = recorder
        self.translator = translator
        self.adapters = adapters
        self.descriptors = descriptors
        self.logger = logger or structlog.get_logger(__name__)

    def descriptor(self, name: str) -> OperationDescriptor:
        descriptor = self.descriptors.get(name)
        if descriptor is None or name not in self.adapters:
            raise NotFoundError(f"Unknown operation: {name}")
        return descriptor

    async def execute(
        self,
        name: str,
        authorization: Optional[str],
        body: Union[bytes, str],
        ctx: RequestContext,
    ) -> Dict[str, Any]:
        """
        Run the pipeline and return the response body for a 200.

        Raises:
            GatewayError: every failure exit, already recorded.
        """
        log = self.logger.bind(operation=name, request_id=ctx.request_id)
        charged = 0
        owner: Optional[str] = None

        try:
            ctx.identity = await self.identity.resolve(authorization, allow_api_key=True)
            descriptor = self.descriptor(name)
            request = self._validate(descriptor, body)

            account = await self.accounts.get_or_provision(ctx.identity)
            owner = account.user_id
            if account.balance < descriptor.cost:
                raise InsufficientCreditsError(required=descriptor.cost, available=account.balance)

            upstream = await self._invoke(descriptor, request)
            succeeded = upstream["success"]

            remaining: Optional[int] = None
            if succeeded or descriptor.charge_on_upstream_response:
                remaining = await self._settle(descriptor, account.user_id, log)
                charged = descriptor.cost

            if not succeeded:
                technical = upstream.get("error_message") or f"{name} failed"
                self._record(ctx, name, owner, success=bool(charged), charged=charged, error=technical)
                log.info("Upstream reported failure", charged=charged, error=technical)
                raise UpstreamSemanticFailure(
                    f"{name} failed",
                    technical_message=technical,
                    raw_response=upstream,
                    translation=self.translator.translate(technical),
                    verbatim=ctx.identity.auth_method is AuthMethod.API_KEY,
                )

            self._record(ctx, name, owner, success=True, charged=charged)
            log.info("Operation completed", charged=charged, remaining=remaining)

        except UpstreamSemanticFailure:
            raise
        except GatewayError as e:
            self._record(ctx, name, owner, success=False, charged=charged, error=e.message)
            log.info("Operation rejected", error=e.error, reason=e.message)
            raise
        except asyncio.CancelledError:
            self._record(ctx, name, owner, success=False, charged=charged, error="Request cancelled")
            log.info("Operation cancelled")
            raise
        except Exception as e:
            self._record(ctx, name, owner, success=False, charged=charged, error=str(e))
            log.error("Operation failed unexpectedly", error=str(e), exc_info=True)
            raise InternalError("Internal server error") from e

        if ctx.identity.auth_method is AuthMethod.API_KEY:
            return upstream

        return OperationResponse(
            message=f"{descriptor.description or name} completed successfully",
            user_id=account.user_id,
            remaining_credits=remaining,
            result=upstream.get(descriptor.result_field),
            processed_at=utcnow(),
        ).model_dump(by_alias=True, mode="json")

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def _validate(self, descriptor: OperationDescriptor, body: Union[bytes, str]) -> OperationRequest:
        try:
            return descriptor.request_model.model_validate_json(body or b"")
        except pydantic.ValidationError as e:
            raise ValidationError(describe_validation_error(e)) from e

    async def _invoke(self, descriptor: OperationDescriptor, request: OperationRequest) -> Dict[str, Any]:
        adapter = self.adapters[descriptor.name]
        try:
            return await asyncio.wait_for(adapter.invoke(request.model_dump()), timeout=descriptor.timeout)
        except asyncio.TimeoutError as e:
            raise UpstreamUnavailableError(f"{descriptor.name} timed out") from e

    async def _settle(self, descriptor: OperationDescriptor, user_id: str, log) -> int:
        try:
            return await self.ledger.debit(user_id, descriptor.cost)
        except Exception as e:
            # Upstream work is done; nothing is reversed. Operators reconcile.
            log.error("Settlement failed after upstream response", user_id=user_id, cost=descriptor.cost, error=str(e))
            raise SettlementError("Operation completed but billing failed") from e

    def _record(
        self,
        ctx: RequestContext,
        operation: str,
        owner: Optional[str],
        success: bool,
        charged: int,
        error: Optional[str] = None,
    ) -> None:
        identity = ctx.identity
        self.recorder.submit(UsageEntry(
            user_id=owner or (identity.user_id or identity.email if identity else ANONYMOUS),
            email=identity.email if identity else "",
            operation_name=operation[:50],
            endpoint=ctx.endpoint,
            method=ctx.method,
            auth_method=identity.auth_method.value if identity else "none",
            success=success,
            credits_charged=charged,
            error_message=error,
            processing_time_ms=ctx.elapsed_ms(),
            request_id=ctx.request_id,
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
        ))
