"""
Admission pipeline for billed verification endpoints

Each request runs strictly in order, stopping at the first failure:

    AUTH -> VALIDATE -> RATE_LIMIT -> CACHE_LOOKUP -> BALANCE_CHECK
         -> EXECUTE -> SETTLE -> RESPOND

Every exit writes exactly one usage record.
"""
from pydantic import BaseModel, ValidationError
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Type
import asyncio
import logging
import time
import uuid

from verifylens.core.config import Settings, settings as default_settings
from verifylens.schemas.verify import (
    ExactVerifyRequest,
    SmartVerifyRequest,
    validation_error_details,
)
from verifylens.services.api_key_service import APIKeyService
from verifylens.services.cache_service import ResultCache
from verifylens.services.cooldown_service import CooldownTracker
from verifylens.services.ledger_service import CreditLedger
from verifylens.services.usage_service import UsageLogService, UsageRecord
from verifylens.services.verification_provider import VerificationOutcome, VerificationProvider

logger = logging.getLogger(__name__)


ProviderCall = Callable[[VerificationProvider, BaseModel], Awaitable[VerificationOutcome]]


@dataclass(frozen=True)
class EndpointPolicy:
    """Fixed business parameters of one billed endpoint"""
    name: str
    discriminator: str
    label: str
    request_model: Type[BaseModel]
    call: ProviderCall
    cost: int
    cooldown_seconds: int
    cache_ttl_days: int
    not_found_error: str
    not_found_message: str

    def describe(self, documentation_url: str) -> Dict[str, Any]:
        return {
            "message": f"{self.label} endpoint. Use POST with a JSON body.",
            "requiredCredits": self.cost,
            "cooldownSeconds": self.cooldown_seconds,
            "documentation": documentation_url,
        }


def build_endpoint_policies(config: Settings = default_settings) -> Dict[str, EndpointPolicy]:
    """
    Build the policies for the exact and smart endpoints from settings

    Returns:
        Dict keyed by discriminator ("exact", "smart")
    """
    return {
        "exact": EndpointPolicy(
            name="exact_verify",
            discriminator="exact",
            label="Exact verification",
            request_model=ExactVerifyRequest,
            call=lambda provider, payload: provider.verify_exact(payload),
            cost=config.EXACT_VERIFY_COST,
            cooldown_seconds=config.EXACT_VERIFY_COOLDOWN,
            cache_ttl_days=config.CACHE_TTL_DAYS,
            not_found_error="User not found",
            not_found_message="Unable to find exact match for user",
        ),
        "smart": EndpointPolicy(
            name="smart_verify",
            discriminator="smart",
            label="Smart verification",
            request_model=SmartVerifyRequest,
            call=lambda provider, payload: provider.verify_smart(payload),
            cost=config.SMART_VERIFY_COST,
            cooldown_seconds=config.SMART_VERIFY_COOLDOWN,
            cache_ttl_days=config.CACHE_TTL_DAYS,
            not_found_error="Verification failed",
            not_found_message="Unable to verify user",
        ),
    }


@dataclass
class PipelineRequest:
    """Inbound request as seen by the pipeline"""
    api_key: Optional[str]
    body: bytes
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass
class PipelineResponse:
    """HTTP response plus the audit facts recorded for it"""
    status_code: int
    content: Dict[str, Any]
    headers: Dict[str, str] = field(default_factory=dict)
    credits_used: int = 0
    successful: bool = False
    duplicate: bool = False
    error_message: Optional[str] = None


@dataclass
class _Attempt:
    policy: EndpointPolicy
    request: PipelineRequest
    request_id: str
    started: float
    credential_id: Optional[str] = None
    account_id: Optional[str] = None

    def response(self, status_code: int, content: Dict[str, Any], headers: Optional[Dict[str, str]] = None, **audit) -> PipelineResponse:
        all_headers = {"X-Request-ID": self.request_id}
        all_headers.update(headers or {})
        return PipelineResponse(status_code=status_code, content=content, headers=all_headers, **audit)

    def usage_record(self, response: PipelineResponse) -> UsageRecord:
        return UsageRecord(
            endpoint=self.policy.name,
            request_id=self.request_id,
            status_code=response.status_code,
            response_time_ms=int((time.monotonic() - self.started) * 1000),
            credential_id=self.credential_id,
            account_id=self.account_id,
            credits_used=response.credits_used,
            was_successful=response.successful,
            was_duplicate=response.duplicate,
            ip_address=self.request.ip_address,
            user_agent=self.request.user_agent,
            error_message=response.error_message,
        )


class AdmissionPipeline:
    """
    Orchestrates authentication, cooldowns, caching, billing and auditing
    around a single verification call
    """

    def __init__(
        self,
        credentials: APIKeyService,
        cooldowns: CooldownTracker,
        cache: ResultCache,
        ledger: CreditLedger,
        usage_log: UsageLogService,
        provider: VerificationProvider,
        execute_timeout: float = default_settings.VERIFICATION_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.time,
        request_id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        self.credentials = credentials
        self.cooldowns = cooldowns
        self.cache = cache
        self.ledger = ledger
        self.usage_log = usage_log
        self.provider = provider
        self.execute_timeout = execute_timeout
        self.clock = clock
        self.request_id_factory = request_id_factory

    async def handle(self, policy: EndpointPolicy, request: PipelineRequest) -> PipelineResponse:
        """
        Run one request through the pipeline

        Args:
            policy: Endpoint being called
            request: Inbound request

        Returns:
            PipelineResponse ready to be rendered as JSON
        """
        attempt = _Attempt(
            policy=policy,
            request=request,
            request_id=self.request_id_factory(),
            started=time.monotonic(),
        )

        try:
            response = await self._run(attempt)
        except Exception as e:
            logger.error(
                f"[{attempt.request_id}] {policy.name} failed: {type(e).__name__}: {e}",
                exc_info=True,
            )
            response = attempt.response(
                500,
                {
                    "error": "Internal server error",
                    "message": "Verification service temporarily unavailable",
                    "requestId": attempt.request_id,
                },
                error_message=f"Internal error: {type(e).__name__}",
            )

        try:
            await self.usage_log.record(attempt.usage_record(response))
        except Exception as e:
            logger.error(f"[{attempt.request_id}] Usage record for {policy.name} not written: {e}")
        return response

    async def _run(self, attempt: _Attempt) -> PipelineResponse:
        policy = attempt.policy

        # AUTH
        auth = await self.credentials.authenticate(attempt.request.api_key)
        if not auth.ok:
            return attempt.response(
                401,
                {"error": "Authentication failed", "message": auth.message},
                error_message=auth.message,
            )

        client = auth.client
        attempt.credential_id = client.credential_id
        attempt.account_id = client.account_id

        # VALIDATE
        try:
            payload = policy.request_model.model_validate_json(attempt.request.body or b"")
        except ValidationError as e:
            return attempt.response(
                400,
                {"error": "Validation failed", "details": validation_error_details(e)},
                error_message="Validation failed",
            )

        # RATE_LIMIT
        decision = await self.cooldowns.check(client.account_id, policy.name, policy.cooldown_seconds)
        if not decision.allowed:
            reset_at = datetime.fromtimestamp(self.clock() + decision.retry_after, tz=timezone.utc)
            return attempt.response(
                429,
                {
                    "error": "Rate limit exceeded",
                    "message": decision.message,
                    "retryAfter": decision.retry_after,
                },
                headers={
                    "Retry-After": str(decision.retry_after),
                    "X-RateLimit-Limit": "1",
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": reset_at.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
                },
                error_message="Rate limit exceeded",
            )

        # CACHE_LOOKUP
        search_params = {
            "type": policy.discriminator,
            **payload.model_dump(by_alias=True, exclude_none=True),
        }
        search_hash = self.cache.compute_key(client.account_id, search_params)

        cached = await self.cache.lookup(client.account_id, search_hash)
        if cached is not None:
            logger.info(f"[{attempt.request_id}] {policy.name} cache hit for account {client.account_id}")
            return attempt.response(
                200,
                {
                    "success": True,
                    "data": cached,
                    "fromCache": True,
                    "creditsUsed": 0,
                    "requestId": attempt.request_id,
                },
                headers={"X-Cache": "HIT"},
                successful=True,
                duplicate=True,
            )

        # BALANCE_CHECK
        if not await self.ledger.has_sufficient_balance(client.account_id, policy.cost):
            balance = await self.ledger.get_balance(client.account_id)
            return attempt.response(
                402,
                {
                    "error": "Insufficient credits",
                    "message": f"This verification requires {policy.cost} credits. Please purchase more credits.",
                    "requiredCredits": policy.cost,
                    "currentBalance": balance or 0,
                },
                error_message="Insufficient credits",
            )

        # EXECUTE
        try:
            outcome = await asyncio.wait_for(
                policy.call(self.provider, payload), timeout=self.execute_timeout
            )
        except asyncio.TimeoutError:
            logger.error(
                f"[{attempt.request_id}] {policy.name} provider timed out after {self.execute_timeout}s"
            )
            return attempt.response(
                504,
                {
                    "error": "Gateway timeout",
                    "message": "Verification service did not respond in time",
                    "requestId": attempt.request_id,
                },
                error_message="Verification timed out",
            )

        if not outcome.found:
            return attempt.response(
                404,
                {
                    "error": policy.not_found_error,
                    "message": outcome.message or policy.not_found_message,
                    "creditsUsed": 0,
                    "requestId": attempt.request_id,
                },
                error_message=outcome.message or "Verification failed",
            )

        # SETTLE
        debit = await self.ledger.debit(
            client.account_id,
            policy.cost,
            f"{policy.label} for {payload.username}",
            credential_id=client.credential_id,
        )
        if not debit.ok:
            # Provider work was done but could not be billed
            logger.error(
                f"[{attempt.request_id}] Unbilled {policy.name} call for account "
                f"{client.account_id}: debit failed ({debit.failure.value})"
            )
            return attempt.response(
                500,
                {
                    "error": "Internal server error",
                    "message": "Verification service temporarily unavailable",
                    "requestId": attempt.request_id,
                },
                error_message=f"Credit deduction failed: {debit.failure.value}",
            )

        try:
            await self.cache.store(client.account_id, search_hash, outcome.data, policy.cache_ttl_days)
        except Exception as e:
            logger.error(f"[{attempt.request_id}] Failed to cache {policy.name} result: {e}")
        await self.cooldowns.commit(client.account_id, policy.name, policy.cooldown_seconds)

        # RESPOND
        logger.info(
            f"[{attempt.request_id}] {policy.name} charged {policy.cost} credits to account "
            f"{client.account_id} (balance {debit.new_balance})"
        )
        return attempt.response(
            200,
            {
                "success": True,
                "data": outcome.data,
                "fromCache": False,
                "creditsUsed": policy.cost,
                "currentBalance": debit.new_balance,
                "requestId": attempt.request_id,
            },
            headers={
                "X-Cache": "MISS",
                "X-Credits-Used": str(policy.cost),
                "X-Credits-Remaining": str(debit.new_balance),
            },
            credits_used=policy.cost,
            successful=True,
        )
