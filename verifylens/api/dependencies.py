"""
FastAPI dependencies for wiring services and authenticating callers
"""
from fastapi import Depends, HTTPException, status, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from typing import Optional
import secrets

from verifylens.core.config import settings
from verifylens.db.session import AsyncSessionLocal
from verifylens.services.api_key_service import APIKeyService, AuthenticatedClient
from verifylens.services.cache_service import ResultCache
from verifylens.services.cooldown_service import CooldownTracker
from verifylens.services.ledger_service import CreditLedger
from verifylens.services.pipeline import AdmissionPipeline
from verifylens.services.usage_service import UsageLogService
from verifylens.services.verification_provider import VerificationProvider


def get_session_factory() -> async_sessionmaker:
    """Session factory handed to store services"""
    return AsyncSessionLocal


async def get_db(
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> AsyncSession:
    """
    Dependency for getting async database sessions

    Yields:
        AsyncSession: Database session
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_cooldown_tracker(request: Request) -> CooldownTracker:
    """Cooldown tracker created at startup"""
    return request.app.state.cooldown_tracker


def get_verification_provider(request: Request) -> VerificationProvider:
    """Verification provider created at startup"""
    return request.app.state.verification_provider


def get_api_key_service(
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> APIKeyService:
    return APIKeyService(session_factory)


def get_credit_ledger(
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> CreditLedger:
    return CreditLedger(session_factory)


def get_pipeline(
    session_factory: async_sessionmaker = Depends(get_session_factory),
    cooldowns: CooldownTracker = Depends(get_cooldown_tracker),
    provider: VerificationProvider = Depends(get_verification_provider),
) -> AdmissionPipeline:
    """
    Build the admission pipeline with its collaborators

    Returns:
        AdmissionPipeline for the current request
    """
    return AdmissionPipeline(
        credentials=APIKeyService(session_factory),
        cooldowns=cooldowns,
        cache=ResultCache(session_factory),
        ledger=CreditLedger(session_factory),
        usage_log=UsageLogService(session_factory),
        provider=provider,
        execute_timeout=settings.VERIFICATION_TIMEOUT_SECONDS,
    )


def get_client_ip(request: Request) -> Optional[str]:
    """Best-effort caller IP (proxy headers first)"""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else None


async def get_current_client(
    x_api_key: Optional[str] = Header(None),
    api_key_service: APIKeyService = Depends(get_api_key_service),
) -> AuthenticatedClient:
    """
    Dependency to authenticate a caller by X-API-Key

    Raises:
        HTTPException: 401 if the key is missing or invalid
    """
    auth = await api_key_service.authenticate(x_api_key)
    if not auth.ok:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "Authentication failed", "message": auth.message},
        )
    return auth.client


async def require_admin_token(x_admin_token: Optional[str] = Header(None)) -> None:
    """
    Guard for key management routes

    Raises:
        HTTPException: 403 when admin routes are disabled, 401 on a bad token
    """
    if not settings.ADMIN_API_TOKEN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "Forbidden", "message": "Admin API is disabled"},
        )
    if not x_admin_token or not secrets.compare_digest(x_admin_token, settings.ADMIN_API_TOKEN):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "Authentication failed", "message": "Invalid admin token"},
        )
