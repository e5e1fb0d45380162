"""
API Key service: issuing, rotating and authenticating account API keys
"""
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.orm import selectinload
from starlette.concurrency import run_in_threadpool
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
import enum
import logging

from verifylens.core.config import settings
from verifylens.core.security import (
    api_key_lookup_prefix,
    generate_api_key,
    has_valid_key_format,
    hash_api_key,
    verify_api_key,
)
from verifylens.models import Account, ApiCredential, ApiTransaction, TransactionType

logger = logging.getLogger(__name__)


class AuthFailure(str, enum.Enum):
    """Reasons an API key is rejected"""
    MISSING_KEY = "missing_key"
    INVALID_FORMAT = "invalid_format"
    INVALID_KEY = "invalid_key"
    INACTIVE_ACCOUNT = "inactive_account"


class IssueFailure(str, enum.Enum):
    """Reasons a key cannot be issued"""
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class AuthenticatedClient:
    """Caller identity resolved from an API key"""
    credential_id: str
    account_id: str
    email: str
    credits: int


@dataclass(frozen=True)
class AuthResult:
    client: Optional[AuthenticatedClient] = None
    failure: Optional[AuthFailure] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


@dataclass(frozen=True)
class IssueResult:
    api_key: Optional[str] = None
    credential_id: Optional[str] = None
    created_at: Optional[datetime] = None
    regenerated: bool = False
    failure: Optional[IssueFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


class APIKeyService:
    """Service for API key operations"""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def issue(self, account_id: str, regenerate: bool = False) -> IssueResult:
        """
        Issue an API key for an account, or rotate the existing one

        Args:
            account_id: Account ID
            regenerate: Replace an existing key instead of refusing

        Returns:
            IssueResult carrying the plain text key (only time it's available)
        """
        async with self.session_factory() as db:
            result = await db.execute(
                select(Account)
                .options(selectinload(Account.api_credential))
                .where(Account.id == account_id)
            )
            account = result.scalar_one_or_none()

            if not account:
                return IssueResult(failure=IssueFailure.NOT_FOUND)

            existing = account.api_credential
            if existing and not regenerate:
                return IssueResult(failure=IssueFailure.CONFLICT)

            api_key = generate_api_key()
            key_hash = await run_in_threadpool(hash_api_key, api_key)

            if existing:
                # Rotate in place: old key stops matching immediately
                existing.key_prefix = api_key_lookup_prefix(api_key)
                existing.key_hash = key_hash
                existing.is_active = True
                existing.updated_at = datetime.utcnow()
                credential = existing
            else:
                credential = ApiCredential(
                    account_id=account.id,
                    key_prefix=api_key_lookup_prefix(api_key),
                    key_hash=key_hash,
                )
                db.add(credential)
                await db.flush()

            rotated = existing is not None
            db.add(ApiTransaction(
                account_id=account.id,
                credential_id=credential.id,
                type=(TransactionType.KEY_REGENERATED if rotated else TransactionType.KEY_GENERATED).value,
                amount=0,
                credits_changed=0,
                balance_before=account.credits,
                balance_after=account.credits,
                description="API key regenerated" if rotated else "API key generated",
            ))

            try:
                await db.commit()
            except IntegrityError:
                # Another request created the credential first
                await db.rollback()
                return IssueResult(failure=IssueFailure.CONFLICT)

            logger.info(f"{'Regenerated' if rotated else 'Generated'} API key for account {account.id}")

            return IssueResult(
                api_key=api_key,
                credential_id=credential.id,
                created_at=credential.created_at,
                regenerated=rotated,
            )

    async def regenerate(self, account_id: str) -> IssueResult:
        """Rotate the account's API key (creates one if none exists)"""
        return await self.issue(account_id, regenerate=True)

    async def revoke(self, account_id: str) -> bool:
        """
        Deactivate the account's API key

        Args:
            account_id: Account ID

        Returns:
            True if a credential was deactivated
        """
        async with self.session_factory() as db:
            result = await db.execute(
                select(ApiCredential).where(ApiCredential.account_id == account_id)
            )
            credential = result.scalar_one_or_none()
            if not credential:
                return False

            credential.is_active = False
            credential.updated_at = datetime.utcnow()
            await db.commit()

            logger.info(f"Revoked API key for account {account_id}")
            return True

    async def authenticate(self, api_key: Optional[str]) -> AuthResult:
        """
        Validate an API key and return the calling client

        Keys without the required prefix are rejected before any database access.

        Args:
            api_key: Plain text API key from the X-API-Key header

        Returns:
            AuthResult with the client on success, failure reason otherwise
        """
        if not api_key:
            return AuthResult(
                failure=AuthFailure.MISSING_KEY,
                message="Missing API key. Include X-API-Key header.",
            )

        if not has_valid_key_format(api_key):
            return AuthResult(
                failure=AuthFailure.INVALID_FORMAT,
                message=f"Invalid API key format. Keys must start with {settings.API_KEY_PREFIX}",
            )

        async with self.session_factory() as db:
            result = await db.execute(
                select(ApiCredential)
                .options(selectinload(ApiCredential.account))
                .where(
                    ApiCredential.key_prefix == api_key_lookup_prefix(api_key),
                    ApiCredential.is_active.is_(True),
                )
            )
            candidates = result.scalars().all()

            for credential in candidates:
                if not await run_in_threadpool(verify_api_key, api_key, credential.key_hash):
                    continue

                account = credential.account
                if not account or not account.is_active:
                    return AuthResult(
                        failure=AuthFailure.INACTIVE_ACCOUNT,
                        message="Account is inactive",
                    )

                credential.last_used_at = datetime.utcnow()
                await db.commit()

                return AuthResult(client=AuthenticatedClient(
                    credential_id=credential.id,
                    account_id=account.id,
                    email=account.email,
                    credits=account.credits,
                ))

        return AuthResult(failure=AuthFailure.INVALID_KEY, message="Invalid API key")

    async def get_credential(self, account_id: str) -> Optional[ApiCredential]:
        """Return the account's credential row, if any"""
        async with self.session_factory() as db:
            result = await db.execute(
                select(ApiCredential).where(ApiCredential.account_id == account_id)
            )
            return result.scalar_one_or_none()
