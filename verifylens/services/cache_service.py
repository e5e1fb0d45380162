"""
Verification result cache
"""
from sqlalchemy import select, delete, and_
from sqlalchemy.ext.asyncio import async_sessionmaker
from datetime import datetime, timedelta
from typing import Any, Dict, Optional
import hashlib
import json
import logging

from verifylens.models import VerificationCache

logger = logging.getLogger(__name__)


def compute_search_hash(account_scope: Optional[str], params: Dict[str, Any]) -> str:
    """
    Deterministic SHA-256 fingerprint of normalized query parameters

    Keys are sorted at every level so equivalent queries collide regardless of
    submission order; values are hashed as submitted.

    Args:
        account_scope: Account the entry belongs to (None for an unscoped hash)
        params: Validated query parameters including the endpoint discriminator

    Returns:
        64-character hex digest
    """
    payload = json.dumps(
        {"scope": account_scope, "params": params},
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class ResultCache:
    """
    Best-effort cache of billed verification results

    Lookups never raise and stores never fail the caller.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    compute_key = staticmethod(compute_search_hash)

    async def lookup(self, account_id: str, search_hash: str) -> Optional[Any]:
        """
        Get an unexpired cached payload

        Args:
            account_id: Account ID
            search_hash: Hash from compute_key

        Returns:
            Cached payload, or None on miss or error
        """
        try:
            async with self.session_factory() as db:
                result = await db.execute(
                    select(VerificationCache.result_data).where(
                        and_(
                            VerificationCache.account_id == account_id,
                            VerificationCache.search_hash == search_hash,
                            VerificationCache.expires_at > datetime.utcnow(),
                        )
                    )
                )
                return result.scalar_one_or_none()
        except Exception as e:
            logger.error(f"Cache retrieval error: {e}")
            return None

    async def store(
        self,
        account_id: str,
        search_hash: str,
        result_data: Any,
        ttl_days: int = 30,
    ) -> None:
        """
        Upsert a payload for (account, hash); last writer wins

        Args:
            account_id: Account ID
            search_hash: Hash from compute_key
            result_data: JSON-serializable payload
            ttl_days: Days until the entry expires
        """
        expires_at = datetime.utcnow() + timedelta(days=ttl_days)
        try:
            async with self.session_factory() as db:
                result = await db.execute(
                    select(VerificationCache).where(
                        and_(
                            VerificationCache.account_id == account_id,
                            VerificationCache.search_hash == search_hash,
                        )
                    )
                )
                entry = result.scalar_one_or_none()

                if entry:
                    entry.result_data = result_data
                    entry.expires_at = expires_at
                else:
                    db.add(VerificationCache(
                        account_id=account_id,
                        search_hash=search_hash,
                        result_data=result_data,
                        expires_at=expires_at,
                    ))

                await db.commit()
        except Exception as e:
            logger.error(f"Cache storage error: {e}")

    async def purge_expired(self) -> int:
        """
        Delete expired cache rows

        Returns:
            Number of rows removed
        """
        async with self.session_factory() as db:
            result = await db.execute(
                delete(VerificationCache).where(VerificationCache.expires_at < datetime.utcnow())
            )
            await db.commit()

            purged = result.rowcount or 0
            if purged > 0:
                logger.info(f"Purged {purged} expired cache entries")
            return purged
