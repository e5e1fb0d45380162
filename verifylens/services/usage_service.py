"""
Usage log: per-request audit records and usage statistics
"""
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy import select, func, and_, case
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
import logging

from verifylens.models.api_usage import ApiUsageLog, IP_ADDRESS_MAX_LENGTH, USER_AGENT_MAX_LENGTH

logger = logging.getLogger(__name__)


@dataclass
class UsageRecord:
    """One API attempt, written exactly once per request"""
    endpoint: str
    request_id: str
    status_code: int
    response_time_ms: int
    credential_id: Optional[str] = None
    account_id: Optional[str] = None
    credits_used: int = 0
    was_successful: bool = False
    was_duplicate: bool = False
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    error_message: Optional[str] = None

    def __post_init__(self):
        # Caller-supplied header values are clipped to the column widths
        if self.ip_address:
            self.ip_address = self.ip_address[:IP_ADDRESS_MAX_LENGTH]
        if self.user_agent:
            self.user_agent = self.user_agent[:USER_AGENT_MAX_LENGTH]


@dataclass
class UsageFilters:
    """Filters for usage queries"""
    endpoint: Optional[str] = None
    success: Optional[bool] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None


class UsageLogService:
    """Append-only writer for usage records"""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def record(self, entry: UsageRecord) -> None:
        """
        Persist a usage record

        Failures are logged and swallowed so they never fail the request.
        """
        try:
            async with self.session_factory() as db:
                db.add(ApiUsageLog(**asdict(entry), created_at=datetime.utcnow()))
                await db.commit()
        except Exception as e:
            logger.error(f"Failed to log API usage for request {entry.request_id}: {e}")


class UsageService:
    """Service for usage statistics"""

    @staticmethod
    def _conditions(account_id: str, filters: Optional[UsageFilters] = None) -> list:
        conditions = [ApiUsageLog.account_id == account_id]
        if filters is None:
            return conditions

        if filters.endpoint:
            conditions.append(ApiUsageLog.endpoint == filters.endpoint)
        if filters.success is not None:
            conditions.append(ApiUsageLog.was_successful.is_(filters.success))
        if filters.date_from:
            conditions.append(ApiUsageLog.created_at >= filters.date_from)
        if filters.date_to:
            conditions.append(ApiUsageLog.created_at <= filters.date_to)
        return conditions

    @classmethod
    async def list_logs(
        cls,
        db: AsyncSession,
        account_id: str,
        filters: Optional[UsageFilters] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[ApiUsageLog], int]:
        """
        Get a page of usage records, newest first

        Args:
            db: Database session
            account_id: Account ID
            filters: Optional filters
            page: 1-based page number
            limit: Page size

        Returns:
            Tuple of (records, total matching count)
        """
        conditions = cls._conditions(account_id, filters)

        total = (await db.execute(
            select(func.count(ApiUsageLog.id)).where(and_(*conditions))
        )).scalar() or 0

        query = (
            select(ApiUsageLog)
            .where(and_(*conditions))
            .order_by(ApiUsageLog.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        result = await db.execute(query)
        return list(result.scalars().all()), total

    @classmethod
    async def summarize(
        cls,
        db: AsyncSession,
        account_id: str,
        filters: Optional[UsageFilters] = None,
    ) -> Dict[str, Any]:
        """
        Aggregate usage statistics for the filtered records

        Args:
            db: Database session
            account_id: Account ID
            filters: Optional filters

        Returns:
            Dict with totals, rates (whole percent) and endpoint breakdown
        """
        conditions = cls._conditions(account_id, filters)

        row = (await db.execute(
            select(
                func.count(ApiUsageLog.id).label("total"),
                func.sum(case((ApiUsageLog.was_successful.is_(True), 1), else_=0)).label("successful"),
                func.sum(case((ApiUsageLog.was_duplicate.is_(True), 1), else_=0)).label("duplicate"),
                func.sum(ApiUsageLog.credits_used).label("credits"),
                func.sum(ApiUsageLog.response_time_ms).label("response_time"),
                func.avg(ApiUsageLog.response_time_ms).label("avg_response_time"),
            ).where(and_(*conditions))
        )).one()

        total = row.total or 0
        successful = int(row.successful or 0)
        duplicate = int(row.duplicate or 0)

        breakdown = await db.execute(
            select(
                ApiUsageLog.endpoint,
                func.count(ApiUsageLog.id).label("requests"),
                func.sum(ApiUsageLog.credits_used).label("credits"),
            )
            .where(and_(*conditions))
            .group_by(ApiUsageLog.endpoint)
            .order_by(func.count(ApiUsageLog.id).desc())
        )

        return {
            "totalRequests": total,
            "successfulRequests": successful,
            "duplicateRequests": duplicate,
            "totalCreditsUsed": int(row.credits or 0),
            "totalResponseTime": int(row.response_time or 0),
            "averageResponseTime": round(row.avg_response_time or 0),
            "successRate": round(successful / total * 100) if total else 0,
            "duplicateRate": round(duplicate / total * 100) if total else 0,
            "endpointBreakdown": [
                {
                    "endpoint": item.endpoint,
                    "requests": item.requests,
                    "creditsUsed": int(item.credits or 0),
                }
                for item in breakdown.all()
            ],
        }

    @classmethod
    async def get_recent_summary(
        cls,
        db: AsyncSession,
        account_id: str,
        days: int = 30,
    ) -> Dict[str, Any]:
        """Usage totals for the last `days` days"""
        since = datetime.utcnow() - timedelta(days=days)
        summary = await cls.summarize(db, account_id, UsageFilters(date_from=since))
        return {
            "totalRequests": summary["totalRequests"],
            "successfulRequests": summary["successfulRequests"],
            "duplicateRequests": summary["duplicateRequests"],
            "totalCreditsUsed": summary["totalCreditsUsed"],
            "successRate": summary["successRate"],
        }
