"""
Usage history endpoint
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime, timezone
from math import ceil
from typing import Optional

from verifylens.api.dependencies import get_current_client, get_db
from verifylens.services.api_key_service import AuthenticatedClient
from verifylens.services.usage_service import UsageFilters, UsageService

router = APIRouter()


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Stored timestamps are naive UTC"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


@router.get("")
async def get_usage(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(20, ge=1, le=100, description="Records per page"),
    endpoint: str = Query("all", pattern="^(smart_verify|exact_verify|all)$"),
    success: str = Query("all", pattern="^(true|false|all)$"),
    date_from: Optional[datetime] = Query(None, alias="dateFrom"),
    date_to: Optional[datetime] = Query(None, alias="dateTo"),
    client: AuthenticatedClient = Depends(get_current_client),
    db: AsyncSession = Depends(get_db),
):
    """
    List usage records for the calling API key

    - Newest first, paginated
    - Filter by endpoint, outcome and date range
    - Summary statistics cover all filtered records
    """
    filters = UsageFilters(
        endpoint=None if endpoint == "all" else endpoint,
        success=None if success == "all" else success == "true",
        date_from=_naive_utc(date_from),
        date_to=_naive_utc(date_to),
    )

    logs, total = await UsageService.list_logs(db, client.account_id, filters, page, limit)
    summary = await UsageService.summarize(db, client.account_id, filters)

    total_pages = ceil(total / limit) if total else 0

    return {
        "success": True,
        "data": {
            "logs": [
                {
                    "id": log.id,
                    "endpoint": log.endpoint,
                    "requestId": log.request_id,
                    "statusCode": log.status_code,
                    "creditsUsed": log.credits_used,
                    "wasSuccessful": log.was_successful,
                    "wasDuplicate": log.was_duplicate,
                    "responseTime": log.response_time_ms,
                    "ipAddress": log.ip_address,
                    "userAgent": log.user_agent,
                    "errorMessage": log.error_message,
                    "createdAt": log.created_at.isoformat(),
                }
                for log in logs
            ],
            "summary": summary,
            "pagination": {
                "currentPage": page,
                "totalPages": total_pages,
                "totalCount": total,
                "limit": limit,
                "hasNextPage": page < total_pages,
                "hasPrevPage": page > 1,
            },
        },
    }
