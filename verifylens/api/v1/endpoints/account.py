"""
Account information endpoint
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from verifylens.api.dependencies import (
    get_cooldown_tracker,
    get_credit_ledger,
    get_db,
    get_current_client,
)
from verifylens.api.v1.endpoints.verify import POLICIES
from verifylens.models import Account, ApiCredential
from verifylens.services.api_key_service import AuthenticatedClient
from verifylens.services.cooldown_service import CooldownTracker
from verifylens.services.ledger_service import CreditLedger
from verifylens.services.usage_service import UsageService

router = APIRouter()


@router.get("")
async def get_account(
    client: AuthenticatedClient = Depends(get_current_client),
    db: AsyncSession = Depends(get_db),
    cooldowns: CooldownTracker = Depends(get_cooldown_tracker),
    ledger: CreditLedger = Depends(get_credit_ledger),
):
    """
    Get account details for the calling API key

    - Balance and profile
    - API access status
    - Usage totals for the last 30 days
    - Remaining cooldowns per endpoint
    - 10 most recent ledger transactions
    """
    account = (await db.execute(
        select(Account).where(Account.id == client.account_id)
    )).scalar_one_or_none()

    if not account:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "User not found", "message": "Account no longer exists"},
        )

    credential = (await db.execute(
        select(ApiCredential).where(ApiCredential.id == client.credential_id)
    )).scalar_one_or_none()

    usage = await UsageService.get_recent_summary(db, account.id, days=30)

    rate_limits = {}
    for key, policy in (("exactVerify", POLICIES["exact"]), ("smartVerify", POLICIES["smart"])):
        rate_limits[key] = {
            "cooldownSeconds": policy.cooldown_seconds,
            "remainingCooldown": await cooldowns.remaining(account.id, policy.name, policy.cooldown_seconds),
        }

    transactions = await ledger.recent_transactions(account.id, limit=10)

    return {
        "success": True,
        "data": {
            "user": {
                "id": account.id,
                "email": account.email,
                "name": account.name,
                "companyName": account.company_name,
                "credits": account.credits,
                "isActive": account.is_active,
                "memberSince": account.created_at.isoformat(),
            },
            "apiAccess": {
                "clientId": credential.id if credential else None,
                "isActive": credential.is_active if credential else False,
                "lastUsed": credential.last_used_at.isoformat() if credential and credential.last_used_at else None,
                "createdAt": credential.created_at.isoformat() if credential else None,
            },
            "usage": {"last30Days": usage},
            "rateLimits": rate_limits,
            "recentTransactions": [
                {
                    "id": tx.id,
                    "type": tx.type,
                    "amount": tx.amount,
                    "creditsChanged": tx.credits_changed,
                    "balanceAfter": tx.balance_after,
                    "description": tx.description,
                    "createdAt": tx.created_at.isoformat(),
                }
                for tx in transactions
            ],
        },
    }
