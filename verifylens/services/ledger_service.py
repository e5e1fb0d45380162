"""
Credit ledger: balance reads and atomic debits with an append-only transaction log
"""
from sqlalchemy import select, text, update
from sqlalchemy.ext.asyncio import async_sessionmaker
from dataclasses import dataclass
from typing import List, Optional
import enum
import logging

from verifylens.models import Account, ApiTransaction, TransactionType

logger = logging.getLogger(__name__)


class DebitFailure(str, enum.Enum):
    INSUFFICIENT_FUNDS = "insufficient_funds"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class DebitResult:
    new_balance: Optional[int] = None
    failure: Optional[DebitFailure] = None
    current_balance: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


class CreditLedger:
    """Service for credit balance operations"""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def get_balance(self, account_id: str) -> Optional[int]:
        """Current balance, or None if the account does not exist"""
        async with self.session_factory() as db:
            result = await db.execute(select(Account.credits).where(Account.id == account_id))
            return result.scalar_one_or_none()

    async def has_sufficient_balance(self, account_id: str, amount: int) -> bool:
        """
        Advisory balance check

        This does not reserve funds; debit() re-checks inside its transaction.
        """
        balance = await self.get_balance(account_id)
        return (balance or 0) >= amount

    async def debit(
        self,
        account_id: str,
        amount: int,
        description: str,
        credential_id: Optional[str] = None,
    ) -> DebitResult:
        """
        Atomically deduct credits and append a ledger entry

        The balance check, the new balance and the transaction row commit
        together or not at all.

        Args:
            account_id: Account ID
            amount: Credits to deduct (positive)
            description: Human readable reason
            credential_id: Credential that made the billed call

        Returns:
            DebitResult with the new balance, or the failure reason
        """
        if amount <= 0:
            raise ValueError("Debit amount must be positive")

        async with self.session_factory() as db:
            async with db.begin():
                if db.bind.dialect.name == "sqlite":
                    # SQLite has no row locks: take the database write lock first
                    await db.execute(text("BEGIN IMMEDIATE"))

                # Conditional update: concurrent debits serialize on the row
                result = await db.execute(
                    update(Account)
                    .where(Account.id == account_id, Account.credits >= amount)
                    .values(credits=Account.credits - amount)
                    .execution_options(synchronize_session=False)
                )

                if result.rowcount != 1:
                    current = (await db.execute(
                        select(Account.credits).where(Account.id == account_id)
                    )).scalar_one_or_none()

                    if current is None:
                        return DebitResult(failure=DebitFailure.NOT_FOUND)
                    return DebitResult(
                        failure=DebitFailure.INSUFFICIENT_FUNDS,
                        current_balance=current,
                    )

                new_balance = (await db.execute(
                    select(Account.credits).where(Account.id == account_id)
                )).scalar_one()

                db.add(ApiTransaction(
                    account_id=account_id,
                    credential_id=credential_id,
                    type=TransactionType.DEBIT.value,
                    amount=amount,
                    credits_changed=-amount,
                    balance_before=new_balance + amount,
                    balance_after=new_balance,
                    description=description,
                ))

        logger.info(f"Debited {amount} credits from account {account_id} (balance {new_balance})")
        return DebitResult(new_balance=new_balance)

    async def recent_transactions(self, account_id: str, limit: int = 10) -> List[ApiTransaction]:
        """Most recent ledger entries for an account, newest first"""
        async with self.session_factory() as db:
            result = await db.execute(
                select(ApiTransaction)
                .where(ApiTransaction.account_id == account_id)
                .order_by(ApiTransaction.created_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())
