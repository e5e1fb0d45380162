"""
Credit ledger transaction model
"""
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
import enum

from verifylens.db.base import Base


class TransactionType(str, enum.Enum):
    """Ledger entry types"""
    DEBIT = "debit"
    KEY_GENERATED = "key_generated"
    KEY_REGENERATED = "key_regenerated"

    def __str__(self):
        return self.value


class ApiTransaction(Base):
    """
    Append-only ledger entry for every credit movement

    balance_after == balance_before + credits_changed
    """
    __tablename__ = "api_transactions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()), index=True)

    account_id = Column(String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    credential_id = Column(String(36), ForeignKey("api_credentials.id", ondelete="SET NULL"), nullable=True)

    type = Column(String(32), nullable=False)
    amount = Column(Integer, nullable=False)
    credits_changed = Column(Integer, nullable=False)
    balance_before = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)
    description = Column(Text, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    account = relationship("Account", back_populates="transactions")

    def __repr__(self):
        return (
            f"<ApiTransaction(id={self.id}, type={self.type}, "
            f"{self.balance_before}->{self.balance_after})>"
        )
