"""
Verification result cache model
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, JSON, UniqueConstraint
from datetime import datetime
import uuid

from verifylens.db.base import Base


class VerificationCache(Base):
    """
    Cached verification payload keyed by (account, search hash)
    """
    __tablename__ = "verification_cache"
    __table_args__ = (
        UniqueConstraint("account_id", "search_hash", name="uq_verification_cache_account_hash"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    account_id = Column(String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    search_hash = Column(String(64), nullable=False, index=True)

    result_data = Column(JSON, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<VerificationCache(account_id={self.account_id}, hash={self.search_hash[:12]})>"
