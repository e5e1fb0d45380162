"""
API credential model
"""
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid

from verifylens.db.base import Base


class ApiCredential(Base):
    """
    Bearer API key for an account (one per account)

    Only a short plaintext prefix and the bcrypt hash are stored.
    """
    __tablename__ = "api_credentials"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()), index=True)

    account_id = Column(
        String(36), ForeignKey("accounts.id", ondelete="CASCADE"), unique=True, nullable=False, index=True
    )

    # Lookup prefix and hash of the full key
    key_prefix = Column(String(32), nullable=False, index=True)
    key_hash = Column(String(255), nullable=False)

    is_active = Column(Boolean, default=True, nullable=False)
    last_used_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    account = relationship("Account", back_populates="api_credential")

    def __repr__(self):
        return f"<ApiCredential(id={self.id}, account_id={self.account_id}, prefix={self.key_prefix})>"
