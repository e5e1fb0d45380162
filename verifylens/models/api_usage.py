"""
API Usage model
"""
from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey, Text
from datetime import datetime
import uuid

from verifylens.db.base import Base

IP_ADDRESS_MAX_LENGTH = 64
USER_AGENT_MAX_LENGTH = 512


class ApiUsageLog(Base):
    """
    API Usage model: one row per request attempt, whatever the outcome
    """
    __tablename__ = "api_usage_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()), index=True)

    # Null when the caller never authenticated
    credential_id = Column(
        String(36), ForeignKey("api_credentials.id", ondelete="SET NULL"), nullable=True, index=True
    )
    account_id = Column(String(36), ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True, index=True)

    # Request details
    endpoint = Column(String(64), nullable=False, index=True)
    request_id = Column(String(36), unique=True, nullable=False)
    status_code = Column(Integer, nullable=False)
    credits_used = Column(Integer, default=0, nullable=False)
    was_successful = Column(Boolean, default=False, nullable=False)
    was_duplicate = Column(Boolean, default=False, nullable=False)
    response_time_ms = Column(Integer, nullable=False)
    ip_address = Column(String(IP_ADDRESS_MAX_LENGTH), nullable=True)
    user_agent = Column(String(USER_AGENT_MAX_LENGTH), nullable=True)
    error_message = Column(Text, nullable=True)

    # Timestamp
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<ApiUsageLog(id={self.id}, endpoint={self.endpoint}, request_id={self.request_id})>"
