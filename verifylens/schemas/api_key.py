"""
API Key schemas for request/response validation
"""
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional


class APIKeyIssueRequest(BaseModel):
    """Schema for issuing or regenerating an API key"""
    regenerate: bool = False


class APIKeyResponse(BaseModel):
    """Schema for API key response (key only shown once)"""
    success: bool = True
    message: str
    api_key: str = Field(..., alias="apiKey")
    client_id: str = Field(..., alias="clientId")
    created_at: Optional[datetime] = Field(None, alias="createdAt")

    class Config:
        populate_by_name = True
