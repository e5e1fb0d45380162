"""
Verification request schemas
"""
from pydantic import BaseModel, Field, StrictBool, StrictStr, ValidationError
from typing import Dict, List, Optional


class ExactVerifyRequest(BaseModel):
    """Schema for exact (precise) username verification"""
    username: StrictStr = Field(..., min_length=1, max_length=100)
    user_id: Optional[StrictStr] = Field(None, alias="userId")
    strict_match: StrictBool = Field(True, alias="strictMatch")
    include_profile: StrictBool = Field(True, alias="includeProfile")

    class Config:
        populate_by_name = True


class SmartVerifyFilters(BaseModel):
    """Optional filters for smart verification"""
    min_age: Optional[float] = Field(None, ge=0, le=20, alias="minAge")
    max_age: Optional[float] = Field(None, ge=0, le=20, alias="maxAge")
    has_avatar: Optional[StrictBool] = Field(None, alias="hasAvatar")
    has_description: Optional[StrictBool] = Field(None, alias="hasDescription")
    min_friends: Optional[float] = Field(None, ge=0, alias="minFriends")
    verified_badge: Optional[StrictBool] = Field(None, alias="verifiedBadge")

    class Config:
        populate_by_name = True


class SmartVerifyRequest(BaseModel):
    """Schema for smart (flexible) username verification"""
    username: StrictStr = Field(..., min_length=1, max_length=100)
    filters: SmartVerifyFilters = Field(default_factory=SmartVerifyFilters)
    include_history: StrictBool = Field(False, alias="includeHistory")

    class Config:
        populate_by_name = True


def validation_error_details(exc: ValidationError) -> Dict[str, List[str]]:
    """
    Flatten a pydantic ValidationError into field -> messages

    Args:
        exc: Validation error raised while parsing a request body

    Returns:
        Dict keyed by dotted field path ("body" for whole-document errors)
    """
    details: Dict[str, List[str]] = {}
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ())) or "body"
        details.setdefault(field, []).append(error.get("msg", "Invalid value"))
    return details
