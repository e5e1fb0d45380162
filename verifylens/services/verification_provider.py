"""
Verification provider contract and the mock provider used until a real
lookup service is wired in
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional
import asyncio
import random

from verifylens.core.config import settings
from verifylens.schemas.verify import ExactVerifyRequest, SmartVerifyRequest


@dataclass(frozen=True)
class VerificationOutcome:
    """
    Result of a provider lookup

    found=False is a normal negative answer ("no match"), not an error.
    Transport or provider failures are raised as exceptions.
    """
    found: bool
    data: Optional[Dict[str, Any]] = None
    message: Optional[str] = None

    @classmethod
    def match(cls, data: Dict[str, Any]) -> "VerificationOutcome":
        return cls(found=True, data=data)

    @classmethod
    def no_match(cls, message: str) -> "VerificationOutcome":
        return cls(found=False, message=message)


class VerificationProvider(ABC):
    """External user-profile lookup service"""

    @abstractmethod
    async def verify_exact(self, request: ExactVerifyRequest) -> VerificationOutcome:
        """Look up a user by exact username (and optional external id)"""

    @abstractmethod
    async def verify_smart(self, request: SmartVerifyRequest) -> VerificationOutcome:
        """Look up a user by username, applying profile filters"""


def _iso(value: datetime) -> str:
    return value.replace(microsecond=0).isoformat() + "Z"


class MockVerificationProvider(VerificationProvider):
    """
    Returns randomized fake profiles after a short simulated delay
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        min_delay: float = settings.MOCK_PROVIDER_MIN_DELAY,
        max_delay: float = settings.MOCK_PROVIDER_MAX_DELAY,
        not_found_rate: float = settings.MOCK_PROVIDER_NOT_FOUND_RATE,
    ):
        self.rng = rng or random.Random()
        self.min_delay = min_delay
        self.max_delay = max(min_delay, max_delay)
        self.not_found_rate = not_found_rate

    async def _simulate_latency(self) -> None:
        if self.max_delay > 0:
            await asyncio.sleep(self.rng.uniform(self.min_delay, self.max_delay))

    async def verify_exact(self, request: ExactVerifyRequest) -> VerificationOutcome:
        await self._simulate_latency()

        if self.rng.random() < self.not_found_rate:
            return VerificationOutcome.no_match("User not found or does not exist")

        now = datetime.utcnow()
        data: Dict[str, Any] = {
            "user": {
                "id": request.user_id or f"exact_{int(now.timestamp() * 1000)}",
                "username": request.username,
                "displayName": request.username,
                "joinDate": "2019-03-12T00:00:00Z",
                "hasVerifiedBadge": self.rng.random() > 0.8,
                "isOnline": self.rng.random() > 0.6,
                "lastSeen": _iso(now - timedelta(seconds=self.rng.uniform(0, 86400))),
                "accountAge": self.rng.randint(100, 1099),
            },
            "verification": {
                "exact": True,
                "strictMatch": request.strict_match,
                "confidence": self.rng.randint(80, 99),
                "method": "direct_api",
                "timestamp": _iso(now),
            },
            "security": {
                "accountSecure": self.rng.random() > 0.1,
                "suspiciousActivity": self.rng.random() < 0.05,
                "recentPasswordChange": self.rng.random() < 0.2,
            },
        }

        if request.include_profile:
            data["profile"] = {
                "description": "Exact match verified user",
                "friendsCount": self.rng.randint(0, 1999),
                "followingCount": self.rng.randint(0, 499),
                "followersCount": self.rng.randint(0, 2999),
                "groupsCount": self.rng.randint(0, 49),
                "gamesBadgeCount": self.rng.randint(0, 99),
                "profileViews": self.rng.randint(0, 9999),
            }

        return VerificationOutcome.match(data)

    async def verify_smart(self, request: SmartVerifyRequest) -> VerificationOutcome:
        await self._simulate_latency()

        now = datetime.utcnow()
        user: Dict[str, Any] = {
            "id": f"smart_{int(now.timestamp() * 1000)}",
            "username": request.username,
            "displayName": request.username,
            "joinDate": "2020-06-15T00:00:00Z",
            "description": "Verified platform user",
            "friendsCount": self.rng.randint(0, 999),
            "followersCount": self.rng.randint(0, 4999),
            "verified": self.rng.random() > 0.7,
            "hasAvatar": self.rng.random() > 0.3,
            "age": self.rng.randint(8, 17),
            "lastOnline": _iso(now - timedelta(seconds=self.rng.uniform(0, 7 * 86400))),
        }

        if request.include_history:
            user["gameHistory"] = [
                {"gameName": "Adopt Me!", "lastPlayed": "2024-10-30T12:00:00Z"},
                {"gameName": "Brookhaven", "lastPlayed": "2024-10-29T15:30:00Z"},
            ]

        filters = request.filters
        if filters.min_age is not None and user["age"] < filters.min_age:
            return VerificationOutcome.no_match("User does not meet minimum age requirement")
        if filters.max_age is not None and user["age"] > filters.max_age:
            return VerificationOutcome.no_match("User exceeds maximum age requirement")
        if filters.verified_badge and not user["verified"]:
            return VerificationOutcome.no_match("User does not have verified badge")
        if filters.has_avatar and not user["hasAvatar"]:
            return VerificationOutcome.no_match("User does not have an avatar")
        if filters.min_friends is not None and user["friendsCount"] < filters.min_friends:
            return VerificationOutcome.no_match("User does not meet minimum friends requirement")

        return VerificationOutcome.match({
            "user": user,
            "verificationScore": self.rng.randint(60, 99),
            "flags": {
                "suspiciousActivity": self.rng.random() < 0.1,
                "recentlyCreated": self.rng.random() < 0.2,
                "hasValidAvatar": user["hasAvatar"],
            },
        })
