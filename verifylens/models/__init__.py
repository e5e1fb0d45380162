"""
Database models
"""
from verifylens.models.account import Account
from verifylens.models.api_credential import ApiCredential
from verifylens.models.api_transaction import ApiTransaction, TransactionType
from verifylens.models.verification_cache import VerificationCache
from verifylens.models.api_usage import ApiUsageLog

__all__ = [
    "Account",
    "ApiCredential",
    "ApiTransaction",
    "TransactionType",
    "VerificationCache",
    "ApiUsageLog",
]
