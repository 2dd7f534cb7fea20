"""
Exceptions raised by promotion redemption.
"""

from __future__ import annotations

from apps.common.types import BusinessError


class PromotionError(BusinessError):
    """Base exception for promotion errors"""


class PromotionNotFoundError(PromotionError):
    """The promotion does not exist"""

    def __init__(self, promotion_id: str):
        self.promotion_id = promotion_id
        super().__init__(f"Promotion {promotion_id} not found")


class CapacityExceededError(PromotionError):
    """The promotion reached its usage limit before this redemption could be recorded"""

    def __init__(self, promotion_id: str, usage_limit: int):
        self.promotion_id = promotion_id
        self.usage_limit = usage_limit
        super().__init__(f"Promotion {promotion_id} is no longer available (usage limit {usage_limit} reached)")


class DuplicateUsageError(PromotionError):
    """The promotion was already redeemed on this order"""
