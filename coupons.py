"""
Coupon validation, pricing and usage accounting.

`apply_coupon` is pure and only prices a coupon against a subtotal. Usage
counters are changed by `redeem_coupon` / `release_coupon`, each a single
conditional update so concurrent redemptions cannot push `used_count` past
`usage_limit`.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.database import Database

from errors import CouponNotFound, CouponUsageLimitReached
from schemas import Coupon

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CouponResult:
    valid: bool
    discount: float = 0.0
    reason: Optional[str] = None
    free_shipping: bool = False


def _rejected(reason: str) -> CouponResult:
    return CouponResult(valid=False, reason=reason)


def coupon_discount(coupon: Coupon, subtotal: float) -> float:
    if subtotal <= 0:
        return 0.0
    if coupon.discount_type == "percentage":
        discount = subtotal * coupon.discount_value / 100
        if coupon.max_discount is not None:
            discount = min(discount, coupon.max_discount)
    elif coupon.discount_type == "fixed":
        discount = coupon.discount_value
    else:
        discount = 0.0
    return round(max(0.0, min(discount, subtotal)), 2)


def apply_coupon(coupon: Coupon, subtotal: float, user_id: Optional[str],
                 now: Optional[datetime] = None, count_usage: bool = True) -> CouponResult:
    """Validate `coupon` for this subtotal and user and price it.

    With `count_usage=False` the usage limits are not checked: used when
    recomputing a cart whose coupon was already redeemed by this user.
    """
    now = now or datetime.utcnow()
    if not coupon.is_active:
        return _rejected("Invalid coupon")
    if coupon.expiry_date is not None and coupon.expiry_date <= now:
        return _rejected("Coupon expired")
    if coupon.start_date is not None and coupon.start_date > now:
        return _rejected("Coupon not yet active")
    if subtotal < coupon.min_cart_value:
        return _rejected(f"Cart total must be at least {coupon.min_cart_value:g}")
    if count_usage:
        if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
            return _rejected("Coupon usage limit reached")
        if coupon.per_user_limit is not None and user_id is not None:
            if coupon.user_usage.get(str(user_id), 0) >= coupon.per_user_limit:
                return _rejected("You have already used this coupon")

    return CouponResult(
        valid=True,
        discount=coupon_discount(coupon, subtotal),
        free_shipping=coupon.discount_type == "free_shipping",
    )


def find_coupon(db: Database, code: str) -> Coupon:
    doc = db["coupon"].find_one({"code": code.strip().upper(), "is_active": {"$ne": False}})
    if not doc:
        raise CouponNotFound()
    return Coupon.model_validate(doc)


def get_coupon(db: Database, coupon_id: Optional[str]) -> Optional[Coupon]:
    if not coupon_id or not ObjectId.is_valid(coupon_id):
        return None
    doc = db["coupon"].find_one({"_id": ObjectId(coupon_id)})
    return Coupon.model_validate(doc) if doc else None


def redeem_coupon(db: Database, coupon: Coupon, user_id: str) -> Coupon:
    """Count one use of `coupon` by `user_id`, atomically guarded by both limits."""
    usage_key = f"user_usage.{user_id}"
    guard: Dict[str, Any] = {"_id": ObjectId(coupon.id)}
    if coupon.usage_limit is not None:
        guard["used_count"] = {"$lt": coupon.usage_limit}
    if coupon.per_user_limit is not None:
        guard["$or"] = [
            {usage_key: {"$exists": False}},
            {usage_key: {"$lt": coupon.per_user_limit}},
        ]

    updated = db["coupon"].find_one_and_update(
        guard,
        {"$inc": {"used_count": 1, usage_key: 1}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        logger.warning("coupon %s redemption by user %s rejected by usage limits", coupon.code, user_id)
        raise CouponUsageLimitReached()
    logger.info("coupon %s redeemed by user %s", coupon.code, user_id)
    return Coupon.model_validate(updated)


def release_coupon(db: Database, coupon: Coupon, user_id: str) -> None:
    """Undo one `redeem_coupon`. Counters never go below zero."""
    usage_key = f"user_usage.{user_id}"
    coupon_id = ObjectId(coupon.id)
    db["coupon"].update_one({"_id": coupon_id, "used_count": {"$gt": 0}}, {"$inc": {"used_count": -1}})
    db["coupon"].update_one({"_id": coupon_id, usage_key: {"$gt": 0}}, {"$inc": {usage_key: -1}})
    logger.info("coupon %s released by user %s", coupon.code, user_id)
