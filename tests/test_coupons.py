from datetime import timedelta

import pytest
from bson import ObjectId

from coupons import apply_coupon, coupon_discount, find_coupon, redeem_coupon, release_coupon
from errors import CouponNotFound, CouponUsageLimitReached
from schemas import Coupon
from tests.helpers import NOW, make_coupon


def test_percentage_discount_is_capped():
    coupon = make_coupon(discount_value=50, max_discount=200)
    assert coupon_discount(coupon, 1000) == 200
    assert coupon_discount(make_coupon(discount_value=10), 1000) == 100


def test_fixed_discount_never_exceeds_subtotal():
    coupon = make_coupon(discount_type="fixed", discount_value=300)
    assert coupon_discount(coupon, 1000) == 300
    assert coupon_discount(coupon, 120) == 120


@pytest.mark.parametrize("subtotal", [0, 1, 50, 999.99, 10000])
@pytest.mark.parametrize("fields", [
    {"discount_type": "percentage", "discount_value": 100},
    {"discount_type": "percentage", "discount_value": 30, "max_discount": 40},
    {"discount_type": "fixed", "discount_value": 500},
    {"discount_type": "free_shipping"},
])
def test_discount_is_within_subtotal(subtotal, fields):
    result = apply_coupon(make_coupon(**fields), subtotal, "u1", NOW)
    assert result.valid
    assert 0 <= result.discount <= subtotal


def test_free_shipping_coupon():
    result = apply_coupon(make_coupon(discount_type="free_shipping"), 500, "u1", NOW)
    assert result.valid and result.free_shipping and result.discount == 0


@pytest.mark.parametrize("fields,reason", [
    ({"is_active": False}, "Invalid coupon"),
    ({"expiry_date": NOW - timedelta(days=1)}, "Coupon expired"),
    ({"start_date": NOW + timedelta(days=1)}, "Coupon not yet active"),
    ({"min_cart_value": 1000}, "Cart total must be at least 1000"),
    ({"usage_limit": 5, "used_count": 5}, "Coupon usage limit reached"),
    ({"per_user_limit": 1, "user_usage": {"u1": 1}}, "You have already used this coupon"),
])
def test_rejections(fields, reason):
    result = apply_coupon(make_coupon(**fields), 800, "u1", NOW)
    assert not result.valid
    assert result.discount == 0
    assert result.reason == reason


def test_expiry_is_checked_before_minimum():
    coupon = make_coupon(expiry_date=NOW - timedelta(days=1), min_cart_value=5000)
    assert apply_coupon(coupon, 10, "u1", NOW).reason == "Coupon expired"


def test_usage_limits_skipped_for_an_already_redeemed_coupon():
    coupon = make_coupon(usage_limit=1, used_count=1, per_user_limit=1, user_usage={"u1": 1})
    assert apply_coupon(coupon, 800, "u1", NOW, count_usage=False).valid


def _stored(mongo, **fields) -> Coupon:
    doc = {"_id": ObjectId(), "code": "SAVE10", "discount_type": "percentage", "discount_value": 10,
           "used_count": 0, "user_usage": {}, "is_active": True}
    doc.update(fields)
    mongo["coupon"].insert_one(doc)
    return Coupon.model_validate(doc)


def test_find_coupon_is_case_insensitive(mongo):
    _stored(mongo)
    assert find_coupon(mongo, " save10 ").code == "SAVE10"
    with pytest.raises(CouponNotFound):
        find_coupon(mongo, "OTHER")


def test_redeem_then_release_restores_counters(mongo):
    coupon = _stored(mongo, used_count=3, user_usage={"u2": 1})
    redeemed = redeem_coupon(mongo, coupon, "u1")
    assert redeemed.used_count == 4
    assert redeemed.user_usage["u1"] == 1

    release_coupon(mongo, coupon, "u1")
    after = Coupon.model_validate(mongo["coupon"].find_one({"code": "SAVE10"}))
    assert after.used_count == 3
    assert after.user_usage.get("u1", 0) == 0
    assert after.user_usage["u2"] == 1


def test_redeem_respects_global_limit(mongo):
    coupon = _stored(mongo, usage_limit=1)
    redeem_coupon(mongo, coupon, "u1")
    with pytest.raises(CouponUsageLimitReached):
        redeem_coupon(mongo, coupon, "u2")
    assert mongo["coupon"].find_one({"code": "SAVE10"})["used_count"] == 1


def test_redeem_respects_per_user_limit(mongo):
    coupon = _stored(mongo, per_user_limit=1)
    redeem_coupon(mongo, coupon, "u1")
    with pytest.raises(CouponUsageLimitReached):
        redeem_coupon(mongo, coupon, "u1")
    redeem_coupon(mongo, coupon, "u2")


def test_release_never_goes_negative(mongo):
    coupon = _stored(mongo)
    release_coupon(mongo, coupon, "u1")
    doc = mongo["coupon"].find_one({"code": "SAVE10"})
    assert doc["used_count"] == 0
    assert "u1" not in doc["user_usage"]
