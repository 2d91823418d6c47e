from datetime import datetime, timedelta

from bson import ObjectId

from schemas import Coupon, Deal, Product, ShippingZone, Variant

NOW = datetime(2026, 3, 10, 12, 0, 0)


def oid() -> str:
    return str(ObjectId())


def make_product(**fields) -> Product:
    data = {"_id": oid(), "name": "Phone", "price": 1000.0, "quantity": 10}
    data.update(fields)
    return Product.model_validate(data)


def make_variant(**fields) -> Variant:
    data = {"_id": oid(), "stock": 5}
    data.update(fields)
    return Variant.model_validate(data)


def make_deal(**fields) -> Deal:
    data = {
        "_id": oid(),
        "title": "Deal",
        "discount_type": "percentage",
        "discount_value": 10,
        "start_date": NOW - timedelta(days=1),
        "end_date": NOW + timedelta(days=1),
        "is_global": True,
    }
    data.update(fields)
    return Deal.model_validate(data)


def make_coupon(**fields) -> Coupon:
    data = {"_id": oid(), "code": "SAVE10", "discount_type": "percentage", "discount_value": 10}
    data.update(fields)
    return Coupon.model_validate(data)


def make_zone(**fields) -> ShippingZone:
    data = {
        "base_rate": 100,
        "express_multiplier": 2,
        "region_multiplier": 1.5,
        "free_shipping_threshold": 2000,
    }
    data.update(fields)
    return ShippingZone.model_validate(data)
