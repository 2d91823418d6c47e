"""
Shipping fee and cash-on-delivery surcharge.
"""
from dataclasses import dataclass
from typing import Iterable, Optional

from pymongo.database import Database

import settings
from errors import InvalidPaymentMethod, InvalidShippingMethod
from schemas import ShippingZone, SiteSetting


@dataclass(frozen=True)
class ShippingQuote:
    shipping_fee: float
    cod_fee: float


@dataclass(frozen=True)
class ShippingOptions:
    """Store-wide switches, loaded from the `site_setting` collection."""
    cod_fee: float = settings.COD_FEE
    free_shipping_everywhere: bool = False


def default_zone() -> ShippingZone:
    return ShippingZone(
        name="default",
        base_rate=settings.DEFAULT_BASE_RATE,
        express_multiplier=settings.EXPRESS_MULTIPLIER,
        region_multiplier=settings.DEFAULT_REGION_MULTIPLIER,
        free_shipping_threshold=settings.DEFAULT_FREE_SHIPPING_THRESHOLD,
    )


def validate_shipping_method(method: str) -> None:
    if method not in settings.SHIPPING_METHODS:
        raise InvalidShippingMethod()


def validate_payment_method(method: str) -> None:
    if method not in settings.PAYMENT_METHODS:
        raise InvalidPaymentMethod()


def validate_methods(shipping_method: str, payment_method: str) -> None:
    validate_shipping_method(shipping_method)
    validate_payment_method(payment_method)


def weight_charge(zone: ShippingZone, total_weight: float) -> float:
    if not zone.weight_rates:
        return 0.0
    for tier in zone.weight_rates:
        if tier.min_weight <= total_weight <= tier.max_weight:
            return tier.rate
    # heavier than every tier (or in a gap): charge the top tier
    return max(zone.weight_rates, key=lambda t: t.min_weight).rate


def class_multiplier(classes: Iterable[str]) -> float:
    multipliers = [settings.SHIPPING_CLASS_SURCHARGES.get(c, 1.0) for c in classes]
    return max(multipliers) if multipliers else 1.0


def compute_shipping(method: str, zone: Optional[ShippingZone], subtotal_after_discount: float,
                     payment_method: str, *, cod_fee: float = settings.COD_FEE, handling: float = 0.0,
                     total_weight: float = 0.0, classes: Iterable[str] = (),
                     free_shipping: bool = False) -> ShippingQuote:
    validate_methods(method, payment_method)
    zone = zone or default_zone()

    express = zone.express_multiplier if method == "express" else 1.0
    fee = (zone.base_rate + handling + weight_charge(zone, total_weight)) \
        * express * zone.region_multiplier * class_multiplier(classes)

    if free_shipping or subtotal_after_discount >= zone.free_shipping_threshold:
        fee = 0.0

    return ShippingQuote(
        shipping_fee=round(fee, 2),
        cod_fee=round(cod_fee, 2) if payment_method == "cod" else 0.0,
    )


def find_shipping_zone(db: Database, pincode: Optional[str]) -> Optional[ShippingZone]:
    """Zone whose prefix matches the first two digits of `pincode`."""
    if not pincode or len(pincode.strip()) < 2:
        return None
    prefix = pincode.strip()[:2]
    doc = db["shipping_zone"].find_one({"pincode_prefix": {"$regex": f"^{prefix}"}, "is_active": True})
    return ShippingZone.model_validate(doc) if doc else None


def _setting(db: Database, key: str) -> Optional[SiteSetting]:
    doc = db["site_setting"].find_one({"key": key})
    return SiteSetting.model_validate(doc) if doc else None


def load_shipping_options(db: Database) -> ShippingOptions:
    cod_fee = settings.COD_FEE
    cod_setting = _setting(db, "COD_FEE")
    if cod_setting is not None:
        try:
            cod_fee = float(cod_setting.value)
        except (TypeError, ValueError):
            cod_fee = settings.COD_FEE

    free_setting = _setting(db, "ENABLE_GLOBAL_FREE_SHIPPING")
    free_everywhere = free_setting is not None and free_setting.value in (True, "true")
    return ShippingOptions(cod_fee=max(0.0, cod_fee), free_shipping_everywhere=free_everywhere)
