"""
Persistence around the totals pipeline.

Cart and BuyNow documents share one refresh path: load what the pass needs,
run `compute_totals`, write the snapshot back. Stored line items only ever
hold `{product: ObjectId, quantity, variant_id}`.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Type

from bson import ObjectId
from pydantic import ValidationError
from pymongo.database import Database

from coupons import find_coupon, get_coupon, redeem_coupon, release_coupon
from database import create_document
from deals import fetch_active_deals
from errors import CartNotFound, CouponRejected, NoCouponApplied, ProductNotFound
from schemas import BuyNow, Cart, CheckoutDocument, LineItem, Product, TotalsBreakdown
from shipping import find_shipping_zone, load_shipping_options
from totals import compute_totals

logger = logging.getLogger(__name__)

CART = "cart"
BUY_NOW = "buy_now"

MODELS: Dict[str, Type[CheckoutDocument]] = {CART: Cart, BUY_NOW: BuyNow}


def to_object_id(value: str) -> Optional[ObjectId]:
    return ObjectId(value) if value and ObjectId.is_valid(value) else None


def get_product(db: Database, product_id: str) -> Product:
    oid = to_object_id(product_id)
    doc = db["product"].find_one({"_id": oid, "is_active": {"$ne": False}}) if oid else None
    if not doc:
        raise ProductNotFound()
    return Product.model_validate(doc)


def load_catalog(db: Database, items: List[LineItem]) -> Dict[str, Product]:
    ids = [oid for oid in (to_object_id(i.product) for i in items) if oid is not None]
    if not ids:
        return {}
    catalog: Dict[str, Product] = {}
    for doc in db["product"].find({"_id": {"$in": ids}}):
        try:
            catalog[str(doc["_id"])] = Product.model_validate(doc)
        except ValidationError as exc:
            logger.warning("skipping malformed product %s: %s", doc["_id"], exc.errors()[0]["msg"])
    return catalog


def line_to_doc(item: LineItem) -> Dict[str, Any]:
    doc: Dict[str, Any] = {"product": ObjectId(item.product), "quantity": item.quantity}
    if item.variant_id:
        doc["variant_id"] = item.variant_id
    return doc


def same_line(item: LineItem, product_id: str, variant_id: Optional[str]) -> bool:
    """Line identity is (product, variant); no variant only matches lines without one."""
    if item.product != product_id:
        return False
    if variant_id:
        return item.variant_id == variant_id
    return not item.variant_id


def find_document(db: Database, collection: str, user_id: str) -> Optional[Dict[str, Any]]:
    return db[collection].find_one({"user": user_id})


def require_document(db: Database, collection: str, user_id: str) -> Dict[str, Any]:
    doc = find_document(db, collection, user_id)
    if doc is None:
        raise CartNotFound("Cart not found" if collection == CART else "No Buy Now item")
    return doc


def get_or_create_cart(db: Database, user_id: str) -> Dict[str, Any]:
    doc = find_document(db, CART, user_id)
    if doc is None:
        create_document(CART, {"user": user_id, "items": [], "coupon": None,
                               "shipping_method": "standard", "payment_method": "card"}, database=db)
        doc = find_document(db, CART, user_id)
    return doc


def save_fields(db: Database, collection: str, doc: Dict[str, Any], fields: Dict[str, Any]) -> Dict[str, Any]:
    fields = dict(fields, updated_at=datetime.utcnow())
    db[collection].update_one({"_id": doc["_id"]}, {"$set": fields})
    doc.update(fields)
    return doc


def refresh_totals(db: Database, collection: str, doc: Dict[str, Any], user_id: str,
                   now: Optional[datetime] = None) -> TotalsBreakdown:
    """Recompute and store the totals snapshot of a cart or buy-now document.

    A coupon that no longer validates is detached and its usage released; the
    totals are then computed without it.
    """
    now = now or datetime.utcnow()
    model = MODELS[collection].model_validate(doc)
    items = model.line_items()

    coupon = get_coupon(db, model.coupon)
    totals = compute_totals(
        items,
        load_catalog(db, items),
        fetch_active_deals(db, now),
        coupon,
        model.shipping_method,
        model.payment_method,
        user_id,
        zone=find_shipping_zone(db, model.pincode),
        options=load_shipping_options(db),
        now=now,
    )

    fields: Dict[str, Any] = {
        "total": totals.subtotal,
        "tax_total": totals.tax_total,
        "discount": totals.discount,
        "shipping_fee": totals.shipping_fee,
        "cod_fee": totals.cod_fee,
        "final_total": totals.final_total,
    }
    if model.coupon and totals.coupon_id is None:
        fields["coupon"] = None
        if coupon is not None:
            release_coupon(db, coupon, user_id)
        logger.info("detached coupon %s from %s of user %s: %s", model.coupon, collection, user_id,
                    totals.coupon_error or "coupon no longer exists")
    save_fields(db, collection, doc, fields)
    return totals


def attach_coupon(db: Database, collection: str, doc: Dict[str, Any], code: str, user_id: str,
                  now: Optional[datetime] = None) -> TotalsBreakdown:
    """Validate `code` against the current contents, redeem it and attach it."""
    now = now or datetime.utcnow()
    coupon = find_coupon(db, code)
    model = MODELS[collection].model_validate(doc)

    if model.coupon == coupon.id:
        return refresh_totals(db, collection, doc, user_id, now)

    items = model.line_items()
    trial = compute_totals(
        items,
        load_catalog(db, items),
        fetch_active_deals(db, now),
        coupon,
        model.shipping_method,
        model.payment_method,
        user_id,
        options=load_shipping_options(db),
        zone=find_shipping_zone(db, model.pincode),
        now=now,
        count_coupon_usage=True,
    )
    if trial.coupon_id is None:
        raise CouponRejected(trial.coupon_error)

    redeem_coupon(db, coupon, user_id)
    if model.coupon:
        previous = get_coupon(db, model.coupon)
        if previous is not None:
            release_coupon(db, previous, user_id)
    save_fields(db, collection, doc, {"coupon": ObjectId(coupon.id)})
    return refresh_totals(db, collection, doc, user_id, now)


def detach_coupon(db: Database, collection: str, doc: Dict[str, Any], user_id: str,
                  now: Optional[datetime] = None) -> TotalsBreakdown:
    model = MODELS[collection].model_validate(doc)
    if not model.coupon:
        raise NoCouponApplied("No coupon applied to this cart" if collection == CART else "No coupon applied")
    coupon = get_coupon(db, model.coupon)
    if coupon is not None:
        release_coupon(db, coupon, user_id)
    save_fields(db, collection, doc, {"coupon": None, "discount": 0})
    return refresh_totals(db, collection, doc, user_id, now)

