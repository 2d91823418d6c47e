import logging
import os
from datetime import datetime, timedelta
from typing import Optional, Dict, Any

from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel
from bson import ObjectId
import jwt

import settings
from coupons import get_coupon, release_coupon
from database import create_document, db
from errors import InvalidQuantity, ItemNotInCart, PricingError, VariantNotFound
from pricing import check_stock
from schemas import BuyNow, Cart, LineItem, Product, TotalsBreakdown
from shipping import validate_payment_method, validate_shipping_method
from store import (
    BUY_NOW,
    CART,
    attach_coupon,
    detach_coupon,
    find_document,
    get_or_create_cart,
    get_product,
    line_to_doc,
    refresh_totals,
    require_document,
    same_line,
    save_fields,
    to_object_id,
)
from variants import canonical_variant_id, resolve_variant

logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

# App setup
app = FastAPI(title="Checkout Pricing API", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

security = HTTPBearer()


@app.exception_handler(PricingError)
async def pricing_error_handler(request: Request, exc: PricingError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def get_db():
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return db


def create_token(user: dict) -> str:
    payload = {
        "sub": str(user["_id"]),
        "email": user.get("email"),
        "exp": datetime.utcnow() + timedelta(minutes=settings.JWT_EXPIRES_MIN),
        "iat": datetime.utcnow(),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm="HS256")


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)) -> dict:
    payload = decode_token(credentials.credentials)
    uid = payload.get("sub")
    if not uid or not ObjectId.is_valid(uid):
        raise HTTPException(status_code=401, detail="Invalid token")
    user = get_db()["user"].find_one({"_id": ObjectId(uid)})
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


# Schemas (request)
class AddItemIn(BaseModel):
    product_id: str
    variant_id: Optional[str] = None
    quantity: int = 1


class UpdateItemIn(BaseModel):
    quantity: int
    variant_id: Optional[str] = None


class CouponIn(BaseModel):
    code: str


class ShippingMethodIn(BaseModel):
    method: str
    pincode: Optional[str] = None


class PaymentMethodIn(BaseModel):
    method: str


# Response helpers
def totals_payload(doc: Dict[str, Any], totals: TotalsBreakdown) -> Dict[str, Any]:
    items = [line.model_dump() for line in totals.lines]
    return {
        "items": items,
        "total": totals.subtotal,
        "tax_total": totals.tax_total,
        "discount": totals.discount,
        "shipping_fee": totals.shipping_fee,
        "cod_fee": totals.cod_fee,
        "final_total": totals.final_total,
        "coupon": totals.coupon_code,
        "coupon_error": totals.coupon_error,
        "free_shipping": totals.free_shipping,
        "shipping_method": doc.get("shipping_method", "standard"),
        "payment_method": doc.get("payment_method", "card"),
    }


def buy_now_payload(doc: Dict[str, Any], totals: TotalsBreakdown) -> Dict[str, Any]:
    payload = totals_payload(doc, totals)
    # the single line is returned as both `item` and `items`
    payload["item"] = payload["items"][0] if payload["items"] else None
    return payload


def resolve_line(database, product_id: str, variant_id: Optional[str], quantity: int) -> LineItem:
    """Validate a requested line against the catalog and stock; returns it in canonical form."""
    if quantity < 1:
        raise InvalidQuantity()
    product = get_product(database, product_id)
    variant = None
    if variant_id:
        if not product.variants:
            raise VariantNotFound("This product does not have variants")
        variant = resolve_variant(product.variants, variant_id)
        if variant is None:
            raise VariantNotFound()
    check_stock(product, variant, quantity)
    return LineItem(product=product.id, quantity=quantity, variant_id=canonical_variant_id(variant, variant_id))


def requested_variant_id(database, product_id: str, variant_id: Optional[str]) -> Optional[str]:
    """Canonical form of a client variant id, for matching lines already in a cart."""
    if not variant_id:
        return None
    oid = to_object_id(product_id)
    doc = database["product"].find_one({"_id": oid}) if oid else None
    variants = Product.model_validate(doc).variants if doc else []
    return canonical_variant_id(resolve_variant(variants, variant_id), variant_id)


# Health
@app.get("/")
def root():
    return {"message": "Checkout pricing API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if db is not None:
            response["database"] = "✅ Connected & Working"
            response["connection_status"] = "Connected"
            response["collections"] = db.list_collection_names()[:10]
    except Exception as e:
        response["database"] = f"⚠️ Connected but error: {str(e)[:80]}"
    return response


# Cart
@app.get("/cart")
async def get_cart(user: dict = Depends(get_current_user)):
    database = get_db()
    uid = str(user["_id"])
    cart = find_document(database, CART, uid)
    if not cart:
        return totals_payload({}, TotalsBreakdown())
    totals = refresh_totals(database, CART, cart, uid)
    return totals_payload(cart, totals)


@app.post("/cart/add")
async def cart_add(payload: AddItemIn, user: dict = Depends(get_current_user)):
    database = get_db()
    uid = str(user["_id"])
    line = resolve_line(database, payload.product_id, payload.variant_id, payload.quantity)

    cart = get_or_create_cart(database, uid)
    items = Cart.model_validate(cart).items
    existing = next((it for it in items if same_line(it, line.product, line.variant_id)), None)
    if existing is not None:
        # stock must cover the merged quantity
        resolve_line(database, line.product, line.variant_id, existing.quantity + line.quantity)
        existing.quantity += line.quantity
    else:
        items.append(line)
    save_fields(database, CART, cart, {"items": [line_to_doc(it) for it in items]})
    logger.info("user %s added product %s (variant %s) x%s to cart", uid, line.product, line.variant_id, line.quantity)

    totals = refresh_totals(database, CART, cart, uid)
    return totals_payload(cart, totals)


@app.patch("/cart/update/{product_id}")
async def cart_update(product_id: str, payload: UpdateItemIn, user: dict = Depends(get_current_user)):
    database = get_db()
    uid = str(user["_id"])
    cart = require_document(database, CART, uid)
    items = Cart.model_validate(cart).items

    variant_id = requested_variant_id(database, product_id, payload.variant_id)
    item = next((it for it in items if same_line(it, product_id, variant_id)), None)
    if item is None:
        raise ItemNotInCart()

    if payload.quantity <= 0:
        items = [it for it in items if it is not item]
    else:
        resolve_line(database, product_id, item.variant_id, payload.quantity)
        item.quantity = payload.quantity
    save_fields(database, CART, cart, {"items": [line_to_doc(it) for it in items]})

    totals = refresh_totals(database, CART, cart, uid)
    return totals_payload(cart, totals)


@app.delete("/cart/remove/{product_id}")
async def cart_remove(product_id: str, variant_id: Optional[str] = None, user: dict = Depends(get_current_user)):
    database = get_db()
    uid = str(user["_id"])
    cart = require_document(database, CART, uid)
    variant_id = requested_variant_id(database, product_id, variant_id)
    items = [it for it in Cart.model_validate(cart).items if not same_line(it, product_id, variant_id)]
    save_fields(database, CART, cart, {"items": [line_to_doc(it) for it in items]})

    totals = refresh_totals(database, CART, cart, uid)
    return totals_payload(cart, totals)


@app.delete("/cart/clear")
async def cart_clear(user: dict = Depends(get_current_user)):
    database = get_db()
    uid = str(user["_id"])
    cart = require_document(database, CART, uid)
    coupon = get_coupon(database, Cart.model_validate(cart).coupon)
    if coupon is not None:
        release_coupon(database, coupon, uid)
    save_fields(database, CART, cart, {"items": [], "coupon": None, "discount": 0})

    totals = refresh_totals(database, CART, cart, uid)
    return totals_payload(cart, totals)


@app.post("/cart/apply-coupon")
async def cart_apply_coupon(payload: CouponIn, user: dict = Depends(get_current_user)):
    database = get_db()
    uid = str(user["_id"])
    cart = require_document(database, CART, uid)
    totals = attach_coupon(database, CART, cart, payload.code, uid)
    return totals_payload(cart, totals)


@app.delete("/cart/remove-coupon")
async def cart_remove_coupon(user: dict = Depends(get_current_user)):
    database = get_db()
    uid = str(user["_id"])
    cart = require_document(database, CART, uid)
    totals = detach_coupon(database, CART, cart, uid)
    return totals_payload(cart, totals)


@app.patch("/cart/shipping-method")
async def cart_shipping_method(payload: ShippingMethodIn, user: dict = Depends(get_current_user)):
    validate_shipping_method(payload.method)
    database = get_db()
    uid = str(user["_id"])
    cart = require_document(database, CART, uid)
    fields: Dict[str, Any] = {"shipping_method": payload.method}
    if payload.pincode is not None:
        fields["pincode"] = payload.pincode.strip() or None
    save_fields(database, CART, cart, fields)

    totals = refresh_totals(database, CART, cart, uid)
    return totals_payload(cart, totals)


@app.patch("/cart/payment-method")
async def cart_payment_method(payload: PaymentMethodIn, user: dict = Depends(get_current_user)):
    validate_payment_method(payload.method)
    database = get_db()
    uid = str(user["_id"])
    cart = require_document(database, CART, uid)
    save_fields(database, CART, cart, {"payment_method": payload.method})

    totals = refresh_totals(database, CART, cart, uid)
    return totals_payload(cart, totals)


# Buy now
@app.post("/buy-now")
async def buy_now_set(payload: AddItemIn, user: dict = Depends(get_current_user)):
    database = get_db()
    uid = str(user["_id"])
    line = resolve_line(database, payload.product_id, payload.variant_id, payload.quantity)

    doc = find_document(database, BUY_NOW, uid)
    if doc is None:
        create_document(BUY_NOW, {
            "user": uid,
            "item": line_to_doc(line),
            "coupon": None,
            "shipping_method": "standard",
            "payment_method": "card",
        }, database=database)
        doc = find_document(database, BUY_NOW, uid)
    else:
        # a new item starts without a coupon
        coupon = get_coupon(database, BuyNow.model_validate(doc).coupon)
        if coupon is not None:
            release_coupon(database, coupon, uid)
        save_fields(database, BUY_NOW, doc, {"item": line_to_doc(line), "coupon": None, "discount": 0})
    logger.info("user %s set buy-now product %s (variant %s) x%s", uid, line.product, line.variant_id, line.quantity)

    totals = refresh_totals(database, BUY_NOW, doc, uid)
    return buy_now_payload(doc, totals)


@app.get("/buy-now")
async def buy_now_get(user: dict = Depends(get_current_user)):
    database = get_db()
    uid = str(user["_id"])
    doc = find_document(database, BUY_NOW, uid)
    if not doc or not doc.get("item"):
        return buy_now_payload({}, TotalsBreakdown())
    totals = refresh_totals(database, BUY_NOW, doc, uid)
    return buy_now_payload(doc, totals)


@app.delete("/buy-now")
async def buy_now_clear(user: dict = Depends(get_current_user)):
    database = get_db()
    uid = str(user["_id"])
    doc = require_document(database, BUY_NOW, uid)
    coupon = get_coupon(database, BuyNow.model_validate(doc).coupon)
    if coupon is not None:
        release_coupon(database, coupon, uid)
    database[BUY_NOW].delete_one({"_id": doc["_id"]})
    return {"cleared": True}


@app.post("/buy-now/apply-coupon")
async def buy_now_apply_coupon(payload: CouponIn, user: dict = Depends(get_current_user)):
    database = get_db()
    uid = str(user["_id"])
    doc = require_document(database, BUY_NOW, uid)
    totals = attach_coupon(database, BUY_NOW, doc, payload.code, uid)
    return buy_now_payload(doc, totals)


@app.delete("/buy-now/remove-coupon")
async def buy_now_remove_coupon(user: dict = Depends(get_current_user)):
    database = get_db()
    uid = str(user["_id"])
    doc = require_document(database, BUY_NOW, uid)
    totals = detach_coupon(database, BUY_NOW, doc, uid)
    return buy_now_payload(doc, totals)


@app.patch("/buy-now/shipping-method")
async def buy_now_shipping_method(payload: ShippingMethodIn, user: dict = Depends(get_current_user)):
    validate_shipping_method(payload.method)
    database = get_db()
    uid = str(user["_id"])
    doc = require_document(database, BUY_NOW, uid)
    fields: Dict[str, Any] = {"shipping_method": payload.method}
    if payload.pincode is not None:
        fields["pincode"] = payload.pincode.strip() or None
    save_fields(database, BUY_NOW, doc, fields)

    totals = refresh_totals(database, BUY_NOW, doc, uid)
    return buy_now_payload(doc, totals)


@app.patch("/buy-now/payment-method")
async def buy_now_payment_method(payload: PaymentMethodIn, user: dict = Depends(get_current_user)):
    validate_payment_method(payload.method)
    database = get_db()
    uid = str(user["_id"])
    doc = require_document(database, BUY_NOW, uid)
    save_fields(database, BUY_NOW, doc, {"payment_method": payload.method})

    totals = refresh_totals(database, BUY_NOW, doc, uid)
    return buy_now_payload(doc, totals)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
