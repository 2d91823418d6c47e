"""
Operational errors raised by the pricing pipeline.

Every error carries the HTTP status it maps to; `main.py` renders them with a
single exception handler, so nothing below the HTTP layer imports FastAPI.
"""
from typing import Optional


class PricingError(Exception):
    status_code = 400
    default_detail = "Request could not be processed"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


# 400: malformed input
class ValidationError(PricingError):
    status_code = 400
    default_detail = "Invalid request"


class InvalidShippingMethod(ValidationError):
    default_detail = "Invalid shipping method"


class InvalidPaymentMethod(ValidationError):
    default_detail = "Invalid payment method"


class InvalidQuantity(ValidationError):
    default_detail = "Quantity must be at least 1"


# 404: unknown entity
class NotFoundError(PricingError):
    status_code = 404
    default_detail = "Not found"


class ProductNotFound(NotFoundError):
    default_detail = "Product not found"


class VariantNotFound(NotFoundError):
    default_detail = "Variant not found for this product"


class CouponNotFound(NotFoundError):
    default_detail = "Invalid coupon"


class CartNotFound(NotFoundError):
    default_detail = "Cart not found"


class ItemNotInCart(NotFoundError):
    default_detail = "Product not in cart"


# 400: business rule violations with a user-facing reason
class DomainError(PricingError):
    status_code = 400
    default_detail = "Request violates a business rule"


class InsufficientStock(DomainError):
    default_detail = "Insufficient stock"


class OutOfStock(DomainError):
    default_detail = "Product out of stock"


class VariantRequired(DomainError):
    default_detail = "Variant selection is required for this product"


class CouponRejected(DomainError):
    default_detail = "Coupon cannot be applied"


class CouponUsageLimitReached(CouponRejected):
    default_detail = "Coupon usage limit reached"


class NoCouponApplied(DomainError):
    default_detail = "No coupon applied"
