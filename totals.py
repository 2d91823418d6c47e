"""
Totals for a list of line items.

`compute_totals` is the only totals implementation; a cart passes all of its
lines and a buy-now request passes its single line. It does no I/O: products,
the active deal set, the coupon and the shipping zone are loaded by the caller
once per pass.
"""
from datetime import datetime
from typing import Dict, List, Optional

from coupons import apply_coupon
from errors import InvalidQuantity, ProductNotFound
from pricing import resolve_product_price
from schemas import Coupon, Deal, LineItem, PricedLine, Product, ShippingZone, TotalsBreakdown
from shipping import ShippingOptions, ShippingQuote, compute_shipping, validate_methods


def compute_totals(items: List[LineItem], catalog: Dict[str, Product], active_deals: List[Deal],
                   coupon: Optional[Coupon] = None, shipping_method: str = "standard",
                   payment_method: str = "card", user_id: Optional[str] = None, *,
                   zone: Optional[ShippingZone] = None, options: Optional[ShippingOptions] = None,
                   now: Optional[datetime] = None, count_coupon_usage: bool = False) -> TotalsBreakdown:
    """Price every line, then apply the coupon, shipping and COD fee.

    A line that cannot be priced (unknown product or variant) aborts the whole
    computation. An invalid coupon does not: it is reported in `coupon_error`
    and the totals are computed without it.
    """
    validate_methods(shipping_method, payment_method)
    options = options or ShippingOptions()
    now = now or datetime.utcnow()

    lines: List[PricedLine] = []
    subtotal = 0.0
    tax_total = 0.0
    handling = 0.0
    total_weight = 0.0
    classes: List[str] = []

    for item in items:
        if item.quantity < 1:
            raise InvalidQuantity()
        product = catalog.get(item.product)
        if product is None:
            raise ProductNotFound()

        price = resolve_product_price(product, active_deals, item.variant_id, now)
        line_total = price.unit_price * item.quantity
        subtotal += line_total
        if product.tax:
            tax_total += line_total * product.tax / 100
        handling += product.shipping_fee * item.quantity
        total_weight += product.weight * item.quantity
        classes.append(product.shipping_class)

        lines.append(PricedLine(
            id=product.id or item.product,
            name=product.name,
            slug=product.slug,
            quantity=item.quantity,
            unit_price=price.unit_price,
            line_total=round(line_total, 2),
            original_price=price.original_price,
            deal_price=price.deal_price,
            applied_deal_id=price.applied_deal_id,
            tax=product.tax,
            shipping_fee=product.shipping_fee,
            image=price.image,
            variant_id=item.variant_id,
            variant=price.variant,
        ))

    subtotal = round(subtotal, 2)
    tax_total = round(tax_total, 2)

    discount = 0.0
    free_shipping_coupon = False
    coupon_error = None
    applied: Optional[Coupon] = None
    if coupon is not None:
        result = apply_coupon(coupon, subtotal, user_id, now, count_usage=count_coupon_usage)
        if result.valid:
            applied = coupon
            discount = result.discount
            free_shipping_coupon = result.free_shipping
        else:
            coupon_error = result.reason

    free_shipping = options.free_shipping_everywhere or free_shipping_coupon
    if not lines:
        # nothing to ship or collect
        quote = ShippingQuote(shipping_fee=0.0, cod_fee=0.0)
    else:
        quote = compute_shipping(
            shipping_method,
            zone,
            subtotal - discount,
            payment_method,
            cod_fee=options.cod_fee,
            handling=handling,
            total_weight=total_weight,
            classes=classes,
            free_shipping=free_shipping,
        )

    final_total = max(0.0, subtotal + tax_total - discount + quote.shipping_fee + quote.cod_fee)

    return TotalsBreakdown(
        subtotal=subtotal,
        tax_total=tax_total,
        discount=discount,
        shipping_fee=quote.shipping_fee,
        cod_fee=quote.cod_fee,
        final_total=round(final_total, 2),
        coupon_id=applied.id if applied else None,
        coupon_code=applied.code if applied else None,
        coupon_error=coupon_error,
        free_shipping=bool(lines) and quote.shipping_fee == 0,
        total_weight=round(total_weight, 3),
        lines=lines,
    )
