"""
Unit price resolution for a (product, variant) pair.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from deals import evaluate_deals
from errors import InsufficientStock, OutOfStock, VariantNotFound, VariantRequired
from schemas import Deal, Product, Variant
from variants import resolve_image, resolve_variant


@dataclass(frozen=True)
class ResolvedPrice:
    unit_price: float
    original_price: float
    deal_price: Optional[float]
    applied_deal_id: Optional[str]
    variant: Optional[Variant]
    image: Optional[str]


def resolve_product_price(product: Product, active_deals: List[Deal], variant_id: Optional[str] = None,
                          now: Optional[datetime] = None) -> ResolvedPrice:
    """Effective unit price of `product`, optionally as the variant `variant_id`.

    Variants inherit the discount rate of the product-level deal instead of
    being matched against deal scopes themselves, so every variant of a
    product gets the same percentage off.
    """
    pricing = evaluate_deals(product, active_deals, now)

    variant = None
    if variant_id:
        variant = resolve_variant(product.variants, variant_id)
        if variant is None:
            raise VariantNotFound()

    if variant is not None and variant.price is not None:
        if pricing.deal_price is not None:
            unit_price = round(variant.price * (1 - pricing.discount_ratio), 2)
        else:
            unit_price = variant.price
    elif pricing.deal_price is not None:
        unit_price = pricing.deal_price
    else:
        unit_price = pricing.original_price

    return ResolvedPrice(
        unit_price=unit_price,
        original_price=pricing.original_price,
        deal_price=pricing.deal_price,
        applied_deal_id=pricing.applied_deal_id,
        variant=variant,
        image=resolve_image(product, variant),
    )


def check_stock(product: Product, variant: Optional[Variant], quantity: int) -> None:
    """Raise unless `quantity` units can be sold. Called by cart mutations, never by pricing."""
    if variant is not None:
        if variant.stock is None:
            raise InsufficientStock("Variant stock information not available")
        if variant.stock < quantity:
            raise InsufficientStock("Insufficient variant stock")
        return

    if not product.in_stock:
        raise OutOfStock()
    if product.product_type == "variable":
        if not product.variants:
            raise VariantRequired("Please select a variant for this product")
        raise VariantRequired()
    if product.quantity < quantity:
        raise InsufficientStock()
