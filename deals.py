"""
Deal evaluation.

A deal is active while `start_date <= now <= end_date`; activity is derived at
read time rather than stored. `evaluate_deals` is pure: the active deal set is
fetched once per pricing pass and shared by every line of that pass.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from pydantic import ValidationError
from pymongo.database import Database

from database import get_documents
from schemas import Deal, Product

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DealPricing:
    original_price: float
    deal_price: Optional[float] = None
    applied_deal_id: Optional[str] = None

    @property
    def discount_ratio(self) -> float:
        """Fraction of the original price taken off by the applied deal."""
        if self.deal_price is None or self.original_price <= 0:
            return 0.0
        return (self.original_price - self.deal_price) / self.original_price


def is_deal_active(deal: Optional[Deal], now: Optional[datetime] = None) -> bool:
    if deal is None:
        return False
    now = now or datetime.utcnow()
    return deal.start_date <= now <= deal.end_date


def sort_by_priority(deals: Iterable[Deal]) -> List[Deal]:
    # sorted() is stable, so equal priorities keep their stored order
    return sorted(deals, key=lambda d: d.priority, reverse=True)


def fetch_active_deals(db: Database, now: Optional[datetime] = None) -> List[Deal]:
    now = now or datetime.utcnow()
    docs = get_documents(
        "deal",
        {"start_date": {"$lte": now}, "end_date": {"$gte": now}},
        database=db,
    )
    deals = []
    for doc in docs:
        try:
            deals.append(Deal.model_validate(doc))
        except ValidationError as exc:
            logger.warning("skipping malformed deal %s: %s", doc.get("_id"), exc.errors()[0]["msg"])
    return sort_by_priority(deals)


def deal_applies(deal: Deal, product: Product) -> bool:
    if deal.is_global:
        return True
    if product.id is not None and product.id in deal.products:
        return True
    if product.category is not None and product.category in deal.categories:
        return True
    if product.sub_category is not None and product.sub_category in deal.sub_categories:
        return True
    return False


def calculate_deal_price(original_price: float, deal: Deal) -> float:
    if deal.discount_type == "percentage":
        price = original_price * (1 - deal.discount_value / 100)
    else:
        # fixed and flat are the same amount-off rule
        price = original_price - deal.discount_value
    return round(max(0.0, price), 2)


def effective_base_price(product: Product, now: Optional[datetime] = None) -> float:
    """The product's own sale price inside its sale window, else its list price.

    A sale whose price is not below the list price is ignored.
    """
    now = now or datetime.utcnow()
    if (
        product.on_sale
        and product.sale_price is not None
        and product.sale_price < product.price
        and product.sale_start is not None
        and product.sale_end is not None
        and product.sale_start <= now <= product.sale_end
    ):
        return product.sale_price
    return product.price


def evaluate_deals(product: Product, active_deals: List[Deal], now: Optional[datetime] = None) -> DealPricing:
    """Pick the deal giving the lowest price for `product`.

    `active_deals` must already be filtered to the current window and ordered by
    descending priority; on equal prices the earlier deal is kept.
    """
    original_price = effective_base_price(product, now)
    if original_price <= 0 or not active_deals:
        return DealPricing(original_price=original_price)

    best_deal: Optional[Deal] = None
    best_price = original_price
    for deal in active_deals:
        if not deal_applies(deal, product):
            continue
        candidate = calculate_deal_price(original_price, deal)
        if candidate < best_price:
            best_price = candidate
            best_deal = deal

    if best_deal is None:
        return DealPricing(original_price=original_price)

    logger.debug("deal %s applied to product %s: %s -> %s", best_deal.id, product.id, original_price, best_price)
    return DealPricing(original_price=original_price, deal_price=best_price, applied_deal_id=best_deal.id)
