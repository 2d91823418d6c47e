from datetime import timedelta

import pytest

from deals import calculate_deal_price, deal_applies, effective_base_price, evaluate_deals, fetch_active_deals, \
    is_deal_active, sort_by_priority
from tests.helpers import NOW, make_deal, make_product, oid


def test_percentage_and_fixed_prices():
    assert calculate_deal_price(1000, make_deal(discount_type="percentage", discount_value=25)) == 750
    assert calculate_deal_price(1000, make_deal(discount_type="fixed", discount_value=150)) == 850
    assert calculate_deal_price(1000, make_deal(discount_type="flat", discount_value=150)) == 850
    assert calculate_deal_price(100, make_deal(discount_type="fixed", discount_value=500)) == 0


def test_deal_scopes():
    category, sub = oid(), oid()
    product = make_product(category=category, sub_category=sub)
    assert deal_applies(make_deal(is_global=True), product)
    assert deal_applies(make_deal(is_global=False, products=[product.id]), product)
    assert deal_applies(make_deal(is_global=False, categories=[category]), product)
    assert deal_applies(make_deal(is_global=False, sub_categories=[sub]), product)
    assert not deal_applies(make_deal(is_global=False, products=[oid()]), product)
    assert not deal_applies(make_deal(is_global=False), product)


def test_activity_is_derived_from_the_window():
    deal = make_deal()
    assert is_deal_active(deal, NOW)
    assert not is_deal_active(deal, NOW + timedelta(days=2))
    assert not is_deal_active(None, NOW)


def test_sale_price_only_inside_sale_window():
    product = make_product(price=1000, sale_price=900, on_sale=True,
                           sale_start=NOW - timedelta(days=1), sale_end=NOW + timedelta(days=1))
    assert effective_base_price(product, NOW) == 900
    assert effective_base_price(product, NOW + timedelta(days=5)) == 1000
    assert effective_base_price(make_product(price=1000, sale_price=900), NOW) == 1000


def test_sale_price_not_below_list_price_is_ignored():
    product = make_product(price=1000, sale_price=1000, on_sale=True,
                           sale_start=NOW - timedelta(days=1), sale_end=NOW + timedelta(days=1))
    assert effective_base_price(product, NOW) == 1000


def test_deal_is_computed_on_top_of_an_active_sale():
    product = make_product(price=1000, sale_price=900, on_sale=True,
                           sale_start=NOW - timedelta(days=1), sale_end=NOW + timedelta(days=1))
    deal = make_deal(discount_value=20)
    pricing = evaluate_deals(product, [deal], NOW)
    assert pricing.original_price == 900
    assert pricing.deal_price == 720
    assert pricing.applied_deal_id == deal.id


def test_deal_beats_a_sale_outside_its_window():
    product = make_product(price=1000, sale_price=900, on_sale=True,
                           sale_start=NOW - timedelta(days=10), sale_end=NOW - timedelta(days=5))
    deal = make_deal(discount_value=20)
    pricing = evaluate_deals(product, [deal], NOW)
    assert pricing.deal_price == 800
    assert pricing.applied_deal_id == deal.id


def test_lowest_price_wins():
    weak = make_deal(discount_value=5, priority=10)
    strong = make_deal(discount_type="fixed", discount_value=300, priority=1)
    pricing = evaluate_deals(make_product(price=1000), sort_by_priority([weak, strong]), NOW)
    assert pricing.deal_price == 700
    assert pricing.applied_deal_id == strong.id


def test_price_tie_goes_to_higher_priority():
    low = make_deal(discount_value=10, priority=1)
    high = make_deal(discount_type="fixed", discount_value=100, priority=5)
    pricing = evaluate_deals(make_product(price=1000), sort_by_priority([low, high]), NOW)
    assert pricing.deal_price == 900
    assert pricing.applied_deal_id == high.id


def test_no_applicable_deal():
    pricing = evaluate_deals(make_product(price=1000), [make_deal(is_global=False, products=[oid()])], NOW)
    assert pricing.deal_price is None
    assert pricing.applied_deal_id is None
    assert pricing.original_price == 1000


def test_zero_discount_is_not_applied():
    pricing = evaluate_deals(make_product(price=1000), [make_deal(discount_value=0)], NOW)
    assert pricing.deal_price is None


@pytest.mark.parametrize("price", [0, 1, 99.99, 1000, 25000])
def test_deals_never_raise_the_price(price):
    deals = sort_by_priority([
        make_deal(discount_value=0),
        make_deal(discount_type="fixed", discount_value=5000),
        make_deal(discount_value=100),
        make_deal(discount_type="flat", discount_value=0.5),
    ])
    pricing = evaluate_deals(make_product(price=price), deals, NOW)
    assert pricing.deal_price is None or 0 <= pricing.deal_price <= pricing.original_price


def test_fetch_active_deals_filters_window_and_orders_by_priority(mongo):
    past = {"start_date": NOW - timedelta(days=9), "end_date": NOW - timedelta(days=8)}
    current = {"start_date": NOW - timedelta(days=1), "end_date": NOW + timedelta(days=1)}
    mongo["deal"].insert_many([
        dict(title="expired", discount_type="percentage", discount_value=5, priority=9, is_global=True, **past),
        dict(title="low", discount_type="percentage", discount_value=5, priority=1, is_global=True, **current),
        dict(title="high", discount_type="fixed", discount_value=5, priority=7, is_global=True, **current),
    ])
    deals = fetch_active_deals(mongo, NOW)
    assert [d.title for d in deals] == ["high", "low"]


def test_fetch_active_deals_skips_malformed_documents(mongo):
    window = {"start_date": NOW - timedelta(days=1), "end_date": NOW + timedelta(days=1)}
    mongo["deal"].insert_many([
        dict(title="too deep", discount_type="percentage", discount_value=150, is_global=True, **window),
        dict(title="no type", discount_value=5, is_global=True, **window),
        dict(title="ok", discount_type="percentage", discount_value=5, is_global=True, **window),
    ])
    assert [d.title for d in fetch_active_deals(mongo, NOW)] == ["ok"]
