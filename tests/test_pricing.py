"""Tests for pricing.compute_totals."""
import math

import pytest

from pricing import FeeSchedule, compute_totals, normalize_promo

FEES = FeeSchedule(
    shipping={"standard": 0, "express": 99},
    protection=29,
    sprint10_rate=0.10,
    sprint10_cap=500,
)


def line(price, qty=1):
    return {"unit_price": price, "quantity": qty}


def test_items_price_is_exact_sum():
    totals = compute_totals([line(19.99, 3), line(5.01, 2), line(0, 4)], fees=FEES)
    assert totals.items_price == 69.99


@pytest.mark.parametrize("bad", [math.nan, math.inf, -math.inf, "abc", None, "", -10, "1e400"])
def test_unusable_prices_count_as_zero(bad):
    totals = compute_totals([line(bad, 2), line(100)], fees=FEES)
    assert totals.items_price == 100.0
    assert totals.total_price == 100.0


@pytest.mark.parametrize("price", [1e30, "1e40"])
def test_very_large_prices_still_price(price):
    totals = compute_totals([line(price)], "express", fees=FEES)
    assert totals.items_price == float(price)
    assert totals.total_price >= totals.items_price


@pytest.mark.parametrize("qty", [math.inf, -math.inf, math.nan, "x", None, 0, -3])
def test_unusable_quantities_count_as_one(qty):
    assert compute_totals([line(100, qty)], fees=FEES).items_price == 100.0


def test_objects_and_mappings_price_the_same():
    class Item:
        unit_price = 250
        quantity = 2

    assert compute_totals([Item()], fees=FEES) == compute_totals([line(250, 2)], fees=FEES)


def test_deterministic_and_does_not_touch_input():
    items = [line(500, 2)]
    first = compute_totals(items, "express", True, "sprint10", fees=FEES)
    second = compute_totals(items, "express", True, "sprint10", fees=FEES)
    assert first == second
    assert items == [line(500, 2)]


def test_sprint10_is_capped():
    totals = compute_totals([line(10000)], promo_code="SPRINT10", fees=FEES)
    assert totals.discount_price == 500.0
    assert totals.total_price == 9500.0


def test_shipfree_cancels_express_shipping():
    totals = compute_totals([line(1000)], delivery_option="express", promo_code="SHIPFREE", fees=FEES)
    assert totals.shipping_price == 99.0
    assert totals.discount_price == 99.0
    assert totals.total_price == 1000.0


def test_unknown_promo_is_ignored():
    totals = compute_totals([line(1000)], promo_code="FOOBAR", fees=FEES)
    assert totals.discount_price == 0.0
    assert totals.promo_code is None


@pytest.mark.parametrize("raw", ["sprint10", "  SPRINT10 ", "Sprint10"])
def test_promo_normalisation(raw):
    assert normalize_promo(raw) == "SPRINT10"


def test_standard_no_extras():
    totals = compute_totals([line(500, 2)], "standard", False, None, fees=FEES)
    assert totals.as_dict() == {
        "items_price": 1000.0,
        "shipping_price": 0.0,
        "protection_price": 0.0,
        "discount_price": 0.0,
        "total_price": 1000.0,
    }


def test_express_protection_and_sprint10():
    totals = compute_totals([line(500, 2)], "express", True, "SPRINT10", fees=FEES)
    assert totals.as_dict() == {
        "items_price": 1000.0,
        "shipping_price": 99.0,
        "protection_price": 29.0,
        "discount_price": 100.0,
        "total_price": 1028.0,
    }


def test_unknown_delivery_option_prices_as_standard():
    assert compute_totals([line(100)], "teleport", fees=FEES).shipping_price == 0.0


def test_negative_fees_are_clamped():
    fees = FeeSchedule(shipping={"standard": -5, "express": -99}, protection=-29, sprint10_cap=500)
    totals = compute_totals([line(100)], "express", True, fees=fees)
    assert totals.shipping_price == 0.0
    assert totals.protection_price == 0.0
    assert totals.total_price == 100.0


def test_free_cart_is_not_chargeable():
    totals = compute_totals([line(0, 3)], fees=FEES)
    assert totals.total_price == 0.0
    assert not totals.chargeable


def test_breakdown_adds_up_after_rounding():
    totals = compute_totals([line("1000.05")], promo_code="SPRINT10", fees=FEES)
    assert totals.discount_price == 100.01
    assert totals.total_price == round(totals.items_price - totals.discount_price, 2) == 900.04
