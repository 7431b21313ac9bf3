"""Tests for the client cart and checkout form helpers."""
from datetime import date

import pytest

from checkout import (
    AddressForm,
    CartContext,
    CartItem,
    CartStorage,
    apply_promo,
    estimated_delivery,
    validate_address,
    validate_line_items,
)
from pricing import compute_totals

SHOES = {"id": "p1", "name": "Trail Runner Shoes", "price": 2499, "image": "shoes.jpg"}
MUG = {"id": "p2", "name": "Mug", "price": 299, "image": "mug.jpg"}


def domestic_address(**overrides):
    fields = dict(full_name="Asha Rao", address_line1="12 MG Road", city="Bengaluru",
                  state="Karnataka", postal_code="560001", country="India", phone="9876543210")
    fields.update(overrides)
    return AddressForm(**fields)


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------

def test_adding_same_product_merges():
    cart = CartContext()
    cart.add(SHOES)
    cart.add(SHOES, quantity=2)
    cart.add(MUG)
    assert [(i.product_id, i.quantity) for i in cart.items] == [("p1", 3), ("p2", 1)]
    assert cart.count == 4


def test_product_without_id_is_ignored():
    cart = CartContext()
    cart.add({"name": "Ghost", "price": 10})
    assert cart.items == []


def test_decrement_drops_last_unit():
    cart = CartContext()
    cart.add(SHOES, quantity=2)
    cart.decrement("p1")
    assert cart.items[0].quantity == 1
    cart.decrement("p1")
    assert cart.items == []


@pytest.mark.parametrize("raw, expected", [(0, 1), (-4, 1), (150, 99), ("7", 7), ("x", 1)])
def test_set_quantity_is_clamped(raw, expected):
    cart = CartContext()
    cart.add(SHOES)
    cart.set_quantity("p1", raw)
    assert cart.items[0].quantity == expected


def test_cart_persists_and_loads(tmp_path):
    storage = CartStorage(tmp_path / "cart.json")
    cart = CartContext.load(storage)
    cart.add(SHOES)
    cart.add(MUG)
    cart.remove("p2")

    reloaded = CartContext.load(storage)
    assert reloaded.items == [CartItem("p1", "Trail Runner Shoes", 2499, 1, "shoes.jpg")]

    reloaded.clear()
    assert CartContext.load(storage).items == []


def test_stored_duplicates_merge_and_bad_quantities_reset(tmp_path):
    path = tmp_path / "cart.json"
    path.write_text(
        '[{"product_id": "p1", "name": "Shoes", "unit_price": 2499, "quantity": 2, "image": "s.jpg"},'
        ' {"product_id": "p1", "name": "Shoes", "unit_price": 2499, "quantity": 3, "image": "s.jpg"},'
        ' {"product_id": "p2", "name": "Mug", "unit_price": 299, "quantity": Infinity, "image": "m.jpg"}]'
    )

    cart = CartContext.load(CartStorage(path))

    assert [(i.product_id, i.quantity) for i in cart.items] == [("p1", 5), ("p2", 1)]
    assert compute_totals(cart.items).items_price == 12794.0


def test_corrupt_storage_loads_empty(tmp_path):
    path = tmp_path / "cart.json"
    path.write_text("{not json")
    assert CartContext.load(CartStorage(path)).items == []


# ---------------------------------------------------------------------------
# Form validation
# ---------------------------------------------------------------------------

def test_valid_domestic_address():
    assert validate_address(domestic_address(), "asha@example.com") == {}


def test_missing_fields_reported():
    errors = validate_address(AddressForm(country=""), "")
    assert errors["full_name"] == "Full name is required."
    assert errors["email"] == "Email is required."
    assert errors["country"] == "Country is required."
    assert set(errors) >= {"address_line1", "city", "state", "postal_code", "phone"}


def test_domestic_pin_and_phone_patterns():
    errors = validate_address(domestic_address(postal_code="5600", phone="98765"), "asha@example.com")
    assert errors == {
        "postal_code": "Enter a 6 digit PIN code.",
        "phone": "Enter a 10 digit phone number.",
    }


def test_international_rules_are_looser():
    address = domestic_address(country="Germany", postal_code="10115", phone="+49 30 1234")
    assert validate_address(address, "asha@example.com") == {}

    errors = validate_address(domestic_address(country="Germany", postal_code="101", phone="12345"),
                              "asha@example.com")
    assert errors == {
        "postal_code": "Postal code looks too short.",
        "phone": "Phone number looks too short.",
    }


def test_bad_email():
    assert validate_address(domestic_address(), "asha.example.com") == {"email": "Enter a valid email address."}


def test_line_items_need_image_and_id():
    assert validate_line_items([CartItem("p1", "Shoes", 10, 1, None)]) == "One or more items are missing an image."
    assert validate_line_items([CartItem("", "Shoes", 10, 1, "x.jpg")]) == "One or more items are missing product IDs."
    assert validate_line_items([CartItem("p1", "Shoes", 10, 1, "x.jpg")]) is None


def test_address_payload_joins_lines():
    address = domestic_address(address_line2=" Flat 4 ", landmark="")
    assert address.to_payload()["address"] == "12 MG Road, Flat 4"


# ---------------------------------------------------------------------------
# Promo and delivery
# ---------------------------------------------------------------------------

def test_apply_promo_messages():
    assert apply_promo(" sprint10 ").code == "SPRINT10"
    assert apply_promo("sprint10").message == "SPRINT10 applied. Save 10% up to 500."
    assert apply_promo("SHIPFREE").message == "SHIPFREE applied. Shipping fee waived."
    assert (apply_promo("FOOBAR").code, apply_promo("FOOBAR").message) == (None, "Invalid promo code.")
    assert (apply_promo("").code, apply_promo("").message) == (None, "Promo removed.")


def test_estimated_delivery():
    today = date(2026, 3, 1)
    assert estimated_delivery("express", today) == date(2026, 3, 3)
    assert estimated_delivery("standard", today) == date(2026, 3, 6)
