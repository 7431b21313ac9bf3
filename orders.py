"""
Order creation and order queries.

Orders are priced here, on the server, from the submitted line items. Nothing
the client computed about money is stored.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

import config
import database
import pricing
from auth import is_admin
from errors import AuthorizationError, NotFoundError, ValidationError
from schemas import CreateOrderDTO, Order, OrderItem

logger = logging.getLogger("sprintcart.orders")

COLLECTION = "order"


def _snapshot_items(data: CreateOrderDTO) -> List[OrderItem]:
    return [
        OrderItem(
            product_id=item.product_id,
            name=item.name,
            quantity=item.quantity,
            unit_price=float(pricing.to_amount(item.unit_price)),
            image=item.image,
        )
        for item in data.items
    ]


def create_order(user: Dict[str, Any], data: CreateOrderDTO) -> Dict[str, Any]:
    if not data.items:
        raise ValidationError("No order items")

    totals = pricing.compute_totals(
        data.items,
        delivery_option=data.delivery_option,
        protection=data.protection,
        promo_code=data.promo_code,
    )
    if not totals.chargeable:
        raise ValidationError("Invalid order total", details={"total_price": totals.total_price})
    if totals.total_price > config.MAX_ORDER_TOTAL:
        raise ValidationError("Order total too large", details={"total_price": totals.total_price})

    order = Order(
        user_id=str(user["_id"]),
        email=user.get("email"),
        items=_snapshot_items(data),
        shipping_address=data.shipping_address,
        payment_method=data.payment_method,
        promo_code=totals.promo_code,
        delivery_option=data.delivery_option,
        protection=data.protection,
        delivery_notes=data.delivery_notes,
        currency=config.PRIMARY_CURRENCY,
        **totals.as_dict(),
    )
    order_id = database.create_document(COLLECTION, order)
    logger.info("Order %s created for user %s total=%.2f method=%s",
                order_id, order.user_id, order.total_price, order.payment_method)
    return database.to_public(database.find_by_id(COLLECTION, order_id))


def _load(order_id: str) -> Dict[str, Any]:
    doc = database.find_by_id(COLLECTION, order_id)
    if not doc:
        raise NotFoundError("Order not found")
    return doc


def _owns(user: Dict[str, Any], order: Dict[str, Any]) -> bool:
    return order.get("user_id") == str(user["_id"])


def get_order(user: Dict[str, Any], order_id: str) -> Dict[str, Any]:
    """Fetch an order for its owner or an admin."""
    doc = _load(order_id)
    if not _owns(user, doc) and not is_admin(user):
        raise AuthorizationError("Not authorized")
    return database.to_public(doc)


def get_owned_order(user: Dict[str, Any], order_id: str) -> Dict[str, Any]:
    """Fetch an order only its owner may act on (payments)."""
    doc = _load(order_id)
    if not _owns(user, doc):
        raise AuthorizationError("Not authorized")
    return database.to_public(doc)


def list_my_orders(user: Dict[str, Any]) -> List[Dict[str, Any]]:
    docs = database.get_documents(COLLECTION, {"user_id": str(user["_id"])}, newest_first=True)
    return [database.to_public(d) for d in docs]


def list_all_orders(limit: int = 500) -> List[Dict[str, Any]]:
    docs = database.get_documents(COLLECTION, limit=limit, newest_first=True)
    return [database.to_public(d) for d in docs]


def mark_delivered(order_id: str) -> Dict[str, Any]:
    updated = database.update_once(
        COLLECTION, order_id,
        {"is_delivered": False},
        {"is_delivered": True, "delivered_at": datetime.now(timezone.utc)},
    )
    if updated:
        logger.info("Order %s marked delivered", order_id)
        return database.to_public(updated)
    # Unknown id, or already delivered: the latter is returned untouched.
    return database.to_public(_load(order_id))


def sales_summary() -> Dict[str, Any]:
    coll = database.db[COLLECTION]
    revenue = 0.0
    for o in coll.find({"is_paid": True}, {"total_price": 1}):
        revenue += float(o.get("total_price", 0))
    return {
        "orders": coll.count_documents({}),
        "paid": coll.count_documents({"is_paid": True}),
        "delivered": coll.count_documents({"is_delivered": True}),
        "revenue": round(revenue, 2),
        "currency": config.PRIMARY_CURRENCY,
    }
