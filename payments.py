"""
Payment sessions, verification and the paid-state transition.

An order becomes paid in exactly one place, ``mark_paid``, which flips
``is_paid`` with a compare-and-set so double clicks, retries and webhooks
racing each other apply ``paid_at``/``payment_result`` once.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict

import config
import database
import orders
from errors import AuthorizationError, NotFoundError, PaymentNotCompletedError, ValidationError
from gateway import CustomerContact, PaymentGateway, PaymentSession
from schemas import PaymentResult, PaymentSessionDTO

logger = logging.getLogger("sprintcart.payments")

MOCK_TRANSACTION_ID = "MOCK_PAYMENT_ID_123"
DEFAULT_PHONE = "9999999999"


def mark_paid(order_id: str, result: PaymentResult) -> Dict[str, Any]:
    now = datetime.now(timezone.utc)
    updated = database.update_once(
        orders.COLLECTION, order_id,
        {"is_paid": False},
        {"is_paid": True, "paid_at": now, "payment_result": result.model_dump()},
    )
    if updated:
        logger.info("Order %s paid via %s (%s)", order_id, result.status, result.id)
        return database.to_public(updated)
    doc = database.find_by_id(orders.COLLECTION, order_id)
    if not doc:
        raise NotFoundError("Order not found")
    logger.info("Order %s already paid, keeping existing payment result", order_id)
    return database.to_public(doc)


def create_payment_session(user: Dict[str, Any], data: PaymentSessionDTO,
                           gateway: PaymentGateway) -> PaymentSession:
    order = orders.get_owned_order(user, data.order_id)
    if order.get("is_paid"):
        raise ValidationError("Order is already paid")
    if float(order.get("total_price") or 0) <= 0:
        raise ValidationError("Invalid order total")

    contact = CustomerContact(
        customer_id=order["user_id"],
        name=data.customer_name or user.get("name") or "Guest",
        email=data.customer_email or user.get("email") or "guest@example.com",
        phone=data.customer_phone or order.get("shipping_address", {}).get("phone") or DEFAULT_PHONE,
    )
    session = gateway.create_session(order, contact)
    if session.reference:
        database.update_document(orders.COLLECTION, order["id"], {"payment_reference": session.reference})
    logger.info("Payment session minted for order %s via %s", order["id"], session.provider)
    return session


def verify_payment(user: Dict[str, Any], order_id: str, gateway: PaymentGateway) -> Dict[str, Any]:
    """Confirm payment against the gateway. Never trusts the client's word for it."""
    order = orders.get_owned_order(user, order_id)
    if order.get("is_paid"):
        return order

    remote = gateway.fetch_status(order["id"], reference=order.get("payment_reference"))
    if not remote.paid:
        logger.info("Order %s not paid yet, gateway status %s", order["id"], remote.status)
        raise PaymentNotCompletedError(status=remote.status)

    return mark_paid(order["id"], PaymentResult(
        id=remote.transaction_id or order["id"],
        status=remote.status,
        update_time=datetime.now(timezone.utc).isoformat(),
        email_address=remote.payer_email or "",
    ))


def mock_pay(user: Dict[str, Any], order_id: str) -> Dict[str, Any]:
    if not config.ALLOW_MOCK_PAYMENTS:
        raise AuthorizationError("Mock payments are disabled")
    order = orders.get_owned_order(user, order_id)
    logger.warning("Mock payment used for order %s", order["id"])
    return mark_paid(order["id"], PaymentResult(
        id=MOCK_TRANSACTION_ID,
        status="success",
        update_time=datetime.now(timezone.utc).isoformat(),
        email_address=user.get("email"),
    ))
