"""
Hosted payment gateways.

Both gateways speak the same small contract: mint a checkout session for an
order, and report the remote payment status of an order by its id. Neither
touches our database; ``payments.py`` decides what a status means for an order.
"""
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Optional, Protocol

import httpx
import stripe

import config
from errors import UnexpectedError, UpstreamError

logger = logging.getLogger("sprintcart.gateway")

CASHFREE_URLS = {
    "production": "https://api.cashfree.com/pg",
    "sandbox": "https://sandbox.cashfree.com/pg",
}


@dataclass
class CustomerContact:
    customer_id: str
    name: str
    email: str
    phone: str


@dataclass
class PaymentSession:
    session_id: str
    order_id: str
    provider: str
    # Gateway-side id of the payment, for reading its status back.
    reference: Optional[str] = None


@dataclass
class RemotePaymentStatus:
    status: str
    paid: bool
    transaction_id: Optional[str] = None
    payer_email: Optional[str] = None


class PaymentGateway(Protocol):
    name: str

    def create_session(self, order: Dict[str, Any], customer: CustomerContact) -> PaymentSession:
        ...

    def fetch_status(self, order_id: str, reference: Optional[str] = None) -> RemotePaymentStatus:
        ...


class CashfreeGateway:
    """Cashfree PG orders API (``POST /orders``, ``GET /orders/{id}``)."""

    name = "cashfree"
    PAID_STATUS = "PAID"

    def __init__(self, app_id: str, secret: str, environment: str = "sandbox",
                 api_version: str = "2023-08-01", currency: str = "INR",
                 timeout: float = 10.0, transport: Optional[httpx.BaseTransport] = None):
        base_url = CASHFREE_URLS["production" if environment == "production" else "sandbox"]
        self.currency = currency
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "x-api-version": api_version,
                "x-client-id": app_id,
                "x-client-secret": secret,
            },
        )

    def create_session(self, order: Dict[str, Any], customer: CustomerContact) -> PaymentSession:
        data = self._request("POST", "/orders", json={
            "order_id": order["id"],
            "order_amount": order["total_price"],
            "order_currency": self.currency,
            "customer_details": {
                "customer_id": customer.customer_id,
                "customer_name": customer.name,
                "customer_email": customer.email,
                "customer_phone": customer.phone,
            },
        }, failure="Cashfree order create failed")
        session_id = data.get("payment_session_id")
        if not session_id:
            raise UpstreamError("Cashfree returned no payment session", details={"details": data})
        return PaymentSession(session_id=session_id, order_id=data.get("order_id") or order["id"],
                              provider=self.name)

    def fetch_status(self, order_id: str, reference: Optional[str] = None) -> RemotePaymentStatus:
        data = self._request("GET", f"/orders/{order_id}", failure="Cashfree order fetch failed")
        status = data.get("order_status") or "UNKNOWN"
        customer = data.get("customer_details") or {}
        transaction_id = data.get("cf_order_id") or data.get("order_id")
        return RemotePaymentStatus(
            status=status,
            paid=status == self.PAID_STATUS,
            transaction_id=str(transaction_id) if transaction_id is not None else None,
            payer_email=customer.get("customer_email", ""),
        )

    def _request(self, method: str, path: str, failure: str, **kwargs) -> Dict[str, Any]:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning("Cashfree %s %s timed out", method, path)
            raise UpstreamError("Payment gateway timed out", timeout=True) from exc
        except httpx.HTTPError as exc:
            logger.warning("Cashfree %s %s failed: %s", method, path, exc)
            raise UpstreamError(f"Payment gateway unreachable: {exc}") from exc

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {"body": data}
        if response.is_error:
            message = data.get("message") or data.get("error") or failure
            logger.warning("Cashfree %s %s -> %s: %s", method, path, response.status_code, message)
            raise UpstreamError(message, upstream_status=response.status_code, details={"details": data})
        return data

    def close(self) -> None:
        self._client.close()


class StripeGateway:
    """Stripe PaymentIntents; the intent's client secret is the session token.

    The intent id is returned as the session ``reference`` and read back with
    ``PaymentIntent.retrieve``. Orders without a stored reference fall back to
    search, whose index lags behind fresh writes.
    """

    name = "stripe"
    PAID_STATUS = "succeeded"
    NOT_FOUND = "not_found"

    def __init__(self, api_key: str, currency: str = "INR"):
        stripe.api_key = api_key
        self.currency = currency.lower()

    def create_session(self, order: Dict[str, Any], customer: CustomerContact) -> PaymentSession:
        try:
            intent = stripe.PaymentIntent.create(
                amount=int(round(float(order["total_price"]) * 100)),
                currency=self.currency,
                receipt_email=customer.email or None,
                metadata={"order_id": order["id"], "customer_id": customer.customer_id},
            )
        except stripe.StripeError as exc:
            raise self._upstream(exc, "Stripe payment intent create failed") from exc
        return PaymentSession(session_id=intent.client_secret, order_id=order["id"],
                              provider=self.name, reference=intent.id)

    def fetch_status(self, order_id: str, reference: Optional[str] = None) -> RemotePaymentStatus:
        if reference:
            try:
                intent = stripe.PaymentIntent.retrieve(reference)
            except stripe.StripeError as exc:
                raise self._upstream(exc, "Stripe payment intent fetch failed") from exc
            return self._status(intent)

        try:
            result = stripe.PaymentIntent.search(query=f"metadata['order_id']:'{order_id}'")
        except stripe.StripeError as exc:
            raise self._upstream(exc, "Stripe payment intent search failed") from exc
        intents = list(result.data)
        for intent in intents:
            if intent.status == self.PAID_STATUS:
                return self._status(intent)
        if not intents:
            return RemotePaymentStatus(status=self.NOT_FOUND, paid=False)
        return self._status(intents[0])

    def _status(self, intent: Any) -> RemotePaymentStatus:
        if intent.status != self.PAID_STATUS:
            return RemotePaymentStatus(status=intent.status, paid=False)
        return RemotePaymentStatus(status=intent.status, paid=True, transaction_id=intent.id,
                                   payer_email=intent.receipt_email or "")

    @staticmethod
    def _upstream(exc: "stripe.StripeError", failure: str) -> UpstreamError:
        logger.warning("%s: %s", failure, exc)
        return UpstreamError(exc.user_message or failure, upstream_status=exc.http_status)


@lru_cache(maxsize=1)
def _configured_gateway(kind: str) -> PaymentGateway:
    if kind == "stripe":
        if not config.STRIPE_SECRET:
            logger.error("PAYMENT_GATEWAY is stripe but STRIPE_SECRET_KEY is not set")
            raise UnexpectedError("Stripe not configured")
        return StripeGateway(config.STRIPE_SECRET, currency=config.PRIMARY_CURRENCY)
    if kind == "cashfree":
        return CashfreeGateway(
            app_id=config.CASHFREE_APP_ID,
            secret=config.CASHFREE_SECRET,
            environment=config.CASHFREE_ENV,
            api_version=config.CASHFREE_API_VERSION,
            currency=config.PRIMARY_CURRENCY,
            timeout=config.GATEWAY_TIMEOUT,
        )
    logger.error("Unknown PAYMENT_GATEWAY %r", kind)
    raise UnexpectedError(f"Unknown payment gateway: {kind}")


def get_gateway() -> PaymentGateway:
    """FastAPI dependency returning the configured gateway."""
    return _configured_gateway(config.PAYMENT_GATEWAY)
