"""
Client-side checkout.

This is the storefront client's half of placing an order: the cart it keeps
between visits, form validation, and the ``CheckoutFlow`` state machine that
walks an order from the address form to a verified payment:

    IDLE -> VALIDATING_ADDRESS -> CREATING_ORDER -> CREATING_PAYMENT_SESSION
         -> AWAITING_GATEWAY_UI -> VERIFYING_PAYMENT -> DONE

Cash-on-delivery orders go straight from CREATING_ORDER to DONE. A failed
step leaves the flow resting in the state the next ``submit()`` resumes from,
and the created order is reused for as long as the checkout inputs stay the
same, so retrying never places a second order.

Totals shown here come from ``pricing.compute_totals``, the same function the
API charges with. They are never sent to the API.
"""
import json
import logging
import re
from dataclasses import asdict, dataclass, field, replace
from datetime import date, timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple

import httpx

import pricing

logger = logging.getLogger("sprintcart.checkout")

DOMESTIC_COUNTRY = "india"
EMAIL_RE = re.compile(r"^\S+@\S+\.\S+$")
PIN_RE = re.compile(r"^\d{6}$")
PHONE_RE = re.compile(r"^\d{10}$")

MAX_QTY = 99
DELIVERY_DAYS = {pricing.DELIVERY_STANDARD: 5, pricing.DELIVERY_EXPRESS: 2}

# Gateway statuses after which the same session can still be paid. "not_found"
# means the gateway has not indexed the payment yet.
RESUMABLE_GATEWAY_STATUSES = {"ACTIVE", "not_found", "requires_payment_method", "requires_action", "processing"}


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------

@dataclass
class CartItem:
    product_id: str
    name: str
    unit_price: float
    quantity: int = 1
    image: Optional[str] = None


class CartStorage:
    """JSON file the cart is loaded from and persisted to."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def read(self) -> List[Dict[str, Any]]:
        try:
            data = json.loads(self.path.read_text())
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as exc:
            logger.warning("Unreadable cart at %s, starting empty: %s", self.path, exc)
            return []
        return data if isinstance(data, list) else []

    def write(self, items: List[Dict[str, Any]]) -> None:
        try:
            self.path.write_text(json.dumps(items))
        except OSError as exc:
            logger.warning("Could not persist cart to %s: %s", self.path, exc)


class CartContext:
    """The shopper's cart. Every mutation is persisted when storage is attached.

    A product appears at most once; entries for the same product are merged.
    """

    def __init__(self, items: Optional[List[CartItem]] = None, storage: Optional[CartStorage] = None):
        self.items: List[CartItem] = []
        self.storage = storage
        for item in items or []:
            self._merge(item)

    @classmethod
    def load(cls, storage: CartStorage) -> "CartContext":
        items = []
        for raw in storage.read():
            try:
                items.append(CartItem(**raw))
            except TypeError:
                logger.warning("Dropping malformed cart entry: %r", raw)
        return cls(items, storage)

    def persist(self) -> None:
        if self.storage is not None:
            self.storage.write([asdict(i) for i in self.items])

    def _find(self, product_id: str) -> Optional[CartItem]:
        return next((i for i in self.items if i.product_id == product_id), None)

    def _merge(self, item: CartItem) -> None:
        quantity = max(1, min(MAX_QTY, pricing.to_quantity(item.quantity)))
        existing = self._find(item.product_id)
        if existing:
            existing.quantity = min(MAX_QTY, existing.quantity + quantity)
        else:
            self.items.append(replace(item, quantity=quantity))

    def add(self, product: Dict[str, Any], quantity: int = 1) -> None:
        product_id = product.get("id") or product.get("_id") or product.get("product_id")
        if not product_id:
            return
        existing = self._find(product_id)
        if existing:
            existing.quantity = min(MAX_QTY, existing.quantity + quantity)
        else:
            self.items.append(CartItem(
                product_id=product_id,
                name=product.get("name", ""),
                unit_price=product.get("price", product.get("unit_price", 0)),
                quantity=max(1, min(MAX_QTY, quantity)),
                image=product.get("image"),
            ))
        self.persist()

    def remove(self, product_id: str) -> None:
        self.items = [i for i in self.items if i.product_id != product_id]
        self.persist()

    def decrement(self, product_id: str) -> None:
        item = self._find(product_id)
        if not item:
            return
        if item.quantity <= 1:
            self.remove(product_id)
            return
        item.quantity -= 1
        self.persist()

    def set_quantity(self, product_id: str, quantity: Any) -> None:
        item = self._find(product_id)
        if not item:
            return
        try:
            qty = int(quantity)
        except (TypeError, ValueError):
            qty = 1
        item.quantity = max(1, min(MAX_QTY, qty))
        self.persist()

    def clear(self) -> None:
        self.items = []
        self.persist()

    @property
    def count(self) -> int:
        return sum(i.quantity for i in self.items)

    def snapshot(self) -> Tuple[Tuple[Any, ...], ...]:
        return tuple((i.product_id, i.name, i.unit_price, i.quantity, i.image) for i in self.items)


# ---------------------------------------------------------------------------
# Form validation
# ---------------------------------------------------------------------------

@dataclass
class AddressForm:
    full_name: str = ""
    address_line1: str = ""
    address_line2: str = ""
    landmark: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = "India"
    phone: str = ""

    @property
    def is_domestic(self) -> bool:
        return self.country.strip().lower() == DOMESTIC_COUNTRY

    def to_payload(self) -> Dict[str, str]:
        lines = [part.strip() for part in (self.address_line1, self.address_line2, self.landmark)]
        return {
            "full_name": self.full_name.strip(),
            "address": ", ".join(line for line in lines if line),
            "city": self.city.strip(),
            "state": self.state.strip(),
            "postal_code": self.postal_code.strip(),
            "country": self.country.strip(),
            "phone": self.phone.strip(),
        }


def validate_address(address: AddressForm, email: str) -> Dict[str, str]:
    """Field name -> message for every field that fails. Empty when valid."""
    errors: Dict[str, str] = {}
    required = {
        "full_name": "Full name",
        "address_line1": "Address line 1",
        "city": "City",
        "state": "State",
        "postal_code": "Postal code",
        "country": "Country",
        "phone": "Phone",
    }
    for name, label in required.items():
        if not getattr(address, name).strip():
            errors[name] = f"{label} is required."

    if not email.strip():
        errors["email"] = "Email is required."
    elif not EMAIL_RE.match(email.strip()):
        errors["email"] = "Enter a valid email address."

    postal_code = address.postal_code.strip()
    phone = address.phone.strip()
    if postal_code:
        if address.is_domestic and not PIN_RE.match(postal_code):
            errors["postal_code"] = "Enter a 6 digit PIN code."
        elif not address.is_domestic and len(postal_code) < 4:
            errors["postal_code"] = "Postal code looks too short."
    if phone:
        if address.is_domestic and not PHONE_RE.match(phone):
            errors["phone"] = "Enter a 10 digit phone number."
        elif not address.is_domestic and len(phone) < 7:
            errors["phone"] = "Phone number looks too short."
    return errors


def validate_line_items(items: List[CartItem]) -> Optional[str]:
    if any(not i.image for i in items):
        return "One or more items are missing an image."
    if any(not i.product_id for i in items):
        return "One or more items are missing product IDs."
    return None


@dataclass
class PromoResult:
    code: Optional[str]
    message: str


def apply_promo(raw: str) -> PromoResult:
    entered = (raw or "").strip()
    if not entered:
        return PromoResult(None, "Promo removed.")
    code = pricing.normalize_promo(entered)
    if code is None:
        return PromoResult(None, "Invalid promo code.")
    return PromoResult(code, pricing.describe_promo(code))


def estimated_delivery(delivery_option: str, today: Optional[date] = None) -> date:
    days = DELIVERY_DAYS.get(delivery_option, DELIVERY_DAYS[pricing.DELIVERY_STANDARD])
    return (today or date.today()) + timedelta(days=days)


# ---------------------------------------------------------------------------
# API client and hosted payment UI
# ---------------------------------------------------------------------------

class ApiError(Exception):
    """A storefront API call failed. ``status_code`` is None for transport failures."""

    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details or {}


class StorefrontClient:
    def __init__(self, http: httpx.Client, token: Optional[str] = None, prefix: str = "/api"):
        self.http = http
        self.token = token
        self.prefix = prefix

    def _headers(self) -> Dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}", "x-auth-token": self.token}

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self.http.post(self.prefix + path, json=payload, headers=self._headers())
        except httpx.HTTPError as exc:
            raise ApiError(f"Network error: {exc}") from exc
        try:
            data = response.json()
        except ValueError:
            data = {}
        if response.is_error:
            details = data if isinstance(data, dict) else {}
            raise ApiError(details.get("message") or f"Request failed ({response.status_code})",
                           status_code=response.status_code, details=details)
        return data

    def create_order(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._post("/orders", payload)

    def create_payment_session(self, order_id: str, name: str, email: str, phone: str) -> Dict[str, Any]:
        return self._post("/payment/session", {
            "order_id": order_id,
            "customer_name": name,
            "customer_email": email,
            "customer_phone": phone,
        })

    def verify_payment(self, order_id: str) -> Dict[str, Any]:
        return self._post("/payment/verify", {"order_id": order_id})


@dataclass
class GatewayResult:
    completed: bool
    error: Optional[str] = None


class HostedCheckout(Protocol):
    def open(self, session_id: str) -> GatewayResult:
        """Show the gateway's payment UI and block until it reports back."""
        ...


# ---------------------------------------------------------------------------
# Checkout state machine
# ---------------------------------------------------------------------------

class CheckoutState(str, Enum):
    IDLE = "idle"
    VALIDATING_ADDRESS = "validating_address"
    CREATING_ORDER = "creating_order"
    CREATING_PAYMENT_SESSION = "creating_payment_session"
    AWAITING_GATEWAY_UI = "awaiting_gateway_ui"
    VERIFYING_PAYMENT = "verifying_payment"
    DONE = "done"


S = CheckoutState
TRANSITIONS = {
    S.IDLE: {S.VALIDATING_ADDRESS},
    S.VALIDATING_ADDRESS: {S.IDLE, S.CREATING_ORDER, S.CREATING_PAYMENT_SESSION,
                           S.AWAITING_GATEWAY_UI, S.VERIFYING_PAYMENT},
    S.CREATING_ORDER: {S.IDLE, S.CREATING_PAYMENT_SESSION, S.DONE},
    S.CREATING_PAYMENT_SESSION: {S.IDLE, S.AWAITING_GATEWAY_UI},
    S.AWAITING_GATEWAY_UI: {S.IDLE, S.VERIFYING_PAYMENT},
    S.VERIFYING_PAYMENT: {S.IDLE, S.AWAITING_GATEWAY_UI, S.CREATING_PAYMENT_SESSION, S.DONE},
    S.DONE: set(),
}


class CheckoutStateError(Exception):
    pass


@dataclass
class CheckoutForm:
    email: str = ""
    address: AddressForm = field(default_factory=AddressForm)
    payment_method: str = "Online"
    delivery_option: str = pricing.DELIVERY_STANDARD
    protection: bool = True
    promo_code: Optional[str] = None
    notes: str = ""

    def fingerprint(self) -> Tuple[Any, ...]:
        return (self.email, tuple(asdict(self.address).values()), self.payment_method,
                self.delivery_option, self.protection, self.promo_code, self.notes)


class CheckoutFlow:
    def __init__(self, cart: CartContext, client: StorefrontClient, hosted_checkout: HostedCheckout,
                 form: Optional[CheckoutForm] = None, customer_name: Optional[str] = None):
        self.cart = cart
        self.client = client
        self.hosted_checkout = hosted_checkout
        self.form = form or CheckoutForm()
        self.customer_name = customer_name

        self.state = S.IDLE
        self.order: Optional[Dict[str, Any]] = None
        self.session_id: Optional[str] = None
        self.error: Optional[str] = None
        self.notice: Optional[str] = None
        self.field_errors: Dict[str, str] = {}
        self._order_inputs: Optional[Tuple[Any, ...]] = None
        self._resume_at: Optional[CheckoutState] = None

    # -- state handling ----------------------------------------------------

    def _enter(self, state: CheckoutState) -> None:
        if state not in TRANSITIONS[self.state]:
            raise CheckoutStateError(f"illegal transition {self.state.value} -> {state.value}")
        logger.debug("checkout %s -> %s", self.state.value, state.value)
        self.state = state

    def _inputs(self) -> Tuple[Any, ...]:
        return (self.cart.snapshot(), self.form.fingerprint())

    def _forget_order(self) -> None:
        if self.order is not None:
            logger.info("Checkout inputs changed, discarding order %s", self.order.get("id"))
        self.order = None
        self.session_id = None
        self._order_inputs = None
        self._resume_at = None
        self.notice = None

    def preview(self) -> pricing.PriceBreakdown:
        return pricing.compute_totals(
            self.cart.items,
            delivery_option=self.form.delivery_option,
            protection=self.form.protection,
            promo_code=self.form.promo_code,
        )

    def cancel(self) -> None:
        """Abandon the attempt. An unpaid order stays remembered for the next submit."""
        if self.state in (S.IDLE, S.DONE):
            return
        self._resume_at = self.state if self.order is not None else None
        self._enter(S.IDLE)

    # -- the flow ----------------------------------------------------------

    def submit(self) -> CheckoutState:
        if self.state is S.DONE:
            return self.state
        self.error = None

        if self.order is not None and self._inputs() != self._order_inputs:
            self._forget_order()
            # Start over; whatever step we were resting in belonged to the old order.
            self.state = S.IDLE

        if self.state is S.IDLE:
            self._enter(S.VALIDATING_ADDRESS)
            if not self._check_entry():
                self._enter(S.IDLE)
                return self.state
            if self.order is None:
                self._enter(S.CREATING_ORDER)
                if not self._create_order():
                    self._enter(S.IDLE)
                    return self.state
                if self.form.payment_method == "COD":
                    self._finish()
                    return self.state
                self._enter(S.CREATING_PAYMENT_SESSION)
                if self.notice:
                    return self.state
            else:
                self._enter(self._resume_at or S.CREATING_PAYMENT_SESSION)
                self._resume_at = None

        if self.state is S.CREATING_PAYMENT_SESSION:
            if not self._create_session():
                return self.state
            self._enter(S.AWAITING_GATEWAY_UI)

        if self.state is S.AWAITING_GATEWAY_UI:
            result = self.hosted_checkout.open(self.session_id)
            if not result.completed:
                self.error = result.error or "Payment failed."
                return self.state
            self._enter(S.VERIFYING_PAYMENT)

        if self.state is S.VERIFYING_PAYMENT:
            self._verify()
        return self.state

    def _check_entry(self) -> bool:
        self.field_errors = {}
        if not self.cart.items:
            self.error = "Your cart is empty."
            return False
        self.field_errors = validate_address(self.form.address, self.form.email)
        if self.field_errors:
            self.error = "Please fix the highlighted fields."
            return False
        item_error = validate_line_items(self.cart.items)
        if item_error:
            self.error = item_error
            return False
        if not self.preview().chargeable:
            self.error = "Order total must be greater than zero."
            return False
        return True

    def _order_payload(self) -> Dict[str, Any]:
        return {
            "items": [
                {
                    "product_id": i.product_id,
                    "name": i.name,
                    "quantity": i.quantity,
                    "unit_price": i.unit_price,
                    "image": i.image,
                }
                for i in self.cart.items
            ],
            "shipping_address": self.form.address.to_payload(),
            "payment_method": self.form.payment_method,
            "promo_code": self.form.promo_code,
            "delivery_option": self.form.delivery_option,
            "protection": self.form.protection,
            "delivery_notes": self.form.notes or None,
        }

    def _create_order(self) -> bool:
        expected = self.preview()
        try:
            order = self.client.create_order(self._order_payload())
        except ApiError as exc:
            self.error = exc.message
            return False
        self.order = order
        self._order_inputs = self._inputs()
        charged = float(order.get("total_price", 0))
        if abs(charged - expected.total_price) >= 0.005:
            self.notice = (f"Order total is {charged:.2f}, not the {expected.total_price:.2f} shown. "
                           "Review it before paying.")
            logger.warning("Order %s total %.2f differs from preview %.2f",
                           order.get("id"), charged, expected.total_price)
        return True

    def _create_session(self) -> bool:
        self.notice = None
        address = self.form.address
        try:
            data = self.client.create_payment_session(
                self.order["id"],
                name=address.full_name or self.customer_name or "",
                email=self.form.email,
                phone=address.phone,
            )
        except ApiError as exc:
            self.error = exc.message
            return False
        self.session_id = data.get("payment_session_id")
        if not self.session_id:
            self.error = "Payment session not created."
            return False
        return True

    def _verify(self) -> None:
        try:
            data = self.client.verify_payment(self.order["id"])
        except ApiError as exc:
            self.error = exc.message or "Payment verification failed."
            remote_status = exc.details.get("status")
            if exc.status_code == 400 and "status" in exc.details:
                self.error = "Payment not completed."
                if remote_status in RESUMABLE_GATEWAY_STATUSES:
                    self._enter(S.AWAITING_GATEWAY_UI)
                else:
                    self.session_id = None
                    self._enter(S.CREATING_PAYMENT_SESSION)
            # Anything else leaves us in VERIFYING_PAYMENT; verifying again is safe.
            return
        self.order = data.get("order", self.order)
        self._finish()

    def _finish(self) -> None:
        self.cart.clear()
        self._enter(S.DONE)
        logger.info("Checkout complete for order %s", self.order.get("id"))
