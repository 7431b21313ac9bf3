from datetime import datetime, timezone
import logging
from typing import Any, Dict, Optional

import stripe
from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import config
import database
import errors
import orders
import payments
import pricing
from auth import create_token, get_current_user, hash_password, public_user, require_admin, verify_password
from gateway import PaymentGateway, get_gateway
from schemas import (
    CreateOrderDTO,
    LoginDTO,
    OrderRefDTO,
    PaymentResult,
    PaymentSessionDTO,
    Product,
    ProductDTO,
    ProductUpdateDTO,
    RegisterDTO,
    User,
)

# Logging
logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger("sprintcart")

app = FastAPI(title="SprintCart API", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in config.ALLOWED_ORIGINS] if config.ALLOWED_ORIGINS else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error handlers
@app.exception_handler(errors.StorefrontError)
async def storefront_error_handler(request: Request, exc: errors.StorefrontError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"message": "Invalid request", "errors": jsonable_encoder(exc.errors())})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error: %s", exc)
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


# Health and config
@app.get("/")
def root():
    return {"name": config.STORE_NAME, "status": "ok"}


@app.get("/config")
def get_config():
    fees = pricing.DEFAULT_FEES
    return {
        "storeName": config.STORE_NAME,
        "currency": config.PRIMARY_CURRENCY,
        "shipping": dict(fees.shipping),
        "protection": fees.protection,
        "promoCodes": sorted(pricing.PROMO_CODES),
        "payments": {"gateway": config.PAYMENT_GATEWAY, "mock": config.ALLOW_MOCK_PAYMENTS},
    }


# Auth
@app.post("/api/auth/register", status_code=201)
def register(data: RegisterDTO):
    if database.db["user"].find_one({"email": data.email}):
        raise errors.ValidationError("User already exists")
    user = User(name=data.name, email=data.email, password_hash=hash_password(data.password), role="customer")
    user_id = database.create_document("user", user)
    doc = database.find_by_id("user", user_id)
    return {"token": create_token(doc), "user": public_user(doc)}


@app.post("/api/auth/login")
def login(data: LoginDTO):
    user = database.db["user"].find_one({"email": data.email})
    if not user or not verify_password(data.password, user.get("password_hash", "")):
        raise errors.AuthenticationError("Invalid credentials")
    return {"token": create_token(user), "user": public_user(user)}


@app.get("/api/auth/me")
def me(user: Dict[str, Any] = Depends(get_current_user)):
    return public_user(user)


# Products
@app.get("/api/products")
def list_products(category: Optional[str] = None):
    query = {"category": category} if category else None
    return [database.to_public(p) for p in database.get_documents("product", query, newest_first=True)]


@app.get("/api/products/{product_id}")
def get_product(product_id: str):
    p = database.find_by_id("product", product_id)
    if not p:
        raise errors.NotFoundError("Product not found")
    return database.to_public(p)


@app.post("/api/products", status_code=201)
def create_product(data: ProductDTO, user: Dict[str, Any] = Depends(require_admin)):
    product_id = database.create_document("product", Product(**data.model_dump()))
    return database.to_public(database.find_by_id("product", product_id))


@app.put("/api/products/{product_id}")
def update_product(product_id: str, data: ProductUpdateDTO, user: Dict[str, Any] = Depends(require_admin)):
    updated = database.update_document("product", product_id, data.model_dump(exclude_none=True))
    if not updated:
        raise errors.NotFoundError("Product not found")
    return database.to_public(updated)


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str, user: Dict[str, Any] = Depends(require_admin)):
    if not database.delete_document("product", product_id):
        raise errors.NotFoundError("Product not found")
    return {"id": product_id, "message": "Product removed"}


# Orders
@app.post("/api/orders", status_code=201)
def create_order(data: CreateOrderDTO, user: Dict[str, Any] = Depends(get_current_user)):
    return orders.create_order(user, data)


@app.get("/api/orders/mine")
def my_orders(user: Dict[str, Any] = Depends(get_current_user)):
    return orders.list_my_orders(user)


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    return orders.get_order(user, order_id)


@app.get("/api/orders")
def all_orders(user: Dict[str, Any] = Depends(require_admin)):
    return orders.list_all_orders()


@app.put("/api/orders/{order_id}/deliver")
def deliver_order(order_id: str, user: Dict[str, Any] = Depends(require_admin)):
    return orders.mark_delivered(order_id)


# Admin analytics
@app.get("/api/admin/analytics")
def analytics(user: Dict[str, Any] = Depends(require_admin)):
    return orders.sales_summary()


# Payments
@app.post("/api/payment/mock")
def mock_payment(data: OrderRefDTO, user: Dict[str, Any] = Depends(get_current_user)):
    order = payments.mock_pay(user, data.order_id)
    return {"message": "Payment successful (MOCK)", "order": order}


@app.post("/api/payment/session")
def create_payment_session(data: PaymentSessionDTO, user: Dict[str, Any] = Depends(get_current_user),
                           gateway: PaymentGateway = Depends(get_gateway)):
    session = payments.create_payment_session(user, data, gateway)
    return {"payment_session_id": session.session_id, "order_id": session.order_id, "provider": session.provider}


@app.post("/api/payment/verify")
def verify_payment(data: OrderRefDTO, user: Dict[str, Any] = Depends(get_current_user),
                   gateway: PaymentGateway = Depends(get_gateway)):
    order = payments.verify_payment(user, data.order_id, gateway)
    return {"message": "Payment verified", "order": order}


# Stripe webhook
@app.post("/webhooks/stripe")
async def stripe_webhook(request: Request):
    if not config.STRIPE_WEBHOOK_SECRET:
        logger.warning("Stripe webhook received but STRIPE_WEBHOOK_SECRET is not set; ignoring")
        return {"received": False}
    payload = await request.body()
    sig = request.headers.get("Stripe-Signature")
    try:
        event = stripe.Webhook.construct_event(payload, sig, config.STRIPE_WEBHOOK_SECRET)
    except (ValueError, stripe.SignatureVerificationError):
        raise errors.ValidationError("Invalid payload")

    if event["type"] == "payment_intent.succeeded":
        intent = event["data"]["object"]
        try:
            order_id = intent["metadata"]["order_id"]
        except KeyError:
            order_id = None
        if order_id:
            payments.mark_paid(order_id, PaymentResult(
                id=intent["id"],
                status=intent["status"],
                update_time=datetime.fromtimestamp(event["created"], tz=timezone.utc).isoformat(),
                email_address=intent["receipt_email"] or "",
            ))
    return {"received": True}


# Sample seed endpoint (dev only)
@app.post("/dev/seed")
def seed():
    if config.is_production():
        raise errors.NotFoundError()
    if not database.db["user"].find_one({"email": "admin@sprintcart.store"}):
        admin = User(name="Admin", email="admin@sprintcart.store", password_hash=hash_password("admin123"), role="admin")
        database.create_document("user", admin)
    if database.db["product"].count_documents({}) == 0:
        database.create_document("product", Product(
            name="Trail Runner Shoes",
            description="Lightweight running shoes",
            price=2499.0,
            image="https://images.unsplash.com/photo-1542291026-7eec264c27ff",
            category="footwear",
            count_in_stock=40,
        ))
        database.create_document("product", Product(
            name="Wireless Earbuds",
            description="Noise isolating, long battery life",
            price=1799.0,
            image="https://images.unsplash.com/photo-1585386959984-a41552231620",
            category="electronics",
            count_in_stock=25,
        ))
    return {"ok": True}


if __name__ == "__main__":
    import os

    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
