"""
SprintCart configuration

Every setting is read once from the environment. Modules read them as
``config.NAME`` so a test can patch a single value.
"""
import os

STORE_NAME = os.getenv("STORE_NAME", "SprintCart")
APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Money
PRIMARY_CURRENCY = os.getenv("PRIMARY_CURRENCY", "INR")
SHIPPING_STANDARD = float(os.getenv("SHIPPING_STANDARD", "0"))
SHIPPING_EXPRESS = float(os.getenv("SHIPPING_EXPRESS", "99"))
PROTECTION_FEE = float(os.getenv("PROTECTION_FEE", "29"))
SPRINT10_RATE = float(os.getenv("SPRINT10_RATE", "0.10"))
SPRINT10_CAP = float(os.getenv("SPRINT10_CAP", "500"))
MAX_ORDER_TOTAL = float(os.getenv("MAX_ORDER_TOTAL", "10000000"))

# Security
JWT_SECRET = os.getenv("JWT_SECRET", "devsecret_change_me")
JWT_EXP_MIN = int(os.getenv("JWT_EXP_MIN", str(60 * 24 * 30)))

# Storage
DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "sprintcart")

ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "*").split(",")

# Payments
PAYMENT_GATEWAY = os.getenv("PAYMENT_GATEWAY", "cashfree").lower()
GATEWAY_TIMEOUT = float(os.getenv("GATEWAY_TIMEOUT", "10"))
CASHFREE_ENV = os.getenv("CASHFREE_ENV", "sandbox")
CASHFREE_APP_ID = os.getenv("CASHFREE_APP_ID", "")
CASHFREE_SECRET = os.getenv("CASHFREE_SECRET", "")
CASHFREE_API_VERSION = os.getenv("CASHFREE_API_VERSION", "2023-08-01")
STRIPE_SECRET = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")

# The mock gateway marks orders paid without charging anyone.
ALLOW_MOCK_PAYMENTS = os.getenv(
    "ALLOW_MOCK_PAYMENTS", "false" if APP_ENV == "production" else "true"
).lower() in ("1", "true", "yes")


def is_production() -> bool:
    return APP_ENV == "production"
