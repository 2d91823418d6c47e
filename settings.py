# Environment configuration. COD_FEE and global free shipping can be overridden per request from `site_setting`.
import os

# Auth
JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
JWT_EXPIRES_MIN = int(os.getenv("JWT_EXPIRES_MIN", "60"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Shipping defaults, used when no zone matches the delivery pincode
DEFAULT_BASE_RATE = float(os.getenv("DEFAULT_BASE_RATE", "50"))
DEFAULT_REGION_MULTIPLIER = float(os.getenv("DEFAULT_REGION_MULTIPLIER", "1.0"))
EXPRESS_MULTIPLIER = float(os.getenv("EXPRESS_MULTIPLIER", "1.5"))
DEFAULT_FREE_SHIPPING_THRESHOLD = float(os.getenv("DEFAULT_FREE_SHIPPING_THRESHOLD", "2000"))

SHIPPING_CLASS_SURCHARGES = {
    "standard": 1.0,
    "fragile": 1.2,
    "oversized": 1.5,
}

# Flat cash-on-delivery surcharge
COD_FEE = float(os.getenv("COD_FEE", "0"))

SHIPPING_METHODS = ("standard", "express")
PAYMENT_METHODS = ("card", "cod")
