"""
Runtime configuration for the Uniform Store API.

Values come from the environment once, at import time, and are handed to the
components that need them.
"""
import os

# Database
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "uniform_store")
DB_TIMEOUT_MS = int(os.getenv("DB_TIMEOUT_MS", "5000"))

# Auth
JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret")
JWT_ALG = "HS256"
TOKEN_EXPIRE_MIN = int(os.getenv("TOKEN_EXPIRE_MIN", str(60 * 24 * 7)))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

# Bootstrap super-admin (optional)
ADMIN_NAME = os.getenv("ADMIN_NAME", "Super Admin")
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")

# Catalog / checkout
LOW_STOCK_THRESHOLD = int(os.getenv("LOW_STOCK_THRESHOLD", "5"))
FREE_SHIPPING_ABOVE = float(os.getenv("FREE_SHIPPING_ABOVE", "2999"))
SHIPPING_CHARGE = float(os.getenv("SHIPPING_CHARGE", "99"))

# Server
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
PORT = int(os.getenv("PORT", "8000"))
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
