"""
Central constants for the Umbra platform.
"""
from __future__ import annotations

# Roles and account statuses
ROLE_ADMIN = "ADMIN"
ROLE_PROCESSOR = "PROCESSOR"
ROLE_USER = "USER"
ROLE_BUYER = "BUYER"
VALID_ROLES = (ROLE_ADMIN, ROLE_PROCESSOR, ROLE_USER, ROLE_BUYER)

STATUS_PENDING = "PENDING"
STATUS_APPROVED = "APPROVED"
STATUS_REJECTED = "REJECTED"
VALID_USER_STATUSES = (STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED)

PROCESSOR_ROLES = (ROLE_PROCESSOR, ROLE_ADMIN)

# Business clock: UTC+3, day rolls over at 06:00 local time
BUSINESS_UTC_OFFSET_HOURS = 3
BUSINESS_TIMEZONE_LABEL = "+3"
BUSINESS_DAY_START_HOUR = 6

# Crypto tickers; anything else is treated as fiat
CRYPTO_CURRENCIES = frozenset(
    {"BTC", "ETH", "USDT", "USDC", "BNB", "XRP", "ADA", "SOL", "DOGE", "MATIC", "TRX", "LTC"}
)

# Uploads
IMAGE_MIME_TYPES = frozenset(
    {"image/jpeg", "image/png", "image/gif", "image/webp", "image/svg+xml"}
)
FILE_MIME_TYPES = IMAGE_MIME_TYPES | frozenset(
    {
        "application/pdf",
        "text/plain",
        "application/zip",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    }
)
EXTENSION_MIME_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "svg": "image/svg+xml",
    "pdf": "application/pdf",
    "txt": "text/plain",
    "zip": "application/zip",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}
UPLOAD_FOLDERS = ("images", "files")
