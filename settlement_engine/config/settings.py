"""
Application settings and configuration
"""
import os
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


def _optional_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    return float(value)


class Settings:
    # Application
    APP_NAME = "Settlement Engine"
    VERSION = "1.0.0"
    DEBUG = os.getenv("DEBUG", "False") == "True"
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # CORS
    ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.getenv(
            "ALLOWED_ORIGINS",
            "http://localhost:3000,http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if origin.strip()
    ]

    # Timestamps are rendered in this zone by serialize_doc
    DISPLAY_TIMEZONE = os.getenv("DISPLAY_TIMEZONE", "Asia/Kolkata")

    # Money
    ROUNDING_TOLERANCE = float(os.getenv("ROUNDING_TOLERANCE", "0.01"))

    # System default commission split, used only when neither a vendor override
    # nor a global configuration exists. Unset means "no default".
    DEFAULT_DIRECT_ADMIN_SHARE = _optional_float("DEFAULT_DIRECT_ADMIN_SHARE")
    DEFAULT_QR_HOTEL_SHARE = _optional_float("DEFAULT_QR_HOTEL_SHARE")
    DEFAULT_QR_ADMIN_SHARE = _optional_float("DEFAULT_QR_ADMIN_SHARE")

    # Store retries (transient I/O only)
    STORE_RETRY_ATTEMPTS = int(os.getenv("STORE_RETRY_ATTEMPTS", "3"))
    STORE_RETRY_BASE_DELAY = float(os.getenv("STORE_RETRY_BASE_DELAY", "0.1"))

    # Pagination
    DEFAULT_PAGE_SIZE = 20
    MAX_PAGE_SIZE = 100


settings = Settings()
