import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger("iceout.config")

DEV_DEVICE_ID_SECRET = "iceout-dev-secret"

DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
]


@dataclass
class Settings:
    database_url: Optional[str] = None
    proximity_radius_m: float = 500.0
    geolocation_timeout_s: float = 10.0
    # HMAC key for device fingerprints; rotating it invalidates dedup across the rotation
    device_id_secret: str = DEV_DEVICE_ID_SECRET
    cors_origins: List[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        from .database import database_url_from_env

        origins = os.getenv("CORS_ORIGINS")
        secret = os.getenv("DEVICE_ID_SECRET")
        if not secret:
            logger.warning(
                "DEVICE_ID_SECRET is not set; using the public development secret. "
                "Device fingerprints are not private until it is configured."
            )
            secret = DEV_DEVICE_ID_SECRET
        return cls(
            database_url=database_url_from_env(),
            proximity_radius_m=float(os.getenv("PROXIMITY_RADIUS_M", 500)),
            geolocation_timeout_s=float(os.getenv("GEOLOCATION_TIMEOUT_S", 10)),
            device_id_secret=secret,
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()] if origins else list(DEFAULT_CORS_ORIGINS),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
