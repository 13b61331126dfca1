# farmconnect/app_config.py

import logging
import os
from typing import Any, Dict

# placeholder only; create_app() warns when it is still in use
DEFAULT_JWT_SECRET = "change-me-super-secret"


def _flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def load_config() -> Dict[str, Any]:
    """
    Load all runtime configuration in a clean centralized way.
    Services get these values injected; they never read env vars themselves.
    """
    config: Dict[str, Any] = {}

    # ------------------------------
    # Mongo
    # ------------------------------
    config["MONGO_URI"] = os.getenv(
        "MONGO_URI",
        "mongodb://localhost:27017/farmconnect"
    )
    config["DISABLE_MONGO"] = _flag("DISABLE_MONGO")

    # ------------------------------
    # Security Keys
    # ------------------------------
    config["JWT_SECRET_KEY"] = os.getenv("JWT_SECRET_KEY", DEFAULT_JWT_SECRET)

    # ------------------------------
    # Order lifecycle
    # ------------------------------
    config["CROP_DELETE_DELAY_HOURS"] = float(os.getenv("CROP_DELETE_DELAY_HOURS", "2"))
    config["RESTORE_STOCK_ON_CANCEL"] = _flag("RESTORE_STOCK_ON_CANCEL")
    config["CLAIM_LEASE_MINUTES"] = float(os.getenv("CLAIM_LEASE_MINUTES", "5"))

    # ------------------------------
    # Background sweep
    # ------------------------------
    config["ENABLE_SCHEDULER"] = _flag("ENABLE_SCHEDULER", "1")
    config["CROP_SWEEP_INTERVAL_MINUTES"] = int(os.getenv("CROP_SWEEP_INTERVAL_MINUTES", "10"))

    config["LOG_LEVEL"] = os.getenv("LOG_LEVEL", "INFO").upper()

    return config


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
