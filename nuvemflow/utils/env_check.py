"""Startup validation of required environment configuration"""

import logging
import os

from nuvemflow.config import AppConfig

logger = logging.getLogger(__name__)

# Environment variable name -> AppConfig attribute
REQUIRED_SETTINGS = {
    "STORE_ID": "store_id",
    "NUVEMSHOP_TOKEN": "nuvemshop_token",
}


def find_missing_settings(settings: AppConfig) -> list[str]:
    """Return the names of required environment variables that are unset or empty"""
    return [name for name, attr in REQUIRED_SETTINGS.items() if not getattr(settings, attr)]


def describe_firebase_credentials(settings: AppConfig) -> str:
    """Which Firebase credential source will be used, for status reporting"""
    if settings.firebase_service_account_key:
        return "configured (FIREBASE_SERVICE_ACCOUNT_KEY)"
    if os.path.exists(settings.firebase_service_account_path):
        return f"configured ({os.path.basename(settings.firebase_service_account_path)})"
    return "missing"


def validate_environment(settings: AppConfig) -> bool:
    """
    Check configuration before starting the server

    Missing Nuvemshop settings are fatal; missing Firebase credentials only
    produce a warning because the service can run without persistence.

    Returns:
        bool: True when the server can start
    """
    missing = find_missing_settings(settings)
    if missing:
        logger.error(f"Missing required environment variables: {', '.join(missing)}")
        logger.error("Please check your .env file and ensure all required variables are set.")
        return False

    if describe_firebase_credentials(settings) == "missing":
        logger.warning(
            f"Firebase service account key not found at {settings.firebase_service_account_path} "
            "and FIREBASE_SERVICE_ACCOUNT_KEY is unset"
        )

    return True
