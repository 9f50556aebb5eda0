"""
Configuration management for the WhatsApp webhook service.

Loads environment variables from .env file and provides typed access to configuration.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file
env_path = Path(__file__).parent / ".env"
load_dotenv(env_path)

logger = logging.getLogger(__name__)


def _first_env(*names: str, default: Optional[str] = None) -> Optional[str]:
    """Return the first non-empty environment variable among aliases."""
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return default


@dataclass(frozen=True)
class FallbackTenantConfig:
    """
    Environment-supplied tenant used when persistence is unavailable.

    Single-tenant mode: exactly one implicit tenant exists.
    """

    chatbot_id: str
    phone_number_id: Optional[str]
    access_token: Optional[str]
    waba_id: Optional[str]
    phone_number: str
    verify_token: Optional[str]

    @classmethod
    def from_env(cls) -> "FallbackTenantConfig":
        return cls(
            chatbot_id=_first_env("CHATBOT_ID", default="test-chatbot"),
            phone_number_id=_first_env("WHATSAPP_PHONE_NUMBER_ID"),
            access_token=_first_env("WHATSAPP_ACCESS_TOKEN"),
            waba_id=_first_env("WHATSAPP_BUSINESS_ACCOUNT_ID"),
            phone_number=_first_env(
                "WHATSAPP_PHONE_NUMBER", "WHATSAPP_DISPLAY_PHONE_NUMBER", default="Unknown"
            ),
            verify_token=_first_env("WHATSAPP_VERIFY_TOKEN", "WEBHOOK_VERIFY_TOKEN"),
        )


class Config:
    """Configuration class for the webhook service."""

    # Server
    PORT = int(os.getenv("PORT", "3000"))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    # Environment
    ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

    @classmethod
    def app_secret(cls) -> Optional[str]:
        """Shared secret for signature checks, read at call time."""
        return os.getenv("FACEBOOK_APP_SECRET") or None

    @classmethod
    def fallback_tenant(cls) -> FallbackTenantConfig:
        """Tenant fields used when no database is reachable."""
        return FallbackTenantConfig.from_env()

    @classmethod
    def validate(cls) -> bool:
        """
        Report missing configuration.

        Nothing here is fatal: missing values degrade to single-tenant
        fallback mode or skip signature checks.
        """
        ok = True
        if not cls.app_secret():
            logger.warning("FACEBOOK_APP_SECRET not set - webhook signatures will not be verified")
            ok = False
        if not os.getenv("DATABASE_URL"):
            logger.warning("DATABASE_URL not set - running in single-tenant fallback mode")
            ok = False
            if not cls.fallback_tenant().verify_token:
                logger.warning("WHATSAPP_VERIFY_TOKEN not set - webhook verification will fail")
        return ok


if __name__ == "__main__":
    # Test configuration loading
    print("Configuration loaded:")
    print(f"  App secret: {'✓ Set' if Config.app_secret() else '✗ Missing'}")
    fallback = Config.fallback_tenant()
    print(f"  Verify token: {'✓ Set' if fallback.verify_token else '✗ Missing'}")
    print(f"  Fallback chatbot: {fallback.chatbot_id}")
    print(f"  Port: {Config.PORT}")
    print(f"  Environment: {Config.ENVIRONMENT}")
    print(f"\n  Validation: {'✓ PASSED' if Config.validate() else '✗ FAILED'}")
