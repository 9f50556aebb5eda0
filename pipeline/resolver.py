"""
Tenant resolution.

Maps an inbound event to the tenant(s) that own it:
- webhook handshake: by verify token (exactly one tenant)
- message delivery: by provider phone_number_id (zero, one or many)

When no directory is configured, or it cannot be reached, a single
tenant is synthesized from the environment (fallback mode).
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from config import FallbackTenantConfig
from storage.base import TenantDirectory
from storage.types import StorageUnavailableError, Tenant

logger = logging.getLogger(__name__)

FALLBACK_TENANT_ID = "env-account"


class UnknownVerifyToken(Exception):
    """No active tenant owns this verify token."""
    pass


class VerifyTokenNotConfigured(UnknownVerifyToken):
    """Fallback mode without WHATSAPP_VERIFY_TOKEN: nothing can match."""
    pass


@dataclass(frozen=True)
class TenantResolution:
    """Every tenant a change should be processed for."""

    tenants: List[Tenant] = field(default_factory=list)
    fallback: bool = False

    @property
    def empty(self) -> bool:
        return not self.tenants


class TenantResolver:
    """
    Resolve tenants against the directory, degrading to the environment.

    The directory is optional; None means single-tenant mode from the start.
    """

    def __init__(self, directory: Optional[TenantDirectory], fallback: FallbackTenantConfig):
        self.directory = directory
        self.fallback = fallback

    def fallback_tenant(self) -> Tenant:
        """The implicit tenant built from environment configuration."""
        return Tenant(
            id=FALLBACK_TENANT_ID,
            chatbot_id=self.fallback.chatbot_id,
            phone_number_id=self.fallback.phone_number_id,
            access_token=self.fallback.access_token,
            waba_id=self.fallback.waba_id,
            phone_number=self.fallback.phone_number,
            verify_token=self.fallback.verify_token,
        )

    async def resolve_by_verify_token(self, verify_token: Optional[str]) -> Tenant:
        """
        Find the tenant for a webhook subscription handshake.

        Raises:
            UnknownVerifyToken: no active tenant matches, or the directory lookup failed
            VerifyTokenNotConfigured: fallback mode has no token to compare
        """
        if not verify_token:
            raise UnknownVerifyToken("Empty verify token")

        if self.directory is not None:
            try:
                tenant = await self.directory.find_by_verify_token(verify_token)
            except StorageUnavailableError as e:
                logger.warning(f"Tenant directory unavailable, using environment fallback: {e}")
            except Exception as e:
                logger.error(f"Tenant directory lookup failed for verify token: {e}", exc_info=True)
                raise UnknownVerifyToken("Verify token lookup failed") from e
            else:
                if tenant is None:
                    raise UnknownVerifyToken("No active account for verify token")
                logger.info(
                    "Webhook verified for account",
                    extra={"tenant_id": tenant.id, "chatbot_id": tenant.chatbot_id},
                )
                return tenant

        expected = self.fallback.verify_token
        if not expected:
            raise VerifyTokenNotConfigured("WHATSAPP_VERIFY_TOKEN not configured")
        if verify_token != expected:
            raise UnknownVerifyToken("Verify token does not match environment")
        return self.fallback_tenant()

    async def resolve_by_routing_key(self, phone_number_id: str) -> TenantResolution:
        """
        Find every active tenant registered for this phone number id.

        Returns:
            TenantResolution; empty when nothing matches, a single
            fallback tenant when persistence is unavailable
        """
        if self.directory is None:
            return TenantResolution(tenants=[self.fallback_tenant()], fallback=True)

        try:
            tenants = await self.directory.find_by_routing_key(phone_number_id)
        except StorageUnavailableError as e:
            logger.warning(
                f"Tenant directory unavailable, using environment fallback: {e}",
                extra={"phone_number_id": phone_number_id},
            )
            return TenantResolution(tenants=[self.fallback_tenant()], fallback=True)

        if not tenants:
            logger.warning(
                f"No active WhatsApp account found for phone_number_id {phone_number_id}",
                extra={"phone_number_id": phone_number_id},
            )
        elif len(tenants) > 1:
            logger.info(
                f"{len(tenants)} accounts share phone_number_id {phone_number_id}",
                extra={"phone_number_id": phone_number_id, "tenant_ids": [t.id for t in tenants]},
            )
        return TenantResolution(tenants=list(tenants))
