"""
Infrastructure initialization and bootstrap.

Singleton pattern for creating all service components from configuration.
"""

import logging
from typing import Optional

from config import Config, FallbackTenantConfig
from inference import ResponseBackend
from pipeline import BackgroundTaskRunner, TenantResolver, WebhookOrchestrator
from storage import StorageUnavailableError, Store
from transport.whatsapp.sender import WhatsAppSender

from .config import InfraConfig, get_config

logger = logging.getLogger(__name__)


class InfraBootstrap:
    """
    Bootstrap infrastructure based on configuration.

    Singleton pattern - single instance per process. Owns every component
    with a lifecycle: store, response backend, sender, task runner.
    """

    _instance: Optional["InfraBootstrap"] = None

    def __init__(
        self,
        config: Optional[InfraConfig] = None,
        *,
        store: Optional[Store] = None,
        responder: Optional[ResponseBackend] = None,
        sender: Optional[WhatsAppSender] = None,
        fallback: Optional[FallbackTenantConfig] = None,
    ):
        """
        Initialize bootstrap with configuration.

        Components passed explicitly (tests, embedding) replace the ones
        the configuration would create.
        """
        self.config = config or get_config()
        self.store = store if store is not None else self.config.create_store()
        self.responder = responder or self.config.create_response_backend()
        self.sender = sender or self.config.create_sender()
        self.fallback = fallback or Config.fallback_tenant()

        self.resolver = TenantResolver(self.store, self.fallback)
        self.orchestrator = WebhookOrchestrator(
            self.resolver, self.store, self.responder, self.sender
        )
        self.tasks = BackgroundTaskRunner()

    @classmethod
    def get_instance(cls, config: Optional[InfraConfig] = None) -> "InfraBootstrap":
        """
        Get singleton instance.

        Args:
            config: Optional custom configuration (only used first time)

        Returns:
            Singleton InfraBootstrap instance
        """
        if cls._instance is None:
            cls._instance = cls(config)
        return cls._instance

    @classmethod
    def reset(cls):
        """Reset singleton (for testing)."""
        cls._instance = None

    @property
    def fallback_mode(self) -> bool:
        """True when no store is configured: single-tenant, log-only."""
        return self.store is None

    async def startup(self) -> None:
        """Warm up persistence. Failure is logged; the pool retries on next use."""
        if self.fallback_mode:
            logger.warning("No database configured - running in single-tenant fallback mode")
            return
        try:
            await self.store.connect()
        except StorageUnavailableError as e:
            logger.error(f"Database unavailable at startup, will retry on demand: {e}")

    async def shutdown(self) -> None:
        """Drain background work, then release HTTP clients and the pool."""
        await self.tasks.drain(self.config.shutdown_drain_timeout_s)
        await self.responder.aclose()
        await self.sender.aclose()
        if self.store is not None:
            await self.store.close()

    def __repr__(self) -> str:
        """String representation showing configured backends."""
        return (
            f"InfraBootstrap(store={self.config.store_backend}, "
            f"response={self.config.response_backend}, "
            f"graph_api={self.config.api_version})"
        )

