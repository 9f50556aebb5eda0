"""
Infrastructure configuration system.

Environment-based backend selection with sensible defaults.
Without DATABASE_URL the service runs in single-tenant fallback mode.
"""

import os
from dataclasses import dataclass
from typing import Literal, Optional

from inference import ResponseApiBackend, ResponseBackend, StubResponseBackend
from storage import PostgresPool, PostgresStore, SQLiteStore, Store
from transport.whatsapp.sender import WhatsAppSender


StoreBackendType = Literal["postgres", "sqlite", "none"]
ResponseBackendType = Literal["api", "stub"]

_SQLITE_PREFIX = "sqlite:///"


def store_backend_for(database_url: Optional[str]) -> StoreBackendType:
    """Pick the persistence backend from the DATABASE_URL scheme."""
    if not database_url:
        return "none"
    if database_url.startswith(("postgres://", "postgresql://")):
        return "postgres"
    if database_url.startswith(_SQLITE_PREFIX):
        # SQLiteStore opens a connection per operation; an in-memory schema would not survive
        if database_url[len(_SQLITE_PREFIX):] in ("", ":memory:"):
            raise ValueError("DATABASE_URL must name a SQLite file, not an in-memory database")
        return "sqlite"
    raise ValueError(f"Unsupported DATABASE_URL scheme: {database_url.split(':', 1)[0]}")


@dataclass
class InfraConfig:
    """Infrastructure configuration from environment."""

    # Persistence
    database_url: Optional[str]
    db_pool_min: int
    db_pool_max: int
    db_idle_timeout_s: float
    db_connect_timeout_s: float

    # Response service
    response_backend: ResponseBackendType
    response_api_base_url: str
    response_api_timeout_s: float

    # WhatsApp Graph API
    graph_base_url: str
    api_version: str
    send_timeout_s: float

    # Lifecycle
    shutdown_drain_timeout_s: float

    @classmethod
    def from_env(cls) -> "InfraConfig":
        """
        Load configuration from environment variables.

        Defaults:
        - Persistence: none (fallback mode)
        - Response service: HTTP API on localhost:8030
        - Graph API: graph.facebook.com v18.0
        """
        return cls(
            # Persistence
            database_url=os.getenv("DATABASE_URL") or None,
            db_pool_min=int(os.getenv("DB_POOL_MIN", "1")),
            db_pool_max=int(os.getenv("DB_POOL_MAX", "20")),
            db_idle_timeout_s=float(os.getenv("DB_IDLE_TIMEOUT_S", "30")),
            db_connect_timeout_s=float(os.getenv("DB_CONNECT_TIMEOUT_S", "10")),

            # Response service
            response_backend=os.getenv("RESPONSE_BACKEND", "api"),  # type: ignore
            response_api_base_url=os.getenv("RESPONSE_API_BASE_URL", "http://localhost:8030"),
            response_api_timeout_s=float(os.getenv("RESPONSE_API_TIMEOUT_S", "30")),

            # Graph API
            graph_base_url=os.getenv("WHATSAPP_GRAPH_BASE_URL", "https://graph.facebook.com"),
            api_version=os.getenv("WHATSAPP_API_VERSION", "v18.0"),
            send_timeout_s=float(os.getenv("WHATSAPP_SEND_TIMEOUT_S", "30")),

            # Lifecycle
            shutdown_drain_timeout_s=float(os.getenv("SHUTDOWN_DRAIN_TIMEOUT_S", "10")),
        )

    @property
    def store_backend(self) -> StoreBackendType:
        return store_backend_for(self.database_url)

    def create_store(self) -> Optional[Store]:
        """Create the persistence backend, or None for fallback mode."""
        backend = self.store_backend
        if backend == "postgres":
            pool = PostgresPool(
                self.database_url,
                min_size=self.db_pool_min,
                max_size=self.db_pool_max,
                idle_timeout_s=self.db_idle_timeout_s,
                connect_timeout_s=self.db_connect_timeout_s,
            )
            return PostgresStore(pool)
        elif backend == "sqlite":
            return SQLiteStore(self.database_url[len(_SQLITE_PREFIX):])
        else:
            return None

    def create_response_backend(self) -> ResponseBackend:
        """Create response backend instance based on configuration."""
        if self.response_backend == "stub":
            return StubResponseBackend()
        return ResponseApiBackend(
            base_url=self.response_api_base_url,
            timeout_s=self.response_api_timeout_s,
        )

    def create_sender(self) -> WhatsAppSender:
        return WhatsAppSender(
            graph_base_url=self.graph_base_url,
            api_version=self.api_version,
            timeout_s=self.send_timeout_s,
        )


def get_config() -> InfraConfig:
    """Get infrastructure configuration from the current environment."""
    return InfraConfig.from_env()
