"""
Infrastructure module exports.

Configuration and bootstrap for all service backends.
"""

from .config import InfraConfig, get_config, StoreBackendType, ResponseBackendType, store_backend_for
from .bootstrap import InfraBootstrap

__all__ = [
    "InfraConfig",
    "get_config",
    "StoreBackendType",
    "ResponseBackendType",
    "store_backend_for",
    "InfraBootstrap",
]
