"""
Dropshipping Provider Adapters

Each provider implements the BaseProvider contract and speaks only the canonical
schema, so the facade can dispatch to any of them the same way.

Architecture:
- BaseProvider: Abstract base class defining the adapter contract
- Individual provider classes: PrintfulProvider, SpocketProvider
- ProviderRegistry: Configured adapter instances and the default provider
- ResilientCaller: Timeout, retry and rate-limit backoff around every call

Usage:
    from DropshipHub.providers import ProviderRegistry, get_provider_class

    adapter = get_provider_class("spocket")(config)
    registry = ProviderRegistry()
    registry.register("spocket", adapter)
"""

from .base import BaseProvider, FieldDefinition, ProviderCapability, ProviderInfo
from .registry import ProviderRegistry, get_provider_class, get_available_provider_types, register_provider
from .resilience import ResilientCaller, RetryPolicy

# Import provider implementations to register them
from . import printful
from . import spocket

__all__ = [
    "BaseProvider",
    "FieldDefinition",
    "ProviderCapability",
    "ProviderInfo",
    "ProviderRegistry",
    "ResilientCaller",
    "RetryPolicy",
    "get_provider_class",
    "get_available_provider_types",
    "register_provider",
]
