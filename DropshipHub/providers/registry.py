"""
Provider Registry

Two lookup tables live here:

- the adapter type catalog, filled by the ``@register_provider`` decorator when a
  provider module is imported, used to construct adapters from configuration;
- ``ProviderRegistry``, which holds the configured adapter instances a facade
  dispatches to, their enabled flags and the default provider.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Type

from .base import BaseProvider, ProviderInfo
from DropshipHub.exceptions import (
    ProviderDisabledError,
    ProviderNotConfiguredError,
    ProviderNotRegisteredError,
)

logger = logging.getLogger(__name__)


# ========== Adapter type catalog ==========

_PROVIDER_TYPES: Dict[str, Type[BaseProvider]] = {}


def register_provider(name: str):
    """Decorator for automatically registering provider adapter types"""

    def decorator(provider_class: Type[BaseProvider]):
        if not issubclass(provider_class, BaseProvider):
            raise ValueError("Provider class must inherit from BaseProvider")
        _PROVIDER_TYPES[name.lower()] = provider_class
        return provider_class

    return decorator


def get_provider_class(name: str) -> Type[BaseProvider]:
    """Get the adapter type registered under name"""
    name = name.lower()
    if name not in _PROVIDER_TYPES:
        raise ProviderNotRegisteredError(name)
    return _PROVIDER_TYPES[name]


def get_available_provider_types() -> List[str]:
    """Get list of all adapter type names"""
    return list(_PROVIDER_TYPES.keys())


# ========== Configured instances ==========

@dataclass
class ProviderDescriptor:
    """Registry entry for one configured provider"""
    name: str
    adapter: BaseProvider
    enabled: bool

    @property
    def info(self) -> ProviderInfo:
        return self.adapter.get_provider_info()


class ProviderRegistry:
    """
    Named adapter instances plus the default provider.

    Registration happens during startup; afterwards the registry is only read, so
    lookups take no lock. The default is the first provider registered while
    enabled and is never promoted or demoted implicitly.
    """

    def __init__(self):
        self._providers: Dict[str, ProviderDescriptor] = {}
        self._default: Optional[str] = None

    def register(self, name: str, adapter: BaseProvider, enabled: Optional[bool] = None) -> ProviderDescriptor:
        """
        Store an adapter under name.

        enabled defaults to the adapter's own view (configured and switched on).
        Re-registering a name replaces its entry in place and keeps its position
        in registration order.
        """
        name = name.lower()
        if enabled is None:
            enabled = adapter.enabled

        descriptor = ProviderDescriptor(name=name, adapter=adapter, enabled=enabled)
        replaced = name in self._providers
        self._providers[name] = descriptor

        if self._default is None and enabled:
            self._default = name
            logger.info(f"Default dropshipping provider set to: {name}")

        logger.info(f"{'Re-registered' if replaced else 'Registered'} dropshipping provider: {name} (enabled={enabled})")
        return descriptor

    def unregister(self, name: str) -> Optional[BaseProvider]:
        """Remove a provider; clears the default if it was the default"""
        name = name.lower()
        descriptor = self._providers.pop(name, None)
        if descriptor is None:
            return None
        if self._default == name:
            self._default = None
            logger.warning(f"Default dropshipping provider '{name}' unregistered; no default is set")
        return descriptor.adapter

    def set_default(self, name: str):
        """Explicitly choose the default provider"""
        name = name.lower()
        if name not in self._providers:
            raise ProviderNotRegisteredError(name)
        self._default = name
        logger.info(f"Default dropshipping provider set to: {name}")

    @property
    def default_name(self) -> Optional[str]:
        return self._default

    def resolve(self, name: Optional[str] = None) -> BaseProvider:
        """
        Get the named adapter, or the default when name is omitted.

        The default is returned as stored; enablement is only checked for
        named lookups.

        Raises:
            ProviderNotConfiguredError: no name given and no default exists
            ProviderNotRegisteredError: the named provider was never registered
            ProviderDisabledError: the named provider is registered but disabled
        """
        if name is None:
            if self._default is None:
                raise ProviderNotConfiguredError()
            return self._providers[self._default].adapter

        name = name.lower()
        descriptor = self._providers.get(name)
        if descriptor is None:
            raise ProviderNotRegisteredError(name)
        if not descriptor.enabled:
            raise ProviderDisabledError(name)
        return descriptor.adapter

    def get(self, name: str) -> Optional[ProviderDescriptor]:
        return self._providers.get(name.lower())

    def list_enabled(self) -> List[str]:
        """Names of enabled providers, in registration order"""
        return [name for name, descriptor in self._providers.items() if descriptor.enabled]

    def descriptors(self) -> List[ProviderDescriptor]:
        return list(self._providers.values())

    def __contains__(self, name: str) -> bool:
        return name.lower() in self._providers

    def __len__(self) -> int:
        return len(self._providers)
