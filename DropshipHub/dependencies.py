"""
Dependency functions for service injection.

The dropshipping service is constructed explicitly here and handed to whatever
external layer needs it; nothing is created at import time.
"""

import logging
from typing import Mapping, Optional

from dotenv import load_dotenv

from DropshipHub.models.provider_config_models import DropshipSettings
from DropshipHub.providers.registry import get_available_provider_types, get_provider_class
from DropshipHub.providers.resilience import RetryPolicy
from DropshipHub.services.dropshipping_service import DropshippingService
from DropshipHub.utils.env_credentials import load_dropship_settings, load_provider_configs

logger = logging.getLogger(__name__)

_service: Optional[DropshippingService] = None


def create_dropshipping_service(
    env: Optional[Mapping[str, str]] = None, settings: Optional[DropshipSettings] = None
) -> DropshippingService:
    """
    Build a DropshippingService with every provider configured in the environment.

    Providers without their required credentials are skipped, not treated as an
    error; a service with no providers is valid but every order and catalog
    operation on it fails with a configuration error.

    Args:
        env: Mapping to read instead of os.environ
        settings: Overrides the DROPSHIP_* settings from the environment
    """
    settings = settings or load_dropship_settings(env)
    service = DropshippingService(
        retry_policy=RetryPolicy.from_settings(settings),
        max_concurrency=settings.max_concurrency,
        request_timeout=settings.request_timeout,
    )

    configs = load_provider_configs(get_available_provider_types(), env)
    for name, config in configs.items():
        adapter = get_provider_class(name)(config=config, max_concurrency=settings.max_concurrency)
        missing = adapter.get_missing_credentials()
        if missing:
            logger.info(f"Skipping dropshipping provider {name}: missing {', '.join(missing)}")
            continue
        service.register_provider(name, adapter)

    if not service.get_enabled_providers():
        logger.warning("No dropshipping providers enabled; order and catalog operations will fail")
    return service


def get_dropshipping_service() -> DropshippingService:
    """
    Get the DropshippingService for the current process.

    Built from the environment (and .env) on first use; can be overridden in
    tests with set_dropshipping_service().
    """
    global _service
    if _service is None:
        load_dotenv()
        _service = create_dropshipping_service()
    return _service


def set_dropshipping_service(service: Optional[DropshippingService]):
    global _service
    _service = service

