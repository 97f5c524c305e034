"""
Environment Variable Credential Utility

Reads dropshipping provider credentials and process-wide settings from
environment variables (populated from a .env file by the application entry).
"""

import os
import logging
from typing import Dict, List, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from DropshipHub.exceptions import ConfigurationError
from DropshipHub.models.provider_config_models import DropshipSettings, ProviderConfig

logger = logging.getLogger(__name__)

# env suffix -> ProviderConfig field
PROVIDER_FIELDS = {
    "API_KEY": "api_key",
    "BASE_URL": "base_url",
    "STORE_ID": "store_id",
    "ENABLED": "enabled",
    "REQUEST_TIMEOUT": "request_timeout",
}

SETTINGS_FIELDS = {
    "DROPSHIP_MAX_CONCURRENCY": "max_concurrency",
    "DROPSHIP_REQUEST_TIMEOUT": "request_timeout",
    "DROPSHIP_RETRY_MAX_ATTEMPTS": "retry_max_attempts",
    "DROPSHIP_RETRY_BASE_DELAY": "retry_base_delay",
    "DROPSHIP_RETRY_BACKOFF_FACTOR": "retry_backoff_factor",
    "DROPSHIP_RETRY_MAX_DELAY": "retry_max_delay",
    "DROPSHIP_RETRY_JITTER": "retry_jitter",
}


def _env_prefix(provider_name: str) -> str:
    return provider_name.upper().replace("-", "_").replace(" ", "_")


def get_provider_config_from_env(provider_name: str, env: Optional[Mapping[str, str]] = None) -> Optional[ProviderConfig]:
    """
    Get a provider's configuration from environment variables

    Environment variable naming convention:
    {PROVIDER_NAME}_{FIELD}

    For example:
    - PRINTFUL_API_KEY
    - PRINTFUL_STORE_ID
    - SPOCKET_API_KEY
    - SPOCKET_ENVIRONMENT=sandbox
    - SPOCKET_ENABLED=false

    Args:
        provider_name: Name of provider (e.g. "printful", "spocket")
        env: Mapping to read instead of os.environ

    Returns:
        ProviderConfig, or None if no variables are set for this provider

    Raises:
        ConfigurationError: a variable is set to an invalid value
    """
    env = os.environ if env is None else env
    prefix = _env_prefix(provider_name)

    values = {}
    for suffix, field_name in PROVIDER_FIELDS.items():
        env_var_name = f"{prefix}_{suffix}"
        value = env.get(env_var_name)
        if value:
            values[field_name] = value
            logger.debug(f"Found {field_name} for {provider_name} from env var {env_var_name}")

    if not values:
        logger.debug(f"No environment configuration found for {provider_name} (checked prefix: {prefix}_*)")
        return None

    try:
        config = ProviderConfig(name=provider_name.lower(), **values)
    except PydanticValidationError as e:
        first_error = e.errors()[0]
        field_name = str(first_error["loc"][0]) if first_error.get("loc") else None
        raise ConfigurationError(
            f"Invalid environment configuration for {provider_name}: {first_error['msg']}",
            config_field=field_name,
            provider_name=provider_name.lower(),
        ) from e

    logger.info(f"Loaded configuration for {provider_name} from environment variables")
    return config


def load_provider_configs(provider_names: List[str], env: Optional[Mapping[str, str]] = None) -> Dict[str, ProviderConfig]:
    """Configurations for every named provider that has any environment variables set"""
    configs = {}
    for provider_name in provider_names:
        config = get_provider_config_from_env(provider_name, env)
        if config is not None:
            configs[provider_name.lower()] = config
    return configs


def load_dropship_settings(env: Optional[Mapping[str, str]] = None) -> DropshipSettings:
    """
    Process-wide settings from DROPSHIP_* variables; unset values keep their defaults

    Raises:
        ConfigurationError: a variable is set to an invalid value
    """
    env = os.environ if env is None else env
    values = {field_name: env[var] for var, field_name in SETTINGS_FIELDS.items() if env.get(var)}
    try:
        return DropshipSettings(**values)
    except PydanticValidationError as e:
        first_error = e.errors()[0]
        field_name = str(first_error["loc"][0]) if first_error.get("loc") else None
        raise ConfigurationError(f"Invalid dropshipping settings: {first_error['msg']}", config_field=field_name) from e


def list_available_env_credentials(provider_names: List[str], env: Optional[Mapping[str, str]] = None) -> Dict[str, list]:
    """
    List which configuration fields are present in the environment per provider

    Values are never returned, only field names.
    """
    env = os.environ if env is None else env
    available = {}
    for provider_name in provider_names:
        prefix = f"{_env_prefix(provider_name)}_"
        fields = [
            PROVIDER_FIELDS[env_var[len(prefix):]]
            for env_var, value in env.items()
            if value and env_var.startswith(prefix) and env_var[len(prefix):] in PROVIDER_FIELDS
        ]
        if fields:
            available[provider_name.lower()] = sorted(fields)
    return available
