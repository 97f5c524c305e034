"""
Shared test configuration.

No test reaches the network: providers are either FakeProvider instances or
real adapters wired to an AsyncMock HTTP client.
"""

from unittest.mock import AsyncMock

import pytest

from DropshipHub.models.provider_config_models import ProviderConfig
from DropshipHub.providers.http_client import ProviderHTTPClient
from DropshipHub.providers.resilience import RetryPolicy
from DropshipHub.schemas.dropship_schemas import (
    CustomerInfo,
    OrderItem,
    OrderRequest,
    ShippingAddress,
)
from DropshipHub.services.dropshipping_service import DropshippingService
from DropshipHub.tests.fakes import FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service(clock):
    """Facade with jitter disabled and a clock that advances only on sleep"""
    return DropshippingService(
        retry_policy=RetryPolicy(jitter=False),
        max_concurrency=5,
        request_timeout=5.0,
        sleep=clock.sleep,
        clock=clock,
    )


@pytest.fixture
def mock_http_client():
    client = AsyncMock(spec=ProviderHTTPClient)
    return client


@pytest.fixture
def order_request():
    return OrderRequest(
        items=[OrderItem(product_id="prod-1", quantity=2, price=12.5, variant_id="var-1")],
        shipping_address=ShippingAddress(
            first_name="Ada",
            last_name="Lovelace",
            address1="12 St James's Square",
            city="London",
            postal_code="SW1Y 4JH",
            country="GB",
        ),
        customer=CustomerInfo(name="Ada Lovelace", email="ada@example.com", phone="+44 20 7946 0000"),
        notes="Leave at reception",
    )


@pytest.fixture
def printful_config():
    return ProviderConfig(name="printful", api_key="pf-token", store_id="store-9")


@pytest.fixture
def spocket_config():
    return ProviderConfig(name="spocket", api_key="sp-key")

