"""
Base Provider Interface

Defines the abstract interface that all dropshipping provider adapters must follow.
Adapters speak only the canonical schema (DropshipHub.schemas.dropship_schemas);
everything provider-specific stays inside the adapter.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional

from DropshipHub.exceptions import (
    ConfigurationError,
    FailureKind,
    OrderCreationError,
    ProviderError,
)
from DropshipHub.models.provider_config_models import ProviderConfig
from DropshipHub.providers.data_extraction import DataExtractor
from DropshipHub.providers.http_client import ProviderHTTPClient
from DropshipHub.schemas.dropship_schemas import (
    InventoryUpdate,
    ImportResult,
    OrderRequest,
    OrderResult,
    OrderState,
    OrderStatus,
    Product,
    ProductSearchQuery,
    ShippingInfo,
)

logger = logging.getLogger(__name__)


class FieldType(Enum):
    """Types of credential fields"""
    TEXT = "text"
    PASSWORD = "password"
    URL = "url"
    SELECT = "select"
    BOOLEAN = "boolean"


class ProviderCapability(Enum):
    """The closed set of operations a provider adapter implements"""
    SEARCH_PRODUCTS = "search_products"
    GET_PRODUCT = "get_product"
    IMPORT_PRODUCT = "import_product"
    SYNC_INVENTORY = "sync_inventory"
    CREATE_ORDER = "create_order"
    GET_ORDER_STATUS = "get_order_status"
    CANCEL_ORDER = "cancel_order"
    GET_SHIPPING_INFO = "get_shipping_info"


@dataclass
class FieldDefinition:
    """Definition of a credential field"""
    name: str
    label: str
    field_type: FieldType
    required: bool = True
    description: Optional[str] = None
    default_value: Optional[Any] = None
    options: Optional[List[Dict[str, str]]] = None  # For SELECT type


@dataclass
class ProviderInfo:
    """Information about a provider"""
    name: str
    display_name: str
    description: str
    website_url: Optional[str] = None
    api_documentation_url: Optional[str] = None
    rate_limit_info: Optional[str] = None


# Remote failures that mean "the provider refused this order" rather than
# "the provider could not be reached".
ORDER_REJECTION_KINDS = (FailureKind.PERMANENT, FailureKind.NOT_FOUND)


class BaseProvider(ABC):
    """
    Abstract base class for all dropshipping provider adapters.

    Subclasses declare their native order status vocabulary in ``status_map``
    and implement the remote half of each operation. ``create_order`` is a
    template method: the request is validated locally before ``_submit_order``
    is allowed to touch the network.
    """

    status_map: ClassVar[Dict[str, OrderState]] = {}

    def __init__(self, config: Optional[ProviderConfig] = None, http_client=None, max_concurrency: int = 5):
        self.config = config or ProviderConfig(name=self.get_provider_info().name)
        self.max_concurrency = max_concurrency
        self._http_client = http_client
        self.extractor = DataExtractor(self.get_provider_info().display_name)

    # ========== Provider Information ==========

    @abstractmethod
    def get_provider_info(self) -> ProviderInfo:
        """Get basic information about this provider"""
        pass

    def get_capabilities(self) -> List[ProviderCapability]:
        return list(ProviderCapability)

    @abstractmethod
    def get_credential_schema(self) -> List[FieldDefinition]:
        """Get the schema for credentials this provider requires"""
        pass

    @property
    def name(self) -> str:
        return self.get_provider_info().name

    # ========== Configuration ==========

    def get_missing_credentials(self) -> List[str]:
        credentials = self.config.credentials()
        return [
            field.name for field in self.get_credential_schema()
            if field.required and not credentials.get(field.name)
        ]

    def is_configured(self) -> bool:
        return not self.get_missing_credentials()

    @property
    def enabled(self) -> bool:
        return self.config.enabled and self.is_configured()

    def _require_configuration(self):
        missing = self.get_missing_credentials()
        if missing:
            raise ConfigurationError(
                f"{self.get_provider_info().display_name} is missing credentials: {', '.join(missing)}",
                config_field=missing[0],
                provider_name=self.name,
            )

    @abstractmethod
    def _get_base_url(self) -> str:
        pass

    @abstractmethod
    def _get_headers(self) -> Dict[str, str]:
        pass

    def _get_http_client(self) -> ProviderHTTPClient:
        """Get or create the HTTP client with provider-specific configuration"""
        if self._http_client is None:
            self._http_client = ProviderHTTPClient(
                provider_name=self.name,
                base_url=self._get_base_url(),
                default_timeout=self.config.request_timeout,
                default_headers=self._get_headers(),
                connection_limit=self.max_concurrency,
            )
        return self._http_client

    # ========== Lifecycle ==========

    @abstractmethod
    async def initialize(self) -> None:
        """
        Verify credentials and connectivity once at startup.

        Raises:
            ProviderAuthenticationError: credentials rejected
            ProviderConnectionError: provider unreachable
        """
        pass

    async def check_health(self) -> None:
        """Liveness probe; raises on failure. Defaults to the startup check."""
        await self.initialize()

    async def close(self):
        """Clean up HTTP client resources"""
        if self._http_client is not None:
            await self._http_client.close()

    # ========== Catalog ==========

    @abstractmethod
    async def search_products(self, query: ProductSearchQuery) -> List[Product]:
        """Search the catalog; an empty list means no results, never an error"""
        pass

    @abstractmethod
    async def get_product(self, product_id: str) -> Product:
        """Raises ProviderNotFoundError for ids unknown to this provider"""
        pass

    @abstractmethod
    async def import_product(self, product_id: str) -> ImportResult:
        """Import failures are returned, not raised"""
        pass

    @abstractmethod
    async def sync_inventory(self, product_ids: List[str]) -> List[InventoryUpdate]:
        """One result per requested id, in request order"""
        pass

    @staticmethod
    def align_inventory(product_ids: List[str], updates: List[InventoryUpdate]) -> List[InventoryUpdate]:
        """
        Reorder a provider's inventory response to match the requested ids.

        Ids the provider omitted come back unavailable with zero stock.
        """
        by_id = {}
        for update in updates:
            by_id.setdefault(update.product_id, update)
        return [by_id.get(product_id) or InventoryUpdate.unavailable(product_id) for product_id in product_ids]

    # ========== Orders ==========

    async def create_order(self, request: OrderRequest) -> OrderResult:
        """
        Validate locally, then submit the order to the provider.

        Raises:
            ValidationError: the request is invalid; no network call was made
            OrderCreationError: the provider rejected the order
        """
        request.validate()
        self._require_configuration()

        try:
            result = await self._submit_order(request)
        except ProviderError as e:
            if e.kind not in ORDER_REJECTION_KINDS:
                raise
            raise OrderCreationError(
                f"Failed to create order on {self.get_provider_info().display_name}: {e.message}",
                provider_name=self.name,
                remote_status=e.remote_status,
                raw_error=e.details.get("response") or e.message,
            ) from e

        if not result.order_id:
            raise OrderCreationError(
                f"{self.get_provider_info().display_name} accepted the order but returned no order id",
                provider_name=self.name,
                raw_error=result.message,
            )
        return result

    @abstractmethod
    async def _submit_order(self, request: OrderRequest) -> OrderResult:
        """Translate and send an already-validated order"""
        pass

    @abstractmethod
    async def get_order_status(self, order_id: str) -> OrderStatus:
        pass

    @abstractmethod
    async def cancel_order(self, order_id: str) -> bool:
        """False when the provider refuses (e.g. already shipped); raises only if the call itself fails"""
        pass

    @abstractmethod
    async def get_shipping_info(self, order_id: str) -> ShippingInfo:
        pass

    @classmethod
    def map_status(cls, native_status: Optional[str]) -> OrderState:
        """Map a native status through the provider's table; unknown statuses are pending"""
        key = (native_status or "").strip().lower()
        state = cls.status_map.get(key)
        if state is None:
            logger.warning(f"{cls.__name__}: unmapped order status {native_status!r}, treating as pending")
            return OrderState.PENDING
        return state
