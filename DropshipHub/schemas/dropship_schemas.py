"""
Canonical Dropshipping Schema

Defines the provider-agnostic product, order, shipping and status structures.
Every provider adapter must translate its wire format into these types, so the
rest of the platform never sees provider-specific field names.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

from DropshipHub.exceptions import ValidationError


class OrderState(str, Enum):
    """Canonical order states shared by all providers"""

    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class SortKey(str, Enum):
    """Sort keys accepted by product search"""

    PRICE = "price"
    RATING = "rating"
    SALES = "sales"
    NEWEST = "newest"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class TimeUnit(str, Enum):
    DAYS = "days"
    WEEKS = "weeks"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DISABLED = "disabled"


# =============================================================================
# Catalog
# =============================================================================


@dataclass
class DeliveryWindow:
    """Shipping/delivery time range"""

    min: int
    max: int
    unit: TimeUnit = TimeUnit.DAYS


@dataclass
class ShippingMethod:
    name: str
    cost: float
    time: DeliveryWindow
    tracking_available: bool = True


@dataclass
class ShippingInfo:
    """Available shipping methods, processing time (days) and supported countries"""

    methods: List[ShippingMethod] = field(default_factory=list)
    processing_time: int = 1
    countries: List[str] = field(default_factory=list)


@dataclass
class SupplierDescriptor:
    """
    The merchant behind a provider's catalog item.

    rating is None when the provider does not report one.
    """

    id: str
    name: str
    country: Optional[str] = None
    rating: Optional[float] = None
    shipping_time: Optional[DeliveryWindow] = None
    communication_rating: Optional[float] = None
    service_rating: Optional[float] = None


@dataclass
class ProductReviews:
    rating: float
    count: int


@dataclass
class ProductVariant:
    """
    Sub-identity of a product (size, color, ...).

    price and stock, when present, override the parent product's values.
    """

    id: str
    options: Dict[str, str] = field(default_factory=dict)
    price: Optional[float] = None
    stock: Optional[int] = None
    sku: Optional[str] = None
    name: Optional[str] = None
    image: Optional[str] = None


@dataclass
class Product:
    """Provider-scoped catalog item"""

    id: str
    title: str
    price: float
    currency: str = "USD"
    description: str = ""
    images: List[str] = field(default_factory=list)
    category: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    variants: List[ProductVariant] = field(default_factory=list)
    supplier: Optional[SupplierDescriptor] = None
    shipping: ShippingInfo = field(default_factory=ShippingInfo)
    specifications: Dict[str, str] = field(default_factory=dict)
    stock: Optional[int] = None
    compare_at_price: Optional[float] = None
    reviews: Optional[ProductReviews] = None
    provider: Optional[str] = None  # source provider, set by the facade

    def get_variant(self, variant_id: str) -> Optional[ProductVariant]:
        for variant in self.variants:
            if variant.id == variant_id:
                return variant
        return None

    def effective_price(self, variant_id: Optional[str] = None) -> float:
        """Price of the variant when it overrides one, else the product price"""
        variant = self.get_variant(variant_id) if variant_id else None
        if variant is not None and variant.price is not None:
            return variant.price
        return self.price

    def effective_stock(self, variant_id: Optional[str] = None) -> Optional[int]:
        variant = self.get_variant(variant_id) if variant_id else None
        if variant is not None and variant.stock is not None:
            return variant.stock
        return self.stock


@dataclass
class ProductSearchQuery:
    """Product search parameters; page is 1-based"""

    keyword: Optional[str] = None
    category: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    sort_by: Optional[SortKey] = None
    sort_order: SortOrder = SortOrder.DESC
    page: int = 1
    limit: int = 20
    country: Optional[str] = None

    def __post_init__(self):
        if self.page < 1:
            self.page = 1
        if self.limit < 1:
            self.limit = 20

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class ImportResult:
    """
    Result of materializing a provider item into the platform catalog.

    Import failures are reported here instead of raised so batch imports continue.
    """

    success: bool
    message: str
    product_id: Optional[str] = None
    local_product_id: Optional[str] = None
    errors: List[str] = field(default_factory=list)


@dataclass
class InventoryUpdate:
    """Stock/price snapshot for one requested product"""

    product_id: str
    stock: int
    available: bool
    price: Optional[float] = None
    variant_id: Optional[str] = None
    variant_updates: List["InventoryUpdate"] = field(default_factory=list)

    @classmethod
    def unavailable(cls, product_id: str) -> "InventoryUpdate":
        return cls(product_id=product_id, stock=0, available=False)


# =============================================================================
# Orders
# =============================================================================


@dataclass
class ShippingAddress:
    first_name: str
    last_name: str
    address1: str
    city: str
    postal_code: str
    country: str
    state: Optional[str] = None
    address2: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass
class CustomerInfo:
    name: str
    email: str
    phone: Optional[str] = None

    def split_name(self) -> Tuple[str, str]:
        first, _, last = self.name.strip().partition(" ")
        return first, last.strip()


@dataclass
class OrderItem:
    product_id: str
    quantity: int
    price: float
    variant_id: Optional[str] = None


@dataclass
class OrderRequest:
    """Input to order creation"""

    items: List[OrderItem]
    shipping_address: ShippingAddress
    customer: CustomerInfo
    notes: Optional[str] = None
    shipping_method: Optional[str] = None
    # caller-side order reference; sent as the provider's external id where supported
    reference: Optional[str] = None

    def validate(self) -> None:
        """
        Check the request before any provider is contacted.

        Raises:
            ValidationError: with one entry per offending field
        """
        field_errors: Dict[str, str] = {}
        missing_fields: List[str] = []

        if not self.items:
            field_errors["items"] = "At least one line item is required"

        for index, item in enumerate(self.items):
            if not item.product_id:
                missing_fields.append(f"items[{index}].product_id")
            if item.quantity is None or item.quantity <= 0:
                field_errors[f"items[{index}].quantity"] = "Quantity must be greater than 0"
            if item.price is None or item.price < 0:
                field_errors[f"items[{index}].price"] = "Unit price must not be negative"

        address = self.shipping_address
        if address is None:
            missing_fields.append("shipping_address")
        else:
            if not (address.country or "").strip():
                missing_fields.append("shipping_address.country")
            if not (address.postal_code or "").strip():
                missing_fields.append("shipping_address.postal_code")

        if field_errors or missing_fields:
            raise ValidationError("Invalid order request", field_errors=field_errors, missing_fields=missing_fields)


@dataclass(frozen=True)
class OrderResult:
    """Outcome of one order creation attempt; never mutated"""

    success: bool
    cost: float
    message: str
    order_id: Optional[str] = None
    tracking_number: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    errors: Tuple[str, ...] = ()


@dataclass
class StatusUpdate:
    timestamp: datetime
    status: str
    description: str
    location: Optional[str] = None


@dataclass
class OrderStatus:
    """Canonical status snapshot as last reported by the provider"""

    order_id: str
    status: OrderState
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    updates: List[StatusUpdate] = field(default_factory=list)

    def __post_init__(self):
        # oldest first
        self.updates = sorted(self.updates, key=lambda update: update.timestamp)


@dataclass
class ProviderHealth:
    provider: str
    enabled: bool
    status: HealthStatus
    details: Optional[str] = None
