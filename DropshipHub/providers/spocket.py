"""
Spocket Provider Implementation

Implements the Spocket supplier marketplace API (US/EU suppliers) using
bearer-token authentication. Search, import and batch inventory are remote
operations; orders are placed against the connected store.
"""

import asyncio
import logging
from typing import Any, Dict, List

from .base import BaseProvider, FieldDefinition, FieldType, ProviderInfo
from .registry import register_provider
from DropshipHub.exceptions import (
    FailureKind,
    ProviderError,
    ProviderNotFoundError,
)
from DropshipHub.schemas.dropship_schemas import (
    DeliveryWindow,
    ImportResult,
    InventoryUpdate,
    OrderRequest,
    OrderResult,
    OrderState,
    OrderStatus,
    Product,
    ProductReviews,
    ProductSearchQuery,
    ProductVariant,
    ShippingInfo,
    ShippingMethod,
    StatusUpdate,
    SupplierDescriptor,
)

logger = logging.getLogger(__name__)

INVENTORY_BATCH_SIZE = 50


@register_provider("spocket")
class SpocketProvider(BaseProvider):
    """Spocket provider implementation"""

    status_map = {
        "unfulfilled": OrderState.PENDING,
        "pending": OrderState.PENDING,
        "processing": OrderState.PROCESSING,
        "fulfilled": OrderState.SHIPPED,
        "shipped": OrderState.SHIPPED,
        "delivered": OrderState.DELIVERED,
        "cancelled": OrderState.CANCELLED,
        "refunded": OrderState.CANCELLED,
    }

    def get_provider_info(self) -> ProviderInfo:
        return ProviderInfo(
            name="spocket",
            display_name="Spocket",
            description="Dropshipping marketplace of vetted US and EU suppliers with fast domestic shipping.",
            website_url="https://www.spocket.co",
            api_documentation_url="https://www.spocket.co/api",
            rate_limit_info="Rate limited per API key; honours Retry-After",
        )

    def get_credential_schema(self) -> List[FieldDefinition]:
        return [
            FieldDefinition(
                name="api_key",
                label="API Key",
                field_type=FieldType.PASSWORD,
                required=True,
                description="Spocket API key from the store's integration settings",
            ),
        ]

    def _get_base_url(self) -> str:
        # Spocket serves sandbox keys from the production host
        return self.config.base_url or "https://api.spocket.co/api/v1"

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key or ''}",
            "Content-Type": "application/json",
        }

    # ========== Lifecycle ==========

    async def initialize(self) -> None:
        self._require_configuration()
        response = await self._get_http_client().get("/user")
        logger.info(f"Spocket initialized for user: {response.data.get('email') or 'Unknown'}")

    async def check_health(self) -> None:
        await self._get_http_client().get("/products/count")

    # ========== Catalog ==========

    def _build_search_params(self, query: ProductSearchQuery) -> Dict[str, Any]:
        params = {"page": query.page, "per_page": query.limit}
        if query.keyword:
            params["search"] = query.keyword
        if query.category:
            params["category"] = query.category
        if query.min_price is not None:
            params["min_price"] = query.min_price
        if query.max_price is not None:
            params["max_price"] = query.max_price
        if query.sort_by:
            params["sort_by"] = query.sort_by.value
            params["sort_order"] = query.sort_order.value
        if query.country:
            params["ship_to"] = query.country
        return params

    async def search_products(self, query: ProductSearchQuery) -> List[Product]:
        response = await self._get_http_client().get("/products", params=self._build_search_params(query))
        raw_products = response.data.get("products") or []
        return [self._transform_product(raw) for raw in raw_products if isinstance(raw, dict)]

    async def get_product(self, product_id: str) -> Product:
        try:
            response = await self._get_http_client().get(f"/products/{product_id}")
        except ProviderNotFoundError as e:
            raise ProviderNotFoundError(
                f"Product {product_id} not found on Spocket",
                provider_name=self.name,
                resource_type="product",
                resource_id=product_id,
            ) from e

        raw = response.data.get("product")
        if not raw:
            raise ProviderNotFoundError(
                f"Product {product_id} not found on Spocket",
                provider_name=self.name,
                resource_type="product",
                resource_id=product_id,
            )
        return self._transform_product(raw)

    async def import_product(self, product_id: str) -> ImportResult:
        try:
            response = await self._get_http_client().post(f"/products/{product_id}/import")
        except ProviderError as e:
            # only a rejection of this product becomes a result; other kinds propagate
            if e.kind not in (FailureKind.NOT_FOUND, FailureKind.PERMANENT):
                raise
            logger.warning(f"Spocket import of {product_id} failed: {e.message}")
            return ImportResult(
                success=False,
                product_id=product_id,
                message="Failed to import product from Spocket",
                errors=[e.message],
            )

        local_id = self.extractor.parse_id(response.data.get("product_id")) or None
        return ImportResult(
            success=True,
            product_id=product_id,
            local_product_id=local_id,
            message="Product imported successfully from Spocket",
        )

    async def sync_inventory(self, product_ids: List[str]) -> List[InventoryUpdate]:
        """
        Batch endpoint; batches run concurrently. Ids missing from Spocket's answer
        are reported unavailable. A failed batch fails the whole sync.
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)
        batches = [
            product_ids[start:start + INVENTORY_BATCH_SIZE]
            for start in range(0, len(product_ids), INVENTORY_BATCH_SIZE)
        ]

        async def _sync_batch(batch: List[str]) -> List[InventoryUpdate]:
            async with semaphore:
                response = await self._get_http_client().post(
                    "/products/inventory", json_data={"product_ids": batch}
                )
            return [
                self._transform_inventory(raw)
                for raw in response.data.get("products") or []
                if isinstance(raw, dict)
            ]

        results = await asyncio.gather(*(_sync_batch(batch) for batch in batches))
        updates = [update for batch_updates in results for update in batch_updates]
        return self.align_inventory(product_ids, updates)

    def _transform_inventory(self, raw: Dict[str, Any]) -> InventoryUpdate:
        stock = self.extractor.safe_cast(raw.get("inventory"), int, 0)
        return InventoryUpdate(
            product_id=self.extractor.parse_id(raw.get("id")),
            stock=stock,
            price=self.extractor.parse_price(raw.get("price")),
            available=stock > 0,
            variant_updates=[
                InventoryUpdate(
                    product_id=self.extractor.parse_id(raw.get("id")),
                    variant_id=self.extractor.parse_id(variant.get("id")),
                    stock=self.extractor.safe_cast(variant.get("inventory"), int, 0),
                    price=self.extractor.parse_price(variant.get("price")),
                    available=self.extractor.safe_cast(variant.get("inventory"), int, 0) > 0,
                )
                for variant in raw.get("variants") or []
            ],
        )

    # ========== Orders ==========

    async def _submit_order(self, request: OrderRequest) -> OrderResult:
        address = request.shipping_address
        first_name, last_name = request.customer.split_name()
        payload = {
            "shipping_address": {
                "first_name": address.first_name,
                "last_name": address.last_name,
                "address1": address.address1,
                "address2": address.address2 or "",
                "city": address.city,
                "province": address.state,
                "country": address.country,
                "zip": address.postal_code,
                "phone": request.customer.phone or "",
            },
            "line_items": [
                {
                    "product_id": item.product_id,
                    "variant_id": item.variant_id,
                    "quantity": item.quantity,
                    "price": f"{item.price:.2f}",
                }
                for item in request.items
            ],
            "customer": {
                "email": request.customer.email,
                "first_name": first_name,
                "last_name": last_name,
            },
            "note": request.notes or "",
        }

        response = await self._get_http_client().post("/orders", json_data=payload)
        order = response.data.get("order") or {}

        return OrderResult(
            success=True,
            order_id=self.extractor.parse_id(order.get("id")) or None,
            tracking_number=order.get("tracking_number"),
            cost=self.extractor.parse_price(order.get("total_price")),
            message="Order created successfully with Spocket",
        )

    async def get_order_status(self, order_id: str) -> OrderStatus:
        try:
            response = await self._get_http_client().get(f"/orders/{order_id}")
        except ProviderNotFoundError as e:
            raise ProviderNotFoundError(
                f"Order {order_id} not found on Spocket",
                provider_name=self.name,
                resource_type="order",
                resource_id=order_id,
            ) from e

        order = response.data.get("order") or {}
        updates = []
        for update in order.get("status_updates") or []:
            timestamp = self.extractor.parse_timestamp(update.get("created_at"))
            if timestamp is None:
                continue
            updates.append(StatusUpdate(
                timestamp=timestamp,
                status=update.get("status") or "",
                description=update.get("message") or "",
                location=update.get("location"),
            ))

        return OrderStatus(
            order_id=order_id,
            status=self.map_status(order.get("fulfillment_status")),
            tracking_number=order.get("tracking_number"),
            tracking_url=order.get("tracking_url"),
            estimated_delivery=self.extractor.parse_timestamp(order.get("estimated_delivery")),
            updates=updates,
        )

    async def cancel_order(self, order_id: str) -> bool:
        try:
            response = await self._get_http_client().post(f"/orders/{order_id}/cancel")
        except ProviderNotFoundError as e:
            raise ProviderNotFoundError(
                f"Order {order_id} not found on Spocket",
                provider_name=self.name,
                resource_type="order",
                resource_id=order_id,
            ) from e
        except ProviderError as e:
            if e.kind != FailureKind.PERMANENT:
                raise
            logger.info(f"Spocket refused to cancel order {order_id}: {e.message}")
            return False

        # a 2xx can still carry a refusal
        return bool(response.data.get("success", True))

    async def get_shipping_info(self, order_id: str) -> ShippingInfo:
        try:
            response = await self._get_http_client().get(f"/orders/{order_id}/shipping")
        except ProviderNotFoundError as e:
            raise ProviderNotFoundError(
                f"Order {order_id} not found on Spocket",
                provider_name=self.name,
                resource_type="order",
                resource_id=order_id,
            ) from e

        shipping = response.data.get("shipping") or {}
        return ShippingInfo(
            methods=[
                self._transform_shipping_method(method, "min_delivery_days", "max_delivery_days")
                for method in shipping.get("methods") or []
            ],
            processing_time=self.extractor.safe_cast(shipping.get("processing_time"), int, 1),
            countries=shipping.get("countries") or ["US", "CA", "EU"],
        )

    # ========== Translation ==========

    def _transform_shipping_method(self, method: Dict[str, Any], min_key: str, max_key: str) -> ShippingMethod:
        tracking = method.get("tracking_available")
        return ShippingMethod(
            name=method.get("name") or "Standard",
            cost=self.extractor.parse_price(method.get("price")),
            time=DeliveryWindow(
                min=self.extractor.safe_cast(method.get(min_key), int, 3),
                max=self.extractor.safe_cast(method.get(max_key), int, 7),
            ),
            tracking_available=True if tracking is None else bool(tracking),
        )

    def _transform_product(self, raw: Dict[str, Any]) -> Product:
        supplier = raw.get("supplier") or {}
        reviews = raw.get("reviews")

        variants = [
            ProductVariant(
                id=self.extractor.parse_id(variant.get("id")),
                name=variant.get("title"),
                options=self._parse_variant_options(variant),
                price=self.extractor.parse_price(variant.get("price"), None),
                stock=self.extractor.safe_cast(variant.get("inventory_quantity"), int, None),
                sku=variant.get("sku"),
                image=variant.get("image_src"),
            )
            for variant in raw.get("variants") or []
        ]

        return Product(
            id=self.extractor.parse_id(raw.get("id")),
            title=raw.get("title") or "",
            description=raw.get("description") or "",
            images=self.extractor.extract_images(raw.get("images")),
            price=self.extractor.parse_price(raw.get("price")),
            compare_at_price=self.extractor.parse_price(raw.get("compare_at_price"), None) or None,
            currency=raw.get("currency") or "USD",
            category=raw.get("category") or "General",
            tags=list(raw.get("tags") or []),
            variants=variants,
            stock=self.extractor.safe_cast(raw.get("inventory_quantity"), int, None),
            supplier=SupplierDescriptor(
                id=self.extractor.parse_id(supplier.get("id")),
                name=supplier.get("name") or "Unknown Supplier",
                country=supplier.get("country"),
                rating=self.extractor.safe_cast(supplier.get("rating"), float, None),
                shipping_time=DeliveryWindow(
                    min=self.extractor.safe_cast(self.extractor.safe_get(supplier, ["shipping_time", "min"]), int, 3),
                    max=self.extractor.safe_cast(self.extractor.safe_get(supplier, ["shipping_time", "max"]), int, 7),
                ),
                communication_rating=self.extractor.safe_cast(supplier.get("communication_rating"), float, None),
                service_rating=self.extractor.safe_cast(supplier.get("service_rating"), float, None),
            ),
            shipping=ShippingInfo(
                methods=[
                    self._transform_shipping_method(method, "min_days", "max_days")
                    for method in raw.get("shipping_methods") or []
                ],
                processing_time=self.extractor.safe_cast(raw.get("processing_time"), int, 1),
                countries=raw.get("shipping_countries") or ["US", "CA"],
            ),
            specifications={str(k): str(v) for k, v in (raw.get("specifications") or {}).items()},
            reviews=ProductReviews(
                rating=self.extractor.safe_cast(reviews.get("average_rating"), float, 0.0),
                count=self.extractor.safe_cast(reviews.get("count"), int, 0),
            ) if isinstance(reviews, dict) else None,
        )

    @staticmethod
    def _parse_variant_options(variant: Dict[str, Any]) -> Dict[str, str]:
        options = {}
        for key in ("option1", "option2", "option3", "size", "color", "material"):
            if variant.get(key):
                options[key] = str(variant[key])
        return options
