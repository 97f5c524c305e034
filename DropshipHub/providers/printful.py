"""
Printful Provider Implementation

Implements the Printful print-on-demand API using bearer-token authentication.
Printful has no catalog search endpoint, so searches filter the full product
list locally; items are made to order, so resolvable products are always in stock.
"""

import asyncio
import hashlib
import json
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
    ProductSearchQuery,
    ProductVariant,
    ShippingInfo,
    ShippingMethod,
    SortKey,
    SortOrder,
    StatusUpdate,
    SupplierDescriptor,
)

logger = logging.getLogger(__name__)

PRINT_ON_DEMAND_STOCK = 999
EXTERNAL_ID_MAX_LENGTH = 32
DEFAULT_COUNTRIES = ["US", "CA", "EU", "AU", "JP"]
STANDARD_DELIVERY = DeliveryWindow(min=7, max=14)


@register_provider("printful")
class PrintfulProvider(BaseProvider):
    """Printful provider implementation"""

    status_map = {
        "draft": OrderState.PENDING,
        "pending": OrderState.PENDING,
        "failed": OrderState.PENDING,
        "confirmed": OrderState.PROCESSING,
        "inprocess": OrderState.PROCESSING,
        "onhold": OrderState.PROCESSING,
        "partial": OrderState.SHIPPED,
        "fulfilled": OrderState.SHIPPED,
        "shipped": OrderState.SHIPPED,
        "delivered": OrderState.DELIVERED,
        "returned": OrderState.CANCELLED,
        "canceled": OrderState.CANCELLED,
        "cancelled": OrderState.CANCELLED,
    }

    def get_provider_info(self) -> ProviderInfo:
        return ProviderInfo(
            name="printful",
            display_name="Printful",
            description="Print-on-demand fulfillment: apparel, wall art and accessories printed and shipped per order.",
            website_url="https://www.printful.com",
            api_documentation_url="https://developers.printful.com/docs/",
            rate_limit_info="120 requests per minute per store",
        )

    def get_credential_schema(self) -> List[FieldDefinition]:
        return [
            FieldDefinition(
                name="api_key",
                label="API Token",
                field_type=FieldType.PASSWORD,
                required=True,
                description="Private token from the Printful developer portal",
            ),
            FieldDefinition(
                name="store_id",
                label="Store ID",
                field_type=FieldType.TEXT,
                required=False,
                description="Required only for account-level tokens that span several stores",
            ),
        ]

    def _get_base_url(self) -> str:
        return self.config.base_url or "https://api.printful.com"

    def _get_headers(self) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.config.api_key or ''}",
            "Content-Type": "application/json",
        }
        if self.config.store_id:
            headers["X-PF-Store-Id"] = self.config.store_id
        return headers

    # ========== Lifecycle ==========

    async def initialize(self) -> None:
        self._require_configuration()
        response = await self._get_http_client().get("/store")
        store_name = self.extractor.safe_get(response.data, ["result", "name"], "Unknown")
        logger.info(f"Printful initialized for store: {store_name}")

    async def check_health(self) -> None:
        await self._get_http_client().get("/store")

    # ========== Catalog ==========

    async def search_products(self, query: ProductSearchQuery) -> List[Product]:
        response = await self._get_http_client().get("/products")
        raw_products = self.extractor.safe_get(response.data, "result", []) or []
        products = [self._transform_product(raw) for raw in raw_products if isinstance(raw, dict)]

        if query.keyword:
            keyword = query.keyword.lower()
            products = [p for p in products if keyword in p.title.lower() or keyword in p.description.lower()]
        if query.category:
            category = query.category.lower()
            products = [p for p in products if category in (p.category or "").lower()]
        if query.min_price is not None:
            products = [p for p in products if p.price >= query.min_price]
        if query.max_price is not None:
            products = [p for p in products if p.price <= query.max_price]
        if query.sort_by == SortKey.PRICE:
            products.sort(key=lambda p: p.price, reverse=query.sort_order == SortOrder.DESC)

        return products[query.offset:query.offset + query.limit]

    async def get_product(self, product_id: str) -> Product:
        try:
            response = await self._get_http_client().get(f"/products/{product_id}")
        except ProviderNotFoundError as e:
            raise ProviderNotFoundError(
                f"Product {product_id} not found on Printful",
                provider_name=self.name,
                resource_type="product",
                resource_id=product_id,
            ) from e

        result = self.extractor.safe_get(response.data, "result", {})
        if not result:
            raise ProviderNotFoundError(
                f"Product {product_id} not found on Printful",
                provider_name=self.name,
                resource_type="product",
                resource_id=product_id,
            )
        # /products/{id} nests the product next to its variants
        if isinstance(result.get("product"), dict):
            result = {**result["product"], "variants": result.get("variants", [])}
        return self._transform_product(result)

    async def import_product(self, product_id: str) -> ImportResult:
        try:
            product = await self.get_product(product_id)
        except ProviderNotFoundError as e:
            logger.warning(f"Printful import of {product_id} failed: {e.message}")
            return ImportResult(
                success=False,
                product_id=product_id,
                message="Failed to import product from Printful",
                errors=[e.message],
            )

        return ImportResult(
            success=True,
            product_id=product.id,
            local_product_id=f"local_{product.id}",
            message="Product imported successfully from Printful",
        )

    async def sync_inventory(self, product_ids: List[str]) -> List[InventoryUpdate]:
        """
        Printful has no batch endpoint; products are fetched concurrently.

        Only products Printful no longer knows are reported unavailable. Any other
        failure is raised so the whole sync can be retried.
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _sync_one(product_id: str) -> InventoryUpdate:
            async with semaphore:
                try:
                    product = await self.get_product(product_id)
                except ProviderNotFoundError as e:
                    logger.warning(f"Printful product {product_id} not found during inventory sync: {e.message}")
                    return InventoryUpdate.unavailable(product_id)

            return InventoryUpdate(
                product_id=product_id,
                stock=PRINT_ON_DEMAND_STOCK,
                price=product.price,
                available=True,
                variant_updates=[
                    InventoryUpdate(
                        product_id=product_id,
                        variant_id=variant.id,
                        stock=PRINT_ON_DEMAND_STOCK,
                        price=variant.price,
                        available=True,
                    )
                    for variant in product.variants
                ],
            )

        updates = await asyncio.gather(*(_sync_one(product_id) for product_id in product_ids))
        return self.align_inventory(product_ids, list(updates))

    # ========== Orders ==========

    @staticmethod
    def _external_id(request: OrderRequest, payload: Dict[str, Any]) -> str:
        """The caller's reference when given, otherwise a digest of the order content"""
        if request.reference:
            return request.reference[:EXTERNAL_ID_MAX_LENGTH]
        digest = hashlib.sha1(json.dumps(payload, sort_keys=True).encode("utf-8")).hexdigest()
        return f"order_{digest}"[:EXTERNAL_ID_MAX_LENGTH]

    async def _submit_order(self, request: OrderRequest) -> OrderResult:
        address = request.shipping_address
        payload = {
            "shipping": request.shipping_method or "STANDARD",
            "recipient": {
                "name": address.full_name,
                "address1": address.address1,
                "address2": address.address2 or "",
                "city": address.city,
                "state_code": address.state or "",
                "country_code": address.country,
                "zip": address.postal_code,
                "phone": request.customer.phone or "",
                "email": request.customer.email,
            },
            "items": [
                {
                    "sync_variant_id": item.variant_id or item.product_id,
                    "quantity": item.quantity,
                    "retail_price": f"{item.price:.2f}",
                }
                for item in request.items
            ],
        }
        if request.notes:
            payload["notes"] = request.notes
        payload["external_id"] = self._external_id(request, payload)

        response = await self._get_http_client().post("/orders", json_data=payload)
        order = self.extractor.safe_get(response.data, "result", {})
        shipment = self.extractor.safe_get(order, ["shipments", 0], {})

        return OrderResult(
            success=True,
            order_id=self.extractor.parse_id(order.get("id")) or None,
            tracking_number=shipment.get("tracking_number"),
            cost=self.extractor.parse_price(self.extractor.safe_get(order, ["costs", "total"])),
            message="Order created successfully with Printful",
        )

    async def _get_order(self, order_id: str) -> Dict[str, Any]:
        try:
            response = await self._get_http_client().get(f"/orders/{order_id}")
        except ProviderNotFoundError as e:
            raise ProviderNotFoundError(
                f"Order {order_id} not found on Printful",
                provider_name=self.name,
                resource_type="order",
                resource_id=order_id,
            ) from e
        return self.extractor.safe_get(response.data, "result", {})

    async def get_order_status(self, order_id: str) -> OrderStatus:
        order = await self._get_order(order_id)
        native_status = order.get("status")
        shipment = self.extractor.safe_get(order, ["shipments", 0], {})

        updates = []
        created = self.extractor.parse_timestamp(order.get("created"))
        if created:
            updates.append(StatusUpdate(timestamp=created, status="created", description="Order created"))
        updated = self.extractor.parse_timestamp(order.get("updated"))
        if updated and updated != created:
            updates.append(StatusUpdate(timestamp=updated, status=native_status or "", description=f"Order {native_status}"))
        for item in order.get("shipments") or []:
            shipped_at = self.extractor.parse_timestamp(item.get("shipped_at") or item.get("ship_date"))
            if shipped_at:
                updates.append(StatusUpdate(
                    timestamp=shipped_at,
                    status="shipped",
                    description=f"Shipped via {item.get('carrier') or item.get('service') or 'carrier'}",
                ))

        return OrderStatus(
            order_id=order_id,
            status=self.map_status(native_status),
            tracking_number=shipment.get("tracking_number"),
            tracking_url=shipment.get("tracking_url"),
            updates=updates,
        )

    async def cancel_order(self, order_id: str) -> bool:
        try:
            await self._get_http_client().delete(f"/orders/{order_id}")
        except ProviderNotFoundError as e:
            raise ProviderNotFoundError(
                f"Order {order_id} not found on Printful",
                provider_name=self.name,
                resource_type="order",
                resource_id=order_id,
            ) from e
        except ProviderError as e:
            if e.kind != FailureKind.PERMANENT:
                raise
            # Printful answers 400/409 for orders already in fulfillment
            logger.info(f"Printful refused to cancel order {order_id}: {e.message}")
            return False
        return True

    async def get_shipping_info(self, order_id: str) -> ShippingInfo:
        order = await self._get_order(order_id)
        return ShippingInfo(
            methods=[
                ShippingMethod(
                    name=order.get("shipping_service_name") or "Standard",
                    cost=self.extractor.parse_price(self.extractor.safe_get(order, ["costs", "shipping"])),
                    time=STANDARD_DELIVERY,
                    tracking_available=True,
                )
            ],
            processing_time=3,
            countries=list(DEFAULT_COUNTRIES),
        )

    # ========== Translation ==========

    def _transform_product(self, raw: Dict[str, Any]) -> Product:
        type_name = raw.get("type_name")
        image = raw.get("image")
        variants = []
        prices = []
        for variant in raw.get("variants") or []:
            price = self.extractor.parse_price(variant.get("price") or variant.get("retail_price"), None)
            if price is not None:
                prices.append(price)
            variants.append(ProductVariant(
                id=self.extractor.parse_id(variant.get("id")),
                name=variant.get("name"),
                options=self._parse_variant_options(variant),
                price=price,
                stock=PRINT_ON_DEMAND_STOCK,
                sku=variant.get("sku"),
                image=variant.get("image") or image,
            ))

        # catalog listings carry no price; fall back to the cheapest variant
        price = self.extractor.parse_price(raw.get("price"), None)
        if price is None:
            price = min(prices) if prices else 0.0

        return Product(
            id=self.extractor.parse_id(raw.get("id")),
            title=raw.get("title") or raw.get("name") or "",
            description=raw.get("description") or "",
            images=[image] if image else [],
            price=price,
            currency=raw.get("currency") or "USD",
            category=type_name or "Custom Products",
            tags=[tag for tag in (type_name, "print-on-demand", "custom") if tag],
            variants=variants,
            stock=PRINT_ON_DEMAND_STOCK,
            supplier=SupplierDescriptor(
                id="printful",
                name="Printful",
                country="LV",
                rating=4.8,
                shipping_time=STANDARD_DELIVERY,
            ),
            shipping=ShippingInfo(
                methods=[ShippingMethod(name="Standard", cost=4.99, time=STANDARD_DELIVERY)],
                processing_time=3,
                countries=list(DEFAULT_COUNTRIES),
            ),
            specifications={
                "Print Method": "DTG/Embroidery",
                "Material": "Various",
                "Care Instructions": "Machine wash cold",
            },
        )

    @staticmethod
    def _parse_variant_options(variant: Dict[str, Any]) -> Dict[str, str]:
        options = {}
        for key in ("size", "color"):
            if variant.get(key):
                options[key] = str(variant[key])
        return options
