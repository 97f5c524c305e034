"""
Common Data Extraction Utilities for Providers

Null-safe access and type conversion for provider API payloads, which routinely
send prices as strings, omit nested objects and mix timestamp formats.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)


class DataExtractor:
    """
    Data extraction utilities shared by provider implementations.
    """

    def __init__(self, provider_name: str):
        self.provider_name = provider_name

    def safe_get(self, data: Dict[str, Any], keys: Union[str, List[Any]], default: Any = None) -> Any:
        """
        Safely get nested dictionary values with null protection.

        Example:
            cost = extractor.safe_get(order, ["costs", "total"], "0")
        """
        if isinstance(keys, str):
            keys = [keys]

        current = data
        for key in keys:
            if current is None:
                return default

            if isinstance(current, dict):
                current = current.get(key)
            elif isinstance(current, list) and isinstance(key, int) and 0 <= key < len(current):
                current = current[key]
            else:
                return default

        return current if current is not None else default

    def safe_cast(self, value: Any, target_type: type, default: Any = None) -> Any:
        """Safely cast value to target type with fallback."""
        if value is None or value == "":
            return default

        try:
            if target_type == bool:
                if isinstance(value, str):
                    return value.lower() in ('true', '1', 'yes', 'on', 'enabled')
                return bool(value)
            elif target_type == float:
                if isinstance(value, Decimal):
                    return float(value)
                return float(value)
            elif target_type == int:
                if isinstance(value, float):
                    return int(value)
                return int(value)
            else:
                return target_type(value)

        except (ValueError, TypeError, InvalidOperation) as e:
            logger.warning(f"{self.provider_name}: failed to cast {value!r} to {target_type.__name__}: {e}")
            return default

    def parse_price(self, value: Any, default: Optional[float] = 0.0) -> Optional[float]:
        """Prices arrive as "12.50", 12.5 or null"""
        price = self.safe_cast(value, float, None)
        if price is None or price < 0:
            return default
        return round(price, 2)

    def parse_id(self, value: Any) -> str:
        return "" if value is None else str(value)

    def parse_timestamp(self, value: Any) -> Optional[datetime]:
        """
        Accept ISO-8601 strings (with or without "Z") and unix epoch seconds.

        Always returns an aware UTC datetime so status updates stay comparable.
        """
        if value is None or value == "":
            return None
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(value, tz=timezone.utc)
        if not isinstance(value, datetime):
            try:
                value = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
            except ValueError:
                logger.warning(f"{self.provider_name}: unparseable timestamp {value!r}")
                return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value

    def extract_images(self, items: Any) -> List[str]:
        """Image lists are either URL strings or objects with src/url keys."""
        images = []
        for item in items or []:
            if isinstance(item, str) and item:
                images.append(item)
            elif isinstance(item, dict):
                url = item.get("src") or item.get("url")
                if url:
                    images.append(url)
        return images
