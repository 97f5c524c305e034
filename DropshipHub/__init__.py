"""
DropshipHub - Dropshipping Provider Integration and Order Fulfillment Layer
"""

__version__ = "1.0.0"

VERSION_INFO = {
    "app_version": __version__,
    "description": "Provider registry, adapters, resilience layer and order lifecycle tracking",
}
