"""
Unified Dashboard Pipeline

Aggregates storefront orders, ad spend and shipments into reconciled
dashboard metrics.
"""

__version__ = "1.0.0"
