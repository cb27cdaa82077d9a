"""Storefront order, pricing and analytics API."""

__version__ = "0.1.0"
