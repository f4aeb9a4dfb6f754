"""Service layer between the Flask views and the shop collaborators."""

from .shop import ShopService

__all__ = ["ShopService"]
