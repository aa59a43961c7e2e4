"""Hosted database access: PostgREST client, auth, and the shop repository."""

from .auth import AuthClient, AuthSession
from .client import StoreClient
from .repository import ShopRepository

__all__ = [
    "AuthClient",
    "AuthSession",
    "StoreClient",
    "ShopRepository",
]
