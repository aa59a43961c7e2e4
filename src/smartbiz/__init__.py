"""
SmartBiz: small-shop management backend.

Inventory, point-of-sale entry, sales/expense history, a dashboard, and a
chat-style business advisor over a hosted (Supabase) database.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
