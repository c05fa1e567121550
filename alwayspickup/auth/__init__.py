"""
AlwaysPickup Auth Module

Encrypted at-rest storage for the calendar's OAuth tokens.
"""

from .token_store import TokenStore, derive_key

__all__ = ["TokenStore", "derive_key"]
