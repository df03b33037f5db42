"""
Billing Module

Call-credit accounting and subscription gating.
"""

from .guard import CreditGuard

__all__ = ["CreditGuard"]
