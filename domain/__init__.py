"""Broadcast Source Domain Layer.

This package contains the core business logic organized by bounded contexts:
- sources: Source records, DTS groups, derivation and persistence ordering
"""

from domain import sources

__all__ = ["sources"]
