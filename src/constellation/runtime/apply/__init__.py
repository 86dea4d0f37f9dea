# src/constellation/runtime/apply/__init__.py
"""Domain-specific apply modules.

Each module claims a subset of tx types and mutates ledger state in place.
domain_dispatch walks them in order; the first one that returns a non-None
result owns the tx.
"""

from __future__ import annotations

__all__ = [
    "tokens",
    "allocation",
    "claims",
    "cycles",
    "treasury",
    "admin",
]
