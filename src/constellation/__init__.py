# src/constellation/__init__.py
"""Block Constellation ledger node."""

__version__ = "0.1.0"
