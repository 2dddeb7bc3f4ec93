"""
workledger

File: src/workledger/__init__.py

Purpose
- Package root for a file-backed work-item ledger with pluggable verification.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
