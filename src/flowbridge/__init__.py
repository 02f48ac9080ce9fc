"""flowbridge - expression conversion between n8n and Make workflows."""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
