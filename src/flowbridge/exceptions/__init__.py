"""flowbridge exception hierarchy.

All exceptions can be imported from this package:
    from flowbridge.exceptions import ConfigError, FlowbridgeError
"""

from __future__ import annotations

from flowbridge.exceptions.base import FlowbridgeError
from flowbridge.exceptions.config import ConfigError

__all__ = [
    "FlowbridgeError",
    "ConfigError",
]
