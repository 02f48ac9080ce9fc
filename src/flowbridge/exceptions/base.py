from __future__ import annotations


class FlowbridgeError(Exception):
    """Base exception class for all flowbridge-specific errors.

    This is the root of the flowbridge exception hierarchy. Catching it at a
    CLI or batch-conversion boundary handles every library error while letting
    system exceptions propagate naturally.

    Attributes:
        message: Human-readable error message describing what went wrong.

    Example:
        ```python
        try:
            config = load_config()
        except FlowbridgeError as e:
            logger.error(f"flowbridge error: {e.message}")
            sys.exit(1)
        ```
    """

    def __init__(self, message: str) -> None:
        """Initialize the FlowbridgeError.

        Args:
            message: Human-readable error message.
        """
        self.message = message
        super().__init__(message)
