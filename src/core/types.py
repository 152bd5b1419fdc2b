"""Type aliases for dynamic data structures throughout the application.

All types defined here should be JSON-serializable to support logging.
"""

from typing import Any

# Context dictionary for error details and debugging information
type ErrorContext = dict[str, Any]  # flexible error context

# Raw column values copied between entity instances
type ColumnValues = dict[str, Any]
