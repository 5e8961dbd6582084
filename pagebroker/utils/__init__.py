"""Utils module -- logging and the error taxonomy.

Configuration lives in ``pagebroker.utils.config`` and is imported directly,
since it depends on the browser and security value types.
"""

from pagebroker.utils.logger import configure_logging, get_logger

__all__ = ["configure_logging", "get_logger"]
