"""
Utility modules for the SMART backend services client.
"""

from smart_backend_services.utils.logging import (
    configure_logging,
    get_logger,
    log_with_context
)

__all__ = [
    "configure_logging",
    "get_logger",
    "log_with_context"
]
