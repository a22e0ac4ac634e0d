"""
Infrastructure services for the wizard session engine.

- Logging and observability (logging_config)
"""

from .logging_config import (
    configure_logging,
    configure_logging_from_settings,
    get_logger,
    session_id_var,
)

__all__ = [
    "configure_logging",
    "configure_logging_from_settings",
    "get_logger",
    "session_id_var",
]
