# backend/repfi/utils/__init__.py
"""
Utility modules for the REPFI comptable API.

This package contains cross-cutting utilities used throughout the application:
- logging: Logging configuration and setup with correlation ID support
- context: Request context management for correlation IDs
- formatting: Lenient date and amount parsers for accounting exports
- navigation: "Retour" redirect

Usage:
    from repfi.utils import setup_logging
    from repfi.utils import get_correlation_id, set_correlation_id
    from repfi.utils import format_date, parse_amount
"""

from repfi.utils.context import (
    get_correlation_id,
    set_correlation_id,
    clear_correlation_id,
)
from repfi.utils.formatting import format_date, parse_amount
from repfi.utils.logging import setup_logging
from repfi.utils.navigation import handle_retour

__all__ = [
    # Logging
    "setup_logging",
    # Context
    "get_correlation_id",
    "set_correlation_id",
    "clear_correlation_id",
    # Formatting
    "format_date",
    "parse_amount",
    # Navigation
    "handle_retour",
]
