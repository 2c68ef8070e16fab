"""
Utilities package for the private flow lookup.

Exports shared helpers for logging and profiling. Keep this package free of
domain-specific logic.
"""

from private_flow.utils.logging import configure_logging, get_logger
from private_flow.utils.profiler import ProfileStats, profile_block

__all__ = [
    "configure_logging",
    "get_logger",
    "ProfileStats",
    "profile_block",
]
