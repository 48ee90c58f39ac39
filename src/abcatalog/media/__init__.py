"""Per-item media set management."""

from .manager import TERMINAL_STATUSES, MediaChange, MediaSetManager

__all__ = ["MediaChange", "MediaSetManager", "TERMINAL_STATUSES"]
