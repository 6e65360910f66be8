"""
Shared utilities for FIGREPORT.

Common functionality used across contexts:
- Logger setup
- Job event log
- Timestamps
- PDF inspection
"""

from figreport.utils.timestamp import now, now_exact

__all__ = ["now", "now_exact"]
