"""
Reclaim component - expiry of stale Pending uploads.
"""

from .component import ReclamationSweeper, SweepResult, identifier_from_name

__all__ = ["ReclamationSweeper", "SweepResult", "identifier_from_name"]
