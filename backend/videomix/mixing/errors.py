"""
Mix plan generation error types.

Both errors are caller errors: they are raised before a job exists and
surface to the caller as a 422.
"""

from typing import List, Optional


class MixingError(Exception):
    """Base exception for mix plan generation failures."""
    pass


class InvalidSettings(MixingError):
    """Raised when mix settings are unknown, out of range or inconsistent."""

    def __init__(self, reason: str, errors: Optional[List[str]] = None):
        self.reason = reason
        self.errors = errors or [reason]
        super().__init__(f"Invalid mix settings: {reason}")


class InsufficientSourceMaterial(MixingError):
    """Raised when a required slot has no clip to fill it."""

    def __init__(self, reason: str, slot_id: Optional[str] = None):
        self.reason = reason
        self.slot_id = slot_id
        super().__init__(f"Insufficient source material: {reason}")
