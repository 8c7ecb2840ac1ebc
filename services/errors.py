"""Circulation error types.

Messages are localized and meant to be shown to library staff as-is.
"""
from __future__ import annotations


class CirculationError(RuntimeError):
    """Base class for borrowing and reservation failures."""


class NotFoundError(CirculationError):
    """A member, book, copy, staff, borrowing or reservation does not exist."""


class InvalidStateError(CirculationError):
    """The requested action is not allowed in the current state."""
