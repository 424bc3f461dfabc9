"""
Domain exceptions raised below the action boundary.

Actions never let these escape; see ``clubportal.results``.
"""

from __future__ import annotations


class PortalError(Exception):
    """Base class for portal errors."""


class ValidationFailed(PortalError):
    """A payload failed schema validation.

    ``message`` is the first violation, suitable for showing to the user.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DuplicateEntryError(PortalError):
    """A unique constraint in the store was violated."""
