"""QuakeHub exception hierarchy.

Nothing here ever escapes a message handler: the processor converts
``MalformedMessage`` into an ``error`` reply and ``ValidationFailure`` into a
logged drop, and the snapshot cache logs and counts ``PersistenceFailure``
on periodic writes. Only an explicit cache clear lets it propagate.
"""

from __future__ import annotations


class QuakeHubError(Exception):
    """Base class for all hub errors."""


class MalformedMessage(QuakeHubError):
    """A frame body could not be parsed as a JSON object."""


class ValidationFailure(QuakeHubError):
    """A parsed message is missing fields or carries unusable values."""


class PersistenceFailure(QuakeHubError):
    """The snapshot file could not be read or written."""
