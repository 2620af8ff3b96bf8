"""
Error types raised while building charts and composing figures.

Both are ValueError subclasses so callers that already guard plotting calls
with ``except ValueError`` keep working.
"""


class SpecError(ValueError):
    """A chart specification is incompatible with its data or is malformed."""


class LayoutError(ValueError):
    """A figure layout does not match the charts supplied to it."""


__all__ = ['SpecError', 'LayoutError']
