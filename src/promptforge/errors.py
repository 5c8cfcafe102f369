"""Exception taxonomy for the promptforge SDK.

``NotFoundError`` and ``InvalidStateError`` subclass ``ValueError`` so that
callers treating every command failure as a ``ValueError`` keep working; the
server maps each subclass to its own HTTP status.  ``ProviderError`` never
leaves a generation worker: the worker substitutes a fallback text.
"""


class NotFoundError(ValueError):
    """A session, or the current open question, does not exist."""


class InvalidStateError(ValueError):
    """The session is not in a state that allows the requested operation."""


class ProviderError(RuntimeError):
    """The generation provider call failed or timed out."""
