"""Exception types raised by the Chronicles core."""


class InvalidSessionState(ValueError):
    """
    Operation on a finalized, exited, or unknown session/question.

    Recoverable: the caller discards the offending session and builds a new
    one. Never corrupts the progress store.
    """


class StorageError(OSError):
    """Durable storage read/write failure."""


class ContentError(ValueError):
    """Static lesson content is malformed or references unknown ids."""
