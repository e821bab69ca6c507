"""Exception types shared by the engine and its adapters."""


class FullKollError(Exception):
    """Base class for reminder engine errors."""


class TransportError(FullKollError):
    """A schedule or cancel call to the notification transport failed.

    Aborts the current record; the pass continues with the next one.
    """


class StorageError(FullKollError):
    """Listing or updating records failed. Fatal to the pass."""
