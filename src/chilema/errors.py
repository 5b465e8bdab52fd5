"""Error taxonomy for the meal journal."""


class ChilemaError(Exception):
    """Base class for classified meal journal failures."""


class StoreUnavailableError(ChilemaError):
    """Raised when durable storage cannot be used in the current context."""


class TransactionError(ChilemaError):
    """Raised when the storage engine aborts an operation."""


class CodecError(ChilemaError):
    """Raised when an image cannot be decoded or encoded."""


class FormatError(ChilemaError):
    """Raised when an import document does not have the expected shape."""
