"""Error taxonomy for the typed table layer.

Every error raised by this package derives from TableError so callers can
catch the whole family at once. Engine failures are wrapped rather than
retried; decode failures carry the bytes that could not be parsed.
"""

from __future__ import annotations


class TableError(Exception):
    """Base class for all typed table errors."""

    pass


class EngineError(TableError):
    """Raised when the underlying key-value engine reports a failure.

    Covers I/O errors, corruption and open failures. The native error, if
    any, is available as ``__cause__``.
    """

    pass


class UnsupportedModeError(EngineError):
    """Raised when an engine cannot open a database in the requested mode."""

    def __init__(self, engine: str, mode: str) -> None:
        super().__init__(f"{engine} engine does not support {mode} mode")
        self.engine = engine
        self.mode = mode


class InvalidPartitionNameError(TableError):
    """Raised when a declared partition name is not open in the database."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Invalid partition name: {name!r}")
        self.name = name


class InvalidBytesError(TableError):
    """Base for decode failures. Holds the offending bytes for diagnostics."""

    kind = "bytes"

    def __init__(self, data: bytes, reason: str | None = None) -> None:
        message = f"Invalid {self.kind} bytes: {data.hex() or '<empty>'}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.data = bytes(data)


class InvalidKeyBytesError(InvalidBytesError):
    """Raised when stored key bytes do not match the expected layout."""

    kind = "key"


class InvalidValueBytesError(InvalidBytesError):
    """Raised when stored value bytes do not match the expected layout."""

    kind = "value"


class CapabilityError(TableError):
    """Raised when an operation is not permitted by the handle's mode."""

    def __init__(self, mode: str, operation: str) -> None:
        super().__init__(f"Operation {operation!r} is not permitted in {mode} mode")
        self.mode = mode
        self.operation = operation


class ConfigurationError(TableError):
    """Raised for invalid table or partition configuration."""

    pass


class DuplicatePartitionError(ConfigurationError):
    """Raised when two registrations claim the same partition name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Partition {name!r} is already registered")
        self.name = name


class TransactionClosedError(TableError):
    """Raised when a committed or rolled back transaction is used again."""

    pass
