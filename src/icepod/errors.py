class IcepodError(Exception):
    """Base class for every error raised by icepod."""


class ConfigurationError(IcepodError, ValueError):
    """
    Raised when a table, column or required schema cannot be resolved from the
    supplied configuration. Fatal, never retried.
    """


class WriterPreconditionError(ConfigurationError):
    """
    Raised when a delete writer is requested without the field ids or row schema
    it needs. Signals a schema mismatch discovered too late to correct mid-job.
    """


class UnsupportedTypeError(IcepodError, TypeError):
    """Raised when a type has no counterpart on the other side of the type bridge."""


class UnsupportedFormatError(IcepodError, ValueError):
    """Raised when a writer is requested for a file format that has no registered encoder."""


class TableNotFoundError(IcepodError, LookupError):
    """Raised when the resolved table identifier does not exist in the catalog."""


class WriteIOError(IcepodError, OSError):
    """Wraps storage failures raised while creating or writing an output file."""

    pass
