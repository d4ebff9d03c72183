import io


class SlarError(Exception):
    """Base class for SLAr-specific errors."""


# Bounds
class OutOfRangeError(SlarError, IndexError):
    pass


# Read-only views
class UnsupportedOperationError(SlarError, io.UnsupportedOperation):
    pass


# Decoding
class MalformedLengthError(SlarError, EOFError):
    pass


class MalformedValueError(SlarError, EOFError):
    pass
