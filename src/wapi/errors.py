"""
Exception classes for the wapi cache.

Exception Hierarchy:
    WapiException (Base)
    ├─ CacheError               - Cache file operations (carries the failing operation)
    │  ├─ PathResolutionFailed  - No home directory could be determined
    │  ├─ IOFailure             - Directory creation, file read or file write failed
    │  └─ SerializationFailure  - Record could not be encoded to JSON
    └─ ConfigError              - Credentials file issues (YAML parsing, missing keys)
"""


class WapiException(Exception):
    """Base exception for all wapi errors."""
    pass


class CacheError(WapiException):
    """A cache operation failed.

    Args:
        operation: Name of the failing operation ("load", "save", ...)
        message: Underlying error message
    """

    def __init__(self, operation: str, message: str):
        super().__init__(f"{operation}: {message}")
        self.operation = operation
        self.message = message


class PathResolutionFailed(CacheError):
    """No home directory could be determined from the environment."""
    pass


class IOFailure(CacheError):
    """Filesystem operation failed at the OS level."""
    pass


class SerializationFailure(CacheError):
    """Record could not be encoded to the persisted format."""
    pass


class ConfigError(WapiException):
    """Credentials file error (YAML parsing, missing keys, invalid values)."""
    pass
