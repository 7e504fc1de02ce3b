"""
Error taxonomy for bulk import runs.

Every error raised by a run is fatal: nothing is retried internally.
"""

from typing import List, Optional


class BulkLoadError(Exception):
    """Base class for all bulk import failures"""


class ConfigValidationError(BulkLoadError):
    """Raised when the action configuration is malformed (before any I/O)"""

    def __init__(self, failures: List["ValidationFailure"]):
        self.failures = list(failures)
        details = "; ".join(str(f) for f in self.failures)
        super().__init__(f"Invalid bulk import configuration: {details}")


class ConnectivityError(BulkLoadError):
    """Raised when the database cannot be reached or its metadata cannot be read"""


class TableNotFoundError(BulkLoadError):
    """Raised when the target table is absent"""

    def __init__(self, table_name: str, connection: str):
        self.table_name = table_name
        self.connection = connection
        super().__init__(
            f"Table {table_name} does not exist. Please check that the 'table' property "
            f"has been set correctly, and that the connection {connection} points to a valid database."
        )


class PathNotFoundError(BulkLoadError):
    """Raised when the storage path to load from does not exist"""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Path {path} not found on file system. Please provide correct path.")


class LoadExecutionError(BulkLoadError):
    """Raised for any failure while streaming, executing, finishing or committing a load"""

    def __init__(self, statement: str, cause: Optional[BaseException] = None):
        self.statement = statement
        message = f"Exception while running copy statement {statement}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class ValidationFailure:
    """One configuration problem recorded by a FailureCollector"""

    def __init__(self, message: str, property_name: Optional[str] = None):
        self.message = message
        self.property_name = property_name

    def __repr__(self):
        return f"ValidationFailure(message={self.message!r}, property_name={self.property_name!r})"

    def __str__(self):
        if self.property_name:
            return f"{self.property_name}: {self.message}"
        return self.message
