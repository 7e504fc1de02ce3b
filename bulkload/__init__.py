"""
Bulk Import - COPY files from storage into a database table
Streams every file under a path through one COPY channel per run
"""

from .bulk_import import (
    BulkImportAction,
    RejectLedger,
    RunResult,
    RunState,
    build_copy_statement,
    run_bulk_import,
)
from .config import FailureCollector, LoadConfig, LoadLevel, load_config_file
from .errors import (
    BulkLoadError,
    ConfigValidationError,
    ConnectivityError,
    LoadExecutionError,
    PathNotFoundError,
    TableNotFoundError,
)
from .storage import FileHandle, LocalFileStorage

__all__ = [
    'BulkImportAction',
    'RejectLedger',
    'RunResult',
    'RunState',
    'build_copy_statement',
    'run_bulk_import',
    'FailureCollector',
    'LoadConfig',
    'LoadLevel',
    'load_config_file',
    'BulkLoadError',
    'ConfigValidationError',
    'ConnectivityError',
    'LoadExecutionError',
    'PathNotFoundError',
    'TableNotFoundError',
    'FileHandle',
    'LocalFileStorage',
]
