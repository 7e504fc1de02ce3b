"""
Bulk import configuration
Loads the action config from YAML and validates its shape before any I/O
"""

import os
import re
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Union

import yaml

from .errors import ConfigValidationError, ValidationFailure

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = 'config/bulk_import.yml'
DEFAULT_DRIVER = 'postgresql'

# Plain identifier, optionally schema-qualified
IDENTIFIER_PATTERN = re.compile(r'^[A-Za-z_][A-Za-z0-9_$]*(\.[A-Za-z_][A-Za-z0-9_$]*)?$')
FORBIDDEN_DELIMITERS = ("'", '"', '\\', '\r', '\n')
# (attribute, config property) pairs that must hold text when set
TEXT_FIELDS = (
    ('table_name', 'table'),
    ('connection', 'connection'),
    ('path', 'path'),
    ('level', 'level'),
    ('delimiter', 'delimiter'),
    ('copy_statement', 'copy_statement'),
)


class LoadLevel(str, Enum):
    BASIC = 'basic'
    ADVANCED = 'advanced'

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["LoadLevel"]:
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class FailureCollector:
    """
    Mutable sink for configuration failures.

    Validation records every problem it finds; the caller decides when to
    turn the collected failures into a ConfigValidationError.
    """

    def __init__(self):
        self._failures: List[ValidationFailure] = []

    def add_failure(self, message: str, property_name: Optional[str] = None) -> ValidationFailure:
        failure = ValidationFailure(message, property_name)
        self._failures.append(failure)
        return failure

    @property
    def failures(self) -> List[ValidationFailure]:
        return list(self._failures)

    def get_or_throw(self) -> None:
        if self._failures:
            raise ConfigValidationError(self._failures)


@dataclass(frozen=True)
class LoadConfig:
    """Immutable settings for one bulk import action"""
    table_name: str
    connection: str
    path: str
    level: str = LoadLevel.BASIC.value
    user: Optional[str] = None
    password: Optional[str] = None
    delimiter: Optional[str] = None
    copy_statement: Optional[str] = None
    auto_commit: bool = False
    driver: str = DEFAULT_DRIVER

    @property
    def load_level(self) -> Optional[LoadLevel]:
        return LoadLevel.parse(self.level)

    def validate(self, collector: FailureCollector) -> None:
        """Record every shape problem in collector. Performs no I/O."""
        mistyped = self._validate_types(collector)

        if not self.table_name and 'table' not in mistyped:
            collector.add_failure("Table name must be specified.", 'table')
        if not self.connection and 'connection' not in mistyped:
            collector.add_failure("Connection must be specified.", 'connection')
        if not self.path and 'path' not in mistyped:
            collector.add_failure("Path to load files from must be specified.", 'path')

        if 'level' in mistyped:
            return
        level = self.load_level
        if level is None:
            collector.add_failure(
                f"Load level must be one of 'basic' or 'advanced', got {self.level!r}.", 'level'
            )
        elif level is LoadLevel.BASIC:
            self._validate_basic(collector, mistyped)
        elif 'copy_statement' in mistyped:
            return
        elif not (self.copy_statement and self.copy_statement.strip()):
            collector.add_failure("Copy statement must be specified for level 'advanced'.", 'copy_statement')

    def _validate_types(self, collector: FailureCollector) -> Set[str]:
        """YAML happily yields numbers or lists where text is expected"""
        mistyped = set()
        for attr, property_name in TEXT_FIELDS:
            value = getattr(self, attr)
            if value is not None and not isinstance(value, str):
                collector.add_failure(
                    f"Expected text, got {type(value).__name__} {value!r}.", property_name
                )
                mistyped.add(property_name)
        return mistyped

    def _validate_basic(self, collector: FailureCollector, mistyped: Set[str]) -> None:
        if 'delimiter' not in mistyped:
            self._validate_delimiter(collector)

        if self.table_name and 'table' not in mistyped and not IDENTIFIER_PATTERN.match(self.table_name):
            collector.add_failure(
                f"Table name {self.table_name!r} is not a plain identifier; "
                "use level 'advanced' for quoted names.", 'table'
            )

    def _validate_delimiter(self, collector: FailureCollector) -> None:
        if self.delimiter is None or self.delimiter == '':
            collector.add_failure("Delimiter must be specified for level 'basic'.", 'delimiter')
        elif len(self.delimiter) != 1:
            collector.add_failure(
                f"Delimiter must be a single character, got {self.delimiter!r}.", 'delimiter'
            )
        elif self.delimiter in FORBIDDEN_DELIMITERS:
            collector.add_failure(
                f"Delimiter {self.delimiter!r} cannot be used in a generated copy statement.", 'delimiter'
            )

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "LoadConfig":
        """
        Build a LoadConfig from the parsed YAML document

        Credentials missing from the `database` section fall back to the
        DB_USER / DB_PASSWORD environment variables.
        """
        database = raw.get('database')
        load = raw.get('load')
        missing = [
            ValidationFailure(f"Missing '{name}' section.", name)
            for name, section in (('database', database), ('load', load))
            if not isinstance(section, dict)
        ]
        if missing:
            raise ConfigValidationError(missing)

        return cls(
            table_name=load.get('table') or '',
            connection=_connection_target(database),
            path=str(load.get('path') or ''),
            level=load.get('level', LoadLevel.BASIC.value),
            user=database.get('user') or os.getenv('DB_USER'),
            password=database.get('password') or os.getenv('DB_PASSWORD'),
            delimiter=load.get('delimiter'),
            copy_statement=load.get('copy_statement'),
            auto_commit=parse_bool(load.get('auto_commit', False), 'auto_commit'),
            driver=database.get('driver', DEFAULT_DRIVER),
        )


def _connection_target(database: Dict[str, Any]) -> str:
    """Use `connection` verbatim, or assemble one from host/port/database"""
    if database.get('connection'):
        return database['connection']
    if database.get('host') and database.get('database'):
        port = database.get('port', 5432)
        return f"postgresql://{database['host']}:{port}/{database['database']}"
    return ''


def parse_bool(value: Union[bool, str, None], property_name: str) -> bool:
    """Accept YAML booleans or the strings 'true'/'false' (any case)"""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, str) and value.strip().lower() in ('true', 'false'):
        return value.strip().lower() == 'true'
    raise ConfigValidationError([
        ValidationFailure(f"Expected 'true' or 'false', got {value!r}.", property_name)
    ])


def load_config_file(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Read the raw action config document

    Args:
        config_path: YAML path (defaults to BULK_IMPORT_CONFIG_PATH or config/bulk_import.yml)

    Returns:
        Parsed YAML mapping
    """
    path = Path(config_path or os.environ.get('BULK_IMPORT_CONFIG_PATH', DEFAULT_CONFIG_PATH))
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, 'r', encoding='utf-8') as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        raise ConfigValidationError([ValidationFailure(f"Config file {path} must contain a mapping.")])

    logger.debug(f"Loaded bulk import config from {path}")
    return raw
