"""
Shared fakes for bulk import tests
Nothing here talks to a real database.
"""

import sys
from contextlib import contextmanager
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from bulkload.config import LoadConfig


class FakeChannel:
    """Records every call; execute() returns the scripted rejects in order"""

    def __init__(self, rejects=None, rows_inserted=0, fail_on_execute=None):
        self.rejects = list(rejects or [])
        self.rows_inserted = rows_inserted
        self.fail_on_execute = fail_on_execute
        self.calls = []
        self.payloads = []
        self.streams = []
        self._executions = 0

    def start(self):
        self.calls.append('start')

    def add_stream(self, stream):
        self.calls.append('add_stream')
        self.streams.append(stream)
        self.payloads.append(stream.read())

    def execute(self):
        self.calls.append('execute')
        self._executions += 1
        if self.fail_on_execute == self._executions:
            raise RuntimeError("malformed row in stream")
        if self._executions <= len(self.rejects):
            return list(self.rejects[self._executions - 1])
        return []

    def finish(self):
        self.calls.append('finish')
        return self.rows_inserted

    def abort(self):
        self.calls.append('abort')


class FakeDriver:
    def __init__(self, channel, table_exists=True):
        self.channel = channel
        self.exists = table_exists
        self.connection = MagicMock(name='connection')
        self.connect_calls = []
        self.table_checks = []
        self.statements = []

    def table_exists(self, table_name, target, user=None, password=None):
        self.table_checks.append((table_name, target, user, password))
        if isinstance(self.exists, Exception):
            raise self.exists
        return self.exists

    def connect(self, target, user=None, password=None):
        self.connect_calls.append((target, user, password))
        return self.connection

    def open_channel(self, connection, statement):
        self.statements.append(statement)
        return self.channel


class SpySession:
    """Stands in for driver_session(); counts acquisitions and releases"""

    def __init__(self, driver):
        self.driver = driver
        self.names = []
        self.entered = 0
        self.exited = 0

    @contextmanager
    def __call__(self, name):
        self.names.append(name)
        self.entered += 1
        try:
            yield self.driver
        finally:
            self.exited += 1


@pytest.fixture
def data_dir(tmp_path):
    """Two small delimited files, named so that sorted order is a, b"""
    root = tmp_path / "batch1"
    root.mkdir()
    (root / "a.csv").write_bytes(b"1,alpha\n2,beta\n")
    (root / "b.csv").write_bytes(b"3,gamma\n")
    return root


@pytest.fixture
def empty_dir(tmp_path):
    root = tmp_path / "empty"
    root.mkdir()
    return root


@pytest.fixture
def make_config():
    def _make(path, **overrides):
        values = dict(
            table_name='events',
            connection='postgresql://warehouse:5432/analytics',
            path=str(path),
            level='basic',
            user='loader',
            password='secret',
            delimiter=',',
            auto_commit=False,
        )
        values.update(overrides)
        return LoadConfig(**values)
    return _make
