"""
Bulk-load channel over the PostgreSQL COPY protocol

A channel is one COPY session bound to one connection. Streams are added and
executed one batch at a time; every execute reports the rows the server
rejected, and finish() reports the rows inserted across the whole session.

Rejects are only reported when the statement asks the server to skip bad
rows, e.g.:

    COPY events FROM STDIN (FORMAT csv, ON_ERROR ignore, LOG_VERBOSITY verbose)

Without ON_ERROR ignore the first bad row fails the COPY.
"""

import re
import logging
from collections import deque
from enum import Enum
from typing import BinaryIO, List, Optional, Protocol

logger = logging.getLogger(__name__)

# Emitted once per skipped row with LOG_VERBOSITY verbose
ROW_SKIPPED_NOTICE = re.compile(r'skipping row due to data type incompatibility at line (\d+)')
# Emitted once per COPY when any row was skipped
ROWS_SKIPPED_SUMMARY = re.compile(r'(\d+) rows? (?:was|were) skipped due to data type incompatibility')


class ChannelState(str, Enum):
    CREATED = 'CREATED'
    STARTED = 'STARTED'
    FEEDING = 'FEEDING'
    EXECUTED = 'EXECUTED'
    FINISHED = 'FINISHED'
    ABORTED = 'ABORTED'


class BulkLoadChannel(Protocol):
    def start(self) -> None:
        ...

    def add_stream(self, stream: BinaryIO) -> None:
        ...

    def execute(self) -> List[Optional[int]]:
        ...

    def finish(self) -> int:
        ...

    def abort(self) -> None:
        ...


class ChannelStateError(RuntimeError):
    """Raised when a channel operation is called in the wrong state"""


def parse_reject_notices(notices) -> List[Optional[int]]:
    """
    Turn server notices from one COPY into reject row numbers

    Per-row notices give exact line numbers. When only the summary notice is
    present the row numbers are unknown and reported as None.
    """
    rows: List[Optional[int]] = []
    summarized = 0
    for notice in notices:
        match = ROW_SKIPPED_NOTICE.search(notice)
        if match:
            rows.append(int(match.group(1)))
            continue
        match = ROWS_SKIPPED_SUMMARY.search(notice)
        if match:
            summarized += int(match.group(1))

    if summarized > len(rows):
        rows.extend([None] * (summarized - len(rows)))
    return rows


class CopyStreamChannel:
    """
    COPY ... FROM STDIN channel driven through psycopg2's copy_expert.

    The channel never commits; transaction control belongs to the caller
    that owns the connection.
    """

    def __init__(self, connection, statement: str):
        self.connection = connection
        self.statement = statement
        self.state = ChannelState.CREATED
        self._cursor = None
        self._pending: List[BinaryIO] = []
        self._last_rejects: List[Optional[int]] = []
        self._rows_inserted = 0
        self._notices: deque = deque()

    def _require(self, *states: ChannelState) -> None:
        if self.state not in states:
            allowed = ', '.join(s.value for s in states)
            raise ChannelStateError(f"Channel is {self.state.value}, expected one of: {allowed}")

    def start(self) -> None:
        self._require(ChannelState.CREATED)
        # Unbounded buffer; psycopg2 keeps only the last 50 notices in its default list
        self.connection.notices = self._notices
        self._cursor = self.connection.cursor()
        self.state = ChannelState.STARTED
        logger.debug(f"Copy channel started: {self.statement}")

    def add_stream(self, stream: BinaryIO) -> None:
        self._require(ChannelState.STARTED, ChannelState.FEEDING, ChannelState.EXECUTED)
        self._pending.append(stream)
        self.state = ChannelState.FEEDING

    def execute(self) -> List[Optional[int]]:
        """Load every stream added since the last execute and return their rejects"""
        self._require(ChannelState.STARTED, ChannelState.FEEDING, ChannelState.EXECUTED)

        rejects: List[Optional[int]] = []
        while self._pending:
            stream = self._pending.pop(0)
            self._notices.clear()
            self._cursor.copy_expert(self.statement, stream)

            if self._cursor.rowcount and self._cursor.rowcount > 0:
                self._rows_inserted += self._cursor.rowcount
            rejects.extend(parse_reject_notices(self._notices))

        self._last_rejects = rejects
        self.state = ChannelState.EXECUTED
        return list(rejects)

    def get_rejects(self) -> List[Optional[int]]:
        """Rejects reported by the most recent execute"""
        return list(self._last_rejects)

    def finish(self) -> int:
        """Close the session and return the rows inserted across all executes"""
        self._require(ChannelState.STARTED, ChannelState.EXECUTED)
        self._close_cursor()
        self.state = ChannelState.FINISHED
        logger.debug(f"Copy channel finished: {self._rows_inserted} rows inserted")
        return self._rows_inserted

    def abort(self) -> None:
        if self.state in (ChannelState.FINISHED, ChannelState.ABORTED):
            return
        self._pending.clear()
        self._close_cursor()
        self.state = ChannelState.ABORTED
        logger.debug("Copy channel aborted")

    def _close_cursor(self) -> None:
        if self._cursor is not None:
            self._cursor.close()
            self._cursor = None
