"""
Shared fixtures: in-memory control channel and streaming session doubles plus
binlog frame builders
"""

import queue
import struct
import time
import zlib

import pytest

from myrepcdc.exceptions import ConnectionError
from myrepcdc.models.config import DatabaseConfig
from myrepcdc.services.control_channel import (
    ControlChannel, SELECT_CHECKSUM_SQL, SHOW_BINARY_LOGS_SQL, TABLE_INFO_SQL,
)


def column_row(name, column_type="int(11)", collation=None, charset=None, comment=""):
    """Row as returned by the information_schema.columns query"""
    return {
        'COLUMN_NAME': name,
        'COLLATION_NAME': collation,
        'CHARACTER_SET_NAME': charset,
        'COLUMN_COMMENT': comment,
        'COLUMN_TYPE': column_type,
    }


class FakeControlChannel(ControlChannel):
    """ControlChannel answering from canned results instead of a server"""

    def __init__(self, owned=True, checksum="NONE", binary_logs=None, tables=None):
        super().__init__(connection=None, owned=owned,
                         config=DatabaseConfig(host="localhost", user="repl", password="secret"))
        self.checksum = checksum
        self.binary_logs = binary_logs if binary_logs is not None else []
        self.tables = tables if tables is not None else {}
        self.kill_error = None
        self.queries = []

    def query(self, sql, args=None):
        self.queries.append((sql, args))
        if self._closed:
            raise ConnectionError("Control channel is closed")
        if sql == SELECT_CHECKSUM_SQL:
            if isinstance(self.checksum, Exception):
                raise self.checksum
            return [{'checksum': self.checksum}]
        if sql == SHOW_BINARY_LOGS_SQL:
            if isinstance(self.binary_logs, Exception):
                raise self.binary_logs
            return list(self.binary_logs)
        if sql == TABLE_INFO_SQL:
            result = self.tables.get(tuple(args), [])
            if callable(result):
                result = result()
            if isinstance(result, Exception):
                raise result
            return list(result)
        if sql.startswith("KILL"):
            if self.kill_error:
                raise self.kill_error
            return []
        return []

    def close(self):
        self._closed = True

    @property
    def closed(self):
        return self._closed

    def table_queries(self):
        return [args for sql, args in self.queries if sql == TABLE_INFO_SQL]

    def killed(self):
        return [sql for sql, _ in self.queries if sql.startswith("KILL")]


class FakeStreamingSession:
    """StreamingSession fed from a queue of scripted packets"""

    def __init__(self, frames=None, execute_errors=None, connection_id=42):
        self.frames = queue.Queue()
        for frame in frames or []:
            self.frames.put(frame)
        self.execute_errors = execute_errors or {}
        self.executed = []
        self.dumps = []
        self.calls = []
        self.closed = False
        self.connection_id = connection_id
        self.frames_read = 0

    def feed(self, *frames):
        for frame in frames:
            self.frames.put(frame)

    def end(self):
        """Make the next read report end of stream"""
        self.frames.put(None)

    def thread_id(self):
        return self.connection_id

    def execute(self, sql):
        self.executed.append(sql)
        self.calls.append(("execute", sql))
        if sql in self.execute_errors:
            raise self.execute_errors[sql]

    def request_dump(self, server_id, log_file, log_pos, blocking=True):
        self.dumps.append((server_id, log_file, log_pos))
        self.calls.append(("dump", log_file, log_pos))

    def read_frame(self):
        while True:
            if self.closed:
                raise ConnectionError("Streaming session closed")
            try:
                item = self.frames.get(timeout=0.02)
            except queue.Empty:
                continue
            if isinstance(item, Exception):
                raise item
            if item is not None:
                self.frames_read += 1
            return item

    def close(self):
        self.closed = True


def build_frame(event_type, body, log_pos, checksum=False, timestamp=1700000000, server_id=1, flags=0):
    """Packet as read from the streaming connection: OK marker, header, body, optional CRC32"""
    size = 19 + len(body) + (4 if checksum else 0)
    event = struct.pack('<IBIIIH', timestamp, event_type, server_id, size, log_pos, flags) + body
    if checksum:
        event += struct.pack('<I', zlib.crc32(event) & 0xffffffff)
    return b'\x00' + event


def rotate_body(binlog_name, position=4):
    return struct.pack('<Q', position) + binlog_name.encode('utf-8')


def table_map_body(table_id, schema, table, column_types=b'\x03\x0f', metadata=b'\x40\x00'):
    column_count = len(column_types)
    return (
        table_id.to_bytes(6, 'little') + b'\x01\x00'
        + bytes([len(schema)]) + schema.encode('utf-8') + b'\x00'
        + bytes([len(table)]) + table.encode('utf-8') + b'\x00'
        + bytes([column_count]) + column_types
        + bytes([len(metadata)]) + metadata
        + b'\x00' * ((column_count + 7) // 8)
    )


def rows_body(table_id, column_count=2, payload=b'\x00\x01\x00\x00\x00\x01a', update=False, v2=True):
    bitmap = b'\xff' * ((column_count + 7) // 8)
    body = table_id.to_bytes(6, 'little') + b'\x01\x00'
    if v2:
        body += struct.pack('<H', 2)
    body += bytes([column_count]) + bitmap
    if update:
        body += bitmap
    return body + payload


def query_body(schema, sql, execution_time=0, error_code=0):
    return (
        struct.pack('<IIBHH', 7, execution_time, len(schema), error_code, 0)
        + schema.encode('utf-8') + b'\x00' + sql.encode('utf-8')
    )


def xid_body(xid):
    return struct.pack('<Q', xid)


def wait_for(predicate, timeout=2.0, interval=0.01):
    """Poll until predicate() is truthy; returns its last value"""
    deadline = time.time() + timeout
    result = predicate()
    while not result and time.time() < deadline:
        time.sleep(interval)
        result = predicate()
    return result


@pytest.fixture
def control_channel():
    return FakeControlChannel(tables={
        ('db1', 't1'): [column_row('id'), column_row('name', 'varchar(32)', 'utf8mb4_general_ci', 'utf8mb4')],
    })


@pytest.fixture
def streaming_session():
    return FakeStreamingSession()
