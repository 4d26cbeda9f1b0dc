"""
Binlog protocol decoder for MySQL binlog CDC

Turns raw replication packets into typed BinlogEvent variants. Decoding is
fail-stop: the first malformed frame raises DecodeError and nothing after it
is read.
"""

import struct
import threading
import uuid
import zlib
from typing import Callable

import structlog
from pymysqlreplication.constants import BINLOG

from ..exceptions import DecodeError, ChecksumError
from ..models.events import (
    BinlogEvent, EventHeader, TableMapEvent, RotateEvent,
    WriteRowsEvent, UpdateRowsEvent, DeleteRowsEvent, QueryOrOtherEvent,
)
from ..utils.binary import BinaryReader, bitmap_size
from .streaming_session import StreamingSession


HEADER_FORMAT = '<IBIIIH'
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)  # 19
CHECKSUM_SIZE = 4
OK_MARKER = 0x00

WRITE_ROWS_TYPES = frozenset([BINLOG.WRITE_ROWS_EVENT_V1, BINLOG.WRITE_ROWS_EVENT_V2])
UPDATE_ROWS_TYPES = frozenset([BINLOG.UPDATE_ROWS_EVENT_V1, BINLOG.UPDATE_ROWS_EVENT_V2])
DELETE_ROWS_TYPES = frozenset([BINLOG.DELETE_ROWS_EVENT_V1, BINLOG.DELETE_ROWS_EVENT_V2])
ROWS_V2_TYPES = frozenset([
    BINLOG.WRITE_ROWS_EVENT_V2, BINLOG.UPDATE_ROWS_EVENT_V2, BINLOG.DELETE_ROWS_EVENT_V2,
])

# Names used by event filters for the catch-all variant
OTHER_EVENT_NAMES = {
    BINLOG.QUERY_EVENT: 'query',
    BINLOG.STOP_EVENT: 'stop',
    BINLOG.INTVAR_EVENT: 'intvar',
    BINLOG.RAND_EVENT: 'rand',
    BINLOG.USER_VAR_EVENT: 'uservar',
    BINLOG.FORMAT_DESCRIPTION_EVENT: 'format',
    BINLOG.XID_EVENT: 'xid',
    BINLOG.HEARTBEAT_LOG_EVENT: 'heartbeat',
    BINLOG.ROWS_QUERY_LOG_EVENT: 'rowsquery',
    BINLOG.GTID_LOG_EVENT: 'gtid',
    BINLOG.ANONYMOUS_GTID_LOG_EVENT: 'anonymousgtid',
    BINLOG.PREVIOUS_GTIDS_LOG_EVENT: 'previousgtids',
}


def validate_checksum(frame: bytes) -> bytes:
    """Check the CRC32 trailer of an event and return the event without it"""
    if len(frame) < HEADER_SIZE + CHECKSUM_SIZE:
        raise ChecksumError(
            f"Event of {len(frame)} bytes is too short to carry a {CHECKSUM_SIZE}-byte checksum"
        )
    payload, trailer = frame[:-CHECKSUM_SIZE], frame[-CHECKSUM_SIZE:]
    expected = struct.unpack('<I', trailer)[0]
    actual = zlib.crc32(payload) & 0xffffffff
    if actual != expected:
        raise ChecksumError(f"Checksum mismatch: trailer 0x{expected:08x}, computed 0x{actual:08x}")
    return payload


class ProtocolDecoder:
    """Decodes the binlog stream of one StreamingSession"""
    
    def __init__(self, session: StreamingSession, use_checksum: bool):
        self.session = session
        self.use_checksum = use_checksum
        self.logger = structlog.get_logger()
        self._frames_decoded = 0
    
    @property
    def frames_decoded(self) -> int:
        return self._frames_decoded
    
    def start(self, server_id: int, log_file: str, log_pos: int) -> None:
        """Register as a replication consumer and request frames"""
        self.session.request_dump(server_id, log_file, log_pos)
    
    def stream(self, handler: Callable[[BinlogEvent], None],
               wait_until_resumed: Callable[[], bool],
               stop_event: threading.Event) -> None:
        """
        Read, decode and hand events to handler until the server ends the
        stream or stop_event is set.

        wait_until_resumed is consulted before every read; it returns False
        when streaming must not continue (stop requested while suspended).
        """
        while not stop_event.is_set():
            if not wait_until_resumed():
                return
            frame = self.session.read_frame()
            if frame is None:
                self.logger.info("Server ended the binlog stream",
                                 frames_decoded=self._frames_decoded)
                return
            if stop_event.is_set():
                return
            event = self.decode(frame)
            handler(event)
    
    def decode(self, packet: bytes) -> BinlogEvent:
        """Decode one raw packet (status byte + event) into a BinlogEvent"""
        if not packet:
            raise DecodeError("Empty binlog frame")
        if packet[0] != OK_MARKER:
            raise DecodeError(f"Unexpected packet marker 0x{packet[0]:02x} in binlog stream")
        frame = packet[1:]
        if len(frame) < HEADER_SIZE:
            raise DecodeError(f"Binlog frame of {len(frame)} bytes is shorter than the event header")
        
        header = EventHeader(*struct.unpack(HEADER_FORMAT, frame[:HEADER_SIZE]))
        if header.event_size != len(frame):
            raise DecodeError(
                f"Event size mismatch: header declares {header.event_size} bytes, "
                f"frame carries {len(frame)}"
            )
        
        if self.use_checksum:
            frame = validate_checksum(frame)
        
        body = BinaryReader(frame, HEADER_SIZE)
        event = self._dispatch(header, body)
        self._frames_decoded += 1
        return event
    
    def _dispatch(self, header: EventHeader, body: BinaryReader) -> BinlogEvent:
        event_type = header.event_type
        if event_type == BINLOG.ROTATE_EVENT:
            return self._decode_rotate(header, body)
        if event_type == BINLOG.TABLE_MAP_EVENT:
            return self._decode_table_map(header, body)
        if event_type in WRITE_ROWS_TYPES:
            return self._decode_rows(WriteRowsEvent, header, body)
        if event_type in UPDATE_ROWS_TYPES:
            return self._decode_rows(UpdateRowsEvent, header, body)
        if event_type in DELETE_ROWS_TYPES:
            return self._decode_rows(DeleteRowsEvent, header, body)
        return self._decode_other(header, body)
    
    def _decode_rotate(self, header: EventHeader, body: BinaryReader) -> RotateEvent:
        position = body.read_uint64()
        binlog_name = body.read_rest().decode('utf-8', errors='replace')
        if not binlog_name:
            raise DecodeError("Rotate event without binlog name")
        return RotateEvent(header=header, binlog_name=binlog_name, position=position)
    
    def _decode_table_map(self, header: EventHeader, body: BinaryReader) -> TableMapEvent:
        table_id = body.read_uint48()
        body.skip(2)  # flags
        schema_name = body.read_string(body.read_uint8())
        body.skip(1)
        table_name = body.read_string(body.read_uint8())
        body.skip(1)
        column_count = body.read_length_coded_int()
        column_types = body.read(column_count)
        column_metadata = body.read_length_coded_bytes()
        null_bitmap = body.read(bitmap_size(column_count))
        # Remaining bytes are optional metadata (MySQL 8 binlog_row_metadata)
        return TableMapEvent(
            header=header,
            table_id=table_id,
            schema_name=schema_name,
            table_name=table_name,
            column_count=column_count,
            column_types=column_types,
            column_metadata=column_metadata,
            null_bitmap=null_bitmap,
        )
    
    def _decode_rows(self, event_cls, header: EventHeader, body: BinaryReader):
        table_id = body.read_uint48()
        rows_flags = body.read_uint16()
        extra_data = b""
        if header.event_type in ROWS_V2_TYPES:
            # Length includes its own two bytes
            extra_length = body.read_uint16()
            if extra_length < 2:
                raise DecodeError(f"Invalid rows extra data length {extra_length}")
            extra_data = body.read(extra_length - 2)
        column_count = body.read_length_coded_int()
        columns_present = body.read(bitmap_size(column_count))
        kwargs = {}
        if event_cls is UpdateRowsEvent:
            kwargs['columns_present_after'] = body.read(bitmap_size(column_count))
        return event_cls(
            header=header,
            table_id=table_id,
            rows_flags=rows_flags,
            column_count=column_count,
            columns_present=columns_present,
            rows_payload=body.read_rest(),
            extra_data=extra_data,
            **kwargs
        )
    
    def _decode_other(self, header: EventHeader, body: BinaryReader) -> QueryOrOtherEvent:
        name = OTHER_EVENT_NAMES.get(header.event_type, 'unknown')
        raw = body.data[body.offset:]
        details = {}
        if header.event_type == BINLOG.QUERY_EVENT:
            details = self._query_details(body)
        elif header.event_type == BINLOG.XID_EVENT:
            details = {'xid': body.read_uint64()}
        elif header.event_type == BINLOG.FORMAT_DESCRIPTION_EVENT:
            binlog_version = body.read_uint16()
            server_version = body.read(50).split(b'\x00', 1)[0].decode('utf-8', errors='replace')
            details = {'binlog_version': binlog_version, 'server_version': server_version}
        elif header.event_type == BINLOG.HEARTBEAT_LOG_EVENT:
            details = {'binlog_name': body.read_rest().decode('utf-8', errors='replace')}
        elif header.event_type == BINLOG.GTID_LOG_EVENT:
            body.skip(1)  # commit flag
            sid = uuid.UUID(bytes=body.read(16))
            details = {'gtid': f"{sid}:{body.read_uint64()}"}
        return QueryOrOtherEvent(header=header, name=name, body=raw, details=details)
    
    def _query_details(self, body: BinaryReader) -> dict:
        body.skip(4)  # slave proxy id
        execution_time = body.read_uint32()
        schema_length = body.read_uint8()
        error_code = body.read_uint16()
        status_vars_length = body.read_uint16()
        body.skip(status_vars_length)
        schema = body.read_string(schema_length)
        body.skip(1)
        return {
            'schema': schema,
            'query': body.read_rest().decode('utf-8', errors='replace'),
            'error_code': error_code,
            'execution_time': execution_time,
        }
