"""
Streaming session for MySQL binlog CDC

Owns the replication connection: accepts session commands before the dump
request, writes COM_BINLOG_DUMP and hands back raw binlog packets one by one.
"""

import struct
import threading
from typing import Optional

import pymysql
import pymysql.err
from pymysql.constants.COMMAND import COM_BINLOG_DUMP
import structlog

from ..exceptions import ConnectionError
from ..models.config import DatabaseConfig
from .control_channel import open_connection, _error_code


BINLOG_DUMP_NON_BLOCK = 0x01


class StreamingSession:
    """Raw packet channel over a dedicated pymysql connection"""
    
    def __init__(self, connection: pymysql.connections.Connection):
        self._connection = connection
        self._closed = False
        self._close_lock = threading.Lock()
        self.logger = structlog.get_logger()
    
    @classmethod
    def connect(cls, config: DatabaseConfig) -> 'StreamingSession':
        return cls(open_connection(config))
    
    def thread_id(self) -> int:
        """Server-side connection id, used to KILL the dump thread on stop"""
        return self._connection.thread_id()
    
    def execute(self, sql: str) -> None:
        """Run a session command (e.g. checksum acknowledgment)"""
        try:
            with self._connection.cursor() as cursor:
                cursor.execute(sql)
        except (pymysql.err.MySQLError, OSError) as e:
            raise ConnectionError(f"Streaming session command failed: {e}", _error_code(e))
    
    def request_dump(self, server_id: int, log_file: str, log_pos: int, blocking: bool = True) -> None:
        """
        Register as a replica and request frames from (log_file, log_pos)

        Packet layout:
            4   payload length
            1   COM_BINLOG_DUMP
            4   binlog position
            2   flags
            4   server id
            n   binlog file name
        """
        name = log_file.encode('utf-8')
        flags = 0 if blocking else BINLOG_DUMP_NON_BLOCK
        prelude = struct.pack('<i', len(name) + 11) + bytes(bytearray([COM_BINLOG_DUMP]))
        prelude += struct.pack('<I', log_pos)
        prelude += struct.pack('<H', flags)
        prelude += struct.pack('<I', server_id)
        prelude += name
        try:
            self._connection._write_bytes(prelude)
            self._connection._next_seq_id = 1
        except (pymysql.err.MySQLError, OSError) as e:
            raise ConnectionError(f"Failed to request binlog dump: {e}", _error_code(e))
        
        self.logger.info("Binlog dump requested",
                         server_id=server_id, log_file=log_file, log_pos=log_pos)
    
    def read_frame(self) -> Optional[bytes]:
        """Next raw packet payload, or None when the server ends the stream"""
        try:
            packet = self._connection._read_packet()
        except (pymysql.err.MySQLError, OSError) as e:
            raise ConnectionError(f"Error reading binlog stream: {e}", _error_code(e))
        if packet.is_eof_packet():
            return None
        return packet.get_all_data()
    
    @property
    def closed(self) -> bool:
        return self._closed
    
    def close(self) -> None:
        """Tear down the transport; a blocked read_frame() fails afterwards"""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        try:
            self._connection.close()
        except (pymysql.err.Error, OSError) as e:
            self.logger.debug("Error closing streaming connection (expected during shutdown)",
                              error=str(e))
