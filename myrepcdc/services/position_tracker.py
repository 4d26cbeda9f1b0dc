"""
Replication cursor bookkeeping for MySQL binlog CDC
"""

import threading

import structlog

from ..models.events import BinlogEvent, RotateEvent, ReplicationCursor


class PositionTracker:
    """
    Owns the replication cursor

    Two values are kept: the working cursor (where streaming continues, used
    for resume) and the cached position (last position seen, compared against
    the server's log end by DriftMonitor). The drift thread reads the cached
    position, so both are guarded by a lock.
    """
    
    def __init__(self, log_file: str = "", offset: int = 4):
        self.logger = structlog.get_logger()
        self._lock = threading.Lock()
        self._cursor = ReplicationCursor(log_file, offset)
        self._cached = ReplicationCursor(log_file, offset)
    
    @property
    def cursor(self) -> ReplicationCursor:
        with self._lock:
            return self._cursor
    
    @property
    def cached_position(self) -> ReplicationCursor:
        with self._lock:
            return self._cached
    
    def commit(self, log_file: str, offset: int) -> None:
        """Set the initial cursor once bootstrap has settled"""
        with self._lock:
            self._cursor = ReplicationCursor(log_file, offset)
            self._cached = self._cursor
    
    def advance(self, event: BinlogEvent) -> ReplicationCursor:
        """Apply an event that is delivered (or a TABLE_MAP in any case)"""
        if isinstance(event, RotateEvent):
            return self._rotate(event)
        return self._advance_offset(event.next_log_position)
    
    def advance_filtered(self, event: BinlogEvent) -> ReplicationCursor:
        """Filtered events move the offset only; rotations are never filtered"""
        return self._advance_offset(event.next_log_position)
    
    def _advance_offset(self, next_position: int) -> ReplicationCursor:
        with self._lock:
            if next_position == 0:
                # Artificial events generated by the server at dump start
                return self._cursor
            if next_position < self._cursor.offset:
                self.logger.warning("Ignoring backwards log position",
                                    log_file=self._cursor.log_file,
                                    offset=self._cursor.offset,
                                    next_position=next_position)
                return self._cursor
            self._cursor = ReplicationCursor(self._cursor.log_file, next_position)
            self._cached = self._cursor
            return self._cursor
    
    def _rotate(self, event: RotateEvent) -> ReplicationCursor:
        with self._lock:
            if event.binlog_name != self._cursor.log_file:
                self.logger.info("Binlog rotated",
                                 previous_log_file=self._cursor.log_file,
                                 log_file=event.binlog_name,
                                 position=event.position)
                self._cursor = ReplicationCursor(event.binlog_name, event.next_log_position)
            else:
                # Re-announcement of the current file
                self._cursor = ReplicationCursor(self._cursor.log_file, event.position)
            self._cached = ReplicationCursor(event.binlog_name, event.position)
            return self._cursor

    def difference(self, queried: ReplicationCursor) -> int:
        return queried.offset - self.cached_position.offset
