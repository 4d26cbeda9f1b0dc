"""
Table schema cache and stream flow control for MySQL binlog CDC

Row events are only meaningful against the column layout of their table. The
FlowController suspends frame delivery while a table's columns are looked up
so that no row event is decoded or delivered before its TABLE_MAP has been
resolved, and so that at most one lookup is in flight at a time.
"""

import threading
from enum import Enum
from typing import Dict, Optional

import structlog

from ..exceptions import TableMetadataError
from ..models.events import ColumnSchema, TableSchemaEntry
from .control_channel import ControlChannel


class TableMapCache:
    """table_id -> TableSchemaEntry; entries live for the whole session"""
    
    def __init__(self):
        self._entries: Dict[int, TableSchemaEntry] = {}
    
    def get(self, table_id: int) -> Optional[TableSchemaEntry]:
        return self._entries.get(table_id)
    
    def __contains__(self, table_id: int) -> bool:
        return table_id in self._entries
    
    def __len__(self) -> int:
        return len(self._entries)
    
    def snapshot(self) -> Dict[int, TableSchemaEntry]:
        return dict(self._entries)
    
    def _store(self, entry: TableSchemaEntry) -> None:
        self._entries[entry.table_id] = entry


class ResolutionOutcome(Enum):
    """Result of a schema lookup"""
    CACHED = "cached"
    RESOLVED = "resolved"
    MISSING = "missing"


class FlowController:
    """Single-slot suspend flag plus the only write path into TableMapCache"""
    
    def __init__(self, cache: TableMapCache, control_channel: ControlChannel,
                 poll_interval: float = 0.1):
        self.cache = cache
        self.control_channel = control_channel
        self.poll_interval = poll_interval
        self.logger = structlog.get_logger()
        self._resumed = threading.Event()
        self._resumed.set()
        self._resolution_lock = threading.Lock()
        self._stalled = False
    
    @property
    def suspended(self) -> bool:
        return not self._resumed.is_set()
    
    @property
    def stalled(self) -> bool:
        """Suspended for good after a failed metadata query"""
        return self._stalled
    
    def suspend(self) -> None:
        self._resumed.clear()
    
    def resume(self) -> None:
        if self._stalled:
            return
        self._resumed.set()
    
    def wait_until_resumed(self, stop_event: threading.Event) -> bool:
        """Block until frame delivery may continue; False if stop was requested"""
        while not stop_event.is_set():
            if self._resumed.wait(self.poll_interval):
                return not stop_event.is_set()
        return False
    
    def resolve(self, table_id: int, schema: str, table: str) -> ResolutionOutcome:
        """
        Make sure table_id has a cache entry, suspending the stream meanwhile

        Returns CACHED when already known and RESOLVED after a successful
        lookup; RESOLVED leaves the stream suspended until the caller has
        delivered the merged TABLE_MAP and calls resume(). MISSING means the
        server returned no columns: the stream is resumed and nothing is
        cached. Any other lookup failure is re-raised and the stream stays
        suspended.
        """
        if table_id in self.cache:
            return ResolutionOutcome.CACHED
        
        with self._resolution_lock:
            self.suspend()
            self.logger.debug("Stream suspended for table metadata lookup",
                              table_id=table_id, schema=schema, table=table)
            try:
                rows = self.control_channel.fetch_table_columns(schema, table)
            except Exception as e:
                self._stalled = True
                self.logger.error("Table metadata query failed, stream stays suspended",
                                  table_id=table_id, schema=schema, table=table, error=str(e))
                raise
            
            if not rows:
                self.logger.warning("No columns returned for mapped table",
                                    table_id=table_id, schema=schema, table=table)
                self.resume()
                return ResolutionOutcome.MISSING
            
            entry = TableSchemaEntry(
                table_id=table_id,
                schema_name=schema,
                table_name=table,
                columns=[ColumnSchema.from_row(row) for row in rows],
            )
            self.cache._store(entry)
            self.logger.info("Table schema resolved",
                             table_id=table_id, schema=schema, table=table,
                             columns=len(entry.columns))
            return ResolutionOutcome.RESOLVED
    
    @staticmethod
    def missing_table_error(table_id: int, schema: str, table: str) -> TableMetadataError:
        return TableMetadataError(
            f"No rows returned from table info query for {schema}.{table} "
            f"(table_id {table_id}); table dropped, renamed or not visible to this user",
            schema=schema, table=table, table_id=table_id,
        )
