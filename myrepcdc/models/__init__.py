"""
Models for MySQL binlog CDC
"""

from .config import DatabaseConfig, SessionOptions, FilterSpec, CDCConfig, split_start_options
from .events import (
    EventKind,
    ReplicationCursor,
    ColumnSchema,
    TableSchemaEntry,
    EventHeader,
    BinlogEvent,
    TableMapEvent,
    RotateEvent,
    RowsEvent,
    WriteRowsEvent,
    UpdateRowsEvent,
    DeleteRowsEvent,
    QueryOrOtherEvent,
)

__all__ = [
    'DatabaseConfig',
    'SessionOptions',
    'FilterSpec',
    'CDCConfig',
    'split_start_options',
    'EventKind',
    'ReplicationCursor',
    'ColumnSchema',
    'TableSchemaEntry',
    'EventHeader',
    'BinlogEvent',
    'TableMapEvent',
    'RotateEvent',
    'RowsEvent',
    'WriteRowsEvent',
    'UpdateRowsEvent',
    'DeleteRowsEvent',
    'QueryOrOtherEvent',
]
