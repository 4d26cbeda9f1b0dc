"""
Event models for MySQL binlog CDC
"""

from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List, ClassVar
from enum import Enum


class EventKind(Enum):
    """Closed set of decoded binlog event variants"""
    TABLE_MAP = "tablemap"
    ROTATE = "rotate"
    WRITE_ROWS = "writerows"
    UPDATE_ROWS = "updaterows"
    DELETE_ROWS = "deleterows"
    QUERY_OR_OTHER = "other"


@dataclass(frozen=True)
class ReplicationCursor:
    """Resumable point in the binlog"""
    log_file: str
    offset: int

    def to_dict(self) -> Dict[str, Any]:
        return {'log_file': self.log_file, 'offset': self.offset}


@dataclass(frozen=True)
class ColumnSchema:
    """Column metadata as reported by information_schema"""
    name: str
    collation: Optional[str] = None
    character_set: Optional[str] = None
    comment: Optional[str] = None
    declared_type: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'ColumnSchema':
        return cls(
            name=row['COLUMN_NAME'],
            collation=row.get('COLLATION_NAME'),
            character_set=row.get('CHARACTER_SET_NAME'),
            comment=row.get('COLUMN_COMMENT'),
            declared_type=row.get('COLUMN_TYPE'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'collation': self.collation,
            'character_set': self.character_set,
            'comment': self.comment,
            'declared_type': self.declared_type,
        }


@dataclass(frozen=True)
class TableSchemaEntry:
    """Resolved column layout of a mapped table"""
    table_id: int
    schema_name: str
    table_name: str
    columns: List[ColumnSchema]

    def __post_init__(self):
        if not self.columns:
            raise ValueError("Table schema entry requires at least one column")


@dataclass(frozen=True)
class EventHeader:
    """Common v4 event header"""
    timestamp: int
    event_type: int
    server_id: int
    event_size: int
    next_log_position: int
    flags: int


@dataclass
class BinlogEvent:
    """Base binlog event"""
    header: EventHeader
    # Post-event cursor, attached when the event is delivered
    cursor: Optional[ReplicationCursor] = field(default=None, init=False, compare=False)

    kind: ClassVar[EventKind] = EventKind.QUERY_OR_OTHER

    @property
    def type_name(self) -> str:
        return self.kind.value

    @property
    def timestamp(self) -> int:
        return self.header.timestamp

    @property
    def server_id(self) -> int:
        return self.header.server_id

    @property
    def event_size(self) -> int:
        return self.header.event_size

    @property
    def next_log_position(self) -> int:
        return self.header.next_log_position

    @property
    def flags(self) -> int:
        return self.header.flags

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type_name,
            'timestamp': self.timestamp,
            'server_id': self.server_id,
            'event_size': self.event_size,
            'next_log_position': self.next_log_position,
            'cursor': self.cursor.to_dict() if self.cursor else None,
        }


@dataclass
class TableMapEvent(BinlogEvent):
    """TABLE_MAP event, merged with resolved columns before delivery"""
    table_id: int = 0
    schema_name: str = ""
    table_name: str = ""
    column_count: int = 0
    column_types: bytes = b""
    column_metadata: bytes = b""
    null_bitmap: bytes = b""
    columns: Optional[List[ColumnSchema]] = None

    kind: ClassVar[EventKind] = EventKind.TABLE_MAP

    def update_column_info(self, entry: TableSchemaEntry) -> None:
        self.columns = list(entry.columns)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            'table_id': self.table_id,
            'schema': self.schema_name,
            'table': self.table_name,
            'column_count': self.column_count,
            'columns': [c.to_dict() for c in self.columns] if self.columns else None,
        })
        return data


@dataclass
class RotateEvent(BinlogEvent):
    """ROTATE event: switch to (or re-announce) a binlog file"""
    binlog_name: str = ""
    position: int = 4

    kind: ClassVar[EventKind] = EventKind.ROTATE

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({'binlog_name': self.binlog_name, 'position': self.position})
        return data


@dataclass
class RowsEvent(BinlogEvent):
    """Row images for a previously mapped table"""
    table_id: int = 0
    rows_flags: int = 0
    column_count: int = 0
    columns_present: bytes = b""
    rows_payload: bytes = b""
    extra_data: bytes = b""
    schema_name: Optional[str] = None
    table_name: Optional[str] = None
    columns: Optional[List[ColumnSchema]] = None

    def attach_table(self, entry: TableSchemaEntry) -> None:
        self.schema_name = entry.schema_name
        self.table_name = entry.table_name
        self.columns = list(entry.columns)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            'table_id': self.table_id,
            'schema': self.schema_name,
            'table': self.table_name,
            'column_count': self.column_count,
            'rows_payload_size': len(self.rows_payload),
        })
        return data


@dataclass
class WriteRowsEvent(RowsEvent):
    """WRITE_ROWS (insert) event"""
    kind: ClassVar[EventKind] = EventKind.WRITE_ROWS


@dataclass
class UpdateRowsEvent(RowsEvent):
    """UPDATE_ROWS event carrying before and after images"""
    columns_present_after: bytes = b""

    kind: ClassVar[EventKind] = EventKind.UPDATE_ROWS


@dataclass
class DeleteRowsEvent(RowsEvent):
    """DELETE_ROWS event"""
    kind: ClassVar[EventKind] = EventKind.DELETE_ROWS


@dataclass
class QueryOrOtherEvent(BinlogEvent):
    """Any other event type; kept for position bookkeeping and filtering by name"""
    name: str = "unknown"
    body: bytes = b""
    details: Dict[str, Any] = field(default_factory=dict)

    kind: ClassVar[EventKind] = EventKind.QUERY_OR_OTHER

    @property
    def type_name(self) -> str:
        return self.name

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update(self.details)
        return data
