"""
Event filter for MySQL binlog CDC
"""

from typing import Optional, Mapping

from ..models.config import FilterSpec, SchemaRule
from ..models.events import BinlogEvent, TableMapEvent, RowsEvent


class EventFilter:
    """Stateless decision whether a decoded event reaches the consumer"""
    
    def __init__(self, filter_spec: FilterSpec = None):
        self.filter_spec = filter_spec or FilterSpec()
    
    def skip_event(self, type_name: str) -> bool:
        """True when the event kind is excluded or not included"""
        name = type_name.lower()
        includes = self.filter_spec.include_events
        excludes = self.filter_spec.exclude_events
        
        included = includes is None or name in includes
        excluded = excludes is not None and name in excludes
        return excluded or not included
    
    def skip_schema(self, schema: Optional[str], table: Optional[str]) -> bool:
        """True when the (schema, table) pair is excluded or not included"""
        includes = self.filter_spec.include_schema
        excludes = self.filter_spec.exclude_schema
        
        included = includes is None or self._matches(includes, schema, table)
        excluded = excludes is not None and self._matches(excludes, schema, table)
        return excluded or not included
    
    def should_emit(self, event: BinlogEvent) -> bool:
        """Kind filter for every event, schema filter for table-bound events"""
        if self.skip_event(event.type_name):
            return False
        if isinstance(event, (TableMapEvent, RowsEvent)):
            return not self.skip_schema(event.schema_name, event.table_name)
        return True
    
    @staticmethod
    def _matches(rules: Mapping[str, SchemaRule], schema: Optional[str], table: Optional[str]) -> bool:
        if schema not in rules:
            return False
        tables = rules[schema]
        return tables is True or (table in tables)
