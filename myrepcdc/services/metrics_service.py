"""
Metrics service for Prometheus monitoring of the binlog stream
"""

from typing import Optional

from prometheus_client import (
    Counter, Gauge, CollectorRegistry, generate_latest,
)
import structlog

from ..models.events import ReplicationCursor


class MetricsService:
    """Service for managing Prometheus metrics"""
    
    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.logger = structlog.get_logger()
        self.registry = registry or CollectorRegistry()
        self._init_metrics()
    
    def _init_metrics(self) -> None:
        """Initialize all Prometheus metrics"""
        
        self.events_emitted_total = Counter(
            'cdc_events_emitted_total',
            'Total number of binlog events delivered to the consumer',
            ['event_type'],
            registry=self.registry
        )
        
        self.events_filtered_total = Counter(
            'cdc_events_filtered_total',
            'Total number of decoded binlog events rejected by filters',
            ['event_type'],
            registry=self.registry
        )
        
        self.schema_resolutions_total = Counter(
            'cdc_schema_resolutions_total',
            'Table metadata lookups by outcome',
            ['outcome'],
            registry=self.registry
        )
        
        self.errors_total = Counter(
            'cdc_errors_total',
            'Errors reported to the consumer',
            ['kind', 'fatal'],
            registry=self.registry
        )
        
        self.drift_warnings_total = Counter(
            'cdc_drift_warnings_total',
            'Number of position drift warnings',
            registry=self.registry
        )
        
        self.cursor_offset = Gauge(
            'cdc_cursor_offset',
            'Offset of the replication cursor within its binlog file',
            registry=self.registry
        )
        
        self.position_difference = Gauge(
            'cdc_position_difference_bytes',
            'Last difference between server binlog end and cached position',
            registry=self.registry
        )
    
    def record_emitted(self, event_type: str, cursor: ReplicationCursor) -> None:
        self.events_emitted_total.labels(event_type=event_type).inc()
        self.cursor_offset.set(cursor.offset)
    
    def record_filtered(self, event_type: str, cursor: ReplicationCursor) -> None:
        self.events_filtered_total.labels(event_type=event_type).inc()
        self.cursor_offset.set(cursor.offset)
    
    def record_resolution(self, outcome: str) -> None:
        self.schema_resolutions_total.labels(outcome=outcome).inc()
    
    def record_error(self, kind: str, fatal: bool) -> None:
        self.errors_total.labels(kind=kind, fatal=str(fatal).lower()).inc()
    
    def record_drift(self, difference: int) -> None:
        self.drift_warnings_total.inc()
        self.position_difference.set(difference)
    
    def get_metrics(self) -> str:
        """Render metrics in Prometheus text format"""
        return generate_latest(self.registry).decode('utf-8')
