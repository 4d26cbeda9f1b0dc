"""
Services for MySQL binlog CDC
"""

from .bootstrap import run_bootstrap, negotiate_checksum, discover_start, BootstrapResult
from .config_service import ConfigService
from .control_channel import ControlChannel, open_connection
from .decoder import ProtocolDecoder, validate_checksum
from .drift_monitor import DriftMonitor, find_binlog_end
from .event_filter import EventFilter
from .metrics_service import MetricsService
from .position_tracker import PositionTracker
from .signal_bus import SignalBus, EngineSignal, ErrorKind, EngineError, DriftWarning, Message
from .streaming_session import StreamingSession
from .table_map_cache import TableMapCache, FlowController, ResolutionOutcome

__all__ = [
    'run_bootstrap',
    'negotiate_checksum',
    'discover_start',
    'BootstrapResult',
    'ConfigService',
    'ControlChannel',
    'open_connection',
    'ProtocolDecoder',
    'validate_checksum',
    'DriftMonitor',
    'find_binlog_end',
    'EventFilter',
    'MetricsService',
    'PositionTracker',
    'SignalBus',
    'EngineSignal',
    'ErrorKind',
    'EngineError',
    'DriftWarning',
    'Message',
    'StreamingSession',
    'TableMapCache',
    'FlowController',
    'ResolutionOutcome',
]
