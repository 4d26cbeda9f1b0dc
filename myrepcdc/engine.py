"""
Replication engine for MySQL binlog CDC

Composes the control channel, streaming session, decoder, schema cache, flow
control, position tracking, filters and drift monitoring into one lifecycle:

    Created -> Configuring -> Negotiating -> Streaming -> Stopping -> Stopped

with Failed reachable from any state on a fatal error.
"""

import threading
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

import pymysql
import structlog

from .exceptions import (
    CDCException, ConfigurationError, DecodeError, ReplicationError,
)
from .models.config import (
    DatabaseConfig, SessionOptions, FilterSpec, split_start_options,
    SESSION_OPTION_KEYS, FILTER_OPTION_KEYS,
)
from .models.events import (
    BinlogEvent, TableMapEvent, RotateEvent, RowsEvent, ReplicationCursor,
)
from .services.bootstrap import run_bootstrap
from .services.control_channel import ControlChannel
from .services.decoder import ProtocolDecoder
from .services.drift_monitor import DriftMonitor
from .services.event_filter import EventFilter
from .services.metrics_service import MetricsService
from .services.position_tracker import PositionTracker
from .services.signal_bus import SignalBus, ErrorKind, DriftWarning
from .services.streaming_session import StreamingSession
from .services.table_map_cache import TableMapCache, FlowController, ResolutionOutcome


class EngineState(Enum):
    """Lifecycle states of a ReplicationEngine"""
    CREATED = "created"
    CONFIGURING = "configuring"
    NEGOTIATING = "negotiating"
    STREAMING = "streaming"
    STOPPING = "stopping"
    STOPPED = "stopped"
    FAILED = "failed"


ALLOWED_TRANSITIONS = {
    EngineState.CREATED: {EngineState.CONFIGURING, EngineState.STOPPING, EngineState.FAILED},
    EngineState.CONFIGURING: {EngineState.NEGOTIATING, EngineState.STOPPING, EngineState.FAILED},
    EngineState.NEGOTIATING: {EngineState.STREAMING, EngineState.STOPPING, EngineState.FAILED},
    EngineState.STREAMING: {EngineState.STOPPING, EngineState.FAILED},
    EngineState.STOPPING: {EngineState.STOPPED},
    EngineState.STOPPED: set(),
    EngineState.FAILED: set(),
}

Dsn = Union[DatabaseConfig, Dict[str, Any], pymysql.connections.Connection, ControlChannel]


class ReplicationEngine:
    """Binlog change-data-capture client exposed to the consumer"""

    def __init__(self, dsn: Dsn,
                 signal_bus: Optional[SignalBus] = None,
                 metrics: Optional[MetricsService] = None,
                 session_factory: Optional[Callable[[DatabaseConfig], StreamingSession]] = None):
        self.logger = structlog.get_logger()
        self.signals = signal_bus or SignalBus()
        self.metrics = metrics or MetricsService()
        self._session_factory = session_factory or StreamingSession.connect

        self.control_channel = self._establish_control_channel(dsn)
        self._stream_config = self.control_channel.connection_settings()

        self.options = SessionOptions()
        self.filters = FilterSpec()
        self.event_filter = EventFilter(self.filters)
        self.table_map = TableMapCache()
        self.flow = FlowController(self.table_map, self.control_channel)
        self.tracker = PositionTracker()
        self.drift_monitor: Optional[DriftMonitor] = None
        self.session: Optional[StreamingSession] = None
        self.decoder: Optional[ProtocolDecoder] = None
        self.use_checksum = False
        self.ready = False

        # Last TABLE_MAP seen per table id, for lookups retried by row events
        self._announced: Dict[int, TableMapEvent] = {}

        self._state = EngineState.CREATED
        self._state_lock = threading.RLock()
        self._session_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @staticmethod
    def _establish_control_channel(dsn: Dsn) -> ControlChannel:
        """Reuse a supplied connection, or open (and own) a new one"""
        if isinstance(dsn, ControlChannel):
            return dsn
        if isinstance(dsn, pymysql.connections.Connection):
            return ControlChannel.wrap(dsn)
        if isinstance(dsn, dict):
            dsn = DatabaseConfig.from_dict(dsn)
        if isinstance(dsn, DatabaseConfig):
            return ControlChannel.connect(dsn)
        raise ConfigurationError(f"Unsupported connection settings: {type(dsn).__name__}")

    # -- state -----------------------------------------------------------

    @property
    def state(self) -> EngineState:
        with self._state_lock:
            return self._state

    @property
    def cursor(self) -> ReplicationCursor:
        return self.tracker.cursor

    def _transition(self, new_state: EngineState) -> bool:
        """Move to new_state; False if a stop or failure got there first"""
        with self._state_lock:
            current = self._state
            if new_state in ALLOWED_TRANSITIONS[current]:
                self._state = new_state
                self.logger.debug("Engine state changed", previous=current.value, state=new_state.value)
                return True
            if current in (EngineState.STOPPING, EngineState.STOPPED, EngineState.FAILED):
                return False
            raise ReplicationError(f"Invalid state transition {current.value} -> {new_state.value}")

    def get(self, name: Union[str, List[str]]) -> Any:
        """Read current session options or filters by name, or several as a dict"""
        if isinstance(name, str):
            return self._option(name)
        return {key: self._option(key) for key in name}

    def _option(self, name: str) -> Any:
        if name in SESSION_OPTION_KEYS:
            return getattr(self.options, name)
        if name in FILTER_OPTION_KEYS:
            return getattr(self.filters, name)
        return None

    # -- lifecycle -------------------------------------------------------

    def start(self, options: Optional[Dict[str, Any]] = None) -> None:
        """Configure the session and start streaming in the engine thread"""
        session_options, filters = split_start_options(options)
        if session_options.server_id is None:
            raise ConfigurationError("server_id is required to start replication")

        with self._state_lock:
            if self._state != EngineState.CREATED:
                raise ReplicationError(f"Engine cannot be started from state '{self._state.value}'")
            self._transition(EngineState.CONFIGURING)
            # Wholesale replacement, never merged with a previous configuration
            self.options = session_options
            self.filters = filters
            self.event_filter = EventFilter(filters)

        self._thread = threading.Thread(target=self._run, name=f"binlog_{session_options.server_id}")
        self._thread.daemon = True
        self._thread.start()

        self.logger.info("Replication engine started",
                         server_id=session_options.server_id,
                         filename=session_options.filename,
                         position=session_options.position,
                         start_at_end=session_options.start_at_end)

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for the engine thread to finish"""
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def _run(self) -> None:
        """Engine thread: negotiate, then decode until stopped or failed"""
        try:
            if not self._transition(EngineState.NEGOTIATING):
                return

            session = self._session_factory(self._stream_config)
            with self._session_lock:
                if self._stop_event.is_set():
                    session.close()
                    return
                self.session = session

            result = run_bootstrap(self.control_channel, session, self.options)
            self.use_checksum = result.use_checksum
            self.options = result.options
            self.tracker.commit(self.options.start_log_file, self.options.start_position)
            self.ready = True
            self.signals.publish_ready(self.tracker.cursor, cancel=self._stop_event)
            self.logger.info("Replication session ready",
                             log_file=self.options.start_log_file,
                             log_pos=self.options.start_position,
                             use_checksum=self.use_checksum)

            self.decoder = ProtocolDecoder(session, self.use_checksum)
            if not self._transition(EngineState.STREAMING):
                return
            self.decoder.start(self.options.server_id,
                               self.options.start_log_file,
                               self.options.start_position)

            if self.options.cache_interval:
                # stop() may have run while the dump request was in flight
                with self._state_lock:
                    if self._state != EngineState.STREAMING or self._stop_event.is_set():
                        return
                    self.drift_monitor = DriftMonitor(self.control_channel, self.tracker,
                                                      self.options.cache_interval, self._on_drift)
                    self.drift_monitor.start()

            self.decoder.stream(self._handle_event,
                                lambda: self.flow.wait_until_resumed(self._stop_event),
                                self._stop_event)

        except DecodeError as e:
            self._fail(ErrorKind.DECODE, e)
        except CDCException as e:
            self._fail(ErrorKind.TRANSPORT, e)
        except Exception as e:
            self.logger.exception("Unexpected error in replication engine")
            self._fail(ErrorKind.TRANSPORT, e)
        finally:
            self.logger.info("Replication engine thread finished",
                             state=self.state.value,
                             log_file=self.tracker.cursor.log_file,
                             log_pos=self.tracker.cursor.offset)

    def _fail(self, kind: ErrorKind, error: Exception) -> None:
        """Report a fatal error once and move to Failed"""
        if self._stop_event.is_set():
            # Reads fail once stop() has torn down the transport
            self.logger.info("Error during shutdown, ignoring", error=str(error))
            return
        with self._state_lock:
            if not self._transition(EngineState.FAILED):
                return
        self.logger.error("Replication failed", kind=kind.value, error=str(error))
        self.metrics.record_error(kind.value, fatal=True)
        self.signals.publish_error(kind, error, fatal=True, cancel=self._stop_event)

    def stop(self) -> None:
        """
        Tear down streaming, kill the dump thread on the server and close the
        control connection if this engine opened it. Also releases resources
        after a failure; the engine then stays Failed.
        """
        with self._state_lock:
            previous = self._state
            if previous in (EngineState.STOPPING, EngineState.STOPPED):
                self.logger.debug("Stop already requested", state=previous.value)
                return
            if previous != EngineState.FAILED:
                self._transition(EngineState.STOPPING)

        self._stop_event.set()

        if self.drift_monitor:
            self.drift_monitor.stop()

        with self._session_lock:
            session = self.session
            thread_id = None
            if session is not None:
                try:
                    thread_id = session.thread_id()
                except Exception as e:
                    self.logger.debug("Could not read streaming connection id", error=str(e))
                session.close()

        if thread_id is not None:
            try:
                self.control_channel.kill(thread_id)
            except CDCException as e:
                # The dump thread usually ends with the closed socket
                self.logger.debug("KILL of streaming connection failed", thread_id=thread_id, error=str(e))

        if self.control_channel.owned:
            self.control_channel.close()

        self.join(timeout=5.0)
        if self.is_alive():
            self.logger.warning("Replication engine thread did not stop gracefully")
        if self.drift_monitor:
            self.drift_monitor.stop()

        if previous != EngineState.FAILED:
            self._transition(EngineState.STOPPED)
        self.signals.publish_stopped()
        self.logger.info("Replication engine stopped", state=self.state.value)

    # -- event handling (engine thread only) -----------------------------

    def _handle_event(self, event: BinlogEvent) -> None:
        if isinstance(event, TableMapEvent):
            self._handle_table_map(event)
        elif isinstance(event, RowsEvent):
            self._handle_rows(event)
        elif isinstance(event, RotateEvent):
            cursor = self.tracker.advance(event)
            self._deliver(event, cursor)
        else:
            self._deliver(event)

    def _handle_table_map(self, event: TableMapEvent) -> None:
        # Position and schema cache are updated even if the event is filtered
        event.cursor = self.tracker.advance(event)
        self._announced[event.table_id] = event

        outcome = self.flow.resolve(event.table_id, event.schema_name, event.table_name)
        if outcome != ResolutionOutcome.CACHED:
            self.metrics.record_resolution(outcome.value)
        if outcome == ResolutionOutcome.MISSING:
            self._report_missing_table(event)
            return

        event.update_column_info(self.table_map.get(event.table_id))
        try:
            self._emit_if_allowed(event)
        finally:
            if outcome == ResolutionOutcome.RESOLVED:
                self.flow.resume()

    def _handle_rows(self, event: RowsEvent) -> None:
        outcome = ResolutionOutcome.CACHED
        entry = self.table_map.get(event.table_id)
        if entry is None:
            table_map = self._announced.get(event.table_id)
            if table_map is None:
                raise DecodeError(f"Row event references table id {event.table_id} without a table map")
            outcome = self.flow.resolve(event.table_id, table_map.schema_name, table_map.table_name)
            self.metrics.record_resolution(outcome.value)
            if outcome == ResolutionOutcome.MISSING:
                self._report_missing_table(table_map)
                self.tracker.advance_filtered(event)
                return
            entry = self.table_map.get(event.table_id)
            table_map.update_column_info(entry)

        event.attach_table(entry)
        try:
            if outcome == ResolutionOutcome.RESOLVED:
                # The table map was never delivered; it must precede its rows
                self._emit_if_allowed(self._announced[event.table_id])
            self._deliver(event)
        finally:
            if outcome == ResolutionOutcome.RESOLVED:
                self.flow.resume()

    def _report_missing_table(self, table_map: TableMapEvent) -> None:
        error = FlowController.missing_table_error(
            table_map.table_id, table_map.schema_name, table_map.table_name)
        self.metrics.record_error(ErrorKind.METADATA.value, fatal=False)
        self.signals.publish_error(ErrorKind.METADATA, error, fatal=False, cancel=self._stop_event)

    def _deliver(self, event: BinlogEvent, cursor: Optional[ReplicationCursor] = None) -> None:
        """Track position (filtered events move the offset only) and emit"""
        if not self.event_filter.should_emit(event):
            if cursor is None:
                cursor = self.tracker.advance_filtered(event)
            self.metrics.record_filtered(event.type_name, cursor)
            return
        if cursor is None:
            cursor = self.tracker.advance(event)
        event.cursor = cursor
        self._emit(event)

    def _emit_if_allowed(self, event: BinlogEvent) -> None:
        if self.event_filter.should_emit(event):
            self._emit(event)
        else:
            self.metrics.record_filtered(event.type_name, event.cursor)

    def _emit(self, event: BinlogEvent) -> None:
        self.metrics.record_emitted(event.type_name, event.cursor)
        self.signals.publish_binlog(event, cancel=self._stop_event)

    def _on_drift(self, warning: DriftWarning) -> None:
        self.metrics.record_drift(warning.position_difference)
        self.signals.publish_warning(warning, cancel=self._stop_event)
