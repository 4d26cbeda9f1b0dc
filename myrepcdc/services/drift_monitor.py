"""
Position drift monitor for MySQL binlog CDC
"""

import threading
from typing import Callable, Optional

import structlog

from ..exceptions import CDCException
from ..models.events import ReplicationCursor
from .control_channel import ControlChannel
from .position_tracker import PositionTracker
from .signal_bus import DriftWarning


def find_binlog_end(control_channel: ControlChannel) -> Optional[ReplicationCursor]:
    """Name and size of the newest binary log, None when the server lists none"""
    rows = control_channel.list_binary_logs()
    if not rows:
        return None
    last = rows[-1]
    return ReplicationCursor(last['Log_name'], int(last['File_size']))


class DriftMonitor:
    """
    Periodically compares the tracker's cached position with the server's
    binlog end and reports divergence. It never corrects the cursor.
    """
    
    def __init__(self, control_channel: ControlChannel, tracker: PositionTracker,
                 interval: float, on_warning: Callable[[DriftWarning], None]):
        self.control_channel = control_channel
        self.tracker = tracker
        self.interval = interval
        self.on_warning = on_warning
        self.logger = structlog.get_logger()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.queried_position: Optional[ReplicationCursor] = None
    
    @property
    def enabled(self) -> bool:
        return bool(self.interval) and self.interval > 0
    
    def start(self) -> None:
        """Start the timer thread; no-op when the interval is zero"""
        if not self.enabled:
            return
        if self._thread and self._thread.is_alive():
            self.logger.warning("Drift monitor already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="drift_monitor")
        self._thread.daemon = True
        self._thread.start()
        self.logger.info("Drift monitor started", interval=self.interval)
    
    def stop(self) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=5.0)
            if self._thread.is_alive():
                self.logger.warning("Drift monitor did not stop gracefully")
        self._thread = None
    
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
    
    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self.check_once()
            except Exception as e:
                self.logger.error("Error in drift monitor", error=str(e))
    
    def check_once(self) -> Optional[DriftWarning]:
        """Query the binlog end once and report a warning if positions diverge"""
        try:
            queried = find_binlog_end(self.control_channel)
        except CDCException as e:
            self.logger.error("Drift check query failed", error=str(e))
            return None
        if queried is None:
            return None
        self.queried_position = queried
        
        cached = self.tracker.cached_position
        difference = queried.offset - cached.offset
        if difference > 0 or queried.log_file != cached.log_file:
            warning = DriftWarning(
                message=f"Current and cached position mismatch: {difference}",
                position_difference=difference,
                cached_position=cached,
                queried_position=queried,
            )
            self.logger.warning("Binlog position drift detected",
                                position_difference=difference,
                                cached_log_file=cached.log_file,
                                cached_offset=cached.offset,
                                queried_log_file=queried.log_file,
                                queried_offset=queried.offset)
            self.on_warning(warning)
            return warning
        return None
