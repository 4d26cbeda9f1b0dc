"""
Consumer-facing signal bus for MySQL binlog CDC

Signals are queued in publish order and delivered to subscribers by whoever
pumps the bus, or pulled directly with get()/drain().
"""

import queue
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import structlog

from ..models.events import BinlogEvent, ReplicationCursor


class EngineSignal(Enum):
    """Signals emitted by ReplicationEngine"""
    READY = "ready"
    BINLOG = "binlog"
    ERROR = "error"
    WARNING = "warning"
    STOPPED = "stopped"


class ErrorKind(Enum):
    """Error taxonomy carried by ERROR signals"""
    TRANSPORT = "transport"
    DECODE = "decode"
    METADATA = "metadata"


@dataclass
class EngineError:
    """Payload of an ERROR signal"""
    kind: ErrorKind
    error: Exception
    fatal: bool
    
    @property
    def message(self) -> str:
        return str(self.error)


@dataclass
class DriftWarning:
    """Payload of a WARNING signal"""
    message: str
    position_difference: int
    cached_position: ReplicationCursor
    queried_position: ReplicationCursor


@dataclass
class Message:
    """Message structure for the bus"""
    signal: EngineSignal
    data: Any = None
    timestamp: float = None
    sequence: int = 0
    
    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = time.time()


class SignalBus:
    """Ordered, single-consumer signal queue with callback subscribers"""
    
    def __init__(self, max_queue_size: int = 10000, put_interval: float = 0.1):
        self.logger = structlog.get_logger()
        self.max_queue_size = max_queue_size
        self.put_interval = put_interval
        
        self._message_queue = queue.Queue(maxsize=max_queue_size)
        
        self._subscribers: Dict[EngineSignal, List[Callable[[Message], None]]] = {}
        self._subscriber_lock = threading.RLock()
        
        self._sequence = 0
        self._publish_lock = threading.Lock()
        
        self._stats = {
            'messages_sent': 0,
            'messages_processed': 0,
            'subscribers_count': 0
        }
        self._stats_lock = threading.Lock()
    
    def subscribe(self, signal: EngineSignal, callback: Callable[[Message], None]) -> None:
        """Subscribe to specific signal"""
        with self._subscriber_lock:
            self._subscribers.setdefault(signal, []).append(callback)
            with self._stats_lock:
                self._stats['subscribers_count'] = sum(len(subs) for subs in self._subscribers.values())
        
        callback_name = getattr(callback, '__name__', str(callback))
        self.logger.debug("Subscribed to signal", signal=signal.value, callback=callback_name)
    
    def unsubscribe(self, signal: EngineSignal, callback: Callable[[Message], None]) -> None:
        """Unsubscribe from specific signal"""
        with self._subscriber_lock:
            try:
                self._subscribers.get(signal, []).remove(callback)
            except ValueError:
                callback_name = getattr(callback, '__name__', str(callback))
                self.logger.warning("Callback not found in subscribers",
                                    signal=signal.value, callback=callback_name)
                return
            with self._stats_lock:
                self._stats['subscribers_count'] = sum(len(subs) for subs in self._subscribers.values())
    
    def publish(self, signal: EngineSignal, data: Any = None,
                cancel: Optional[threading.Event] = None) -> Optional[Message]:
        """
        Queue a signal. While the queue is full the publisher waits, so nothing
        is dropped, unless cancel is set first; the message is then discarded
        and None returned.
        """
        with self._publish_lock:
            self._sequence += 1
            message = Message(signal=signal, data=data, sequence=self._sequence)
            while True:
                try:
                    self._message_queue.put(message, timeout=self.put_interval)
                    break
                except queue.Full:
                    if cancel is not None and cancel.is_set():
                        self.logger.debug("Publish cancelled on full queue", signal=signal.value)
                        return None
        
        with self._stats_lock:
            self._stats['messages_sent'] += 1
        return message
    
    def publish_ready(self, cursor: ReplicationCursor,
                      cancel: Optional[threading.Event] = None) -> Optional[Message]:
        return self.publish(EngineSignal.READY, cursor, cancel)
    
    def publish_binlog(self, event: BinlogEvent,
                       cancel: Optional[threading.Event] = None) -> Optional[Message]:
        return self.publish(EngineSignal.BINLOG, event, cancel)
    
    def publish_error(self, kind: ErrorKind, error: Exception, fatal: bool,
                      cancel: Optional[threading.Event] = None) -> Optional[Message]:
        return self.publish(EngineSignal.ERROR, EngineError(kind=kind, error=error, fatal=fatal), cancel)
    
    def publish_warning(self, warning: DriftWarning,
                        cancel: Optional[threading.Event] = None) -> Optional[Message]:
        return self.publish(EngineSignal.WARNING, warning, cancel)
    
    def publish_stopped(self) -> Message:
        """Queue STOPPED without blocking, discarding pending binlog messages if full"""
        with self._publish_lock:
            self._sequence += 1
            message = Message(signal=EngineSignal.STOPPED, sequence=self._sequence)
            try:
                self._message_queue.put_nowait(message)
            except queue.Full:
                dropped = self._discard_pending(EngineSignal.BINLOG)
                if not dropped:
                    self._discard_pending(None, limit=1)
                self.logger.warning("Signal queue full on stop, pending messages discarded",
                                    discarded=dropped or 1)
                self._message_queue.put_nowait(message)
        
        with self._stats_lock:
            self._stats['messages_sent'] += 1
        return message
    
    def _discard_pending(self, signal: Optional[EngineSignal], limit: Optional[int] = None) -> int:
        """Remove queued messages of one signal (any signal when None), oldest first"""
        pending = self._message_queue
        with pending.mutex:
            kept = []
            dropped = 0
            for message in pending.queue:
                matches = signal is None or message.signal == signal
                if matches and (limit is None or dropped < limit):
                    dropped += 1
                else:
                    kept.append(message)
            pending.queue.clear()
            pending.queue.extend(kept)
            pending.unfinished_tasks -= dropped
            pending.not_full.notify_all()
        return dropped
    
    def get(self, timeout: Optional[float] = None) -> Optional[Message]:
        """Pull the next message without dispatching it; None on timeout"""
        try:
            message = self._message_queue.get(timeout=timeout)
        except queue.Empty:
            return None
        self._message_queue.task_done()
        return message
    
    def drain(self) -> List[Message]:
        """Pull every queued message"""
        messages = []
        while True:
            try:
                messages.append(self._message_queue.get_nowait())
            except queue.Empty:
                return messages
            self._message_queue.task_done()
    
    def process_messages(self, timeout: float = 1.0) -> int:
        """Dispatch queued messages to subscribers for up to timeout seconds"""
        processed = 0
        deadline = time.time() + timeout
        while True:
            remaining = deadline - time.time()
            if remaining <= 0:
                break
            message = self.get(timeout=remaining)
            if message is None:
                break
            self._process_message(message)
            processed += 1
            with self._stats_lock:
                self._stats['messages_processed'] += 1
        return processed
    
    def _process_message(self, message: Message) -> None:
        """Process a single message"""
        with self._subscriber_lock:
            subscribers = list(self._subscribers.get(message.signal, []))
        
        if not subscribers:
            self.logger.debug("No subscribers for signal", signal=message.signal.value)
            return
        
        for callback in subscribers:
            try:
                callback(message)
            except Exception as e:
                callback_name = getattr(callback, '__name__', str(callback))
                self.logger.error("Error in signal subscriber",
                                  callback=callback_name,
                                  signal=message.signal.value,
                                  error=str(e))
    
    def get_stats(self) -> Dict[str, Any]:
        """Get bus statistics"""
        with self._stats_lock:
            return self._stats.copy()
    
    def get_queue_size(self) -> int:
        return self._message_queue.qsize()
    
    def is_empty(self) -> bool:
        return self._message_queue.empty()
