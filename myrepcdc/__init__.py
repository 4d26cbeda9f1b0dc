"""
MyRepCDC - MySQL binlog change data capture

Streams decoded row-level binlog events from a MySQL server, enriched with
column names from information_schema.
"""

__version__ = "1.0.0"
__author__ = "Tumurzakov"
__email__ = "tumurzakov@example.com"

from .engine import ReplicationEngine, EngineState
from .exceptions import CDCException
from .services.signal_bus import EngineSignal, ErrorKind

__all__ = [
    "ReplicationEngine",
    "EngineState",
    "EngineSignal",
    "ErrorKind",
    "CDCException",
    "__version__",
    "__author__",
    "__email__",
]
