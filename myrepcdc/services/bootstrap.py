"""
Session bootstrap for MySQL binlog CDC

Resolves what has to be known before the dump request: whether frames carry
checksums, and (optionally) where the binlog currently ends.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional

import structlog

from ..exceptions import QueryError
from ..models.config import SessionOptions
from ..models.events import ReplicationCursor
from .control_channel import ControlChannel
from .drift_monitor import find_binlog_end
from .streaming_session import StreamingSession


ER_UNKNOWN_SYSTEM_VARIABLE = 1193
SET_CHECKSUM_SQL = "SET @master_binlog_checksum = @@global.binlog_checksum"
NOOP_SQL = "SELECT 1"


@dataclass(frozen=True)
class BootstrapResult:
    use_checksum: bool
    options: SessionOptions


def negotiate_checksum(control_channel: ControlChannel, session: StreamingSession) -> bool:
    """
    Enable checksum-aware decoding when the server writes checksums

    The acknowledgment is a user variable on the streaming session. Servers
    without the binlog_checksum variable answer with ER_UNKNOWN_SYSTEM_VARIABLE;
    that only means no checksums, and the streaming session still gets one
    query so that it is open before the dump request.
    """
    logger = structlog.get_logger()
    try:
        algorithm = control_channel.checksum_algorithm()
    except QueryError as e:
        if e.code != ER_UNKNOWN_SYSTEM_VARIABLE:
            raise
        logger.info("Server has no binlog checksum support")
        session.execute(NOOP_SQL)
        return False
    
    if algorithm.upper() == "NONE":
        logger.info("Binlog checksums disabled on server")
        return False
    
    session.execute(SET_CHECKSUM_SQL)
    logger.info("Binlog checksums enabled", algorithm=algorithm)
    return True


def discover_start(control_channel: ControlChannel, options: SessionOptions) -> SessionOptions:
    """Options starting at the newest binlog end, unchanged if there are no logs"""
    end: Optional[ReplicationCursor] = find_binlog_end(control_channel)
    if end is None:
        structlog.get_logger().warning("No binary logs listed, keeping configured start",
                                       filename=options.filename, position=options.position)
        return options
    return options.with_start(end.log_file, end.offset)


def run_bootstrap(control_channel: ControlChannel, session: StreamingSession,
                  options: SessionOptions) -> BootstrapResult:
    """Run checksum negotiation and, if requested, end discovery side by side"""
    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="bootstrap") as executor:
        checksum_future = executor.submit(negotiate_checksum, control_channel, session)
        start_future = None
        if options.start_at_end:
            start_future = executor.submit(discover_start, control_channel, options)
        
        # Both must settle before anything is committed; the first error wins
        errors = []
        use_checksum = False
        try:
            use_checksum = checksum_future.result()
        except Exception as e:
            errors.append(e)
        if start_future is not None:
            try:
                options = start_future.result()
            except Exception as e:
                errors.append(e)
        if errors:
            raise errors[0]
    
    return BootstrapResult(use_checksum=use_checksum, options=options)
