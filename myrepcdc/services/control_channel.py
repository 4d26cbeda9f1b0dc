"""
Control channel for MySQL binlog CDC

Request/response administrative queries (checksum setting, binlog listing,
table metadata, KILL) over an ordinary, non-streaming connection.
"""

import threading
from typing import Dict, Any, List, Optional, Sequence

import pymysql
import pymysql.cursors
import pymysql.err
import structlog

from ..exceptions import ConnectionError, QueryError
from ..models.config import DatabaseConfig
from ..utils.retry import retry_on_connection_error


SELECT_CHECKSUM_SQL = "SELECT @@GLOBAL.binlog_checksum AS checksum"
SHOW_BINARY_LOGS_SQL = "SHOW BINARY LOGS"
TABLE_INFO_SQL = (
    "SELECT COLUMN_NAME, COLLATION_NAME, CHARACTER_SET_NAME, "
    "COLUMN_COMMENT, COLUMN_TYPE "
    "FROM information_schema.columns "
    "WHERE table_schema = %s AND table_name = %s "
    "ORDER BY ORDINAL_POSITION"
)

# Client-side codes raised by pymysql when the socket is gone
CONNECTION_LOST_CODES = frozenset([2006, 2013, 2014, 2055])


def _error_code(error: Exception) -> Optional[int]:
    if getattr(error, 'args', None) and isinstance(error.args[0], int):
        return error.args[0]
    return None


@retry_on_connection_error(max_attempts=3)
def open_connection(config: DatabaseConfig) -> pymysql.connections.Connection:
    """Open a pymysql connection for the given configuration"""
    try:
        return pymysql.connect(**config.to_connection_params())
    except pymysql.err.MySQLError as e:
        raise ConnectionError(f"Failed to connect to {config.host}:{config.port}: {e}", _error_code(e))
    except OSError as e:
        raise ConnectionError(f"Failed to connect to {config.host}:{config.port}: {e}")


class ControlChannel:
    """Serialized query channel with an ownership flag checked at teardown"""
    
    def __init__(self, connection: pymysql.connections.Connection, owned: bool,
                 config: Optional[DatabaseConfig] = None):
        self._connection = connection
        self.owned = owned
        self._config = config
        # The drift timer and the streaming thread share this connection
        self._lock = threading.RLock()
        self._closed = False
        self.logger = structlog.get_logger()
    
    @classmethod
    def connect(cls, config: DatabaseConfig) -> 'ControlChannel':
        """Create a control channel that owns its connection"""
        connection = open_connection(config)
        return cls(connection, owned=True, config=config)
    
    @classmethod
    def wrap(cls, connection: pymysql.connections.Connection) -> 'ControlChannel':
        """Reuse a caller-supplied connection; it is not closed on stop"""
        return cls(connection, owned=False)
    
    def connection_settings(self) -> DatabaseConfig:
        """Settings for opening the streaming connection to the same server"""
        if self._config is not None:
            return self._config
        conn = self._connection
        password = conn.password
        if isinstance(password, bytes):
            password = password.decode('latin1')
        user = conn.user
        if isinstance(user, bytes):
            user = user.decode('utf-8')
        return DatabaseConfig(
            host=conn.host,
            port=conn.port,
            user=user,
            password=password or "",
            charset=conn.charset,
        )
    
    def query(self, sql: str, args: Sequence[Any] = None) -> List[Dict[str, Any]]:
        """Execute query and return all rows as dictionaries"""
        with self._lock:
            if self._closed:
                raise ConnectionError("Control channel is closed")
            try:
                with self._connection.cursor(pymysql.cursors.DictCursor) as cursor:
                    cursor.execute(sql, args)
                    return list(cursor.fetchall())
            except pymysql.err.MySQLError as e:
                code = _error_code(e)
                if isinstance(e, pymysql.err.OperationalError) and code in CONNECTION_LOST_CODES:
                    raise ConnectionError(f"Control connection lost: {e}", code)
                raise QueryError(f"Query failed: {e}", code)
            except OSError as e:
                raise ConnectionError(f"Control connection lost: {e}")
    
    def checksum_algorithm(self) -> str:
        """Server-wide binlog checksum algorithm, e.g. 'CRC32' or 'NONE'"""
        rows = self.query(SELECT_CHECKSUM_SQL)
        if not rows:
            return "NONE"
        value = rows[0]['checksum']
        if isinstance(value, bytes):
            value = value.decode('utf-8')
        return str(value or "NONE")
    
    def list_binary_logs(self) -> List[Dict[str, Any]]:
        """Binary log files in arrival order (Log_name, File_size)"""
        return self.query(SHOW_BINARY_LOGS_SQL)
    
    def fetch_table_columns(self, schema: str, table: str) -> List[Dict[str, Any]]:
        """Column metadata ordered by physical column position"""
        return self.query(TABLE_INFO_SQL, (schema, table))
    
    def kill(self, thread_id: int) -> None:
        """Terminate another server connection (the streaming session)"""
        self.query(f"KILL {int(thread_id)}")
    
    def close(self) -> None:
        """Close the underlying connection"""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            try:
                self._connection.close()
            except (pymysql.err.Error, OSError) as e:
                # Already closed or socket gone
                self.logger.debug("Error closing control connection (expected during cleanup)",
                                  error=str(e))
