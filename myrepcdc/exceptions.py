"""
Custom exceptions for MySQL binlog CDC
"""

from typing import Optional


class CDCException(Exception):
    """Base exception for CDC operations"""
    pass


class ConfigurationError(CDCException):
    """Configuration related errors"""
    pass


class ConnectionError(CDCException):
    """Control or streaming connection errors"""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class QueryError(CDCException):
    """Server rejected a query on the control channel"""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class DecodeError(CDCException):
    """Malformed binlog frame"""
    pass


class ChecksumError(DecodeError):
    """Binlog frame checksum trailer is missing or does not match"""
    pass


class TableMetadataError(CDCException):
    """Column metadata for a mapped table could not be found"""

    def __init__(self, message: str, schema: str = None, table: str = None, table_id: int = None):
        super().__init__(message)
        self.schema = schema
        self.table = table
        self.table_id = table_id


class FilterError(CDCException):
    """Filter configuration errors"""
    pass


class ReplicationError(CDCException):
    """Replication lifecycle errors"""
    pass
