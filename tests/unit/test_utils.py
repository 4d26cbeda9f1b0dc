"""
Unit tests for utilities
"""

import io
import json
import logging
from unittest.mock import Mock, patch

import pytest

from myrepcdc.exceptions import ConnectionError, DecodeError, QueryError
from myrepcdc.utils.binary import BinaryReader, bitmap_size
from myrepcdc.utils.logger import LOGGER_NAME, get_logger, setup_logging
from myrepcdc.utils.retry import retry, RetryConfig, retry_on_connection_error


class TestRetry:
    """Test retry utilities"""

    def test_retry_success_first_attempt(self):
        """Test successful call on first attempt"""
        func = Mock(return_value="success")
        func.__name__ = "func"

        result = retry(RetryConfig(max_attempts=3))(func)()

        assert result == "success"
        assert func.call_count == 1

    @patch('myrepcdc.utils.retry.time.sleep')
    def test_retry_success_after_failures(self, mock_sleep):
        """Test success after transient connection errors"""
        func = Mock(side_effect=[ConnectionError("refused"), ConnectionError("refused"), "success"])
        func.__name__ = "func"

        result = retry_on_connection_error(max_attempts=3, base_delay=0.01)(func)()

        assert result == "success"
        assert func.call_count == 3
        assert mock_sleep.call_count == 2

    @patch('myrepcdc.utils.retry.time.sleep')
    def test_retry_gives_up(self, mock_sleep):
        """Test the last error is raised after max attempts"""
        func = Mock(side_effect=ConnectionError("refused"))
        func.__name__ = "func"

        with pytest.raises(ConnectionError):
            retry_on_connection_error(max_attempts=2, base_delay=0.01)(func)()

        assert func.call_count == 2

    def test_non_retryable_error_propagates(self):
        """Test errors outside the retryable set are not retried"""
        func = Mock(side_effect=QueryError("syntax"))
        func.__name__ = "func"

        with pytest.raises(QueryError):
            retry_on_connection_error(max_attempts=3)(func)()

        assert func.call_count == 1


class TestBinaryReader:
    """Test BinaryReader"""

    def test_fixed_width_integers(self):
        """Test little-endian reads"""
        reader = BinaryReader(b'\x01' + b'\x02\x01' + b'\x04\x03\x02\x01' + b'\x06\x05\x04\x03\x02\x01')

        assert reader.read_uint8() == 1
        assert reader.read_uint16() == 0x0102
        assert reader.read_uint32() == 0x01020304
        assert reader.read_uint48() == 0x010203040506
        assert reader.remaining() == 0

    @pytest.mark.parametrize("data,value", [
        (b'\xfa', 250),
        (b'\xfc\x00\x01', 256),
        (b'\xfd\x00\x00\x01', 65536),
        (b'\xfe\x00\x00\x00\x00\x01\x00\x00\x00', 1 << 32),
    ])
    def test_length_coded_int(self, data, value):
        """Test packed integer prefixes"""
        assert BinaryReader(data).read_length_coded_int() == value

    def test_invalid_packed_prefix(self):
        """Test 0xff is not a valid packed integer"""
        with pytest.raises(DecodeError, match="prefix"):
            BinaryReader(b'\xff').read_length_coded_int()

    def test_length_coded_bytes(self):
        """Test length-prefixed byte strings"""
        reader = BinaryReader(b'\x03abcz')

        assert reader.read_length_coded_bytes() == b'abc'
        assert reader.read_rest() == b'z'

    def test_truncated_read(self):
        """Test reading past the end raises DecodeError"""
        with pytest.raises(DecodeError, match="Truncated"):
            BinaryReader(b'\x01\x02', 1).read_uint16()

    def test_bitmap_size(self):
        """Test bitmap byte counts"""
        assert bitmap_size(0) == 0
        assert bitmap_size(1) == 1
        assert bitmap_size(8) == 1
        assert bitmap_size(9) == 2


class TestLogging:
    """Test logging setup"""

    def test_records_go_to_package_handler(self):
        """Test records of package modules are rendered once to the given stream"""
        stream = io.StringIO()

        setup_logging(level="DEBUG", format_type="json", stream=stream)
        setup_logging(level="DEBUG", format_type="json", stream=stream)
        get_logger("myrepcdc.engine", component="test").info("Replication engine started", server_id=7)

        lines = stream.getvalue().splitlines()
        assert len(lines) == 1
        record = json.loads(lines[0])
        assert record['event'] == "Replication engine started"
        assert record['server_id'] == 7
        assert record['component'] == "test"
        assert record['app'] == LOGGER_NAME
        assert len(logging.getLogger(LOGGER_NAME).handlers) == 1

    def test_level_filters_records(self):
        """Test records below the configured level are dropped"""
        stream = io.StringIO()

        setup_logging(level="WARNING", format_type="console", stream=stream)
        get_logger("myrepcdc.services.decoder").info("Server ended the binlog stream")

        assert stream.getvalue() == ""
