"""
Unit tests for DriftMonitor
"""

from unittest.mock import Mock

import pytest

from myrepcdc.exceptions import QueryError
from myrepcdc.models.events import ReplicationCursor
from myrepcdc.services.drift_monitor import DriftMonitor, find_binlog_end
from myrepcdc.services.position_tracker import PositionTracker

from conftest import FakeControlChannel, wait_for


class TestDriftMonitor:
    """Test DriftMonitor"""

    @pytest.fixture
    def tracker(self):
        tracker = PositionTracker()
        tracker.commit("mysql-bin.000001", 1000)
        return tracker

    def test_find_binlog_end_uses_last_log(self):
        """Test the newest log is the last row"""
        control = FakeControlChannel(binary_logs=[
            {'Log_name': 'mysql-bin.000001', 'File_size': 5000},
            {'Log_name': 'mysql-bin.000002', 'File_size': 154},
        ])

        assert find_binlog_end(control) == ReplicationCursor("mysql-bin.000002", 154)

    def test_find_binlog_end_without_logs(self):
        """Test no listed logs yields None"""
        assert find_binlog_end(FakeControlChannel(binary_logs=[])) is None

    def test_warns_when_server_is_ahead(self, tracker):
        """Test a positive difference in the same file raises a warning"""
        control = FakeControlChannel(binary_logs=[{'Log_name': 'mysql-bin.000001', 'File_size': 1500}])
        on_warning = Mock()
        monitor = DriftMonitor(control, tracker, 5, on_warning)

        warning = monitor.check_once()

        assert warning.position_difference == 500
        assert warning.message == "Current and cached position mismatch: 500"
        assert warning.cached_position == ReplicationCursor("mysql-bin.000001", 1000)
        assert warning.queried_position == ReplicationCursor("mysql-bin.000001", 1500)
        on_warning.assert_called_once_with(warning)

    def test_no_warning_when_equal(self, tracker):
        """Test equal positions stay quiet"""
        control = FakeControlChannel(binary_logs=[{'Log_name': 'mysql-bin.000001', 'File_size': 1000}])
        on_warning = Mock()
        monitor = DriftMonitor(control, tracker, 5, on_warning)

        assert monitor.check_once() is None
        on_warning.assert_not_called()
        assert monitor.queried_position == ReplicationCursor("mysql-bin.000001", 1000)

    def test_no_warning_when_server_behind_in_same_file(self, tracker):
        """Test a negative difference with matching filenames stays quiet"""
        control = FakeControlChannel(binary_logs=[{'Log_name': 'mysql-bin.000001', 'File_size': 600}])
        on_warning = Mock()
        monitor = DriftMonitor(control, tracker, 5, on_warning)

        assert monitor.check_once() is None
        on_warning.assert_not_called()
        assert monitor.queried_position == ReplicationCursor("mysql-bin.000001", 600)

    def test_warns_on_filename_mismatch(self, tracker):
        """Test a different newest file raises a warning"""
        control = FakeControlChannel(binary_logs=[{'Log_name': 'mysql-bin.000002', 'File_size': 154}])
        on_warning = Mock()
        monitor = DriftMonitor(control, tracker, 5, on_warning)

        warning = monitor.check_once()

        assert warning is not None
        assert warning.position_difference == 154 - 1000

    def test_query_failure_is_logged_only(self, tracker):
        """Test a failed listing does not raise"""
        control = FakeControlChannel(binary_logs=QueryError("denied", 1227))
        on_warning = Mock()
        monitor = DriftMonitor(control, tracker, 5, on_warning)

        assert monitor.check_once() is None
        on_warning.assert_not_called()

    def test_disabled_with_zero_interval(self, tracker):
        """Test zero interval never starts a timer"""
        monitor = DriftMonitor(FakeControlChannel(), tracker, 0, Mock())

        monitor.start()

        assert monitor.enabled is False
        assert monitor.is_running() is False

    def test_timer_runs_until_stopped(self, tracker):
        """Test the timer checks periodically and stops cleanly"""
        control = FakeControlChannel(binary_logs=[{'Log_name': 'mysql-bin.000001', 'File_size': 2000}])
        on_warning = Mock()
        monitor = DriftMonitor(control, tracker, 0.02, on_warning)

        monitor.start()
        assert wait_for(lambda: on_warning.call_count >= 2)
        monitor.stop()

        assert monitor.is_running() is False
