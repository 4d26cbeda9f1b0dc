#!/usr/bin/env python3
"""
CLI Tool for MySQL binlog CDC

Connects to a MySQL server as a replica, streams binlog events and prints
them as JSON lines.
"""

import argparse
import json
import logging
import signal
import sys
import threading

from .engine import ReplicationEngine
from .exceptions import CDCException
from .models.config import CDCConfig
from .services.config_service import ConfigService
from .services.control_channel import ControlChannel
from .services.drift_monitor import find_binlog_end
from .services.signal_bus import EngineSignal, Message
from .utils.logger import setup_logging, get_logger


class BinlogCDCCLI:
    """CLI for streaming MySQL binlog events"""

    def __init__(self, output=None):
        self.logger = get_logger()
        self.config_service = ConfigService()
        self.output = output or sys.stdout
        self.engine = None
        self._shutdown_requested = threading.Event()
        self._setup_signal_handlers()

    def _setup_signal_handlers(self) -> None:
        """Stop the engine on SIGINT and SIGTERM"""
        def signal_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            self.logger.info("Received signal, initiating graceful shutdown", signal=signal_name)
            self._shutdown_requested.set()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def run_replication(self, config_path: str) -> None:
        """Stream events until interrupted or the engine fails"""
        config = self.config_service.load_config(config_path)
        self.engine = ReplicationEngine(config.database)
        bus = self.engine.signals
        bus.subscribe(EngineSignal.READY, self._on_ready)
        bus.subscribe(EngineSignal.BINLOG, self._on_binlog)
        bus.subscribe(EngineSignal.WARNING, self._on_warning)
        bus.subscribe(EngineSignal.ERROR, self._on_error)

        try:
            self.engine.start(config.start_options())
            while not self._shutdown_requested.is_set():
                bus.process_messages(timeout=0.5)
                if not self.engine.is_alive() and bus.is_empty():
                    break
        finally:
            self.engine.stop()
            bus.process_messages(timeout=0.1)
            self.logger.info("Replication finished",
                             state=self.engine.state.value,
                             log_file=self.engine.cursor.log_file,
                             log_pos=self.engine.cursor.offset)

    def test_connection(self, config_path: str) -> None:
        """Check the control connection and report binlog settings"""
        config: CDCConfig = self.config_service.load_config(config_path)
        control = ControlChannel.connect(config.database)
        try:
            control.query("SELECT 1")
            checksum = control.checksum_algorithm()
            end = find_binlog_end(control)
            self.logger.info("Connection test succeeded",
                             host=config.database.host,
                             port=config.database.port,
                             binlog_checksum=checksum,
                             binlog_end=end.to_dict() if end else None)
        finally:
            control.close()

    def _on_ready(self, message: Message) -> None:
        self.logger.info("Replication ready", cursor=message.data.to_dict())

    def _on_binlog(self, message: Message) -> None:
        self.output.write(json.dumps(message.data.to_dict(), default=str) + "\n")
        self.output.flush()

    def _on_warning(self, message: Message) -> None:
        warning = message.data
        self.logger.warning(warning.message,
                            position_difference=warning.position_difference,
                            cached=warning.cached_position.to_dict(),
                            queried=warning.queried_position.to_dict())

    def _on_error(self, message: Message) -> None:
        error = message.data
        self.logger.error("Replication error",
                          kind=error.kind.value, fatal=error.fatal, error=error.message)
        if error.fatal:
            self._shutdown_requested.set()


def main():
    """CLI entry point"""
    parser = argparse.ArgumentParser(description='MySQL binlog CDC CLI')
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    run_parser = subparsers.add_parser('run', help='Stream binlog events as JSON lines')
    run_parser.add_argument('config', help='Path to configuration file')
    run_parser.add_argument('--log-level', default=None, help='Logging level')
    run_parser.add_argument('--log-format', default=None, choices=['json', 'console'], help='Logging format')

    test_parser = subparsers.add_parser('test', help='Test the database connection')
    test_parser.add_argument('config', help='Path to configuration file')
    test_parser.add_argument('--log-level', default=None, help='Logging level')
    test_parser.add_argument('--log-format', default=None, choices=['json', 'console'], help='Logging format')

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    cli = BinlogCDCCLI()

    try:
        # Command line flags win over the config file's logging section
        logging_section = cli.config_service.load_config(args.config).logging
        setup_logging(level=args.log_level or logging_section.get('level', 'INFO'),
                      format_type=args.log_format or logging_section.get('format', 'json'))

        if args.command == 'run':
            cli.run_replication(args.config)
        elif args.command == 'test':
            cli.test_connection(args.config)
        else:
            parser.print_help()
    except KeyboardInterrupt:
        logging.info("Application interrupted by user")
        sys.exit(0)
    except CDCException as e:
        logging.error(f"CDC error: {e}")
        sys.exit(1)
    except Exception as e:
        logging.error(f"Unexpected error: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
