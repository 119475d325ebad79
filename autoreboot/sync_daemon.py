"""
Sync Autoreboot Daemon

Runs either or both roles of the system:
- server: expose this node's clock on /api/timestamp
- client: watch the local clock against a reference node and reboot the
  host when drift or connectivity loss persists

Executed with:
    sync-autoreboot --server --client
    SYNC_ENV=development sync-autoreboot --client
"""

import argparse
import logging
import signal
import sys
import threading
from typing import List, Optional

import psutil

from .api.time_server import TimeServer
from .config import WatchdogConfig, load_config, read_environment
from .constants import Paths
from .logging_config import configure_from_environment, setup_logging
from .reboot_executor import RebootExecutor, create_reboot_executor
from .reboot_guard import RebootGuard, RebootRecordStore
from .supervisor import Supervisor
from .time_source import TimeSource
from .timestamps import format_timestamp
from .utils.error_handling import ErrorCategory, safe_execute

logger = logging.getLogger(__name__)


class SyncDaemon:
    """Wires the time server and the watchdog supervisor together."""

    def __init__(
        self,
        config: WatchdogConfig,
        run_server: bool = False,
        run_client: bool = False,
        executor: Optional[RebootExecutor] = None,
    ):
        if not run_server and not run_client:
            raise ValueError("at least one of server or client mode is required")

        self.config = config
        self.run_server = run_server
        self.run_client = run_client
        self._shutdown_event = threading.Event()
        self._running = False

        self.supervisor: Optional[Supervisor] = None
        if run_client:
            self.executor = executor or create_reboot_executor(
                config.mode,
                command=config.reboot_command,
                timeout=config.reboot_timeout,
            )
            self.guard = RebootGuard(RebootRecordStore(config.guard_file), config.min_reboot_interval)
            self.time_source = TimeSource(config.api_url, timeout=config.request_timeout)
            self.supervisor = Supervisor(config, self.time_source, self.executor, self.guard)

        self.time_server: Optional[TimeServer] = None
        if run_server:
            self.time_server = TimeServer(
                port=config.port,
                status_provider=self.supervisor.get_status if self.supervisor else None,
            )

    def _log_settings(self) -> None:
        if self.config.mode.simulated:
            logger.info("Development mode activated.")
        else:
            logger.info("Production mode activated.")
        logger.info(f"API URL: {self.config.api_url}")

        if self.run_server:
            logger.info("Server mode activated.")
            logger.info(f"Server settings: PORT={self.config.port} DOMAIN={self.config.domain}")

        if self.run_client:
            logger.info("Client mode activated.")
            logger.info(
                "Client settings: "
                f"CHECK_INTERVAL={self.config.check_interval}s "
                f"ALLOWED_DIFFERENCE={self.config.allowed_difference}s "
                f"TIMEOUT_DURATION={self.config.timeout_duration}s "
                f"MIN_REBOOT_INTERVAL={self.config.min_reboot_interval}s"
            )
            logger.info(f"Reboot executor: {self.executor.describe()}")
            self._log_reboot_history()

    def _log_reboot_history(self) -> None:
        """Compare the guard record with the actual boot time."""
        record = self.guard.read_record()
        with safe_execute("read system boot time", ErrorCategory.SYSTEM) as boot:
            boot.value = psutil.boot_time()
        boot_time = boot.value
        if boot_time is not None:
            logger.info(f"System booted at {format_timestamp(boot_time)}")

        if record.last_reboot_at is None:
            logger.info(f"No reboot recorded in {self.config.guard_file}")
            return

        logger.info(f"Last watchdog reboot recorded at {format_timestamp(record.last_reboot_at)}")
        if boot_time is not None and boot_time < record.last_reboot_at:
            logger.warning("Recorded reboot did not take place: system boot predates the record")

    def _signal_handler(self, signum, frame) -> None:
        logger.info(f"Received signal {signum}, shutting down")
        self._shutdown_event.set()

    def install_signal_handlers(self) -> None:
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def start(self) -> None:
        if self._running:
            return

        self._running = True
        self._log_settings()

        if self.time_server:
            self.time_server.start()
        if self.supervisor:
            self.supervisor.start()

    def stop(self) -> None:
        if not self._running:
            return

        self._running = False
        self._shutdown_event.set()

        if self.supervisor:
            self.supervisor.stop()
            self.time_source.close()
        if self.time_server:
            self.time_server.stop()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until a shutdown is requested. Returns True if it was."""
        return self._shutdown_event.wait(timeout)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='sync-autoreboot',
        description='Time-synchronization watchdog with protected automatic reboot',
        epilog=(
            "Examples:\n"
            "  sync-autoreboot --server\n"
            "  sync-autoreboot --client\n"
            "  sync-autoreboot --server --client"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('--server', action='store_true',
                        help='Serve this node\'s time on /api/timestamp')
    parser.add_argument('--client', action='store_true',
                        help='Watch the local clock against the reference node')
    parser.add_argument('--env-file', default=Paths.DEFAULT_ENV_FILE,
                        help='Settings file with SYNC_* variables (default: .env)')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable debug logging')
    parser.add_argument('--log-json', action='store_true',
                        help='Output logs in JSON format')
    parser.add_argument('--log-file', type=str,
                        help='Additional log file path')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.server and not args.client:
        parser.print_help()
        return 2

    environ = read_environment(args.env_file)

    # Command-line logging flags take precedence over SYNC_VERBOSE / SYNC_LOG_*
    if args.verbose or args.log_json or args.log_file:
        setup_logging(
            verbose=args.verbose,
            log_file=args.log_file,
            json_format=args.log_json,
        )
    else:
        configure_from_environment(environ)

    config = load_config(environ)

    try:
        daemon = SyncDaemon(config, run_server=args.server, run_client=args.client)
        daemon.install_signal_handlers()
        daemon.start()
    except OSError as e:
        logger.critical(f"Failed to start: {e}")
        return 1

    try:
        daemon.wait()
    except KeyboardInterrupt:
        pass
    finally:
        daemon.stop()

    return 0


if __name__ == '__main__':
    sys.exit(main())
