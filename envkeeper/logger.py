"""
Logging and notification system for envkeeper
Handles both file-based logging and user-facing notifications
"""

import logging
import os
import re
from collections import deque
from datetime import datetime, timedelta
from typing import Iterator, List, Optional
from PyQt5.QtCore import QObject, pyqtSignal


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
TIMESTAMP_PATTERN = re.compile(r"^(\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}) - ")


class NotificationSignals(QObject):
    """Qt signals for notifications"""
    notification_signal = pyqtSignal(str, str, str)  # title, message, type


class LoggerManager:
    """Manages logging and notifications for envkeeper"""

    def __init__(self, log_dir: str = "logs", log_file: str = "envkeeper.log"):
        """Initialize logger with file and console handlers"""
        self.log_dir = str(log_dir)
        self.log_file = log_file
        self.log_path = os.path.join(self.log_dir, log_file)

        os.makedirs(self.log_dir, exist_ok=True)

        self.logger = logging.getLogger("envkeeper")
        self.logger.setLevel(logging.DEBUG)
        self.logger.propagate = False

        # A new manager replaces the handlers of the previous one
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

        file_handler = logging.FileHandler(self.log_path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)

        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.INFO)

        formatter = logging.Formatter(LOG_FORMAT, datefmt=TIMESTAMP_FORMAT)
        file_handler.setFormatter(formatter)
        console_handler.setFormatter(formatter)

        self.logger.addHandler(file_handler)
        self.logger.addHandler(console_handler)

        self.notification_signals = NotificationSignals()

    def log_info(self, message: str):
        """Log info message"""
        self.logger.info(message)

    def log_warning(self, message: str):
        """Log warning message"""
        self.logger.warning(message)

    def log_error(self, message: str, error: Optional[Exception] = None):
        """Log error message with optional exception details"""
        if error:
            self.logger.error(f"{message}: {str(error)}", exc_info=True)
        else:
            self.logger.error(message)

    def log_debug(self, message: str):
        """Log debug message"""
        self.logger.debug(message)

    def log_success(self, message: str):
        """Log success message"""
        self.logger.info(f"SUCCESS: {message}")

    # ==================== Installation/Uninstallation Logging ====================

    def log_install_attempt(self, package_name: str, action: str = "install"):
        self.log_info(f"Attempting to {action} {package_name}")

    def log_install_success(self, package_name: str, duration: float):
        message = f"Successfully installed {package_name} in {duration:.1f}s"
        self.log_success(message)
        self.emit_notification("Installation Successful", message, "success")

    def log_install_failure(self, package_name: str, error: str):
        message = f"Failed to install {package_name}"
        self.log_error(f"{message} - Error: {error}")
        self.emit_notification("Installation Failed", f"{message}\n{error}", "error")

    def log_uninstall_attempt(self, package_name: str):
        self.log_info(f"Attempting to uninstall {package_name}")

    def log_uninstall_success(self, package_name: str):
        message = f"Successfully uninstalled {package_name}"
        self.log_success(message)
        self.emit_notification("Uninstallation Successful", message, "success")

    def log_uninstall_failure(self, package_name: str, error: str):
        message = f"Failed to uninstall {package_name}"
        self.log_error(f"{message} - Error: {error}")
        self.emit_notification("Uninstallation Failed", f"{message}\n{error}", "error")

    def log_command(self, command: str):
        """Log a shell command about to run"""
        self.log_info(f"Executing: {command}")

    def log_command_finished(self, command: str, returncode: int):
        self.log_debug(f"Command finished with exit code {returncode}: {command}")

    # ==================== Scan Logging ====================

    def log_scan(self, package_manager: str, kind: str = "installed packages"):
        self.log_info(f"Scanning {kind} with {package_manager}...")

    def log_scan_results(self, package_manager: str, count: int, kind: str = "installed packages"):
        self.log_info(f"{package_manager}: found {count} {kind}")

    def log_scan_error(self, package_manager: str, error: str):
        """Scan failures degrade to empty results, so they are warnings"""
        message = f"Scan with {package_manager} failed"
        self.log_warning(f"{message}: {error}")
        self.emit_notification("Scan Error", f"{message}\n{error}", "warning")

    # ==================== State Logging ====================

    def log_state_error(self, message: str):
        """Log a problem with the persisted snapshot"""
        self.log_warning(message)
        self.emit_notification("State Warning", message, "warning")

    # ==================== Notification Methods ====================

    def emit_notification(self, title: str, message: str, notification_type: str = "info"):
        """Emit notification signal for GUI display

        Args:
            title: Notification title
            message: Notification message
            notification_type: Type of notification (success, error, warning, info)
        """
        self.notification_signals.notification_signal.emit(title, message, notification_type)

    # ==================== Log File Management ====================

    def get_log_file_path(self) -> str:
        return self.log_path

    def tail(self, lines: int = 100) -> List[str]:
        """Last `lines` lines of the log file, empty when there is none"""
        if not os.path.exists(self.log_path):
            return []
        with open(self.log_path, 'r', encoding="utf-8", errors="replace") as f:
            return list(deque(f, maxlen=max(lines, 0)))

    def recent_lines(self, days: int = 7) -> Iterator[str]:
        """
        Log lines written in the last `days` days

        Lines without a leading timestamp (tracebacks) follow the entry
        they belong to.
        """
        cutoff = datetime.now() - timedelta(days=days)
        keep = False
        with open(self.log_path, 'r', encoding="utf-8", errors="replace") as f:
            for line in f:
                match = TIMESTAMP_PATTERN.match(line)
                if match:
                    keep = datetime.strptime(match.group(1), TIMESTAMP_FORMAT) >= cutoff
                if keep:
                    yield line

    def export_logs(self, export_path: str, days: int = 7) -> int:
        """
        Copy the last `days` days of logs to `export_path`

        Returns:
            Number of log lines written

        Raises:
            OSError: If the log file cannot be read or the export written
        """
        written = 0
        with open(export_path, 'w', encoding="utf-8") as dest:
            dest.write("envkeeper logs\n")
            dest.write(f"Generated: {datetime.now().strftime(TIMESTAMP_FORMAT)}\n")
            dest.write(f"Period: last {days} days\n\n")
            for line in self.recent_lines(days):
                dest.write(line)
                written += 1

        self.log_info(f"Exported {written} log lines to {export_path}")
        return written


# Process default, used when a component is built without an explicit logger
_logger_instance = None


def get_logger() -> LoggerManager:
    """Get or create the default logger instance"""
    global _logger_instance
    if _logger_instance is None:
        from envkeeper.config import default_data_dir
        _logger_instance = LoggerManager(log_dir=str(default_data_dir() / "logs"))
    return _logger_instance


def set_logger(logger: LoggerManager):
    """Make `logger` the process default"""
    global _logger_instance
    _logger_instance = logger
