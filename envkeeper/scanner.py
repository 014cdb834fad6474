"""
Environment scanner for envkeeper
Runs the active package manager's list command and parses the output
"""

import subprocess
from typing import List, Optional

from envkeeper.errors import ScanError, UnsupportedManagerError
from envkeeper.events import EventChannel, ScanProgress, publish
from envkeeper.logger import LoggerManager, get_logger
from envkeeper.models import PackageRecord, SystemInfo
from envkeeper.parsers import get_list_parser


LIST_COMMANDS = {
    'winget': ['winget', 'list', '--accept-source-agreements'],
    'choco': ['choco', 'list'],
    'scoop': ['scoop', 'list'],
    'brew': ['brew', 'list', '--versions'],
    'apt': ['dpkg', '-l'],
    'dnf': ['rpm', '-qa'],
    'yum': ['rpm', '-qa'],
    'zypper': ['rpm', '-qa'],
    'pacman': ['pacman', '-Q'],
    'snap': ['snap', 'list'],
}


def run_listing(command: List[str], timeout: int, windows: bool = False,
                ok_codes=(0,)) -> str:
    """
    Run a package listing command and return its stdout

    Raises:
        ScanError: On timeout, missing binary or an unexpected exit code
    """
    try:
        result = subprocess.run(command,
                                capture_output=True,
                                text=True,
                                encoding='utf-8',
                                errors='replace',
                                timeout=timeout,
                                shell=windows)
    except subprocess.TimeoutExpired:
        raise ScanError(f"'{' '.join(command)}' timed out after {timeout}s")
    except OSError as e:
        raise ScanError(f"Could not run '{' '.join(command)}': {e}")

    if result.returncode not in ok_codes:
        detail = (result.stderr or result.stdout or '').strip()
        raise ScanError(f"'{' '.join(command)}' exited with code {result.returncode}: {detail}")
    return result.stdout or ''


class EnvironmentScanner:
    """Lists installed packages for the detected package manager"""

    def __init__(self, system_info: SystemInfo, logger: Optional[LoggerManager] = None,
                 timeout: int = 30):
        self.system_info = system_info
        self.package_manager = system_info.package_manager
        self.logger = logger or get_logger()
        self.timeout = timeout

    def get_list_command(self) -> List[str]:
        """
        Raises:
            UnsupportedManagerError: If no list command is known
        """
        command = LIST_COMMANDS.get(self.package_manager)
        if command is None:
            raise UnsupportedManagerError(self.package_manager)
        return list(command)

    def scan_installed_packages(self, channel: Optional[EventChannel] = None) -> List[PackageRecord]:
        """
        Scan installed packages

        Failures never propagate: an unsupported manager, a timeout or a
        failing list command all yield an empty list and a logged warning.

        Args:
            channel: Optional channel receiving ScanProgress events

        Returns:
            List of PackageRecord
        """
        manager = self.package_manager
        publish(channel, ScanProgress(manager, 'started'))
        self.logger.log_scan(manager)

        try:
            parser = get_list_parser(manager)
            command = self.get_list_command()
            if parser is None:
                raise UnsupportedManagerError(manager)
            output = run_listing(command, self.timeout, windows=self.system_info.is_windows)
        except ScanError as e:
            self.logger.log_scan_error(manager, str(e))
            publish(channel, ScanProgress(manager, 'failed', message=str(e)))
            return []

        packages = parser.parse(output)
        self.logger.log_scan_results(manager, len(packages))
        publish(channel, ScanProgress(manager, 'finished', count=len(packages)))
        return packages
