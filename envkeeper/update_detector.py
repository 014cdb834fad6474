"""
Update detection for envkeeper
Runs the package manager's upgrade listing and parses available updates
"""

from typing import List, Optional

from envkeeper.errors import ScanError, UnsupportedManagerError
from envkeeper.events import EventChannel, ScanProgress, publish
from envkeeper.logger import LoggerManager, get_logger
from envkeeper.models import SystemInfo, UpdateRecord
from envkeeper.parsers import get_upgrade_parser
from envkeeper.scanner import run_listing


UPDATE_COMMANDS = {
    'winget': ['winget', 'upgrade', '--accept-source-agreements'],
    'choco': ['choco', 'outdated', '-r'],
    'brew': ['brew', 'outdated', '--verbose'],
    'apt': ['apt', 'list', '--upgradable'],
    'dnf': ['dnf', 'check-update'],
    'yum': ['yum', 'check-update'],
    'pacman': ['pacman', '-Qu'],
}

# check-update exits 100 when updates exist; pacman -Qu exits 1 when there are none
OK_EXIT_CODES = {
    'dnf': (0, 100),
    'yum': (0, 100),
    'pacman': (0, 1),
}


class UpdateDetector:
    """Finds packages with a newer version available"""

    def __init__(self, system_info: SystemInfo, logger: Optional[LoggerManager] = None,
                 timeout: int = 45):
        self.system_info = system_info
        self.package_manager = system_info.package_manager
        self.logger = logger or get_logger()
        self.timeout = timeout

    def get_update_check_command(self) -> List[str]:
        """
        Raises:
            UnsupportedManagerError: If the manager has no upgrade listing
        """
        command = UPDATE_COMMANDS.get(self.package_manager)
        if command is None or get_upgrade_parser(self.package_manager) is None:
            raise UnsupportedManagerError(self.package_manager, "update checking")
        return list(command)

    def check_for_updates(self, channel: Optional[EventChannel] = None) -> List[UpdateRecord]:
        """Available updates, or an empty list when the check fails"""
        manager = self.package_manager
        publish(channel, ScanProgress(manager, 'started'))
        self.logger.log_scan(manager, kind="updates")

        try:
            command = self.get_update_check_command()
            output = run_listing(command, self.timeout,
                                 windows=self.system_info.is_windows,
                                 ok_codes=OK_EXIT_CODES.get(manager, (0,)))
        except ScanError as e:
            self.logger.log_scan_error(manager, str(e))
            publish(channel, ScanProgress(manager, 'failed', message=str(e)))
            return []

        updates = get_upgrade_parser(manager).parse(output)
        self.logger.log_scan_results(manager, len(updates), kind="updates")
        publish(channel, ScanProgress(manager, 'finished', count=len(updates)))
        return updates
