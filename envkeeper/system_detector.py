"""
System detection for envkeeper
Identifies OS, distro, architecture, package manager and privilege level
"""

import os
import platform
import re
import socket
import subprocess
import sys
import time
from typing import Optional

from envkeeper.models import SystemInfo


# Probe order matters: the first manager found wins
WINDOWS_MANAGERS = ['choco', 'winget', 'scoop']
LINUX_MANAGERS = [
    ('apt', 'apt'),
    ('apt-get', 'apt'),
    ('yum', 'yum'),
    ('dnf', 'dnf'),
    ('pacman', 'pacman'),
    ('zypper', 'zypper'),
    ('snap', 'snap'),
]


class SystemDetector:
    """Read-only queries about the machine. Never raises."""

    def __init__(self, detect_timeout: int = 5):
        self.platform = sys.platform
        self.detect_timeout = detect_timeout

    def detect_os(self) -> str:
        if self.platform.startswith('linux'):
            return 'Linux'
        if self.platform == 'darwin':
            return 'macOS'
        if self.platform in ('win32', 'cygwin'):
            return 'Windows'
        return 'unknown'

    def _is_windows(self) -> bool:
        return self.detect_os() == 'Windows'

    def _command_available(self, command: str) -> bool:
        """Look a command up with which/where"""
        lookup = 'where' if self._is_windows() else 'which'
        try:
            result = subprocess.run([lookup, command],
                                    capture_output=True,
                                    text=True,
                                    timeout=self.detect_timeout)
            return result.returncode == 0
        except (OSError, subprocess.SubprocessError):
            return False

    def get_distro(self, os_release_path: str = '/etc/os-release') -> Optional[str]:
        """Linux distribution id, None off Linux"""
        if self.detect_os() != 'Linux':
            return None

        try:
            with open(os_release_path, 'r', encoding='utf-8') as f:
                match = re.search(r'^ID=(.+)$', f.read(), re.MULTILINE)
            if match:
                return match.group(1).strip().strip('"\'').lower()
        except OSError:
            pass

        try:
            result = subprocess.run(['lsb_release', '-si'],
                                    capture_output=True,
                                    text=True,
                                    timeout=self.detect_timeout)
            if result.returncode == 0 and result.stdout.strip():
                return result.stdout.strip().lower()
        except (OSError, subprocess.SubprocessError):
            pass

        return 'unknown'

    def get_package_manager(self) -> str:
        os_name = self.detect_os()

        if os_name == 'Windows':
            for manager in WINDOWS_MANAGERS:
                if self._command_available(manager):
                    return manager
            return 'choco'

        if os_name == 'macOS':
            return 'brew'

        for command, manager in LINUX_MANAGERS:
            if self._command_available(command):
                return manager
        return 'unknown'

    def get_memory_gb(self) -> int:
        try:
            total = os.sysconf('SC_PAGE_SIZE') * os.sysconf('SC_PHYS_PAGES')
            return round(total / 1024 ** 3)
        except (AttributeError, ValueError, OSError):
            return 0

    def get_uptime_hours(self) -> int:
        if self.detect_os() == 'Linux':
            try:
                with open('/proc/uptime', 'r') as f:
                    return round(float(f.read().split()[0]) / 3600)
            except (OSError, ValueError, IndexError):
                return 0

        if self.detect_os() == 'macOS':
            try:
                result = subprocess.run(['sysctl', '-n', 'kern.boottime'],
                                        capture_output=True,
                                        text=True,
                                        timeout=self.detect_timeout)
                # { sec = 1700000000, usec = 0 } Tue Nov 14 ...
                match = re.search(r'sec\s*=\s*(\d+)', result.stdout)
                if match:
                    return round((time.time() - int(match.group(1))) / 3600)
            except (OSError, subprocess.SubprocessError):
                pass

        return 0

    def is_elevated(self) -> bool:
        """Root on POSIX, Administrator on Windows"""
        if self._is_windows():
            try:
                result = subprocess.run(['net', 'session'],
                                        capture_output=True,
                                        timeout=self.detect_timeout)
                return result.returncode == 0
            except (OSError, subprocess.SubprocessError):
                return False

        try:
            return os.geteuid() == 0
        except AttributeError:
            return False

    def get_system_info(self) -> SystemInfo:
        """Complete system description"""
        try:
            hostname = socket.gethostname()
        except OSError:
            hostname = 'unknown'

        return SystemInfo(
            os=self.detect_os(),
            distro=self.get_distro(),
            package_manager=self.get_package_manager(),
            arch=platform.machine() or 'unknown',
            platform=self.platform,
            cpus=os.cpu_count() or 0,
            memory_gb=self.get_memory_gb(),
            hostname=hostname,
            uptime_hours=self.get_uptime_hours(),
            is_elevated=self.is_elevated(),
        )
