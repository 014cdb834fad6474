from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from envkeeper.models import PackageRecord, UpdateRecord


def normalize_lines(output: str) -> List[str]:
    """Split raw command output into display lines

    Progress spinners redraw the current line with carriage returns; only
    the text after the last one is what a terminal would show.
    """
    lines = []
    for line in output.split('\n'):
        line = line.rstrip('\r')
        if '\r' in line:
            line = line.rsplit('\r', 1)[-1]
        lines.append(line)
    return lines


class OutputParser(ABC):
    """Turns one package manager's list or upgrade output into records"""

    # Package managers whose output this parser understands
    MANAGERS: Tuple[str, ...] = ()

    def __init__(self, source: Optional[str] = None):
        """
        Args:
            source: Manager name stamped on parsed records
                (default: first entry of MANAGERS)
        """
        self.source = source or self.MANAGERS[0]

    @classmethod
    def matches_manager(cls, manager: str) -> bool:
        """Check whether this parser handles `manager`"""
        return manager in cls.MANAGERS

    @abstractmethod
    def parse(self, output: str) -> List:
        """
        Parse raw command output

        Args:
            output: Captured stdout of the list/upgrade command

        Returns:
            List of PackageRecord (list parsers) or UpdateRecord (upgrade
            parsers). Lines that do not fit the expected shape are skipped.
        """
        pass

    def _record(self, name: str, version: str, package_id: Optional[str] = None,
                source: Optional[str] = None) -> PackageRecord:
        return PackageRecord(
            name=name,
            package_id=package_id or name,
            version=version,
            source=source or self.source,
        )

    def _update(self, name: str, available: str, current: Optional[str] = None,
                package_id: Optional[str] = None) -> UpdateRecord:
        return UpdateRecord(
            name=name,
            package_id=package_id or name,
            current_version=current,
            available_version=available,
            source=self.source,
        )
