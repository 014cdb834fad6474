"""
winget list / winget upgrade

Both print a fixed-width table under a `Name Id Version ...` header, often
preceded by spinner and progress-bar characters on the header line.
"""

from typing import List

from envkeeper.models import PackageRecord, UpdateRecord
from envkeeper.parsers.base import OutputParser, normalize_lines
from envkeeper.parsers.columns import find_layout


class WingetListParser(OutputParser):
    MANAGERS = ('winget',)

    def parse(self, output: str) -> List[PackageRecord]:
        lines = normalize_lines(output)
        layout = find_layout(lines, required=('Version',))
        if layout is None:
            return []

        packages = []
        for fields in layout.rows(lines):
            name = fields.get('Name', '')
            package_id = fields.get('Id', '')
            if not name or not package_id:
                continue
            packages.append(self._record(
                name,
                fields.get('Version', ''),
                package_id=package_id,
                source=fields.get('Source') or self.source,
            ))
        return packages


class WingetUpgradeParser(OutputParser):
    MANAGERS = ('winget',)

    def parse(self, output: str) -> List[UpdateRecord]:
        lines = normalize_lines(output)
        layout = find_layout(lines, required=('Version', 'Available'))
        if layout is None:
            return []

        updates = []
        for fields in layout.rows(lines):
            name = fields.get('Name', '')
            package_id = fields.get('Id', '')
            available = fields.get('Available', '')
            if not name or not package_id or not available:
                continue
            updates.append(self._update(
                name,
                available,
                current=fields.get('Version') or None,
                package_id=package_id,
            ))
        return updates
