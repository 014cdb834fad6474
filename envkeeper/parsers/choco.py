from typing import List

from envkeeper.models import UpdateRecord
from envkeeper.parsers.base import OutputParser, normalize_lines
from envkeeper.parsers.lines import SpacePairParser


class ChocoListParser(SpacePairParser):
    """choco list: `Chocolatey vX` banner, `name version` rows, `N packages installed.` footer"""
    MANAGERS = ('choco',)
    BANNERS = ('Chocolatey', 'packages installed', 'package installed')


class ChocoOutdatedParser(OutputParser):
    """choco outdated -r: `name|current|available|pinned`"""
    MANAGERS = ('choco',)

    def parse(self, output: str) -> List[UpdateRecord]:
        updates = []
        for line in normalize_lines(output):
            parts = [p.strip() for p in line.strip().split('|')]
            if len(parts) < 3 or not parts[0] or not parts[2]:
                continue
            updates.append(self._update(parts[0], parts[2], current=parts[1] or None))
        return updates
