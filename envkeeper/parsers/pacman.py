import re
from typing import List

from envkeeper.models import UpdateRecord
from envkeeper.parsers.base import OutputParser, normalize_lines
from envkeeper.parsers.lines import SpacePairParser


# linux 6.7.4.arch1-1 -> 6.7.5.arch1-1
UPGRADE_PATTERN = re.compile(r'^(\S+)\s+(\S+)\s+->\s+(\S+)')


class PacmanListParser(SpacePairParser):
    """pacman -Q: `name version`"""
    MANAGERS = ('pacman',)


class PacmanUpgradeParser(OutputParser):
    """pacman -Qu"""
    MANAGERS = ('pacman',)

    def parse(self, output: str) -> List[UpdateRecord]:
        updates = []
        for line in normalize_lines(output):
            match = UPGRADE_PATTERN.match(line.strip())
            if match:
                updates.append(self._update(match.group(1), match.group(3), current=match.group(2)))
        return updates
