import re
from typing import List

from envkeeper.models import UpdateRecord
from envkeeper.parsers.base import OutputParser, normalize_lines
from envkeeper.parsers.lines import SpacePairParser


# git (2.43.0) < 2.44.0
OUTDATED_PATTERN = re.compile(r'^(\S+)\s+\(([^)]+)\)\s+<\s+(.+)$')


class BrewListParser(SpacePairParser):
    """brew list --versions: `name v1 [v2 ...]`, several kegs may coexist"""
    MANAGERS = ('brew',)


class BrewOutdatedParser(OutputParser):
    """brew outdated --verbose"""
    MANAGERS = ('brew',)

    def parse(self, output: str) -> List[UpdateRecord]:
        updates = []
        for line in normalize_lines(output):
            if '<' not in line:
                continue
            match = OUTDATED_PATTERN.match(line.strip())
            if match:
                # Several installed kegs are listed comma-separated; keep the newest
                current = match.group(2).split(',')[-1].strip()
                updates.append(self._update(match.group(1), match.group(3).strip(), current=current))
        return updates
