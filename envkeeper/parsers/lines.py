"""
Line-oriented parsing strategies shared by several package managers
"""

import re
from typing import List, Tuple

from envkeeper.models import PackageRecord
from envkeeper.parsers.base import OutputParser, normalize_lines
from envkeeper.parsers.columns import SEPARATOR_PATTERN


def split_columns(line: str) -> List[str]:
    """Split on runs of 2+ spaces, falling back to single whitespace"""
    stripped = line.strip()
    parts = [p for p in re.split(r'\s{2,}', stripped) if p]
    if len(parts) < 2:
        parts = stripped.split()
    return parts


class SpacePairParser(OutputParser):
    """`name version [version ...]` lines; the last version token wins"""

    # Substrings marking informational lines to skip
    BANNERS: Tuple[str, ...] = ()

    def parse(self, output: str) -> List[PackageRecord]:
        packages = []
        for line in normalize_lines(output):
            stripped = line.strip()
            if not stripped or any(banner in stripped for banner in self.BANNERS):
                continue

            parts = stripped.split()
            if len(parts) < 2:
                continue
            version = parts[-1]
            if not re.search(r'\d', version):
                continue
            packages.append(self._record(parts[0], version))
        return packages


class WhitespaceRunParser(OutputParser):
    """Columns separated by runs of spaces after a fixed number of header lines"""

    SKIP_LINES = 0
    BANNERS: Tuple[str, ...] = ()
    HEADER_PREFIX = 'Name '
    # Tables padded with a single space need plain whitespace splitting
    SINGLE_SPACED = False

    def parse(self, output: str) -> List[PackageRecord]:
        packages = []
        for line in normalize_lines(output)[self.SKIP_LINES:]:
            stripped = line.strip()
            if not stripped or SEPARATOR_PATTERN.match(stripped):
                continue
            if stripped.startswith(self.HEADER_PREFIX):
                continue
            if any(banner in stripped for banner in self.BANNERS):
                continue

            parts = stripped.split() if self.SINGLE_SPACED else split_columns(stripped)
            if len(parts) < 2:
                continue
            packages.append(self._record(parts[0], parts[1]))
        return packages
