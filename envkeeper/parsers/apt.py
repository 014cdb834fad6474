import re
from typing import List

from envkeeper.models import PackageRecord, UpdateRecord
from envkeeper.parsers.base import OutputParser, normalize_lines


INSTALLED_FLAG = 'ii'

# git/stable 1:2.44.0-1 amd64 [upgradable from: 1:2.43.0-1]
UPGRADABLE_PATTERN = re.compile(r'^([^/\s]+)\S*\s+(\S+)\s+.*upgradable from:\s+([^\]\s]+)')


class DpkgListParser(OutputParser):
    """dpkg -l: `ii  name  version  arch  description`

    Only rows whose status flag says installed are kept. Multi-arch names
    (`libc6:amd64`) keep the qualifier in package_id only.
    """
    MANAGERS = ('apt',)

    def parse(self, output: str) -> List[PackageRecord]:
        packages = []
        for line in normalize_lines(output):
            if not line.startswith(INSTALLED_FLAG):
                continue
            parts = line.split()
            if len(parts) < 3 or parts[0] != INSTALLED_FLAG:
                continue
            package_id = parts[1]
            name = package_id.split(':', 1)[0]
            packages.append(self._record(name, parts[2], package_id=package_id))
        return packages


class AptUpgradableParser(OutputParser):
    """apt list --upgradable"""
    MANAGERS = ('apt',)

    def parse(self, output: str) -> List[UpdateRecord]:
        updates = []
        for line in normalize_lines(output):
            if 'upgradable' not in line:
                continue
            match = UPGRADABLE_PATTERN.match(line.strip())
            if match:
                updates.append(self._update(match.group(1), match.group(2), current=match.group(3)))
        return updates
