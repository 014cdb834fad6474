import re
from typing import List

from envkeeper.models import PackageRecord, UpdateRecord
from envkeeper.parsers.base import OutputParser, normalize_lines
from envkeeper.parsers.lines import split_columns


# bash-5.2.15-3.fc38.x86_64 -> ('bash', '5.2.15-3.fc38.x86_64')
RPM_PATTERN = re.compile(r'^(.+?)-(\d+[\d.]*-[\w.]+)$')

# Lines of `dnf check-update` that are not package rows
CHECK_UPDATE_NOISE = ('Last metadata expiration', 'Security:', 'Loaded plugins', 'Loading mirror')
OBSOLETING_HEADER = 'Obsoleting Packages'


class RpmListParser(OutputParser):
    """rpm -qa: one `name-version-release.arch` token per line"""
    MANAGERS = ('dnf', 'yum', 'zypper')

    def parse(self, output: str) -> List[PackageRecord]:
        packages = []
        for line in normalize_lines(output):
            match = RPM_PATTERN.match(line.strip())
            if match:
                packages.append(self._record(match.group(1), match.group(2)))
        return packages


class DnfCheckUpdateParser(OutputParser):
    """dnf/yum check-update: `name.arch  version  repo` rows"""
    MANAGERS = ('dnf', 'yum')

    def parse(self, output: str) -> List[UpdateRecord]:
        updates = []
        for line in normalize_lines(output):
            stripped = line.strip()
            if stripped.startswith(OBSOLETING_HEADER):
                break
            if not stripped or any(stripped.startswith(noise) for noise in CHECK_UPDATE_NOISE):
                continue

            parts = split_columns(stripped)
            if len(parts) != 3 or '.' not in parts[0] or not re.match(r'\d', parts[1].split(':')[-1]):
                continue
            name = parts[0].rsplit('.', 1)[0]
            updates.append(self._update(name, parts[1], package_id=parts[0]))
        return updates
