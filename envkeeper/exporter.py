"""
Context export for envkeeper
Writes the environment snapshot as JSON, a Markdown report or a shell script
"""

import json
import shlex
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from envkeeper.logger import LoggerManager, get_logger
from envkeeper.models import EnvironmentSnapshot


EXPORT_FORMATS = {
    'json': 'json',
    'markdown': 'md',
    'shell': 'sh',
}

# Manager -> install command template for the reproducible script
INSTALL_TEMPLATES = {
    'apt': 'sudo apt-get install -y {package}',
    'dnf': 'sudo dnf install -y {package}',
    'yum': 'sudo yum install -y {package}',
    'zypper': 'sudo zypper install -y {package}',
    'pacman': 'sudo pacman -S --noconfirm {package}',
    'snap': 'sudo snap install {package}',
    'brew': 'brew install {package}',
    'choco': 'choco install {package} -y',
    'winget': 'winget install --id {package} -e',
    'scoop': 'scoop install {package}',
}


class ContextExporter:
    """Exports the snapshot for sharing or reproducing an environment"""

    def __init__(self, export_dir, logger: Optional[LoggerManager] = None):
        self.export_dir = Path(export_dir)
        self.logger = logger or get_logger()

    def export(self, snapshot: EnvironmentSnapshot, stats: Dict, fmt: str = 'json') -> str:
        """
        Write an export file

        Args:
            snapshot: Current environment snapshot
            stats: StateManager.get_stats() output
            fmt: 'json', 'markdown' or 'shell'

        Returns:
            Path of the written file

        Raises:
            ValueError: For an unknown format
        """
        if fmt not in EXPORT_FORMATS:
            raise ValueError(f"Unknown export format '{fmt}'. "
                             f"Must be one of: {', '.join(EXPORT_FORMATS)}")

        renderers = {
            'json': self.to_json,
            'markdown': self.to_markdown,
            'shell': self.to_shell_script,
        }
        content = renderers[fmt](snapshot, stats)

        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        self.export_dir.mkdir(parents=True, exist_ok=True)
        path = self.export_dir / f"envkeeper_context_{timestamp}.{EXPORT_FORMATS[fmt]}"
        with open(path, 'w', encoding='utf-8') as f:
            f.write(content)

        self.logger.log_success(f"Exported {fmt} context to {path}")
        return str(path)

    @staticmethod
    def to_json(snapshot: EnvironmentSnapshot, stats: Dict) -> str:
        data = snapshot.to_dict()
        data['stats'] = stats
        return json.dumps(data, indent=2)

    @staticmethod
    def to_markdown(snapshot: EnvironmentSnapshot, stats: Dict) -> str:
        system = snapshot.system
        lines = [
            "# Environment Report",
            "",
            f"Generated: {datetime.now(timezone.utc).isoformat()}",
            "",
            "## System",
            "",
            f"- OS: {system.get('os', 'unknown')}",
            f"- Package manager: {system.get('package_manager', 'unknown')}",
            f"- Architecture: {system.get('arch', 'unknown')}",
            f"- Platform: {system.get('platform', 'unknown')}",
            f"- Last scan: {snapshot.last_scan}",
            "",
            "## Summary",
            "",
            f"- Tracked tools: {stats.get('tracked_tools', 0)}",
            f"- Outdated: {stats.get('outdated', 0)}",
            f"- History entries: {stats.get('history_entries', 0)}",
            f"- Failures: {stats.get('failures', 0)}",
            "",
            "## Installed Tools",
            "",
            "| Name | Version | Source | Status |",
            "|---|---|---|---|",
        ]
        for key in sorted(snapshot.installed_tools):
            record = snapshot.installed_tools[key]
            version = record.version
            if record.update_available and record.latest_version:
                version = f"{version} -> {record.latest_version}"
            lines.append(f"| {record.name} | {version} | {record.source} | {record.status} |")

        if snapshot.installation_history:
            lines += [
                "",
                "## Installation History",
                "",
                "| Time | Package | Action | Result | Duration |",
                "|---|---|---|---|---|",
            ]
            for entry in snapshot.installation_history:
                lines.append(f"| {entry.timestamp} | {entry.package} | {entry.action} "
                             f"| {entry.result} | {entry.duration_seconds:.1f}s |")

        if snapshot.failed_installations:
            lines += ["", "## Failures", ""]
            for failure in snapshot.failed_installations:
                command = f" (`{failure.attempted_command}`)" if failure.attempted_command else ""
                lines.append(f"- **{failure.package}**{command}: {failure.error}")

        return '\n'.join(lines) + '\n'

    @staticmethod
    def to_shell_script(snapshot: EnvironmentSnapshot, stats: Dict) -> str:
        """Install commands for every tracked tool, grouped by manager"""
        by_source = defaultdict(list)
        for key in sorted(snapshot.installed_tools):
            record = snapshot.installed_tools[key]
            by_source[record.source].append(record)

        lines = [
            "#!/bin/sh",
            "# Reproduces the environment recorded by envkeeper",
            f"# Source system: {snapshot.system.get('os', 'unknown')} "
            f"({snapshot.system.get('package_manager', 'unknown')})",
            f"# Tracked tools: {stats.get('tracked_tools', len(snapshot.installed_tools))}",
            "set -e",
        ]
        for source in sorted(by_source):
            template = INSTALL_TEMPLATES.get(source)
            lines += ["", f"# {source}"]
            for record in by_source[source]:
                if template is None:
                    lines.append(f"# {record.name} {record.version}: no install command known for {source}")
                else:
                    lines.append(template.format(package=shlex.quote(record.package_id or record.name)))

        return '\n'.join(lines) + '\n'
