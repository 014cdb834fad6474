"""
Risk classification for shell commands

Commands are matched against four tiers of patterns, most dangerous first.
The first tier with a matching pattern decides the risk.
"""

import re
from typing import Dict, Iterable, List

from envkeeper.models import ClassifiedCommand, Dependency, RISK_LEVELS


# Start of a command line or of a chained command
COMMAND_START = r'(?:^|[;&|]\s*)'

RULES = [
    {
        'risk': 'dangerous',
        'label': 'Dangerous',
        'description': 'This command can cause irreversible damage to your system.',
        'patterns': [
            r'rm\s+(-rf|-fr|--recursive)\s+/(?:\*|\s|$)',   # rm -rf /, not rm -rf /tmp/x
            r'mkfs',                                    # format a filesystem
            r'dd\s+if=',                                # raw disk write
            r'>\s*/dev/sd',                             # overwrite a block device
            r'chmod\s+-R\s+777\s+/(?:\s|$)',            # world-writable root
            r'(?i)format\s+[a-z]:',                     # format C:
            r'(?i)diskpart',
            r'(?i)del\s+/[sq].*[a-z]:\\',               # del /s /q C:\
            r'(?i)Remove-Item.*-Recurse.*-Force.*[a-z]:\\',
        ],
    },
    {
        'risk': 'elevated',
        'label': 'Elevated (sudo/admin)',
        'description': 'Requires administrator privileges. Will modify system files.',
        'patterns': [
            r'^sudo\s',
            r'DEBIAN_FRONTEND',
            r'/etc/',
            r'systemctl\s+(enable|start|restart|stop|disable)',
            r'update-alternatives',
            r'(?i)\bchoco\s+install',
            r'(?i)\bwinget\s+install',
            r'(?i)\bscoop\s+install',
        ],
    },
    {
        'risk': 'moderate',
        'label': 'Moderate',
        'description': 'Installs software globally or modifies your environment.',
        'patterns': [
            r'npm\s+install\s+-g',
            r'pip3?\s+install(?!\s+--user)',
            r'curl\s.*\|\s*(ba)?sh',                    # pipe to shell
            r'wget\s.*\|\s*(ba)?sh',
            r'add-apt-repository',
            r'apt-key\s+add',
            r'export\s+PATH',
            r'\.bashrc|\.profile|\.zshrc',
        ],
    },
    {
        'risk': 'safe',
        'label': 'Safe',
        'description': 'Read-only or local operation. No system changes.',
        'patterns': [
            r'--version$',
            r'--help$',
            COMMAND_START + r'which\s',
            COMMAND_START + r'echo\s',
            COMMAND_START + r'cat\s',
            COMMAND_START + r'ls\s',
            COMMAND_START + r"python3?\s+-c\s+['\"]import",
            COMMAND_START + r'node\s+-e',
            COMMAND_START + r'command\s+-v',
        ],
    },
]

UNRECOGNIZED = {
    'risk': 'moderate',
    'label': 'Moderate',
    'description': 'Unrecognized command, review before running.',
}


class CommandClassifier:
    """Tags shell commands with a risk tier"""

    def __init__(self, rules: List[Dict] = None):
        rules = rules if rules is not None else RULES
        self.rules = [
            dict(rule, patterns=[re.compile(p) for p in rule['patterns']])
            for rule in rules
        ]

    def classify_command(self, command: str) -> ClassifiedCommand:
        trimmed = command.strip()
        for rule in self.rules:
            for pattern in rule['patterns']:
                if pattern.search(trimmed):
                    return ClassifiedCommand(command=trimmed,
                                             risk=rule['risk'],
                                             label=rule['label'],
                                             description=rule['description'])

        return ClassifiedCommand(command=trimmed, **UNRECOGNIZED)

    def classify_commands(self, commands: Iterable[str]) -> List[ClassifiedCommand]:
        return [self.classify_command(c) for c in commands]

    @staticmethod
    def highest_risk(classified: Iterable[ClassifiedCommand]) -> str:
        """Most severe risk among `classified`; 'safe' when empty"""
        risks = {c.risk for c in classified}
        for risk in RISK_LEVELS:
            if risk in risks:
                return risk
        return 'safe'

    def classify_all(self, dependencies: Iterable[Dependency]) -> Dict:
        """
        Classify every install command of every dependency

        Returns:
            {'dependencies': [{'name', 'highest_risk', 'commands'}, ...],
             'summary': {'total', 'dangerous', 'elevated', 'moderate', 'safe'}}
        """
        summary = {'total': 0}
        summary.update({risk: 0 for risk in RISK_LEVELS})
        classified = []

        for dependency in dependencies:
            commands = self.classify_commands(dependency.install_commands)
            summary['total'] += len(commands)
            for command in commands:
                summary[command.risk] += 1

            classified.append({
                'name': dependency.label,
                'highest_risk': self.highest_risk(commands),
                'commands': commands,
            })

        return {'dependencies': classified, 'summary': summary}
