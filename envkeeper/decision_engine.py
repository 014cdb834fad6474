"""
Decision engine for envkeeper
Decides whether a requested package needs an install, update, repair or nothing
"""

from typing import Dict, Iterable, List

from envkeeper.models import Decision
from envkeeper.state import StateManager


# Actions that lead to running install commands
ACTIONABLE = ('INSTALL', 'UPDATE', 'REPAIR')

# Decision action -> history action logged for the attempt
HISTORY_ACTION = {
    'INSTALL': 'install',
    'UPDATE': 'update',
    'REPAIR': 'repair',
    'SKIP': 'install',
}


class DecisionEngine:
    """Pure function of the current snapshot held by a StateManager"""

    def __init__(self, state_manager: StateManager):
        self.state_manager = state_manager

    def evaluate_package(self, name: str) -> Decision:
        """
        Decide the next action for `name`

        Checks run in a fixed order: missing snapshot, missing record,
        broken record, update available, and finally up to date. A broken
        record is repaired even when an update is also available.
        """
        if self.state_manager.snapshot is None:
            return Decision(action='INSTALL', reason='No state available, will install',
                            badge='new', package=name)

        record = self.state_manager.get_package_info(name)
        if record is None:
            return Decision(action='INSTALL', reason='Package not currently installed',
                            badge='new', package=name)

        if record.status == 'broken':
            return Decision(action='REPAIR', reason='Installation broken, will repair',
                            badge='repair', current_version=record.version, package=name)

        if record.update_available:
            return Decision(
                action='UPDATE',
                reason=f"Update available: {record.version} -> {record.latest_version}",
                badge='update',
                current_version=record.version,
                suggested_version=record.latest_version,
                package=name,
            )

        return Decision(action='SKIP', reason=f"Already installed (v{record.version})",
                        badge='installed', current_version=record.version, package=name)

    def evaluate_packages(self, names: Iterable[str]) -> List[Decision]:
        return [self.evaluate_package(name) for name in names]

    def should_install(self, name: str) -> bool:
        return self.evaluate_package(name).action in ACTIONABLE

    def get_recommendation_message(self, name: str) -> str:
        decision = self.evaluate_package(name)
        messages = {
            'INSTALL': f"Will install {name}",
            'SKIP': f"{name} already installed ({decision.current_version})",
            'UPDATE': f"Will update {name} ({decision.current_version} -> {decision.suggested_version})",
            'REPAIR': f"Will repair {name} (currently broken)",
        }
        return messages[decision.action]

    def get_summary(self, names: Iterable[str]) -> Dict:
        """Counts per action plus a readable message"""
        decisions = self.evaluate_packages(names)
        actions = [d.action for d in decisions]
        summary = {
            'total': len(decisions),
            'to_install': actions.count('INSTALL'),
            'to_skip': actions.count('SKIP'),
            'to_update': actions.count('UPDATE'),
            'to_repair': actions.count('REPAIR'),
        }
        summary['message'] = summary_message(summary)
        return summary


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count > 1 else ''}"


def summary_message(summary: Dict) -> str:
    """'2 new installations, 1 update, 1 already installed' or 'No actions needed'"""
    parts = []
    if summary['to_install']:
        parts.append(_plural(summary['to_install'], 'new installation'))
    if summary['to_update']:
        parts.append(_plural(summary['to_update'], 'update'))
    if summary['to_repair']:
        parts.append(_plural(summary['to_repair'], 'repair'))
    if summary['to_skip']:
        parts.append(f"{summary['to_skip']} already installed")

    if not parts:
        return 'No actions needed'
    return ', '.join(parts)
