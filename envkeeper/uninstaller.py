"""
Uninstall planning for envkeeper
Gets removal commands from the advisory service, with a per-manager fallback
"""

from typing import Dict, Iterable, List, Optional

from envkeeper.advisory import AdvisoryClient
from envkeeper.errors import AdvisoryServiceError
from envkeeper.events import CommandProgress, EventChannel, publish
from envkeeper.installer import Installer
from envkeeper.logger import LoggerManager, get_logger
from envkeeper.models import CommandResult, SystemInfo, UninstallPlan


def fallback_commands(package_id: str, system: SystemInfo) -> List[str]:
    """Generic remove command(s) for the detected package manager"""
    manager = system.package_manager

    if system.is_windows:
        if manager == 'winget':
            return [f"winget uninstall --id {package_id} -e"]
        if manager == 'scoop':
            return [f"scoop uninstall {package_id}"]
        return [f"choco uninstall {package_id} -y"]

    if system.is_macos or manager == 'brew':
        return [f"brew uninstall {package_id}", "brew cleanup"]

    if manager == 'apt':
        return [f"sudo apt-get remove -y {package_id}", "sudo apt-get autoremove -y"]
    if manager == 'pacman':
        return [f"sudo pacman -R {package_id} --noconfirm"]
    if manager == 'snap':
        return [f"sudo snap remove {package_id}"]
    return [f"sudo {manager} remove -y {package_id}"]


class UninstallPlanner:
    """Builds and runs uninstall plans"""

    def __init__(self, advisory: Optional[AdvisoryClient], installer: Installer,
                 logger: Optional[LoggerManager] = None):
        self.advisory = advisory
        self.installer = installer
        self.logger = logger or get_logger()

    def generate_uninstall_plan(self, packages: Iterable[Dict], system: SystemInfo) -> List[UninstallPlan]:
        """
        Plan the removal of `packages`

        Args:
            packages: Dicts with 'name' and optionally 'package_id'
            system: Detected system

        Returns:
            One UninstallPlan per package. When the advisory service fails,
            each plan holds the generic manager remove command and a warning.
        """
        packages = list(packages)
        if self.advisory is not None:
            try:
                raw_plans = self.advisory.request_uninstall_plan(
                    [p.get('package_id') or p['name'] for p in packages], system
                )
                return [self._plan_from_dict(raw) for raw in raw_plans]
            except (AdvisoryServiceError, ValueError) as e:
                self.logger.log_warning(f"Falling back to generic uninstall commands: {e}")

        return [self._fallback_plan(p, system) for p in packages]

    @staticmethod
    def _plan_from_dict(raw: Dict) -> UninstallPlan:
        if not isinstance(raw, dict) or not raw.get('name'):
            raise ValueError(f"Invalid uninstall plan entry: {raw!r}")
        commands = [c.strip() for c in raw.get('uninstall_commands') or []
                    if isinstance(c, str) and c.strip()]
        if not commands:
            raise ValueError(f"Uninstall plan for '{raw['name']}' has no commands")
        warnings = [w for w in raw.get('warnings') or [] if isinstance(w, str) and w]
        return UninstallPlan(name=raw['name'], uninstall_commands=commands, warnings=warnings)

    @staticmethod
    def _fallback_plan(package: Dict, system: SystemInfo) -> UninstallPlan:
        name = package['name']
        return UninstallPlan(
            name=name,
            uninstall_commands=fallback_commands(package.get('package_id') or name, system),
            warnings=[f"Uninstalling {name}. Some configuration files may remain. "
                      f"Review these generic commands before running them."],
        )

    def execute_plan(self, plan: UninstallPlan, channel: Optional[EventChannel] = None,
                     sudo_password: Optional[str] = None) -> List[CommandResult]:
        """
        Run every command of the plan in order

        Unlike install commands these are sequential steps, so the first
        failure stops the plan.

        Raises:
            CommandExecutionError: From the first failing command
        """
        results = []
        total = len(plan.uninstall_commands)
        for index, command in enumerate(plan.uninstall_commands, start=1):
            publish(channel, CommandProgress(current=index, total=total, command=command))
            output = self.installer.execute_command(command, channel, sudo_password)
            results.append(CommandResult(command=command, success=True, output=output.output))
        return results
