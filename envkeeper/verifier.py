"""
Installation verification for envkeeper
Runs verify commands and matches their output against expected patterns
"""

import re
import subprocess
import sys
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from envkeeper.events import EventChannel, VerifyProgress, publish
from envkeeper.logger import LoggerManager, get_logger
from envkeeper.models import Dependency, VerifyResult, utc_now


VERSION_PATTERN = re.compile(r'\d+(?:\.\d+)+')


def extract_version(output: str) -> Optional[str]:
    """First dotted number in `output`"""
    match = VERSION_PATTERN.search(output or '')
    return match.group(0) if match else None


def extract_command_name(verify_command: Optional[str]) -> Optional[str]:
    """
    Executable a verify command runs

    "git --version" -> "git", "where fd" -> "fd"
    """
    if not verify_command:
        return None
    command = re.sub(r'^(where|which)\s+', '', verify_command.strip())
    parts = command.split()
    return parts[0] if parts else None


@dataclass
class VerificationSummary:
    results: List[VerifyResult] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed_count(self) -> int:
        return len(self.results) - self.success_count

    @property
    def all_success(self) -> bool:
        return all(r.success for r in self.results)


class Verifier:
    """Confirms that installed software responds as expected"""

    def __init__(self, logger: Optional[LoggerManager] = None, timeout: int = 5,
                 platform: Optional[str] = None):
        self.logger = logger or get_logger()
        self.timeout = timeout
        self.platform = platform or sys.platform

    @property
    def is_windows(self) -> bool:
        return self.platform in ('win32', 'cygwin')

    def _run(self, command: str, timeout: Optional[int] = None) -> Optional[str]:
        """Trimmed output of a successful command, None on any failure"""
        try:
            result = subprocess.run(command,
                                    shell=True,
                                    capture_output=True,
                                    text=True,
                                    encoding='utf-8',
                                    errors='replace',
                                    timeout=timeout or self.timeout)
        except (OSError, subprocess.SubprocessError) as e:
            self.logger.log_debug(f"Verify command '{command}' failed: {e}")
            return None

        if result.returncode != 0:
            self.logger.log_debug(f"Verify command '{command}' exited with code {result.returncode}")
            return None
        # Some tools (java -version) print to stderr
        return (result.stdout or '').strip() or (result.stderr or '').strip()

    def _windows_fallback(self, verify_command: str) -> Optional[str]:
        """Locate the executable with `where` and ask it for a version"""
        command_name = extract_command_name(verify_command)
        if not command_name:
            return None

        location = self._run(f"where {command_name}")
        if not location:
            return None

        version_output = self._run(f"{command_name} --version")
        if version_output is not None:
            return version_output
        return f"Found at: {location}"

    def verify_installation(self, dependency: Dependency) -> VerifyResult:
        """
        Run a dependency's verify command

        A failing command means not installed. A succeeding command whose
        output does not match expected_pattern means installed but
        unverified. Never raises.
        """
        name = dependency.name
        verify_command = dependency.verify_command or f"{name} --version"
        expected = dependency.expected_pattern or 'Any version'

        output = self._run(verify_command)
        if output is None and self.is_windows:
            output = self._windows_fallback(verify_command)

        if output is None:
            self.logger.log_warning(f"Verification failed for {name}: '{verify_command}' did not succeed")
            return VerifyResult(
                name=name,
                installed=False,
                success=False,
                expected=expected,
                actual='Not installed',
                message='Installation verification failed - package not found',
                error=f"Verify command failed: {verify_command}",
            )

        matches = True
        if dependency.expected_pattern:
            try:
                pattern = re.compile(dependency.expected_pattern, re.IGNORECASE)
            except re.error:
                pattern = re.compile(re.escape(dependency.expected_pattern), re.IGNORECASE)
            matches = bool(pattern.search(output))

        version = extract_version(output)
        if matches:
            self.logger.log_success(f"Verified {name} ({version or 'version unknown'})")
        else:
            self.logger.log_warning(f"Verification of {name} did not match '{expected}'")

        return VerifyResult(
            name=name,
            installed=True,
            success=matches,
            expected=expected,
            actual=version or output,
            full_output=output,
            version=version,
            message='Installation verified successfully' if matches else 'Version mismatch',
        )

    def verify_all(self, dependencies: Iterable[Dependency],
                   channel: Optional[EventChannel] = None) -> VerificationSummary:
        """Verify dependencies one after another"""
        dependencies = list(dependencies)
        total = len(dependencies)
        summary = VerificationSummary()

        for index, dependency in enumerate(dependencies, start=1):
            publish(channel, VerifyProgress(index, total, dependency.name, 'verifying'))
            result = self.verify_installation(dependency)
            summary.results.append(result)
            publish(channel, VerifyProgress(index, total, dependency.name,
                                            'success' if result.success else 'failed', result))

        return summary

    @staticmethod
    def generate_report(summary: VerificationSummary) -> Dict:
        return {
            'summary': {
                'total': len(summary.results),
                'success': summary.success_count,
                'failed': summary.failed_count,
                'all_success': summary.all_success,
            },
            'details': [
                {
                    'name': r.name,
                    'status': 'SUCCESS' if r.success else 'FAILED',
                    'expected': r.expected,
                    'actual': r.actual,
                    'message': r.message,
                }
                for r in summary.results
            ],
            'timestamp': utc_now(),
        }

    def is_installed(self, command: str) -> bool:
        lookup = 'where' if self.is_windows else 'which'
        return self._run(f"{lookup} {command}") is not None

    def get_version(self, command: str, version_flag: str = '--version') -> Optional[str]:
        """Dotted version reported by `command version_flag`, or its raw output"""
        output = self._run(f"{command} {version_flag}", timeout=3)
        if output is None:
            return None
        return extract_version(output) or output
