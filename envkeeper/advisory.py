"""
Advisory service client for envkeeper

Talks to an OpenAI-compatible chat completion endpoint that turns a free
text request into a list of dependencies with install and verify commands.
Everything it returns is validated and filtered to the detected platform
before it reaches the installer.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

import requests

from envkeeper.errors import AdvisoryServiceError, IncompatiblePlanError
from envkeeper.logger import LoggerManager, get_logger
from envkeeper.models import Dependency, SystemInfo


# System package manager -> executables that belong to it
MANAGER_BINARIES = {
    'apt': {'apt', 'apt-get', 'dpkg', 'add-apt-repository', 'apt-key'},
    'yum': {'yum', 'rpm'},
    'dnf': {'dnf', 'rpm'},
    'pacman': {'pacman'},
    'zypper': {'zypper', 'rpm'},
    'snap': {'snap'},
    'brew': {'brew'},
    'choco': {'choco'},
    'winget': {'winget'},
    'scoop': {'scoop'},
}
SYSTEM_BINARIES = set().union(*MANAGER_BINARIES.values())

# Windows managers can coexist, so any of them is acceptable there
WINDOWS_BINARIES = MANAGER_BINARIES['choco'] | MANAGER_BINARIES['winget'] | MANAGER_BINARIES['scoop']

FENCE_PATTERN = re.compile(r'^```(?:json)?\s*\n?|\n?```\s*$', re.MULTILINE)
SEGMENT_SPLIT = re.compile(r'&&|\|\||;|\|')
ENV_ASSIGNMENT = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*=\S*$')

INSTALL_SYSTEM_PROMPT = """You are a cross-platform software installation expert.
Return ONLY valid JSON, no markdown and no explanations outside the JSON.

For a single package:
{"type": "single", "analysis": "...", "dependencies": [DEPENDENCY, ...]}

When several stacks could satisfy the request:
{"type": "stack", "analysis": "...", "stack_options": [{"name": "...", "description": "...", "dependencies": ["..."]}], "dependencies": [DEPENDENCY, ...]}

DEPENDENCY is:
{"name": "...", "display_name": "...", "description": "...",
 "category": "system-package|python-library|runtime|framework|database|tool|other",
 "install_commands": ["alternative 1", "alternative 2"],
 "verify_command": "...", "expected_pattern": "regex", "priority": 1, "logo_url": "..."}

install_commands are ALTERNATIVES tried in order until one succeeds.
Use only the package manager of the target system and non-interactive flags."""

UNINSTALL_SYSTEM_PROMPT = """You are a cross-platform system administrator.
Return ONLY valid JSON, no markdown:
{"packages": [{"name": "...", "uninstall_commands": ["..."], "warnings": ["..."]}]}
Use non-interactive flags, include cleanup commands, never use sudo on Windows."""

ERROR_SYSTEM_PROMPT = """You diagnose failed software installations for beginners.
Return ONLY valid JSON, no markdown:
{"root_cause": "one sentence", "explanation": "2-3 sentences", "suggested_fixes": ["at most 3"]}"""


@dataclass
class AdvisoryPlan:
    """Validated answer to an installation request"""
    type: str
    analysis: str = ''
    dependencies: List[Dependency] = field(default_factory=list)
    stack_options: List[Dict] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            'type': self.type,
            'analysis': self.analysis,
            'dependencies': [d.to_dict() for d in self.dependencies],
            'stack_options': list(self.stack_options),
        }


def strip_markdown_fences(text: str) -> str:
    return FENCE_PATTERN.sub('', text.strip()).strip()


def parse_json_response(text: str) -> Dict:
    """
    Decode a completion that should contain one JSON object

    Raises:
        AdvisoryServiceError: If the text is not a JSON object
    """
    cleaned = strip_markdown_fences(text)
    try:
        data = json.loads(cleaned)
    except ValueError as e:
        raise AdvisoryServiceError(f"Advisory response is not valid JSON: {e}", raw=text) from e
    if not isinstance(data, dict):
        raise AdvisoryServiceError("Advisory response is not a JSON object", raw=text)
    return data


def command_binaries(command: str) -> List[str]:
    """Executable of every segment of a shell command line, sudo and VAR=x skipped"""
    binaries = []
    for segment in SEGMENT_SPLIT.split(command):
        for token in segment.split():
            if token == 'sudo' or token.startswith('-') or ENV_ASSIGNMENT.match(token):
                continue
            binaries.append(token.rsplit('/', 1)[-1].lower())
            break
    return binaries


def command_fits_system(command: str, system: SystemInfo) -> bool:
    """False when the command calls a system package manager other than the detected one"""
    if system.is_windows:
        allowed = WINDOWS_BINARIES
    else:
        allowed = MANAGER_BINARIES.get(system.package_manager, set())

    for binary in command_binaries(command):
        if binary in SYSTEM_BINARIES and binary not in allowed:
            return False
    return True


def filter_dependencies(dependencies: Iterable[Dependency], system: SystemInfo) -> List[Dependency]:
    """
    Drop install commands that cannot run on `system`

    Raises:
        IncompatiblePlanError: If any dependency is left with no command
    """
    filtered = []
    empty = []
    for dependency in dependencies:
        commands = [c for c in dependency.install_commands if command_fits_system(c, system)]
        if not commands:
            empty.append(dependency.name)
        filtered.append(Dependency(**dict(dependency.to_dict(), install_commands=commands)))

    if empty:
        raise IncompatiblePlanError(
            f"No commands compatible with {system.summary} for: {', '.join(empty)}",
            dependencies=empty,
        )
    return filtered


class AdvisoryClient:
    """Client for an OpenAI-compatible /chat/completions endpoint"""

    def __init__(self, base_url: str, model: str, api_key: str = "", timeout: int = 60,
                 logger: Optional[LoggerManager] = None):
        self.base_url = base_url.rstrip('/')
        self.model = model
        self.api_key = api_key
        self.timeout = timeout
        self.logger = logger or get_logger()

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/chat/completions"

    def complete(self, system_prompt: str, user_message: str) -> str:
        """
        Send one chat completion request

        Returns:
            The assistant message text

        Raises:
            AdvisoryServiceError: On transport errors, HTTP errors or an
                unexpected response shape
        """
        payload = {
            "model": self.model,
            "temperature": 0.2,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
        }
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        self.logger.log_debug(f"Advisory request to {self.endpoint} ({self.model})")
        try:
            response = requests.post(self.endpoint, json=payload, headers=headers,
                                     timeout=self.timeout)
        except requests.RequestException as e:
            raise AdvisoryServiceError(
                f"Cannot connect to advisory service at {self.endpoint}: {e}", raw=str(e)
            ) from e

        if response.status_code >= 400:
            raise AdvisoryServiceError(
                f"Advisory service returned HTTP {response.status_code}", raw=response.text
            )

        try:
            return response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise AdvisoryServiceError(f"Unexpected advisory response: {e}",
                                       raw=response.text) from e

    # ==================== Installation Requests ====================

    def analyze_request(self, request_text: str, system: SystemInfo) -> AdvisoryPlan:
        """
        Turn a free text request into a validated, platform-filtered plan

        Raises:
            AdvisoryServiceError: If the service fails or answers nonsense
            IncompatiblePlanError: If filtering leaves a dependency without commands
        """
        user_message = (
            f"USER REQUEST: {request_text}\n\n"
            f"SYSTEM INFO:\n"
            f"- OS: {system.os}\n"
            f"- Distro: {system.distro or 'n/a'}\n"
            f"- Package Manager: {system.package_manager}\n"
            f"- Architecture: {system.arch}"
        )
        text = self.complete(INSTALL_SYSTEM_PROMPT, user_message)
        data = parse_json_response(text)

        if not data.get('type') or not isinstance(data.get('dependencies'), list):
            raise AdvisoryServiceError("Advisory response is missing 'type' or 'dependencies'", raw=text)

        try:
            dependencies = [Dependency.from_dict(d) for d in data['dependencies']]
        except ValueError as e:
            raise AdvisoryServiceError(f"Invalid dependency in advisory response: {e}", raw=text) from e

        stack_options = data.get('stack_options') or []
        if not isinstance(stack_options, list):
            stack_options = []

        plan = AdvisoryPlan(
            type=data['type'],
            analysis=str(data.get('analysis') or ''),
            dependencies=filter_dependencies(dependencies, system),
            stack_options=[s for s in stack_options if isinstance(s, dict)],
        )
        self.logger.log_info(f"Advisory plan: {len(plan.dependencies)} dependencies ({plan.type})")
        return plan

    # ==================== Uninstall Plans ====================

    def request_uninstall_plan(self, package_names: Iterable[str], system: SystemInfo) -> List[Dict]:
        """
        Ask for uninstall commands

        Returns:
            Raw plan dicts with name, uninstall_commands and warnings

        Raises:
            AdvisoryServiceError: If the service fails or the answer is malformed
        """
        names = ', '.join(package_names)
        user_message = (
            f"INSTALLED PACKAGES: {names}\n\n"
            f"SYSTEM INFO:\n- OS: {system.os}\n- Package Manager: {system.package_manager}"
        )
        text = self.complete(UNINSTALL_SYSTEM_PROMPT, user_message)
        data = parse_json_response(text)

        packages = data.get('packages')
        if not isinstance(packages, list):
            raise AdvisoryServiceError("Uninstall plan is missing 'packages'", raw=text)
        return packages

    # ==================== Error Diagnosis ====================

    def analyze_error(self, command: str, output: str, dependency: str,
                      system: SystemInfo, exit_code: Optional[int] = None) -> Dict:
        """Diagnose a failed install command; falls back to generic advice"""
        user_message = (
            f"FAILED COMMAND: {command}\n"
            f"EXIT CODE: {exit_code if exit_code is not None else 'unknown'}\n"
            f"ERROR OUTPUT:\n{(output or '')[:1500]}\n\n"
            f"DEPENDENCY: {dependency}\n"
            f"OS: {system.os}\n"
            f"PACKAGE MANAGER: {system.package_manager}"
        )
        try:
            data = parse_json_response(self.complete(ERROR_SYSTEM_PROMPT, user_message))
            if data.get('root_cause') and isinstance(data.get('suggested_fixes'), list):
                return data
            self.logger.log_warning("Error diagnosis response had the wrong shape")
        except AdvisoryServiceError as e:
            self.logger.log_warning(f"Error diagnosis unavailable: {e}")

        return fallback_diagnosis(command, system)


def fallback_diagnosis(command: str, system: SystemInfo) -> Dict:
    if system.is_windows:
        first_fix = 'Run envkeeper as Administrator and retry the installation'
    elif system.package_manager == 'apt':
        first_fix = 'Run: sudo apt-get update, then retry the installation'
    else:
        first_fix = f'Refresh the {system.package_manager} package index, then retry the installation'

    return {
        'root_cause': 'Unable to determine the exact cause automatically.',
        'explanation': (
            f'The command "{command}" failed. This could be due to network issues, '
            f'missing repositories or permission problems.'
        ),
        'suggested_fixes': [
            first_fix,
            'Check your internet connection',
            'Run the command manually in a terminal to see the full output',
        ],
    }
