from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Dict, List, Optional


SCHEMA_VERSION = 1

PACKAGE_STATUSES = ('installed', 'outdated', 'broken')
HISTORY_ACTIONS = ('install', 'update', 'repair', 'uninstall')
HISTORY_RESULTS = ('success', 'failed')
RISK_LEVELS = ('dangerous', 'elevated', 'moderate', 'safe')  # highest first
DECISION_ACTIONS = ('INSTALL', 'SKIP', 'UPDATE', 'REPAIR')
DEPENDENCY_CATEGORIES = (
    'system-package',
    'python-library',
    'runtime',
    'framework',
    'database',
    'tool',
    'other',
)

# Placeholder version recorded on install until verification corrects it
PENDING_VERSION = 'pending'


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string"""
    return datetime.now(timezone.utc).isoformat()


@dataclass
class PackageRecord:
    """An installed package as tracked in the environment snapshot"""
    name: str
    package_id: str
    version: str
    source: str  # package manager name, e.g. 'apt', 'winget'
    status: str = 'installed'
    update_available: bool = False
    latest_version: Optional[str] = None
    detected_at: str = field(default_factory=utc_now)
    installed_at: Optional[str] = None

    @property
    def key(self) -> str:
        return self.name.lower()

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> 'PackageRecord':
        if not isinstance(data, dict) or not data.get('name'):
            raise ValueError(f"Invalid package record: {data!r}")
        status = data.get('status', 'installed')
        if status not in PACKAGE_STATUSES:
            raise ValueError(f"Invalid package status '{status}'")
        return cls(
            name=data['name'],
            package_id=data.get('package_id') or data['name'],
            version=data.get('version', ''),
            source=data.get('source', ''),
            status=status,
            update_available=bool(data.get('update_available', False)),
            latest_version=data.get('latest_version'),
            detected_at=data.get('detected_at') or utc_now(),
            installed_at=data.get('installed_at'),
        )


@dataclass
class HistoryEntry:
    """One install/update/repair/uninstall attempt. Never mutated after creation."""
    package: str
    action: str
    result: str
    timestamp: str
    duration_seconds: float
    error: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict) -> 'HistoryEntry':
        if data.get('action') not in HISTORY_ACTIONS:
            raise ValueError(f"Invalid history action: {data.get('action')!r}")
        if data.get('result') not in HISTORY_RESULTS:
            raise ValueError(f"Invalid history result: {data.get('result')!r}")
        return cls(
            package=data['package'],
            action=data['action'],
            result=data['result'],
            timestamp=data['timestamp'],
            duration_seconds=float(data.get('duration_seconds', 0)),
            error=data.get('error'),
        )


@dataclass
class FailedInstallation:
    """Failure details recorded next to a failed HistoryEntry"""
    package: str
    error: str
    timestamp: str
    attempted_command: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict) -> 'FailedInstallation':
        return cls(
            package=data['package'],
            error=data.get('error', ''),
            timestamp=data['timestamp'],
            attempted_command=data.get('attempted_command'),
        )


@dataclass
class SystemInfo:
    """What SystemDetector found out about the machine"""
    os: str
    package_manager: str
    arch: str
    platform: str
    distro: Optional[str] = None
    cpus: int = 0
    memory_gb: int = 0
    hostname: str = 'unknown'
    uptime_hours: int = 0
    is_elevated: bool = False

    @property
    def is_windows(self) -> bool:
        return self.os == 'Windows'

    @property
    def is_macos(self) -> bool:
        return self.os == 'macOS'

    @property
    def summary(self) -> str:
        distro = f" ({self.distro})" if self.distro else ""
        return f"{self.os}{distro} with {self.package_manager}"

    def descriptor(self) -> Dict[str, str]:
        """The subset persisted in the snapshot"""
        return {
            'os': self.os,
            'package_manager': self.package_manager,
            'arch': self.arch,
            'platform': self.platform,
        }

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['summary'] = self.summary
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'SystemInfo':
        return cls(
            os=data.get('os', 'unknown'),
            package_manager=data.get('package_manager', 'unknown'),
            arch=data.get('arch', 'unknown'),
            platform=data.get('platform', 'unknown'),
            distro=data.get('distro'),
            cpus=int(data.get('cpus', 0)),
            memory_gb=int(data.get('memory_gb', 0)),
            hostname=data.get('hostname', 'unknown'),
            uptime_hours=int(data.get('uptime_hours', 0)),
            is_elevated=bool(data.get('is_elevated', False)),
        )


@dataclass
class EnvironmentSnapshot:
    """Everything StateManager persists"""
    system: Dict[str, str]
    last_scan: str = field(default_factory=utc_now)
    installed_tools: Dict[str, PackageRecord] = field(default_factory=dict)
    installation_history: List[HistoryEntry] = field(default_factory=list)
    failed_installations: List[FailedInstallation] = field(default_factory=list)
    schema_version: int = SCHEMA_VERSION

    def to_dict(self) -> Dict:
        return {
            'schema_version': self.schema_version,
            'last_scan': self.last_scan,
            'system': dict(self.system),
            'installed_tools': {key: record.to_dict()
                                for key, record in self.installed_tools.items()},
            'installation_history': [asdict(entry) for entry in self.installation_history],
            'failed_installations': [asdict(entry) for entry in self.failed_installations],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'EnvironmentSnapshot':
        """Rebuild a snapshot from its JSON form

        Raises:
            ValueError: If required sections are missing or malformed
        """
        if not isinstance(data, dict):
            raise ValueError("Snapshot must be a JSON object")

        tools = data.get('installed_tools')
        history = data.get('installation_history', [])
        failures = data.get('failed_installations', [])
        if not isinstance(tools, dict) or not isinstance(history, list) \
                or not isinstance(failures, list):
            raise ValueError("Snapshot sections have the wrong shape")

        try:
            return cls(
                schema_version=int(data.get('schema_version', SCHEMA_VERSION)),
                last_scan=data.get('last_scan') or utc_now(),
                system=dict(data.get('system') or {}),
                installed_tools={key.lower(): PackageRecord.from_dict(record)
                                 for key, record in tools.items()},
                installation_history=[HistoryEntry.from_dict(e) for e in history],
                failed_installations=[FailedInstallation.from_dict(e) for e in failures],
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"Malformed snapshot entry: {e}") from e


@dataclass
class ClassifiedCommand:
    """A shell command tagged with a risk tier"""
    command: str
    risk: str
    label: str
    description: str


@dataclass
class Decision:
    """Next action for a named package"""
    action: str  # 'INSTALL', 'SKIP', 'UPDATE', 'REPAIR'
    reason: str
    badge: str
    current_version: Optional[str] = None
    suggested_version: Optional[str] = None
    package: Optional[str] = None

    def to_dict(self) -> Dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class Dependency:
    """A dependency as returned by the advisory service, after validation"""
    name: str
    install_commands: List[str] = field(default_factory=list)
    display_name: Optional[str] = None
    description: str = ''
    category: str = 'other'
    verify_command: Optional[str] = None
    expected_pattern: Optional[str] = None
    priority: int = 1
    logo_url: Optional[str] = None

    @property
    def label(self) -> str:
        return self.display_name or self.name

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> 'Dependency':
        """Validate a raw dependency mapping

        Raises:
            ValueError: If a required field is missing or has the wrong type
        """
        if not isinstance(data, dict):
            raise ValueError(f"Dependency must be an object, got {type(data).__name__}")

        name = data.get('name')
        if not isinstance(name, str) or not name.strip():
            raise ValueError("Dependency name cannot be empty")

        commands = data.get('install_commands', [])
        if not isinstance(commands, list) or not all(isinstance(c, str) for c in commands):
            raise ValueError(f"install_commands for '{name}' must be a list of strings")

        category = data.get('category') or 'other'
        if category not in DEPENDENCY_CATEGORIES:
            raise ValueError(
                f"Invalid category '{category}' for '{name}'. "
                f"Must be one of: {', '.join(DEPENDENCY_CATEGORIES)}"
            )

        priority = data.get('priority', 1)
        if isinstance(priority, bool) or not isinstance(priority, int) or priority < 1:
            raise ValueError(f"priority for '{name}' must be a positive integer")

        for optional in ('display_name', 'verify_command', 'expected_pattern', 'logo_url'):
            value = data.get(optional)
            if value is not None and not isinstance(value, str):
                raise ValueError(f"{optional} for '{name}' must be a string")

        return cls(
            name=name.strip(),
            install_commands=[c.strip() for c in commands if c.strip()],
            display_name=data.get('display_name') or None,
            description=data.get('description') or '',
            category=category,
            verify_command=data.get('verify_command') or None,
            expected_pattern=data.get('expected_pattern') or None,
            priority=priority,
            logo_url=data.get('logo_url') or None,
        )


@dataclass
class UpdateRecord:
    """An available upgrade reported by the package manager"""
    name: str
    available_version: str
    source: str
    package_id: Optional[str] = None
    current_version: Optional[str] = None

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class CommandResult:
    """Outcome of one attempted command in a fallback chain"""
    command: str
    success: bool
    output: Optional[str] = None
    error: Optional[str] = None


@dataclass
class CommandOutput:
    """Captured output of a command that exited 0"""
    command: str
    returncode: int
    output: str


@dataclass
class InstallResult:
    """Verdict for one dependency"""
    success: bool
    name: str
    results: List[CommandResult] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def attempted_command(self) -> Optional[str]:
        return self.results[-1].command if self.results else None

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class VerifyResult:
    """Outcome of running a verify command"""
    name: str
    installed: bool
    success: bool
    expected: str
    actual: str
    message: str
    full_output: str = ''
    version: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class UninstallPlan:
    """Ordered removal commands for one package"""
    name: str
    uninstall_commands: List[str]
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return asdict(self)
