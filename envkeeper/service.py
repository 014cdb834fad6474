"""
Boundary operations for envkeeper

create_context() builds every component once; each operation takes the
context explicitly. A presentation layer (the CLI here) calls only these
functions.
"""

import time
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from envkeeper.advisory import AdvisoryClient, AdvisoryPlan
from envkeeper.command_classifier import CommandClassifier
from envkeeper.config import Settings, load_settings
from envkeeper.decision_engine import DecisionEngine, HISTORY_ACTION
from envkeeper.errors import CommandExecutionError, StateError
from envkeeper.events import EventChannel, OutputEvent, publish
from envkeeper.exporter import ContextExporter
from envkeeper.installer import Installer
from envkeeper.logger import LoggerManager
from envkeeper.models import (
    Decision, Dependency, EnvironmentSnapshot, InstallResult, PackageRecord,
    SystemInfo, UninstallPlan, UpdateRecord, VerifyResult,
)
from envkeeper.scanner import EnvironmentScanner
from envkeeper.state import StateManager
from envkeeper.system_detector import SystemDetector
from envkeeper.uninstaller import UninstallPlanner
from envkeeper.update_detector import UpdateDetector
from envkeeper.verifier import Verifier


@dataclass
class EnvironmentContext:
    """Everything an operation needs, built once per process"""
    settings: Settings
    logger: LoggerManager
    detector: SystemDetector
    system_info: SystemInfo
    classifier: CommandClassifier
    state: StateManager
    decisions: DecisionEngine
    scanner: EnvironmentScanner
    updates: UpdateDetector
    installer: Installer
    verifier: Verifier
    advisory: AdvisoryClient
    uninstaller: UninstallPlanner
    exporter: ContextExporter


def create_context(settings: Optional[Settings] = None,
                   logger: Optional[LoggerManager] = None,
                   system_info: Optional[SystemInfo] = None) -> EnvironmentContext:
    """
    Build the component graph

    Args:
        settings: Runtime settings (default: load_settings())
        logger: Logger (default: one writing to settings.log_dir)
        system_info: Pre-detected system, skips detection when given
    """
    settings = settings or load_settings()
    logger = logger or LoggerManager(log_dir=str(settings.log_dir))

    detector = SystemDetector(detect_timeout=settings.detect_timeout)
    if system_info is None:
        system_info = detector.get_system_info()
        logger.log_info(f"Detected {system_info.summary}")

    state = StateManager(settings.state_path, logger=logger)
    installer = Installer(logger=logger, platform=system_info.platform)
    advisory = AdvisoryClient(settings.advisory_base_url,
                              settings.advisory_model,
                              api_key=settings.advisory_api_key,
                              timeout=settings.advisory_timeout,
                              logger=logger)

    return EnvironmentContext(
        settings=settings,
        logger=logger,
        detector=detector,
        system_info=system_info,
        classifier=CommandClassifier(),
        state=state,
        decisions=DecisionEngine(state),
        scanner=EnvironmentScanner(system_info, logger=logger, timeout=settings.scan_timeout),
        updates=UpdateDetector(system_info, logger=logger, timeout=settings.update_timeout),
        installer=installer,
        verifier=Verifier(logger=logger, timeout=settings.verify_timeout,
                          platform=system_info.platform),
        advisory=advisory,
        uninstaller=UninstallPlanner(advisory, installer, logger=logger),
        exporter=ContextExporter(settings.export_dir, logger=logger),
    )


def _loaded_state(ctx: EnvironmentContext) -> Optional[EnvironmentSnapshot]:
    if ctx.state.snapshot is None:
        ctx.state.load_state()
    return ctx.state.snapshot


# ==================== System & Classification ====================

def detect_system(ctx: EnvironmentContext) -> SystemInfo:
    return ctx.detector.get_system_info()


def classify_commands(ctx: EnvironmentContext, dependencies: Iterable[Dependency]) -> Dict:
    return ctx.classifier.classify_all(dependencies)


# ==================== Scanning & State ====================

def scan_environment(ctx: EnvironmentContext, channel: Optional[EventChannel] = None) -> Dict:
    """Scan installed packages and store them, keeping history"""
    packages = ctx.scanner.scan_installed_packages(channel)
    _loaded_state(ctx)
    ctx.state.rescan(ctx.system_info.descriptor(), packages)
    return {'packages': packages, 'count': len(packages)}


def ensure_state(ctx: EnvironmentContext, channel: Optional[EventChannel] = None) -> EnvironmentSnapshot:
    """Load the snapshot, scanning and initializing when none is usable"""
    snapshot = _loaded_state(ctx)
    if snapshot is not None:
        return snapshot

    ctx.logger.log_info("No usable environment state, running a full scan")
    packages = ctx.scanner.scan_installed_packages(channel)
    return ctx.state.initialize_state(ctx.system_info.descriptor(), packages)


def get_all_packages(ctx: EnvironmentContext) -> List[PackageRecord]:
    _loaded_state(ctx)
    return ctx.state.get_all_packages()


def get_stats(ctx: EnvironmentContext) -> Dict:
    _loaded_state(ctx)
    return ctx.state.get_stats()


# ==================== Decisions & Updates ====================

def check_decision(ctx: EnvironmentContext, name: str) -> Decision:
    _loaded_state(ctx)
    return ctx.decisions.evaluate_package(name)


def get_decision_summary(ctx: EnvironmentContext, names: Iterable[str]) -> Dict:
    _loaded_state(ctx)
    return ctx.decisions.get_summary(names)


def check_updates(ctx: EnvironmentContext, channel: Optional[EventChannel] = None) -> List[UpdateRecord]:
    """Available updates; tracked packages among them are marked outdated"""
    updates = ctx.updates.check_for_updates(channel)
    if updates and _loaded_state(ctx) is not None:
        marked = ctx.state.apply_updates(updates)
        ctx.logger.log_info(f"Marked {marked} tracked packages as outdated")
    return updates


# ==================== Installation ====================

def analyze_request(ctx: EnvironmentContext, request_text: str) -> AdvisoryPlan:
    return ctx.advisory.analyze_request(request_text, ctx.system_info)


def install_dependency(ctx: EnvironmentContext, dependency: Dependency,
                       sudo_password: Optional[str] = None,
                       channel: Optional[EventChannel] = None) -> InstallResult:
    """
    Screen, run, record and verify one dependency

    Dependencies with a dangerous command are refused unless
    allow_dangerous_commands is set. The history action follows the
    decision for the package (install, update or repair).
    """
    ensure_state(ctx)
    name = dependency.name

    classified = ctx.classifier.classify_commands(dependency.install_commands)
    if ctx.classifier.highest_risk(classified) == 'dangerous' \
            and not ctx.settings.allow_dangerous_commands:
        dangerous = [c.command for c in classified if c.risk == 'dangerous']
        error = f"Refusing to run dangerous command(s): {'; '.join(dangerous)}"
        publish(channel, OutputEvent('error', error))
        ctx.logger.log_install_failure(name, error)
        ctx.state.log_installation(name, 'install', 'failed', 0, error=error,
                                   attempted_command=dangerous[0])
        return InstallResult(success=False, name=name, error=error)

    decision = ctx.decisions.evaluate_package(name)
    action = HISTORY_ACTION[decision.action]
    ctx.logger.log_install_attempt(name, action)

    start = time.monotonic()
    result = ctx.installer.install_dependency(dependency, channel, sudo_password)
    duration = time.monotonic() - start

    if not result.success:
        ctx.state.log_installation(name, action, 'failed', duration,
                                   error=result.error,
                                   attempted_command=result.attempted_command)
        return result

    ctx.state.log_installation(name, action, 'success', duration)

    verification = ctx.verifier.verify_installation(dependency)
    if not verification.installed:
        ctx.state.mark_broken(name)
    elif verification.version:
        ctx.state.update_package_after_verification(name, verification.version)
    return result


def diagnose_failure(ctx: EnvironmentContext, dependency: Dependency,
                     result: InstallResult) -> Optional[Dict]:
    """Root cause and suggested fixes for a failed install; None when nothing ran"""
    if result.success or not result.attempted_command:
        return None
    last = result.results[-1]
    output = last.error or last.output or result.error or ''
    return ctx.advisory.analyze_error(result.attempted_command, output,
                                      dependency.name, ctx.system_info)


def verify_installation(ctx: EnvironmentContext, dependency: Dependency) -> VerifyResult:
    """Verify and correct the tracked version when the package is tracked"""
    result = ctx.verifier.verify_installation(dependency)
    if result.installed and result.version and _loaded_state(ctx) is not None \
            and ctx.state.get_package_info(dependency.name) is not None:
        ctx.state.update_package_after_verification(dependency.name, result.version)
    return result


# ==================== Uninstallation ====================

def generate_uninstall_plan(ctx: EnvironmentContext, packages: Iterable[Dict],
                            system_info: Optional[SystemInfo] = None) -> List[UninstallPlan]:
    return ctx.uninstaller.generate_uninstall_plan(packages, system_info or ctx.system_info)


def execute_uninstall(ctx: EnvironmentContext, package: Dict,
                      sudo_password: Optional[str] = None,
                      channel: Optional[EventChannel] = None) -> Dict:
    """
    Plan, run and confirm the removal of one package

    Args:
        package: Dict with 'name' and optionally 'package_id' and 'verify_command'

    Returns:
        {'success': True, 'message': ...} or {'success': False, 'error': ...}.
        On failure the package record is left untouched.
    """
    ensure_state(ctx)
    name = package['name']
    ctx.logger.log_uninstall_attempt(name)
    start = time.monotonic()

    def failed(error: str, command: Optional[str] = None) -> Dict:
        ctx.logger.log_uninstall_failure(name, error)
        ctx.state.log_installation(name, 'uninstall', 'failed', time.monotonic() - start,
                                   error=error, attempted_command=command)
        return {'success': False, 'error': error}

    plans = generate_uninstall_plan(ctx, [package])
    if not plans:
        return failed("No uninstall plan available")
    plan = next((p for p in plans if p.name.lower() == name.lower()), plans[0])
    for warning in plan.warnings:
        publish(channel, OutputEvent('warning', warning))

    try:
        ctx.uninstaller.execute_plan(plan, channel, sudo_password)
    except CommandExecutionError as e:
        return failed(str(e), e.command)

    verification = ctx.verifier.verify_installation(Dependency(
        name=name,
        verify_command=package.get('verify_command'),
    ))
    if verification.installed:
        return failed(f"{name} is still present after uninstall")

    ctx.state.remove_package(name)
    ctx.state.log_installation(name, 'uninstall', 'success', time.monotonic() - start)
    ctx.logger.log_uninstall_success(name)
    return {'success': True, 'message': f"{name} uninstalled successfully"}


# ==================== Export ====================

def export_context(ctx: EnvironmentContext, fmt: str = 'json') -> Dict:
    """
    Raises:
        ValueError: For an unknown format
        StateError: If there is no environment state to export
    """
    snapshot = _loaded_state(ctx)
    if snapshot is None:
        raise StateError("No environment state to export. Run a scan first.")
    path = ctx.exporter.export(snapshot, ctx.state.get_stats(), fmt)
    return {'file_path': path}
