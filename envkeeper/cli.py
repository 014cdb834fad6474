#!/usr/bin/env python3
import argparse
import getpass
import json
import sys
from typing import List

from envkeeper import service
from envkeeper.config import load_settings
from envkeeper.errors import AdvisoryServiceError, EnvkeeperError
from envkeeper.events import (
    CommandProgress, EventChannel, OutputEvent, ScanProgress, VerifyProgress,
)
from envkeeper.models import Dependency


def parse_args(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description='Environment state tracking and installation orchestration',
        prog='envkeeper'
    )
    parser.add_argument('--state-dir', help='Directory holding the environment state')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    subparsers.add_parser('detect', help='Show detected system information')
    subparsers.add_parser('scan', help='Scan installed packages and store them')

    packages_parser = subparsers.add_parser('packages', help='List tracked packages')
    packages_parser.add_argument('--outdated', action='store_true',
                                 help='Only packages with an update available')

    subparsers.add_parser('stats', help='Show state statistics')

    decide_parser = subparsers.add_parser('decide', help='Decide the action for a package')
    decide_parser.add_argument('name', help='Package name')

    summary_parser = subparsers.add_parser('summary', help='Summarize decisions for packages')
    summary_parser.add_argument('names', nargs='+', help='Package names')

    subparsers.add_parser('updates', help='Check for available updates')

    classify_parser = subparsers.add_parser('classify', help='Classify commands by risk')
    classify_parser.add_argument('commands', nargs='*', help='Shell commands')
    classify_parser.add_argument('--file', help='Dependency plan JSON file')

    request_parser = subparsers.add_parser('request', help='Ask the advisory service for a plan')
    request_parser.add_argument('text', help='What to install, in plain words')
    request_parser.add_argument('--save', help='Write the dependency plan to this file')

    install_parser = subparsers.add_parser('install', help='Install dependencies')
    _add_dependency_arguments(install_parser)
    install_parser.add_argument('--sudo', action='store_true',
                                help='Prompt for a sudo password')

    verify_parser = subparsers.add_parser('verify', help='Verify installed dependencies')
    _add_dependency_arguments(verify_parser)

    plan_parser = subparsers.add_parser('uninstall-plan', help='Show uninstall commands')
    plan_parser.add_argument('names', nargs='+', help='Package names')

    uninstall_parser = subparsers.add_parser('uninstall', help='Uninstall a package')
    uninstall_parser.add_argument('name', help='Package name')
    uninstall_parser.add_argument('--package-id', help='Package ID used by the package manager')
    uninstall_parser.add_argument('--verify', dest='verify_command',
                                  help='Command that only succeeds while installed')
    uninstall_parser.add_argument('--sudo', action='store_true',
                                  help='Prompt for a sudo password')

    export_parser = subparsers.add_parser('export', help='Export the environment context')
    export_parser.add_argument('--format', dest='fmt', default='json',
                               choices=['json', 'markdown', 'shell'],
                               help='Export format')

    logs_parser = subparsers.add_parser('logs', help='Show or export the log file')
    logs_parser.add_argument('--lines', type=int, default=50, help='Number of lines to show')
    logs_parser.add_argument('--export', dest='export_path', help='Write recent logs to this file')
    logs_parser.add_argument('--days', type=int, default=7, help='Days of logs to export')

    return parser.parse_args(argv)


def _add_dependency_arguments(parser):
    parser.add_argument('name', nargs='?', help='Dependency name')
    parser.add_argument('--file', help='Dependency plan JSON file')
    parser.add_argument('--command', dest='commands', action='append', default=[],
                        help='Install command; repeat for alternatives')
    parser.add_argument('--verify', dest='verify_command', help='Verify command')
    parser.add_argument('--pattern', dest='expected_pattern', help='Expected verify output pattern')


def load_dependencies(path: str) -> List[Dependency]:
    """
    Read a dependency plan: a list of dependencies or {"dependencies": [...]}

    Raises:
        ValueError: If the file content is not a valid plan
    """
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get('dependencies')
    if not isinstance(data, list):
        raise ValueError(f"{path} does not contain a dependency list")
    return [Dependency.from_dict(d) for d in data]


def dependencies_from_args(args) -> List[Dependency]:
    if args.file:
        return load_dependencies(args.file)
    if not args.name:
        raise ValueError("Give a dependency name or --file")
    return [Dependency.from_dict({
        'name': args.name,
        'install_commands': args.commands,
        'verify_command': args.verify_command,
        'expected_pattern': args.expected_pattern,
    })]


def print_event(event):
    """Render progress events on the terminal"""
    if isinstance(event, OutputEvent):
        stream = sys.stderr if event.kind == 'error' else sys.stdout
        print(event.text, file=stream)
    elif isinstance(event, CommandProgress):
        print(f"[{event.current}/{event.total}] {event.command}")
    elif isinstance(event, VerifyProgress):
        print(f"[{event.current}/{event.total}] {event.name}: {event.status}")
    elif isinstance(event, ScanProgress):
        if event.stage == 'finished':
            print(f"{event.manager}: {event.count} found")
        elif event.stage == 'failed':
            print(f"{event.manager}: {event.message}", file=sys.stderr)


def open_channel(name: str) -> EventChannel:
    channel = EventChannel(name)
    channel.subscribe(print_event)
    return channel


def ask_password(args):
    if getattr(args, 'sudo', False):
        return getpass.getpass('sudo password: ')
    return None


def cmd_detect(args, ctx):
    """Execute detect command"""
    info = service.detect_system(ctx)
    for key, value in info.to_dict().items():
        print(f"{key:>16}: {value}")
    return 0


def cmd_scan(args, ctx):
    """Execute scan command"""
    channel = open_channel('scan')
    try:
        result = service.scan_environment(ctx, channel)
    finally:
        channel.close()
    print(f"Tracking {result['count']} packages")
    return 0


def cmd_packages(args, ctx):
    """Execute packages command"""
    packages = service.get_all_packages(ctx)
    if args.outdated:
        packages = [p for p in packages if p.update_available]

    if not packages:
        print("No packages tracked")
        return 0

    for pkg in packages:
        latest = f" -> {pkg.latest_version}" if pkg.update_available else ""
        print(f"  {pkg.name} {pkg.version}{latest} [{pkg.source}, {pkg.status}]")
    return 0


def cmd_stats(args, ctx):
    """Execute stats command"""
    for key, value in service.get_stats(ctx).items():
        print(f"{key}: {value}")
    return 0


def cmd_decide(args, ctx):
    """Execute decide command"""
    decision = service.check_decision(ctx, args.name)
    print(f"{decision.action} [{decision.badge}] {decision.reason}")
    return 0


def cmd_summary(args, ctx):
    """Execute summary command"""
    summary = service.get_decision_summary(ctx, args.names)
    print(summary['message'])
    return 0


def cmd_updates(args, ctx):
    """Execute updates command"""
    channel = open_channel('updates')
    try:
        updates = service.check_updates(ctx, channel)
    finally:
        channel.close()

    if not updates:
        print("Everything is up to date")
        return 0

    for update in updates:
        current = update.current_version or '?'
        print(f"  {update.name}: {current} -> {update.available_version}")
    return 0


def cmd_classify(args, ctx):
    """Execute classify command"""
    if args.file:
        dependencies = load_dependencies(args.file)
    elif args.commands:
        dependencies = [Dependency(name='commands', install_commands=args.commands)]
    else:
        print("Error: Give commands or --file")
        return 1

    report = service.classify_commands(ctx, dependencies)
    for dependency in report['dependencies']:
        print(f"{dependency['name']} (highest risk: {dependency['highest_risk']})")
        for command in dependency['commands']:
            print(f"  [{command.risk}] {command.command}")
            print(f"      {command.description}")

    summary = report['summary']
    print(f"\n{summary['total']} commands: {summary['dangerous']} dangerous, "
          f"{summary['elevated']} elevated, {summary['moderate']} moderate, {summary['safe']} safe")
    return 0


def cmd_request(args, ctx):
    """Execute request command"""
    plan = service.analyze_request(ctx, args.text)
    print(plan.analysis)
    for option in plan.stack_options:
        print(f"  option: {option.get('name')} - {option.get('description', '')}")
    for dependency in plan.dependencies:
        decision = service.check_decision(ctx, dependency.name)
        print(f"  {dependency.label} [{decision.badge}]")
        for command in dependency.install_commands:
            print(f"    {command}")

    if args.save:
        with open(args.save, 'w', encoding='utf-8') as f:
            json.dump(plan.to_dict(), f, indent=2)
        print(f"Plan saved to {args.save}")
    return 0


def cmd_install(args, ctx):
    """Execute install command"""
    dependencies = dependencies_from_args(args)
    password = ask_password(args)

    failures = 0
    for dependency in sorted(dependencies, key=lambda d: d.priority):
        channel = open_channel(f"install:{dependency.name}")
        try:
            result = service.install_dependency(ctx, dependency, password, channel)
        finally:
            channel.close()

        if not result.success:
            failures += 1
            print(f"Installation of {dependency.name} failed: {result.error}", file=sys.stderr)
            diagnosis = service.diagnose_failure(ctx, dependency, result)
            if diagnosis:
                print(f"  Cause: {diagnosis['root_cause']}", file=sys.stderr)
                for fix in diagnosis.get('suggested_fixes', []):
                    print(f"  - {fix}", file=sys.stderr)

    print(f"{len(dependencies) - failures}/{len(dependencies)} installed")
    return 1 if failures else 0


def cmd_verify(args, ctx):
    """Execute verify command"""
    dependencies = dependencies_from_args(args)
    failed = 0
    for dependency in dependencies:
        result = service.verify_installation(ctx, dependency)
        status = 'OK' if result.success else 'FAILED'
        print(f"{status} {result.name}: {result.message} ({result.actual})")
        if not result.success:
            failed += 1
    return 1 if failed else 0


def cmd_uninstall_plan(args, ctx):
    """Execute uninstall-plan command"""
    plans = service.generate_uninstall_plan(ctx, [{'name': n} for n in args.names])
    for plan in plans:
        print(plan.name)
        for command in plan.uninstall_commands:
            print(f"  $ {command}")
        for warning in plan.warnings:
            print(f"  ! {warning}")
    return 0


def cmd_uninstall(args, ctx):
    """Execute uninstall command"""
    package = {
        'name': args.name,
        'package_id': args.package_id,
        'verify_command': args.verify_command,
    }
    password = ask_password(args)
    channel = open_channel(f"uninstall:{args.name}")
    try:
        outcome = service.execute_uninstall(ctx, package, password, channel)
    finally:
        channel.close()

    if outcome['success']:
        print(outcome['message'])
        return 0
    print(f"Uninstall failed: {outcome['error']}", file=sys.stderr)
    return 1


def cmd_export(args, ctx):
    """Execute export command"""
    result = service.export_context(ctx, args.fmt)
    print(f"Exported to {result['file_path']}")
    return 0


def cmd_logs(args, ctx):
    """Execute logs command"""
    if args.export_path:
        written = ctx.logger.export_logs(args.export_path, args.days)
        print(f"Exported {written} lines to {args.export_path}")
        return 0

    lines = ctx.logger.tail(args.lines)
    if not lines:
        print(f"No log entries in {ctx.logger.get_log_file_path()}")
        return 0
    print(''.join(lines), end='')
    return 0


COMMANDS = {
    'detect': cmd_detect,
    'scan': cmd_scan,
    'packages': cmd_packages,
    'stats': cmd_stats,
    'decide': cmd_decide,
    'summary': cmd_summary,
    'updates': cmd_updates,
    'classify': cmd_classify,
    'request': cmd_request,
    'install': cmd_install,
    'verify': cmd_verify,
    'uninstall-plan': cmd_uninstall_plan,
    'uninstall': cmd_uninstall,
    'export': cmd_export,
    'logs': cmd_logs,
}


def main(argv=None):
    """Main entry point"""
    args = parse_args(argv)

    if not args.command:
        print("Error: No command specified. Use --help for usage.")
        return 1

    settings = load_settings(state_dir=args.state_dir)
    ctx = service.create_context(settings)

    try:
        return COMMANDS[args.command](args, ctx)
    except AdvisoryServiceError as e:
        print(f"Advisory service error: {e}", file=sys.stderr)
        if e.raw:
            ctx.logger.log_debug(f"Raw advisory response: {e.raw}")
        return 1
    except (EnvkeeperError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
