"""
Command execution for envkeeper
Runs install commands with privilege handling, fallback and progress events
"""

import re
import subprocess
import sys
import time
from typing import List, Optional, Tuple

from envkeeper.errors import CommandExecutionError, PermissionDeniedError, PrivilegeError
from envkeeper.events import CommandProgress, EventChannel, OutputEvent, publish
from envkeeper.logger import LoggerManager, get_logger
from envkeeper.models import CommandOutput, CommandResult, Dependency, InstallResult


SUDO_PATTERN = re.compile(r'\bsudo\s+')

# Failure output on Windows that means the shell was not elevated
WINDOWS_ACCESS_DENIED = [
    re.compile(p, re.IGNORECASE) for p in (
        r'access is denied',
        r'access denied',
        r'requires elevation',
        r'run as administrator',
        r'administrator privileges',
        r'not running from an elevated',
        r'0x80070005',
    )
]

ADMIN_REMEDIATION = (
    "Administrator privileges are required. "
    "Restart envkeeper as Administrator (right-click, 'Run as administrator') and retry."
)

PERMISSION_DENIED = 'Permission denied'


class Installer:
    """Runs shell commands one at a time

    Only one child process is tracked, so cancel() always targets the
    command currently running.
    """

    def __init__(self, logger: Optional[LoggerManager] = None, platform: Optional[str] = None):
        self.logger = logger or get_logger()
        self.platform = platform or sys.platform
        self.current_process: Optional[subprocess.Popen] = None

    @property
    def is_windows(self) -> bool:
        return self.platform in ('win32', 'cygwin')

    def prepare_command(self, command: str,
                        sudo_password: Optional[str] = None) -> Tuple[str, bool]:
        """Apply privilege handling to a command

        Windows has no sudo, so the prefix is removed. Elsewhere, when a
        password is supplied, sudo is told to read it from stdin silently.

        Returns:
            (final command, whether the password must be written to stdin)
        """
        if not SUDO_PATTERN.search(command):
            return command, False

        if self.is_windows:
            return SUDO_PATTERN.sub('', command).strip(), False

        if sudo_password:
            return SUDO_PATTERN.sub("sudo -S -p '' ", command), True

        return command, False

    def execute_command(self, command: str, channel: Optional[EventChannel] = None,
                        sudo_password: Optional[str] = None) -> CommandOutput:
        """
        Run one shell command, streaming its output

        stdout and stderr are merged and each non-blank line is published as
        an OutputEvent as soon as it arrives.

        Returns:
            CommandOutput for exit code 0

        Raises:
            PrivilegeError: Windows failure output shows missing elevation
            CommandExecutionError: The command could not start or exited non-zero
        """
        if self.is_windows and SUDO_PATTERN.search(command):
            publish(channel, OutputEvent('warning', "'sudo' is not available on Windows, running without it"))
            self.logger.log_warning(f"Stripping sudo from Windows command: {command}")

        final_command, needs_password = self.prepare_command(command, sudo_password)
        publish(channel, OutputEvent('info', f"Executing: {command}"))
        self.logger.log_command(command)

        try:
            process = subprocess.Popen(final_command,
                                       shell=True,
                                       stdin=subprocess.PIPE if needs_password else subprocess.DEVNULL,
                                       stdout=subprocess.PIPE,
                                       stderr=subprocess.STDOUT,
                                       text=True,
                                       encoding='utf-8',
                                       errors='replace',
                                       bufsize=1)
        except OSError as e:
            publish(channel, OutputEvent('error', f"Command error: {e}"))
            raise CommandExecutionError(f"Failed to start command: {e}", command=command) from e

        self.current_process = process
        lines = []
        try:
            if needs_password:
                try:
                    process.stdin.write(sudo_password + '\n')
                    process.stdin.close()
                except (BrokenPipeError, OSError):
                    # sudo may not prompt when credentials are cached
                    pass

            for line in process.stdout:
                line = line.rstrip('\r\n')
                lines.append(line)
                if line.strip():
                    publish(channel, OutputEvent('normal', line))

            returncode = process.wait()
        finally:
            process.stdout.close()
            self.current_process = None

        output = '\n'.join(lines)
        self.logger.log_command_finished(command, returncode)
        publish(channel, OutputEvent('success' if returncode == 0 else 'error',
                                     f"Command finished with exit code: {returncode}"))

        if returncode == 0:
            return CommandOutput(command=command, returncode=returncode, output=output)

        if self.is_windows and any(p.search(output) for p in WINDOWS_ACCESS_DENIED):
            raise PrivilegeError(ADMIN_REMEDIATION, command=command,
                                 returncode=returncode, output=output)

        raise CommandExecutionError(
            f"Command failed with exit code {returncode}\n{output.strip()}",
            command=command,
            returncode=returncode,
            output=output,
        )

    def execute_commands(self, commands: List[str], channel: Optional[EventChannel] = None,
                         sudo_password: Optional[str] = None) -> List[CommandResult]:
        """
        Try alternative commands in order until one succeeds

        The list is a fallback chain, not a pipeline: after the first
        success no further command runs.

        Returns:
            One CommandResult per attempted command

        Raises:
            PermissionDeniedError: A command failed with 'Permission denied'
        """
        results = []
        total = len(commands)

        for index, command in enumerate(commands, start=1):
            publish(channel, CommandProgress(current=index, total=total, command=command))
            try:
                output = self.execute_command(command, channel, sudo_password)
            except CommandExecutionError as e:
                results.append(CommandResult(command=command, success=False, error=str(e)))
                if PERMISSION_DENIED in str(e) or PERMISSION_DENIED in e.output:
                    raise PermissionDeniedError(
                        'Permission denied. Please run with sudo or as root.',
                        command=command,
                        returncode=e.returncode,
                        output=e.output,
                        results=results,
                    ) from e
                continue

            results.append(CommandResult(command=command, success=True, output=output.output))
            break

        return results

    def install_dependency(self, dependency: Dependency, channel: Optional[EventChannel] = None,
                           sudo_password: Optional[str] = None) -> InstallResult:
        """
        Run a dependency's install commands

        The verdict is successful only when every attempted command
        succeeded. Errors are reported in the result, never raised.
        """
        name = dependency.name
        publish(channel, OutputEvent('info', f"Starting installation of {name}..."))

        if not dependency.install_commands:
            error = f"No install commands for {name}"
            publish(channel, OutputEvent('error', error))
            return InstallResult(success=False, name=name, error=error)

        start = time.monotonic()
        try:
            results = self.execute_commands(dependency.install_commands, channel, sudo_password)
        except PermissionDeniedError as e:
            publish(channel, OutputEvent('error', f"Error installing {name}: {e}"))
            self.logger.log_install_failure(name, str(e))
            return InstallResult(success=False, name=name, results=e.results, error=str(e))

        success = all(r.success for r in results)
        duration = time.monotonic() - start
        if success:
            publish(channel, OutputEvent('success', f"{name} installed successfully"))
            self.logger.log_install_success(name, duration)
            return InstallResult(success=True, name=name, results=results)

        error = results[-1].error if results else 'No command was attempted'
        publish(channel, OutputEvent('error', f"{name} installation failed"))
        self.logger.log_install_failure(name, error)
        return InstallResult(success=False, name=name, results=results, error=error)

    def cancel(self) -> bool:
        """Kill the running command, if any"""
        process = self.current_process
        if process is None or process.poll() is not None:
            return False

        process.kill()
        self.logger.log_warning("Cancelled running command")
        return True

    def command_exists(self, name: str) -> bool:
        lookup = 'where' if self.is_windows else 'which'
        try:
            result = subprocess.run([lookup, name],
                                    capture_output=True,
                                    text=True,
                                    timeout=5)
            return result.returncode == 0
        except (OSError, subprocess.SubprocessError):
            return False

    def is_installed(self, name: str, verify_command: Optional[str] = None) -> Tuple[bool, Optional[str]]:
        """
        Check whether something is installed

        Args:
            name: Command name, used with which/where when no verify command is given
            verify_command: Shell command whose success means installed

        Returns:
            (installed, trimmed verify output or None)
        """
        if not verify_command:
            return self.command_exists(name), None

        try:
            result = subprocess.run(verify_command,
                                    shell=True,
                                    capture_output=True,
                                    text=True,
                                    timeout=30)
        except (OSError, subprocess.SubprocessError):
            return False, None

        if result.returncode != 0:
            return False, None
        return True, (result.stdout or result.stderr).strip()
