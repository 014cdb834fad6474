"""
Error types raised by envkeeper components

Scan and parse problems never escape the scanner or update detector; they
degrade to empty results. The classes below are what callers may see.
"""

from typing import Optional


class EnvkeeperError(RuntimeError):
    """Base class for all envkeeper errors"""


class ScanError(EnvkeeperError):
    """A list or upgrade command failed or timed out"""


class UnsupportedManagerError(ScanError):
    """No list/upgrade command is known for the package manager"""

    def __init__(self, package_manager: str, operation: str = "scanning"):
        super().__init__(f"{operation.capitalize()} not supported for: {package_manager}")
        self.package_manager = package_manager


class CommandExecutionError(EnvkeeperError):
    """A shell command exited non-zero or could not be started"""

    def __init__(self, message: str, command: str = "",
                 returncode: Optional[int] = None, output: str = ""):
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.output = output


class PrivilegeError(CommandExecutionError):
    """Failure output carried an access-denied or elevation-required signature"""


class PermissionDeniedError(CommandExecutionError):
    """A command in a fallback chain failed with 'Permission denied'"""

    def __init__(self, message: str, command: str = "", returncode: Optional[int] = None,
                 output: str = "", results: Optional[list] = None):
        super().__init__(message, command=command, returncode=returncode, output=output)
        # CommandResults attempted before the chain was aborted
        self.results = results or []


class StateError(EnvkeeperError):
    """The environment snapshot could not be written"""


class AdvisoryServiceError(EnvkeeperError):
    """The advisory service call failed or returned something unusable"""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class IncompatiblePlanError(AdvisoryServiceError):
    """Platform filtering left a dependency without any runnable command"""

    def __init__(self, message: str, dependencies: Optional[list] = None):
        super().__init__(message)
        self.dependencies = dependencies or []
