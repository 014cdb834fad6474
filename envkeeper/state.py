"""
Environment state persistence for envkeeper
Owns the JSON snapshot of installed tools, installation history and failures
"""

import copy
import json
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from envkeeper.errors import StateError
from envkeeper.logger import LoggerManager, get_logger
from envkeeper.models import (
    EnvironmentSnapshot, FailedInstallation, HistoryEntry, PackageRecord,
    PENDING_VERSION, SCHEMA_VERSION, HISTORY_ACTIONS, HISTORY_RESULTS,
    UpdateRecord, utc_now,
)


class StateManager:
    """Reads and writes the environment snapshot

    Every mutating call rewrites the whole file before returning. There is
    no locking: with two writers the later write wins.
    """

    def __init__(self, state_path, logger: Optional[LoggerManager] = None):
        self.state_path = Path(state_path)
        self.logger = logger or get_logger()
        self.snapshot: Optional[EnvironmentSnapshot] = None

    # ==================== Load / Save ====================

    def load_state(self) -> Optional[EnvironmentSnapshot]:
        """Load the snapshot from disk

        Returns:
            The snapshot, or None when the file is missing, unreadable,
            corrupt or written by a different schema version
        """
        self.snapshot = None
        if not self.state_path.exists():
            return None

        try:
            with open(self.state_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            snapshot = EnvironmentSnapshot.from_dict(data)
        except (OSError, ValueError) as e:
            # json.JSONDecodeError is a ValueError
            self.logger.log_state_error(f"Ignoring unreadable state file {self.state_path}: {e}")
            return None

        if snapshot.schema_version != SCHEMA_VERSION:
            self.logger.log_state_error(
                f"State file schema {snapshot.schema_version} does not match "
                f"{SCHEMA_VERSION}, a rescan is required"
            )
            return None

        self.snapshot = snapshot
        self.logger.log_debug(f"Loaded state with {len(snapshot.installed_tools)} tools")
        return snapshot

    def save_state(self):
        """Overwrite the state file with the current snapshot

        Raises:
            StateError: If there is no snapshot or the file cannot be written
        """
        snapshot = self._require_snapshot()
        try:
            self.state_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.state_path, 'w', encoding='utf-8') as f:
                json.dump(snapshot.to_dict(), f, indent=2)
        except OSError as e:
            raise StateError(f"Failed to write state file {self.state_path}: {e}") from e

    def _require_snapshot(self) -> EnvironmentSnapshot:
        if self.snapshot is None:
            raise StateError("No environment state loaded. Run a scan first.")
        return self.snapshot

    # ==================== Initialization ====================

    def initialize_state(self, system: Dict[str, str],
                         packages: Iterable[PackageRecord]) -> EnvironmentSnapshot:
        """Build a fresh snapshot from a full scan and persist it"""
        self.snapshot = EnvironmentSnapshot(
            system=dict(system),
            installed_tools=self._key_packages(packages),
        )
        self.save_state()
        self.logger.log_info(f"Initialized state with {len(self.snapshot.installed_tools)} tools")
        return self.snapshot

    def rescan(self, system: Dict[str, str],
               packages: Iterable[PackageRecord]) -> EnvironmentSnapshot:
        """Replace the tracked tools with a new scan, keeping history and failures"""
        if self.snapshot is None:
            return self.initialize_state(system, packages)

        self.snapshot.system = dict(system)
        self.snapshot.installed_tools = self._key_packages(packages)
        self.snapshot.last_scan = utc_now()
        self.save_state()
        self.logger.log_info(f"Rescanned state, now tracking {len(self.snapshot.installed_tools)} tools")
        return self.snapshot

    @staticmethod
    def _key_packages(packages: Iterable[PackageRecord]) -> Dict[str, PackageRecord]:
        # Later duplicates overwrite earlier ones
        return {record.key: record for record in packages}

    # ==================== Mutations ====================

    def log_installation(self, name: str, action: str, result: str, duration: float,
                         error: Optional[str] = None,
                         attempted_command: Optional[str] = None) -> HistoryEntry:
        """Record an install/update/repair/uninstall attempt

        A successful install inserts (or overwrites) the package record with
        a 'pending' version until verification supplies the real one. A
        successful update or repair marks an existing record healthy again.
        Nothing changes in memory when the snapshot cannot be saved.

        Raises:
            ValueError: For an unknown action or result
            StateError: If no snapshot is loaded or it cannot be saved
        """
        if action not in HISTORY_ACTIONS:
            raise ValueError(f"Invalid action '{action}'")
        if result not in HISTORY_RESULTS:
            raise ValueError(f"Invalid result '{result}'")

        snapshot = self._require_snapshot()
        key = name.lower()
        previous = copy.deepcopy(snapshot.installed_tools.get(key))
        history_size = len(snapshot.installation_history)
        failure_size = len(snapshot.failed_installations)

        timestamp = utc_now()
        entry = HistoryEntry(
            package=name,
            action=action,
            result=result,
            timestamp=timestamp,
            duration_seconds=round(float(duration), 3),
            error=error,
        )
        snapshot.installation_history.append(entry)

        if result == 'failed':
            snapshot.failed_installations.append(FailedInstallation(
                package=name,
                error=error or 'Unknown error',
                timestamp=timestamp,
                attempted_command=attempted_command,
            ))
        elif action == 'install':
            snapshot.installed_tools[key] = PackageRecord(
                name=name,
                package_id=name,
                version=PENDING_VERSION,
                source=snapshot.system.get('package_manager', 'unknown'),
                status='installed',
                detected_at=timestamp,
                installed_at=timestamp,
            )
        elif action in ('update', 'repair'):
            record = snapshot.installed_tools.get(key)
            if record is not None:
                record.status = 'installed'
                record.update_available = False
                record.version = record.latest_version or PENDING_VERSION
                record.latest_version = None

        try:
            self.save_state()
        except StateError:
            # Roll back so memory matches the file on disk
            del snapshot.installation_history[history_size:]
            del snapshot.failed_installations[failure_size:]
            if previous is None:
                snapshot.installed_tools.pop(key, None)
            else:
                snapshot.installed_tools[key] = previous
            raise
        return entry

    def update_package_after_verification(self, name: str, version: str,
                                          package_id: Optional[str] = None) -> bool:
        """Correct a record's version once a verify command confirmed it

        Returns:
            False if the package is not tracked
        """
        record = self._require_snapshot().installed_tools.get(name.lower())
        if record is None:
            return False

        record.version = version
        record.status = 'installed'
        if package_id:
            record.package_id = package_id
        self.save_state()
        return True

    def mark_update_available(self, name: str, latest_version: str) -> bool:
        """Flag a tracked package as outdated"""
        record = self._require_snapshot().installed_tools.get(name.lower())
        if record is None:
            return False

        self._mark_outdated(record, latest_version)
        self.save_state()
        return True

    def apply_updates(self, updates: Iterable[UpdateRecord]) -> int:
        """Mark every tracked package that appears in `updates`

        Returns:
            Number of records marked outdated
        """
        tools = self._require_snapshot().installed_tools
        marked = 0
        for update in updates:
            record = tools.get(update.name.lower())
            if record is None:
                continue
            self._mark_outdated(record, update.available_version)
            marked += 1

        if marked:
            self.save_state()
        return marked

    @staticmethod
    def _mark_outdated(record: PackageRecord, latest_version: str):
        record.status = 'outdated'
        record.update_available = True
        record.latest_version = latest_version

    def mark_broken(self, name: str) -> bool:
        """Flag a tracked package whose verification failed"""
        record = self._require_snapshot().installed_tools.get(name.lower())
        if record is None:
            return False

        record.status = 'broken'
        self.save_state()
        return True

    def remove_package(self, name: str) -> bool:
        """Delete a record entirely

        Returns:
            False if the package was not tracked
        """
        tools = self._require_snapshot().installed_tools
        if tools.pop(name.lower(), None) is None:
            return False
        self.save_state()
        return True

    # ==================== Queries ====================

    def get_package_info(self, name: str) -> Optional[PackageRecord]:
        if self.snapshot is None:
            return None
        return self.snapshot.installed_tools.get(name.lower())

    def get_all_packages(self) -> List[PackageRecord]:
        if self.snapshot is None:
            return []
        return sorted(self.snapshot.installed_tools.values(), key=lambda r: r.key)

    def get_history(self, limit: Optional[int] = None) -> List[HistoryEntry]:
        """History in insertion order, optionally only the last `limit` entries"""
        if self.snapshot is None:
            return []
        history = list(self.snapshot.installation_history)
        if limit is not None:
            history = history[-limit:] if limit > 0 else []
        return history

    def get_stats(self) -> Dict:
        """Aggregate counts over the snapshot"""
        if self.snapshot is None:
            return {
                'tracked_tools': 0,
                'history_entries': 0,
                'failures': 0,
                'outdated': 0,
                'last_scan': None,
            }

        snapshot = self.snapshot
        return {
            'tracked_tools': len(snapshot.installed_tools),
            'history_entries': len(snapshot.installation_history),
            'failures': len(snapshot.failed_installations),
            'outdated': sum(1 for r in snapshot.installed_tools.values() if r.update_available),
            'last_scan': snapshot.last_scan,
        }
