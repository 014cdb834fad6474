"""
Tests for StateManager persistence and mutations
"""

import json
from unittest.mock import patch

import pytest

from envkeeper.errors import StateError
from envkeeper.models import PENDING_VERSION, SCHEMA_VERSION, PackageRecord, UpdateRecord
from envkeeper.state import StateManager


SYSTEM = {'os': 'Linux', 'package_manager': 'apt', 'arch': 'x86_64', 'platform': 'linux'}


def packages():
    return [
        PackageRecord(name='Git', package_id='git', version='1:2.34.1', source='apt'),
        PackageRecord(name='curl', package_id='curl', version='7.81.0-1', source='apt'),
    ]


@pytest.fixture
def state_path(tmp_path):
    return tmp_path / 'state' / 'environment_state.json'


@pytest.fixture
def manager(state_path):
    manager = StateManager(state_path)
    manager.initialize_state(SYSTEM, packages())
    return manager


@pytest.mark.unit
class TestLoadSave:

    def test_initialize_persists(self, manager, state_path):
        assert state_path.exists()
        with open(state_path) as f:
            data = json.load(f)
        assert sorted(data['installed_tools']) == ['curl', 'git']
        assert data['system'] == SYSTEM
        assert data['schema_version'] == SCHEMA_VERSION

    def test_round_trip(self, manager, state_path):
        """Save then load keeps keys, versions and history length"""
        manager.log_installation('jq', 'install', 'success', 1.5)
        manager.log_installation('bat', 'install', 'failed', 0.4, error='E: Unable to locate package bat')

        reloaded = StateManager(state_path)
        snapshot = reloaded.load_state()

        assert snapshot is not None
        assert set(snapshot.installed_tools) == set(manager.snapshot.installed_tools)
        for key, record in manager.snapshot.installed_tools.items():
            assert snapshot.installed_tools[key].version == record.version
        assert len(snapshot.installation_history) == len(manager.snapshot.installation_history)
        assert snapshot.to_dict() == manager.snapshot.to_dict()

    def test_missing_file_returns_none(self, tmp_path):
        assert StateManager(tmp_path / 'absent.json').load_state() is None

    def test_corrupt_file_returns_none(self, state_path, manager):
        state_path.write_text('{"installed_tools": {"git": ')
        fresh = StateManager(state_path)
        assert fresh.load_state() is None
        assert fresh.snapshot is None

    def test_invalid_content_returns_none(self, state_path, manager):
        state_path.write_text(json.dumps({'installed_tools': {'git': {'name': 'git', 'status': '??'}}}))
        assert StateManager(state_path).load_state() is None

    def test_schema_mismatch_returns_none(self, state_path, manager):
        with open(state_path) as f:
            data = json.load(f)
        data['schema_version'] = SCHEMA_VERSION + 1
        state_path.write_text(json.dumps(data))

        assert StateManager(state_path).load_state() is None

    def test_save_without_snapshot_raises(self, tmp_path):
        with pytest.raises(StateError):
            StateManager(tmp_path / 'x.json').save_state()

    def test_rescan_keeps_history(self, manager):
        manager.log_installation('jq', 'install', 'success', 1.0)
        manager.rescan(SYSTEM, [PackageRecord('htop', 'htop', '3.0.5', 'apt')])

        assert list(manager.snapshot.installed_tools) == ['htop']
        assert len(manager.get_history()) == 1


@pytest.mark.unit
class TestMutations:

    def test_successful_install_adds_pending_record(self, manager):
        manager.log_installation('JQ', 'install', 'success', 2.0)
        record = manager.get_package_info('jq')

        assert record.name == 'JQ'
        assert record.version == PENDING_VERSION
        assert record.status == 'installed'
        assert record.installed_at is not None

    def test_failed_install_records_failure(self, manager):
        manager.log_installation('bat', 'install', 'failed', 0.5,
                                 error='not found', attempted_command='sudo apt-get install -y bat')

        assert manager.get_package_info('bat') is None
        failure = manager.snapshot.failed_installations[-1]
        assert failure.package == 'bat'
        assert failure.attempted_command == 'sudo apt-get install -y bat'
        assert manager.get_history()[-1].result == 'failed'

    def test_invalid_action_raises(self, manager):
        with pytest.raises(ValueError):
            manager.log_installation('jq', 'download', 'success', 1)

    def test_log_without_snapshot_raises(self, tmp_path):
        with pytest.raises(StateError):
            StateManager(tmp_path / 'x.json').log_installation('jq', 'install', 'success', 1)

    def test_history_is_append_only(self, manager):
        manager.log_installation('a', 'install', 'success', 1)
        first = manager.get_history()[0]
        manager.log_installation('b', 'install', 'failed', 1, error='x')

        history = manager.get_history()
        assert history[0] is first
        assert [h.package for h in history] == ['a', 'b']
        assert [h.package for h in manager.get_history(limit=1)] == ['b']

    def test_update_after_verification(self, manager, state_path):
        manager.log_installation('jq', 'install', 'success', 1)
        assert manager.update_package_after_verification('jq', '1.7.1', package_id='jqlang.jq')

        reloaded = StateManager(state_path).load_state()
        assert reloaded.installed_tools['jq'].version == '1.7.1'
        assert reloaded.installed_tools['jq'].package_id == 'jqlang.jq'
        assert manager.update_package_after_verification('nope', '1.0') is False

    def test_mark_update_available(self, manager):
        assert manager.mark_update_available('GIT', '1:2.44.0')
        record = manager.get_package_info('git')

        assert record.status == 'outdated'
        assert record.update_available is True
        assert record.latest_version == '1:2.44.0'

    def test_apply_updates_ignores_untracked(self, manager):
        marked = manager.apply_updates([
            UpdateRecord(name='curl', available_version='7.81.0-2', source='apt'),
            UpdateRecord(name='unknown', available_version='1.0', source='apt'),
        ])
        assert marked == 1
        assert manager.get_package_info('curl').latest_version == '7.81.0-2'

    def test_successful_update_clears_flag(self, manager):
        manager.mark_update_available('curl', '7.81.0-2')
        manager.log_installation('curl', 'update', 'success', 3)
        record = manager.get_package_info('curl')

        assert record.update_available is False
        assert record.status == 'installed'
        assert record.version == '7.81.0-2'

    @patch('envkeeper.state.json.dump', side_effect=OSError('No space left on device'))
    def test_unsaved_log_leaves_memory_unchanged(self, mock_dump, manager):
        with pytest.raises(StateError):
            manager.log_installation('bat', 'install', 'failed', 0.5, error='not found')
        with pytest.raises(StateError):
            manager.log_installation('jq', 'install', 'success', 1)

        assert manager.get_history() == []
        assert manager.snapshot.failed_installations == []
        assert manager.get_package_info('jq') is None

    def test_unsaved_update_restores_record(self, manager):
        manager.mark_update_available('curl', '7.81.0-2')

        with patch('envkeeper.state.json.dump', side_effect=OSError('read-only file system')):
            with pytest.raises(StateError):
                manager.log_installation('curl', 'update', 'success', 3)

        record = manager.get_package_info('curl')
        assert record.update_available is True
        assert record.version == '7.81.0-1'
        assert manager.get_history() == []

    def test_remove_package(self, manager):
        assert manager.remove_package('Git')
        assert manager.get_package_info('git') is None
        assert manager.remove_package('git') is False

    def test_stats(self, manager):
        manager.mark_update_available('curl', '7.81.0-2')
        manager.log_installation('bat', 'install', 'failed', 1, error='x')
        stats = manager.get_stats()

        assert stats['tracked_tools'] == 2
        assert stats['history_entries'] == 1
        assert stats['failures'] == 1
        assert stats['outdated'] == 1
        assert stats['last_scan'] == manager.snapshot.last_scan

    def test_stats_without_state(self, tmp_path):
        stats = StateManager(tmp_path / 'x.json').get_stats()
        assert stats['tracked_tools'] == 0
        assert stats['last_scan'] is None
