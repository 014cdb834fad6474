import subprocess
from unittest.mock import Mock, patch

import pytest

from envkeeper.errors import UnsupportedManagerError
from envkeeper.events import EventChannel
from envkeeper.models import SystemInfo, UpdateRecord
from envkeeper.update_detector import UpdateDetector


APT_UPGRADABLE = """Listing... Done
git/noble-updates 1:2.43.0-1ubuntu7.1 amd64 [upgradable from: 1:2.43.0-1ubuntu7]
curl/noble-security 8.5.0-2ubuntu10.4 amd64 [upgradable from: 8.5.0-2ubuntu10.1]
"""

DNF_CHECK_UPDATE = """Last metadata expiration check: 0:12:01 ago on Mon 15 Jan 2024.

git.x86_64                 2.43.1-1.fc39        updates
vim-minimal.x86_64         2:9.1.016-1.fc39     updates
"""


def system(manager, os_name='Linux', platform='linux'):
    return SystemInfo(os=os_name, package_manager=manager, arch='x86_64', platform=platform)


@pytest.mark.unit
class TestUpdateDetector:

    @patch('envkeeper.scanner.subprocess.run')
    def test_apt_updates(self, mock_run):
        mock_run.return_value = Mock(returncode=0, stdout=APT_UPGRADABLE, stderr='')
        updates = UpdateDetector(system('apt')).check_for_updates()

        assert mock_run.call_args[0][0] == ['apt', 'list', '--upgradable']
        assert updates[0] == UpdateRecord(name='git', available_version='1:2.43.0-1ubuntu7.1',
                                          source='apt', package_id='git',
                                          current_version='1:2.43.0-1ubuntu7')
        assert [u.name for u in updates] == ['git', 'curl']

    @patch('envkeeper.scanner.subprocess.run')
    def test_dnf_exit_100_means_updates(self, mock_run):
        mock_run.return_value = Mock(returncode=100, stdout=DNF_CHECK_UPDATE, stderr='')
        updates = UpdateDetector(system('dnf')).check_for_updates()

        assert [(u.name, u.available_version) for u in updates] == [
            ('git', '2.43.1-1.fc39'),
            ('vim-minimal', '2:9.1.016-1.fc39'),
        ]

    @patch('envkeeper.scanner.subprocess.run')
    def test_pacman_exit_1_means_none(self, mock_run):
        mock_run.return_value = Mock(returncode=1, stdout='', stderr='')
        assert UpdateDetector(system('pacman')).check_for_updates() == []

    @patch('envkeeper.scanner.subprocess.run')
    def test_failure_yields_empty_list(self, mock_run):
        mock_run.return_value = Mock(returncode=1, stdout='', stderr='E: could not lock')
        channel = EventChannel('updates')
        received = []
        channel.subscribe(received.append)

        assert UpdateDetector(system('apt')).check_for_updates(channel) == []
        assert [e.stage for e in received] == ['started', 'failed']

    @patch('envkeeper.scanner.subprocess.run', side_effect=subprocess.TimeoutExpired('apt', 45))
    def test_timeout_yields_empty_list(self, mock_run):
        assert UpdateDetector(system('apt')).check_for_updates() == []

    @pytest.mark.parametrize('manager', ['snap', 'scoop', 'zypper', 'unknown'])
    def test_unsupported_managers(self, manager):
        detector = UpdateDetector(system(manager))
        with pytest.raises(UnsupportedManagerError, match='Update checking not supported'):
            detector.get_update_check_command()
        assert detector.check_for_updates() == []
