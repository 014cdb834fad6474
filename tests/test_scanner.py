import subprocess
from unittest.mock import Mock, patch

import pytest

from envkeeper.errors import ScanError, UnsupportedManagerError
from envkeeper.events import EventChannel, ScanProgress
from envkeeper.models import SystemInfo
from envkeeper.scanner import EnvironmentScanner, run_listing


DPKG_OUTPUT = """Desired=Unknown/Install/Remove/Purge/Hold
| Status=Not/Inst/Conf-files/Unpacked/halF-conf/Half-inst/trig-aWait/Trig-pend
||/ Name           Version        Architecture Description
+++-==============-==============-============-=================================
ii  git            1:2.43.0-1     amd64        fast, scalable, distributed revision control system
rc  oldpkg         1.0-1          amd64        removed package
ii  libc6:amd64    2.39-0ubuntu8  amd64        GNU C Library: Shared libraries
"""


@pytest.mark.unit
class TestRunListing:

    @patch('envkeeper.scanner.subprocess.run')
    def test_returns_stdout(self, mock_run):
        mock_run.return_value = Mock(returncode=0, stdout='output', stderr='')
        assert run_listing(['dpkg', '-l'], 10) == 'output'
        assert mock_run.call_args[1]['timeout'] == 10
        assert mock_run.call_args[1]['shell'] is False

    @patch('envkeeper.scanner.subprocess.run', side_effect=subprocess.TimeoutExpired('dpkg', 10))
    def test_timeout(self, mock_run):
        with pytest.raises(ScanError, match='timed out after 10s'):
            run_listing(['dpkg', '-l'], 10)

    @patch('envkeeper.scanner.subprocess.run', side_effect=FileNotFoundError('dpkg'))
    def test_missing_binary(self, mock_run):
        with pytest.raises(ScanError, match='Could not run'):
            run_listing(['dpkg', '-l'], 10)

    @patch('envkeeper.scanner.subprocess.run')
    def test_unexpected_exit_code(self, mock_run):
        mock_run.return_value = Mock(returncode=2, stdout='', stderr='broken')
        with pytest.raises(ScanError, match='exited with code 2: broken'):
            run_listing(['dpkg', '-l'], 10)

    @patch('envkeeper.scanner.subprocess.run')
    def test_accepted_exit_codes(self, mock_run):
        mock_run.return_value = Mock(returncode=100, stdout='rows', stderr='')
        assert run_listing(['dnf', 'check-update'], 10, ok_codes=(0, 100)) == 'rows'


@pytest.mark.unit
class TestEnvironmentScanner:

    @patch('envkeeper.scanner.subprocess.run')
    def test_scan_apt(self, mock_run, linux_system):
        mock_run.return_value = Mock(returncode=0, stdout=DPKG_OUTPUT, stderr='')
        channel = EventChannel('scan')
        received = []
        channel.subscribe(received.append)

        packages = EnvironmentScanner(linux_system).scan_installed_packages(channel)
        channel.close()

        assert mock_run.call_args[0][0] == ['dpkg', '-l']
        assert [(p.name, p.version, p.source) for p in packages] == [
            ('git', '1:2.43.0-1', 'apt'),
            ('libc6', '2.39-0ubuntu8', 'apt'),
        ]
        assert packages[1].package_id == 'libc6:amd64'
        assert received == [ScanProgress('apt', 'started'), ScanProgress('apt', 'finished', count=2)]

    @patch('envkeeper.scanner.subprocess.run', side_effect=subprocess.TimeoutExpired('dpkg', 30))
    def test_timeout_yields_empty_list(self, mock_run, linux_system):
        channel = EventChannel('scan')
        received = []
        channel.subscribe(received.append)

        assert EnvironmentScanner(linux_system).scan_installed_packages(channel) == []
        assert received[-1].stage == 'failed'
        assert 'timed out' in received[-1].message

    @patch('envkeeper.scanner.subprocess.run')
    def test_unsupported_manager(self, mock_run):
        system = SystemInfo(os='Linux', package_manager='unknown', arch='x86_64', platform='linux')
        scanner = EnvironmentScanner(system)

        with pytest.raises(UnsupportedManagerError):
            scanner.get_list_command()
        assert scanner.scan_installed_packages() == []
        mock_run.assert_not_called()

    @patch('envkeeper.scanner.subprocess.run')
    def test_windows_runs_through_shell(self, mock_run, windows_system):
        mock_run.return_value = Mock(returncode=0, stdout='', stderr='')
        EnvironmentScanner(windows_system).scan_installed_packages()

        assert mock_run.call_args[0][0] == ['winget', 'list', '--accept-source-agreements']
        assert mock_run.call_args[1]['shell'] is True

    def test_list_command_is_a_copy(self, mac_system):
        scanner = EnvironmentScanner(mac_system)
        scanner.get_list_command().append('--cask')
        assert scanner.get_list_command() == ['brew', 'list', '--versions']
