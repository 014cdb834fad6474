import pytest

from envkeeper.logger import LoggerManager, set_logger
from envkeeper.models import SystemInfo


@pytest.fixture(autouse=True)
def isolated_logger(tmp_path_factory):
    """Keep log files out of the home directory"""
    logger = LoggerManager(log_dir=str(tmp_path_factory.mktemp("logs")))
    set_logger(logger)
    yield logger
    set_logger(None)


@pytest.fixture
def linux_system():
    return SystemInfo(os='Linux', package_manager='apt', arch='x86_64',
                      platform='linux', distro='ubuntu')


@pytest.fixture
def windows_system():
    return SystemInfo(os='Windows', package_manager='winget', arch='AMD64',
                      platform='win32')


@pytest.fixture
def mac_system():
    return SystemInfo(os='macOS', package_manager='brew', arch='arm64',
                      platform='darwin')
