import pytest

from envkeeper.parsers import get_list_parser, get_upgrade_parser
from envkeeper.parsers.brew import BrewListParser, BrewOutdatedParser
from envkeeper.parsers.choco import ChocoListParser, ChocoOutdatedParser
from envkeeper.parsers.scoop import ScoopListParser


@pytest.mark.unit
class TestChocoParsers:

    def test_choco_list(self):
        output = (
            "Chocolatey v2.2.2\n"
            "chocolatey 2.2.2\n"
            "git 2.44.0\n"
            "nodejs-lts 20.11.1\n"
            "3 packages installed.\n"
        )
        packages = ChocoListParser().parse(output)

        assert [(p.name, p.version) for p in packages] == [
            ('chocolatey', '2.2.2'),
            ('git', '2.44.0'),
            ('nodejs-lts', '20.11.1'),
        ]
        assert all(p.source == 'choco' for p in packages)

    def test_choco_outdated(self):
        output = "git|2.43.0|2.44.0|false\nnotes without pipes\n"
        updates = ChocoOutdatedParser().parse(output)

        assert len(updates) == 1
        assert updates[0].name == 'git'
        assert updates[0].current_version == '2.43.0'
        assert updates[0].available_version == '2.44.0'


@pytest.mark.unit
def test_scoop_list():
    """Test scoop list banner and table"""
    output = (
        "Installed apps:\n"
        "\n"
        "Name    Version   Source  Updated             Info\n"
        "----    -------   ------  -------             ----\n"
        "7zip    23.01     main    2024-01-10 10:00:00\n"
        "git     2.44.0    main    2024-02-20 09:12:11\n"
    )
    packages = ScoopListParser().parse(output)

    assert [(p.name, p.version) for p in packages] == [('7zip', '23.01'), ('git', '2.44.0')]
    assert packages[0].source == 'scoop'


@pytest.mark.unit
def test_scoop_list_single_space_padding():
    """Test a table padded to the widest value plus one space"""
    output = (
        "Installed apps:\n"
        "\n"
        "Name             Version          Source Updated             Info\n"
        "----             -------          ------ -------             ----\n"
        "7zip             23.01            main   2024-01-10 10:00:00\n"
        "git-with-openssh 2.44.0.windows.1 main   2024-02-20 09:12:11\n"
    )
    packages = ScoopListParser().parse(output)

    assert [(p.name, p.version) for p in packages] == [
        ('7zip', '23.01'),
        ('git-with-openssh', '2.44.0.windows.1'),
    ]


@pytest.mark.unit
class TestBrewParsers:

    def test_last_version_wins(self):
        packages = BrewListParser().parse("python@3.12 3.12.1 3.12.2\nwget 1.21.4\n")

        assert packages[0].name == 'python@3.12'
        assert packages[0].version == '3.12.2'
        assert packages[1].version == '1.21.4'

    def test_brew_outdated(self):
        output = "git (2.43.0) < 2.44.0\nnode (21.5.0, 21.6.0) < 21.6.1\nnot an update line\n"
        updates = BrewOutdatedParser().parse(output)

        assert [(u.name, u.current_version, u.available_version) for u in updates] == [
            ('git', '2.43.0', '2.44.0'),
            ('node', '21.6.0', '21.6.1'),
        ]


@pytest.mark.unit
def test_registry_covers_every_manager():
    """Test every supported manager has a list parser"""
    for manager in ('winget', 'choco', 'scoop', 'brew', 'apt', 'dnf', 'yum',
                    'zypper', 'pacman', 'snap'):
        parser = get_list_parser(manager)
        assert parser is not None
        assert parser.source == manager

    for manager in ('winget', 'choco', 'brew', 'apt', 'dnf', 'yum', 'pacman'):
        assert get_upgrade_parser(manager) is not None
