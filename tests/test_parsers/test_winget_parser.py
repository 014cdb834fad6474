import pytest

from envkeeper.parsers import get_list_parser, get_upgrade_parser
from envkeeper.parsers.winget import WingetListParser, WingetUpgradeParser


def table(header, rows, widths):
    """Build fixed-width output the way winget prints it"""
    def line(cells):
        return ''.join(cell.ljust(width) for cell, width in zip(cells, widths)).rstrip()
    separator = '-' * sum(widths)
    return '\n'.join([line(header), separator] + [line(r) for r in rows]) + '\n'


@pytest.mark.unit
class TestWingetListParser:
    """winget list output"""

    def test_progress_prefixed_header(self):
        """Spinner noise before the header does not shift the columns"""
        output = " 34%  Name  Id  Version  Match  Source\n------\nGit  Git.Git  2.44.0  Exact  winget\n"
        packages = WingetListParser().parse(output)

        assert len(packages) == 1
        pkg = packages[0]
        assert pkg.name == "Git"
        assert pkg.package_id == "Git.Git"
        assert pkg.version == "2.44.0"
        assert pkg.source == "winget"

    def test_aligned_rows_with_spaces_in_names(self):
        widths = [22, 28, 14, 8]
        output = table(
            ['Name', 'Id', 'Version', 'Source'],
            [
                ['Microsoft Edge', 'Microsoft.Edge', '121.0.2277', 'winget'],
                ['Visual Studio Code', 'Microsoft.VisualStudioCode', '1.86.0', 'winget'],
                ['Some Local App', 'ARP\\Machine\\X64\\App', '2.1', ''],
            ],
            widths,
        )
        packages = WingetListParser().parse(output)

        assert [p.name for p in packages] == ['Microsoft Edge', 'Visual Studio Code', 'Some Local App']
        assert packages[1].package_id == 'Microsoft.VisualStudioCode'
        assert packages[1].version == '1.86.0'
        # Rows without a source column fall back to the manager name
        assert packages[2].source == 'winget'

    def test_carriage_return_spinner_is_removed(self):
        output = ("\r - \r \\ \r   Name  Id       Version\n"
                  "------------------------\n"
                  "jq     jqlang.jq  1.7.1\n")
        packages = WingetListParser().parse(output)

        assert len(packages) == 1
        assert packages[0].package_id == 'jqlang.jq'
        assert packages[0].version == '1.7.1'

    def test_ellipsis_is_replaced(self):
        widths = [20, 24, 10]
        output = table(['Name', 'Id', 'Version'],
                       [['Very Long Applicat…', 'Vendor.VeryLongApp', '3.0']],
                       widths)
        packages = WingetListParser().parse(output)

        assert packages[0].name == 'Very Long Applicat...'

    def test_footer_and_blank_rows_are_skipped(self):
        widths = [10, 14, 10]
        output = table(['Name', 'Id', 'Version'], [['Git', 'Git.Git', '2.44.0']], widths)
        output += "\n  \n3 packages(s) have additional entries\n"
        packages = WingetListParser().parse(output)

        assert [p.name for p in packages] == ['Git']

    def test_rows_without_id_are_skipped(self):
        output = "Name  Id  Version\n----\nOrphan\n"
        assert WingetListParser().parse(output) == []

    def test_no_header_gives_empty_list(self):
        assert WingetListParser().parse("No installed package found matching input criteria.") == []
        assert WingetListParser().parse("") == []


@pytest.mark.unit
class TestWingetUpgradeParser:
    """winget upgrade output"""

    def test_parse_upgrades(self):
        widths = [20, 22, 12, 12, 8]
        output = table(
            ['Name', 'Id', 'Version', 'Available', 'Source'],
            [
                ['Git', 'Git.Git', '2.43.0', '2.44.0', 'winget'],
                ['Node.js LTS', 'OpenJS.NodeJS.LTS', '18.19.0', '20.11.1', 'winget'],
            ],
            widths,
        )
        output += "2 upgrades available.\n"
        updates = WingetUpgradeParser().parse(output)

        assert len(updates) == 2
        assert updates[0].name == 'Git'
        assert updates[0].package_id == 'Git.Git'
        assert updates[0].current_version == '2.43.0'
        assert updates[0].available_version == '2.44.0'
        assert updates[1].available_version == '20.11.1'
        assert all(u.source == 'winget' for u in updates)

    def test_list_header_without_available_column_is_ignored(self):
        output = "Name  Id  Version\n---\nGit  Git.Git  2.44.0\n"
        assert WingetUpgradeParser().parse(output) == []


@pytest.mark.unit
def test_registry_returns_winget_parsers():
    """Test parser lookup by manager name"""
    assert isinstance(get_list_parser('winget'), WingetListParser)
    assert isinstance(get_upgrade_parser('winget'), WingetUpgradeParser)
    assert get_list_parser('unknown') is None
    assert get_upgrade_parser('snap') is None
