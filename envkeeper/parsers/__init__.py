"""
Output parsers, one per package manager

List parsers turn `list installed` output into PackageRecords; upgrade
parsers turn `list upgrades` output into UpdateRecords.
"""

from typing import Optional

from envkeeper.parsers.apt import AptUpgradableParser, DpkgListParser
from envkeeper.parsers.base import OutputParser
from envkeeper.parsers.brew import BrewListParser, BrewOutdatedParser
from envkeeper.parsers.choco import ChocoListParser, ChocoOutdatedParser
from envkeeper.parsers.pacman import PacmanListParser, PacmanUpgradeParser
from envkeeper.parsers.rpm import DnfCheckUpdateParser, RpmListParser
from envkeeper.parsers.scoop import ScoopListParser
from envkeeper.parsers.snap import SnapListParser
from envkeeper.parsers.winget import WingetListParser, WingetUpgradeParser


LIST_PARSERS = [
    WingetListParser,
    ChocoListParser,
    ScoopListParser,
    BrewListParser,
    DpkgListParser,
    RpmListParser,
    PacmanListParser,
    SnapListParser,
]

UPGRADE_PARSERS = [
    WingetUpgradeParser,
    ChocoOutdatedParser,
    BrewOutdatedParser,
    AptUpgradableParser,
    DnfCheckUpdateParser,
    PacmanUpgradeParser,
]


def _find(parsers, manager: str) -> Optional[OutputParser]:
    for parser_class in parsers:
        if parser_class.matches_manager(manager):
            return parser_class(source=manager)
    return None


def get_list_parser(manager: str) -> Optional[OutputParser]:
    """Parser for `manager`'s installed-package listing, or None"""
    return _find(LIST_PARSERS, manager)


def get_upgrade_parser(manager: str) -> Optional[OutputParser]:
    """Parser for `manager`'s upgrade listing, or None"""
    return _find(UPGRADE_PARSERS, manager)
