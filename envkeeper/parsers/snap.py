from envkeeper.parsers.lines import WhitespaceRunParser


class SnapListParser(WhitespaceRunParser):
    """snap list: one header row, then `name  version  rev  tracking  publisher  notes`"""
    MANAGERS = ('snap',)
    SKIP_LINES = 1
