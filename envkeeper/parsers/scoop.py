from envkeeper.parsers.lines import WhitespaceRunParser


class ScoopListParser(WhitespaceRunParser):
    """scoop list: `Installed apps:` banner then a Name/Version/Source table"""
    MANAGERS = ('scoop',)
    BANNERS = ('Installed apps',)
    # Name and Version never contain spaces; Updated does
    SINGLE_SPACED = True
