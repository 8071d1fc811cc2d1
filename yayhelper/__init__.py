"""Building blocks for an AUR helper: parsing, commands, settings, queries, upgrades, VCS and news."""

__version__ = "11.0.0"

__all__ = [
    "exe",
    "news",
    "operations",
    "parser",
    "query",
    "settings",
    "text",
    "upgrade",
    "vcs",
]