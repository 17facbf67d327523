from __future__ import annotations


class EmailPluginError(Exception):
    """Base class for every failure that aborts a plugin run."""
