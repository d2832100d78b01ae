from __future__ import annotations


class RelayError(Exception):
    """Base class for relay failures that abort a whole run or request."""


class ConfigError(RelayError):
    pass


class SourceFetchError(RelayError):
    pass


class FeedParseError(RelayError):
    pass
