from __future__ import annotations


class FSRSError(Exception):
    """Base class for errors raised by srsfit."""


class InvalidItemError(FSRSError, ValueError):
    """Review data that cannot be turned into a training example."""


class ConfigError(FSRSError, ValueError):
    """Training or simulator configuration outside its valid range."""


__all__ = ["FSRSError", "InvalidItemError", "ConfigError"]
