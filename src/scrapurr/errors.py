"""
Error types for Twitch Scrapurr.
"""

from typing import Optional


class ScrapurrError(Exception):
    """Base class for all scrapurr errors."""


class UsageError(ScrapurrError):
    """Bad or conflicting command-line input."""


class ConfigParseError(ScrapurrError):
    """The persisted configuration is malformed."""

    def __init__(self, path, message: str):
        self.path = path
        super().__init__(f"{path}: {message}")


class ToolInvocationError(ScrapurrError):
    """An external tool is missing or exited with an error status."""

    def __init__(self, tool: str, returncode: Optional[int] = None, detail: str = ""):
        self.tool = tool
        self.returncode = returncode
        self.detail = detail
        if returncode is None:
            message = f"{tool}: {detail or 'could not be started'}"
        else:
            message = f"{tool} exited with status {returncode}"
            if detail:
                message += f": {detail}"
        super().__init__(message)
