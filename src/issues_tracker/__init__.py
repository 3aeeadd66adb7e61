"""issues-tracker: issue tracking REST API with an MCP adapter for agents."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("issues-tracker")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from issues_tracker.core import Issue, Tag, TrackerDB, User

__all__ = ["Issue", "Tag", "TrackerDB", "User", "__version__"]
