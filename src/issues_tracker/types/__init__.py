"""Typed wire shapes shared by the REST API, the MCP adapter and the core."""

from issues_tracker.types.core import (
    ApiKeyDict,
    AuthUserDict,
    IssueDict,
    ISOTimestamp,
    PaginatedResult,
    SessionDict,
    TagDict,
    UserDict,
    UserRef,
)

__all__ = [
    "ApiKeyDict",
    "AuthUserDict",
    "ISOTimestamp",
    "IssueDict",
    "PaginatedResult",
    "SessionDict",
    "TagDict",
    "UserDict",
    "UserRef",
]
