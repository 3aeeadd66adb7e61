"""Foundational TypedDicts for dataclass to_dict() returns."""

from __future__ import annotations

from typing import Any, NewType, TypedDict

ISOTimestamp = NewType("ISOTimestamp", str)


class PaginatedResult(TypedDict):
    """Envelope returned by paginated query methods."""

    results: list[dict[str, Any]]
    total: int
    limit: int
    offset: int
    has_more: bool


class UserDict(TypedDict):
    id: int
    name: str
    email: str
    created_at: ISOTimestamp
    updated_at: ISOTimestamp


class UserRef(TypedDict):
    """Slim user shape embedded in issues."""

    id: int
    name: str
    email: str


class TagDict(TypedDict):
    id: int
    name: str
    color: str
    created_at: ISOTimestamp


class IssueDict(TypedDict):
    id: int
    title: str
    description: str
    status: str
    priority: str
    assigned_user_id: int | None
    created_by_user_id: int | None
    assigned_user: UserRef | None
    created_by_user: UserRef | None
    tags: list[TagDict]
    created_at: ISOTimestamp
    updated_at: ISOTimestamp


class AuthUserDict(TypedDict):
    id: str
    name: str
    email: str
    createdAt: ISOTimestamp
    updatedAt: ISOTimestamp


class SessionDict(TypedDict):
    id: str
    userId: str
    expiresAt: ISOTimestamp
    createdAt: ISOTimestamp


class ApiKeyDict(TypedDict):
    id: str
    name: str
    start: str
    prefix: str
    userId: str
    enabled: bool
    metadata: dict[str, Any]
    createdAt: ISOTimestamp
