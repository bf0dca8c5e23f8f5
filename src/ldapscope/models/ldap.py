"""Data models for LDAP directory contexts."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar

from ..constants import PASSWORD_MODIFY_OID, WHO_AM_I_OID

__all__ = [
    "Attributes",
    "Control",
    "ExtendedRequest",
    "ExtendedResponse",
    "ModificationItem",
    "ModificationOperation",
    "NameClassPair",
    "PasswordModifyRequest",
    "ReferralMode",
    "SearchControls",
    "SearchResult",
    "SearchScope",
    "WhoAmIRequest",
]

Attributes = dict[str, list[Any]]
"""Attributes of an entry, mapping attribute names to lists of values."""


class ReferralMode(Enum):
    """How to handle referrals returned by the server."""

    FOLLOW = "follow"
    IGNORE = "ignore"
    THROW = "throw"


class SearchScope(Enum):
    """Scope of an LDAP search."""

    BASE = "base"
    ONELEVEL = "onelevel"
    SUBTREE = "subtree"


class ModificationOperation(Enum):
    """Type of change to an attribute."""

    ADD = "add"
    REPLACE = "replace"
    REMOVE = "remove"


@dataclass
class SearchControls:
    """Parameters of an LDAP search."""

    scope: SearchScope = SearchScope.ONELEVEL
    """Scope of the search relative to the search base."""

    count_limit: int = 0
    """Maximum number of entries to return, or 0 for no limit."""

    time_limit: float | None = None
    """Time limit of the search in seconds, or `None` for no limit."""

    returning_attributes: list[str] | None = None
    """Attributes to return, or `None` for all user attributes."""

    page_size: int | None = None
    """If set, retrieve results in pages of this size as they are read."""


@dataclass
class SearchResult:
    """One entry returned by a search."""

    name: str
    """Distinguished name of the entry."""

    attributes: Attributes = field(default_factory=dict)
    """Attributes of the entry."""


@dataclass
class NameClassPair:
    """Name and object class of an entry returned by a listing."""

    name: str
    """Distinguished name of the entry."""

    class_name: str | None
    """Most specific object class of the entry, if known."""


@dataclass
class ModificationItem:
    """One change to the attributes of an entry."""

    operation: ModificationOperation
    """Type of change."""

    attribute: str
    """Name of the attribute to change."""

    values: list[Any] = field(default_factory=list)
    """Values to add, replace with, or remove (all values if empty)."""


@dataclass(frozen=True)
class Control:
    """An LDAP request or response control."""

    oid: str
    """Object identifier of the control."""

    critical: bool = False
    """Whether the server must reject the request if it can't honor this."""

    value: Any = None
    """Control value, whose meaning depends on the control."""


@dataclass
class ExtendedRequest:
    """An LDAP extended operation request.

    Subclasses set ``oid`` to the object identifier of their operation.
    """

    oid: ClassVar[str]


@dataclass
class ExtendedResponse:
    """Response to an LDAP extended operation."""

    oid: str
    """Object identifier of the extended operation."""

    value: Any = None
    """Decoded response value."""


@dataclass
class WhoAmIRequest(ExtendedRequest):
    """Ask the server for the authorization identity of the connection."""

    oid: ClassVar[str] = WHO_AM_I_OID


@dataclass
class PasswordModifyRequest(ExtendedRequest):
    """Change the password of a user."""

    user: str | None = None
    """DN of the user, or `None` for the bound user."""

    new_password: str | None = None
    """New password, or `None` to have the server generate one."""

    old_password: str | None = None
    """Current password, if the server requires it."""

    oid: ClassVar[str] = PASSWORD_MODIFY_OID
