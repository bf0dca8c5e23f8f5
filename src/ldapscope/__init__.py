"""Pooled LDAP contexts with per-connection socket factories."""

from .context import DelegatingLDAPContext
from .cursor import ScopedSearchResults
from .exceptions import (
    ConnectionReleasedError,
    LDAPError,
    ReferralError,
    UnsupportedOperationError,
)
from .factory import ContextFactory
from .scope import socket_factory_scope
from .sockets import TLSSocketFactory, ThreadLocalSocketFactory

__all__ = [
    "ConnectionReleasedError",
    "ContextFactory",
    "DelegatingLDAPContext",
    "LDAPError",
    "ReferralError",
    "ScopedSearchResults",
    "TLSSocketFactory",
    "ThreadLocalSocketFactory",
    "UnsupportedOperationError",
    "socket_factory_scope",
]
