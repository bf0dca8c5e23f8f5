"""Exceptions for ldapscope."""

from __future__ import annotations

from abc import ABCMeta, abstractmethod
from typing import TYPE_CHECKING, Any, Self

if TYPE_CHECKING:
    from .interfaces import DirContext

__all__ = [
    "ConnectionReleasedError",
    "LDAPError",
    "ReferralError",
    "UnsupportedOperationError",
]


class ConnectionReleasedError(Exception):
    """The context's connection has been returned to its pool.

    Raised by contexts derived from a pooled context (with ``new_instance``
    or ``create_subcontext``) once the pooled context has been closed, since
    the shared connection may already belong to another caller.
    """


class LDAPError(Exception):
    """Setting up or checking out an LDAP connection failed.

    Errors from operations on an already obtained context are never wrapped
    in this exception. They propagate unchanged from the underlying library.
    """


class ReferralError(Exception, metaclass=ABCMeta):
    """The LDAP server referred the operation to another server.

    Subclasses know how to connect to the referred server and must implement
    `get_referral_context`. Catch this exception and pass it to
    `~ldapscope.context.DelegatingLDAPContext.wrap_referral_context_obtaining`
    to continue the operation there.

    Parameters
    ----------
    message
        Human-readable description of the referral.
    urls
        Referral URLs returned by the server.

    Raises
    ------
    TypeError
        Raised on construction if the class does not implement
        `get_referral_context`.
    """

    def __new__(cls, *args: Any, **kwargs: Any) -> Self:
        # BaseException.__new__ does not check for abstract methods.
        if cls.__abstractmethods__:
            missing = ", ".join(sorted(cls.__abstractmethods__))
            msg = f"Can't instantiate {cls.__name__} without {missing}"
            raise TypeError(msg)
        return super().__new__(cls, *args, **kwargs)

    def __init__(self, message: str, urls: list[str]) -> None:
        super().__init__(message)
        self.urls = urls

    @abstractmethod
    def get_referral_context(self) -> DirContext:
        """Connect to the referred server.

        Returns
        -------
        DirContext
            Context for continuing the operation on the referred server.
        """


class UnsupportedOperationError(Exception):
    """The underlying context does not support the requested operation."""
