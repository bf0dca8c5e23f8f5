"""Thread-scoped hand-off of the socket factory for new connections.

Code that opens LDAP connections (libldap reconnects, referral chasing,
paged search continuation) takes no socket factory argument, so the factory
to use for the next connection is handed off through a context variable.
Each thread starts with an empty slot, so a factory installed by one thread
is never seen by another.

The slot must be cleared before the call that installed it returns, or a
later unrelated connection on the same thread would use the wrong factory.
Use `socket_factory_scope` rather than setting the slot directly.
"""

from __future__ import annotations

import contextvars
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .sockets import SocketFactory

__all__ = [
    "clear_socket_factory",
    "get_socket_factory",
    "set_socket_factory",
    "socket_factory_scope",
]

_socket_factory: contextvars.ContextVar[SocketFactory | None] = (
    contextvars.ContextVar("ldapscope_socket_factory", default=None)
)


def get_socket_factory() -> SocketFactory | None:
    """Return the socket factory installed for the current thread, if any."""
    return _socket_factory.get()


def set_socket_factory(factory: SocketFactory) -> None:
    """Install the socket factory for the current thread.

    Parameters
    ----------
    factory
        Socket factory to use for connections opened by this thread until
        `clear_socket_factory` is called.
    """
    _socket_factory.set(factory)


def clear_socket_factory() -> None:
    """Empty the current thread's socket factory slot."""
    _socket_factory.set(None)


@contextmanager
def socket_factory_scope(factory: SocketFactory | None) -> Iterator[None]:
    """Install a socket factory for the duration of a block.

    The slot is cleared when the block exits, whether normally or with an
    exception. Scopes do not nest.

    Parameters
    ----------
    factory
        Socket factory to install. If `None`, the slot is left untouched.
    """
    if factory is None:
        yield
        return
    set_socket_factory(factory)
    try:
        yield
    finally:
        clear_socket_factory()
