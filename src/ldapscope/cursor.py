"""Search result cursor that scopes the socket factory around each pull."""

from __future__ import annotations

from collections.abc import Iterator
from types import TracebackType
from typing import Self

from .interfaces import SearchResults
from .models.ldap import SearchResult
from .scope import socket_factory_scope
from .sockets import SocketFactory

__all__ = ["ScopedSearchResults"]


class ScopedSearchResults:
    """Wrap a search result cursor to install the socket factory on each pull.

    Reading a paged search can open new connections at any later point, on
    whatever thread happens to be reading, so each pull installs the socket
    factory again instead of relying on the scope of the original search.

    Parameters
    ----------
    results
        Underlying cursor.
    socket_factory
        Socket factory to install around each pull, if any.
    """

    def __init__(
        self, results: SearchResults, socket_factory: SocketFactory | None
    ) -> None:
        self._results = results
        self._socket_factory = socket_factory

    def __iter__(self) -> Iterator[SearchResult]:
        return self

    def __next__(self) -> SearchResult:
        if not self.has_more():
            raise StopIteration
        return self.next()

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def has_more(self) -> bool:
        with socket_factory_scope(self._socket_factory):
            return self._results.has_more()

    def next(self) -> SearchResult:
        with socket_factory_scope(self._socket_factory):
            return self._results.next()

    def close(self) -> None:
        # Closing never opens a connection.
        self._results.close()
