"""Tests for the scoped search result cursor."""

from __future__ import annotations

import pytest

from ldapscope.cursor import ScopedSearchResults
from ldapscope.models.ldap import SearchResult
from ldapscope.scope import get_socket_factory

from .support.ldap import FakeSearchResults, FakeSocketFactory


def make_entries(count: int) -> list[SearchResult]:
    return [
        SearchResult(
            name=f"uid=user{i},ou=people,dc=example,dc=com",
            attributes={"uid": [f"user{i}"]},
        )
        for i in range(count)
    ]


def test_same_sequence(socket_factory: FakeSocketFactory) -> None:
    entries = make_entries(5)
    direct = list(FakeSearchResults(entries=entries))
    wrapped = list(
        ScopedSearchResults(FakeSearchResults(entries=entries), socket_factory)
    )
    assert wrapped == direct == entries


def test_pulls_scoped(socket_factory: FakeSocketFactory) -> None:
    results = FakeSearchResults(entries=make_entries(3))
    cursor = ScopedSearchResults(results, socket_factory)

    seen = []
    while cursor.has_more():
        assert get_socket_factory() is None
        seen.append(cursor.next())
        assert get_socket_factory() is None

    assert len(seen) == 3
    assert results.pulls
    assert all(f is socket_factory for f in results.pulls)


def test_iteration_scoped(socket_factory: FakeSocketFactory) -> None:
    results = FakeSearchResults(entries=make_entries(2))
    seen = []
    for entry in ScopedSearchResults(results, socket_factory):
        assert get_socket_factory() is None
        seen.append(entry.name)
    assert len(seen) == 2
    assert all(f is socket_factory for f in results.pulls)


def test_no_factory() -> None:
    results = FakeSearchResults(entries=make_entries(2))
    assert len(list(ScopedSearchResults(results, None))) == 2
    assert results.pulls
    assert all(f is None for f in results.pulls)


def test_error_clears_scope(socket_factory: FakeSocketFactory) -> None:
    error = ConnectionError("page fetch failed")
    results = FakeSearchResults(entries=make_entries(1), error=error)
    cursor = ScopedSearchResults(results, socket_factory)

    assert cursor.has_more()
    cursor.next()
    with pytest.raises(ConnectionError, match="page fetch failed"):
        cursor.has_more()
    assert get_socket_factory() is None
    with pytest.raises(ConnectionError):
        cursor.next()
    assert get_socket_factory() is None


def test_exhausted(socket_factory: FakeSocketFactory) -> None:
    cursor = ScopedSearchResults(FakeSearchResults(entries=[]), socket_factory)
    assert not cursor.has_more()
    with pytest.raises(StopIteration):
        cursor.next()
    assert get_socket_factory() is None


def test_close_not_scoped(socket_factory: FakeSocketFactory) -> None:
    results = FakeSearchResults(entries=make_entries(3))
    with ScopedSearchResults(results, socket_factory) as cursor:
        cursor.next()
    assert results.closed
    assert results.closed_with is None
