"""Test fixtures."""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from ldapscope.scope import clear_socket_factory, get_socket_factory

from .support.ldap import FakeDirContext, FakeLDAPContext, FakeSocketFactory

ENVIRONMENT_VARIABLES = (
    "LDAPSCOPE_URL",
    "LDAPSCOPE_USER_DN",
    "LDAPSCOPE_PASSWORD",
    "URL",
    "USERDN",
    "PASSWORD",
)


@pytest.fixture(autouse=True)
def _empty_scope() -> Iterator[None]:
    """Check that no test leaves a socket factory installed."""
    assert get_socket_factory() is None
    yield
    leaked = get_socket_factory()
    clear_socket_factory()
    assert leaked is None, f"Socket factory {leaked!r} left installed"


@pytest.fixture(autouse=True)
def environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove environment variables that would override test settings."""
    for name in ENVIRONMENT_VARIABLES:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def socket_factory() -> FakeSocketFactory:
    return FakeSocketFactory("primary")


@pytest.fixture
def dir_context() -> FakeDirContext:
    return FakeDirContext("plain")


@pytest.fixture
def ldap_context() -> FakeLDAPContext:
    return FakeLDAPContext("ldap")
