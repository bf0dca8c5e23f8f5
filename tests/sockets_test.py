"""Tests for the LDAP socket factories."""

from __future__ import annotations

import ssl
from pathlib import Path
from unittest.mock import Mock, call

import pytest
from bonsai import LDAPClient

from ldapscope.scope import socket_factory_scope
from ldapscope.sockets import (
    SocketFactory,
    ThreadLocalSocketFactory,
    TLSSocketFactory,
)

from .support.ldap import FakeSocketFactory


def test_ssl_context() -> None:
    context = TLSSocketFactory().ssl_context
    assert context.verify_mode == ssl.CERT_REQUIRED
    assert context.check_hostname

    context = TLSSocketFactory(verify=False).ssl_context
    assert context.verify_mode == ssl.CERT_NONE
    assert not context.check_hostname


def test_ssl_context_missing_ca(tmp_path: Path) -> None:
    factory = TLSSocketFactory(ca_file=tmp_path / "missing.pem")
    with pytest.raises(FileNotFoundError):
        factory.ssl_context  # noqa: B018


def test_configure_client() -> None:
    client = Mock(spec=LDAPClient)
    factory = TLSSocketFactory(
        ca_file=Path("/etc/ldap/ca.pem"),
        cert_file=Path("/etc/ldap/client.pem"),
        key_file=Path("/etc/ldap/client.key"),
    )

    factory.configure_client(client)

    assert client.mock_calls == [
        call.set_ca_cert("/etc/ldap/ca.pem"),
        call.set_client_cert("/etc/ldap/client.pem"),
        call.set_client_key("/etc/ldap/client.key"),
        call.set_cert_policy("demand"),
    ]


def test_configure_client_no_verify() -> None:
    client = Mock(spec=LDAPClient)
    factory = TLSSocketFactory(ca_dir=Path("/etc/ssl/certs"), verify=False)
    factory.configure_client(client)
    assert client.mock_calls == [
        call.set_ca_cert_dir("/etc/ssl/certs"),
        call.set_cert_policy("never"),
    ]


def test_create_connection(monkeypatch: pytest.MonkeyPatch) -> None:
    raw = Mock()
    create = Mock(return_value=raw)
    monkeypatch.setattr("ldapscope.sockets.socket.create_connection", create)
    factory = TLSSocketFactory()
    wrapped = Mock()
    context = Mock(spec=ssl.SSLContext)
    context.wrap_socket.return_value = wrapped
    factory.__dict__["ssl_context"] = context

    sock = factory.create_connection(("ldap.example.com", 636), 5.0)

    assert sock is wrapped
    create.assert_called_once_with(("ldap.example.com", 636), 5.0)
    context.wrap_socket.assert_called_once_with(
        raw, server_hostname="ldap.example.com"
    )


def test_create_connection_handshake_error(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    raw = Mock()
    monkeypatch.setattr(
        "ldapscope.sockets.socket.create_connection", Mock(return_value=raw)
    )
    factory = TLSSocketFactory()
    context = Mock(spec=ssl.SSLContext)
    context.wrap_socket.side_effect = ssl.SSLError("handshake failed")
    factory.__dict__["ssl_context"] = context

    with pytest.raises(ssl.SSLError):
        factory.create_connection(("ldap.example.com", 636))
    raw.close.assert_called_once_with()


def test_thread_local() -> None:
    default = FakeSocketFactory("default")
    scoped = FakeSocketFactory("scoped")
    factory = ThreadLocalSocketFactory(default)
    assert isinstance(factory, SocketFactory)

    assert factory.current is default
    with socket_factory_scope(scoped):
        assert factory.current is scoped
        factory.create_connection(("ldap.example.com", 636)).close()
    assert factory.current is default
    factory.create_connection(("other.example.com", 389)).close()

    assert scoped.addresses == [("ldap.example.com", 636)]
    assert default.addresses == [("other.example.com", 389)]


def test_thread_local_default() -> None:
    factory = ThreadLocalSocketFactory()
    assert isinstance(factory.current, TLSSocketFactory)
