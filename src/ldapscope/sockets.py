"""Socket factories for LDAP connections.

bonsai connections are opened by libldap, which creates its own sockets, so
for them only the trust settings of a `TLSSocketFactory` are used, through
`TLSSocketFactory.configure_client`. `TLSSocketFactory.create_connection` and
`ThreadLocalSocketFactory` are for callers that open Python sockets
themselves, such as an LDAP library written in pure Python, and want the
same per-thread selection of the socket factory.
"""

from __future__ import annotations

import socket
import ssl
from dataclasses import dataclass
from functools import cached_property
from pathlib import Path
from typing import Protocol, runtime_checkable

from bonsai import LDAPClient

from .scope import get_socket_factory

__all__ = [
    "SocketFactory",
    "TLSSocketFactory",
    "ThreadLocalSocketFactory",
]


@runtime_checkable
class SocketFactory(Protocol):
    """Creates the transport socket for a new LDAP connection."""

    def create_connection(
        self, address: tuple[str, int], timeout: float | None = None
    ) -> socket.socket:
        """Open a connection to an LDAP server.

        Parameters
        ----------
        address
            Host and port of the server.
        timeout
            Connection timeout in seconds, or `None` for the default.

        Returns
        -------
        socket.socket
            The connected socket.
        """


@dataclass(frozen=True)
class TLSSocketFactory:
    """Socket factory for TLS connections with specific trust settings.

    bonsai opens its sockets inside libldap, so the same settings can also be
    applied to a bonsai client with `configure_client`.
    """

    ca_file: Path | None = None
    """File of PEM-encoded CA certificates to trust."""

    ca_dir: Path | None = None
    """Directory of hashed CA certificates to trust."""

    cert_file: Path | None = None
    """Client certificate to present, in PEM format."""

    key_file: Path | None = None
    """Private key for the client certificate, in PEM format."""

    verify: bool = True
    """Whether to verify the server certificate and hostname."""

    @cached_property
    def ssl_context(self) -> ssl.SSLContext:
        """TLS context built from the trust settings."""
        context = ssl.create_default_context(
            cafile=str(self.ca_file) if self.ca_file else None,
            capath=str(self.ca_dir) if self.ca_dir else None,
        )
        if self.cert_file:
            context.load_cert_chain(
                str(self.cert_file),
                str(self.key_file) if self.key_file else None,
            )
        if not self.verify:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    def configure_client(self, client: LDAPClient) -> None:
        """Apply the TLS settings to a bonsai client.

        Must be called before the client opens a connection.

        Parameters
        ----------
        client
            Client to configure.
        """
        if self.ca_file:
            client.set_ca_cert(str(self.ca_file))
        if self.ca_dir:
            client.set_ca_cert_dir(str(self.ca_dir))
        if self.cert_file:
            client.set_client_cert(str(self.cert_file))
        if self.key_file:
            client.set_client_key(str(self.key_file))
        client.set_cert_policy("demand" if self.verify else "never")

    def create_connection(
        self, address: tuple[str, int], timeout: float | None = None
    ) -> ssl.SSLSocket:
        sock = socket.create_connection(address, timeout)
        try:
            return self.ssl_context.wrap_socket(
                sock, server_hostname=address[0]
            )
        except Exception:
            sock.close()
            raise


class ThreadLocalSocketFactory:
    """Socket factory that uses whatever factory the thread has installed.

    This is the factory to hand to code that can only be configured once per
    process. Each connection it opens uses the factory installed with
    `~ldapscope.scope.socket_factory_scope` on the calling thread, or the
    default factory if the slot is empty.

    Parameters
    ----------
    default
        Factory to use when none is installed. Defaults to a
        `TLSSocketFactory` trusting the system CA certificates.
    """

    def __init__(self, default: SocketFactory | None = None) -> None:
        self._default = default or TLSSocketFactory()

    @property
    def current(self) -> SocketFactory:
        """The factory the next connection on this thread would use."""
        return get_socket_factory() or self._default

    def create_connection(
        self, address: tuple[str, int], timeout: float | None = None
    ) -> socket.socket:
        return self.current.create_connection(address, timeout)
