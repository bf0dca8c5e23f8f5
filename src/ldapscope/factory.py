"""Create pooled LDAP contexts from the configuration."""

from __future__ import annotations

import threading
from collections.abc import Mapping
from typing import Any, Self

import bonsai
import structlog
from bonsai import LDAPClient, LDAPConnection
from bonsai.pool import ThreadedConnectionPool
from structlog.stdlib import BoundLogger

from .config import Config
from .constants import LOGGER_NAME, PAGED_RESULTS_OID
from .context import DelegatingLDAPContext
from .exceptions import LDAPError
from .interfaces import DirContext
from .models.ldap import Control, ReferralMode
from .scope import socket_factory_scope
from .sockets import TLSSocketFactory
from .storage.ldap import BonsaiDirContext, ConnectionLease, prepare_client

__all__ = ["ContextFactory"]


class ContextFactory:
    """Hands out LDAP contexts backed by a connection pool.

    Contexts returned by `obtain` give their connection back to the pool when
    closed. Pooling policy is left to bonsai.

    Parameters
    ----------
    config
        LDAP configuration.
    pool
        Connection pool for the configured server.
    socket_factory
        Socket factory used for every connection opened for a context.
    logger
        Logger for debug messages and errors.
    """

    def __init__(
        self,
        config: Config,
        pool: ThreadedConnectionPool,
        socket_factory: TLSSocketFactory,
        logger: BoundLogger,
    ) -> None:
        self._config = config
        self._pool = pool
        self._socket_factory = socket_factory
        self._logger = logger
        self._open_lock = threading.Lock()

    @classmethod
    def from_config(
        cls, config: Config, logger: BoundLogger | None = None
    ) -> Self:
        """Create the connection pool and socket factory for a configuration.

        Parameters
        ----------
        config
            LDAP configuration.
        logger
            Logger to use. Defaults to the ldapscope logger.

        Returns
        -------
        ContextFactory
            Factory for pooled contexts. The pool is not opened until `open`
            or the first call to `obtain`.
        """
        logger = logger or structlog.get_logger(LOGGER_NAME)
        logger = logger.bind(ldap_url=str(config.url))
        socket_factory = config.socket_factory()
        client = create_client(config, str(config.url))
        socket_factory.configure_client(client)
        pool = ThreadedConnectionPool(
            client,
            minconn=config.pool_min_connections,
            maxconn=config.pool_max_connections,
            timeout=config.timeout,
        )
        return cls(config, pool, socket_factory, logger)

    @property
    def socket_factory(self) -> TLSSocketFactory:
        """Socket factory used for connections opened for contexts."""
        return self._socket_factory

    def open(self) -> None:
        """Open the initial connections of the pool.

        Raises
        ------
        LDAPError
            Raised if the connections could not be opened.
        """
        try:
            with socket_factory_scope(self._socket_factory):
                self._pool.open()
        except bonsai.LDAPError as e:
            msg = "Cannot open LDAP connection pool"
            self._logger.exception(msg, error=str(e))
            raise LDAPError(msg) from e

    def close(self) -> None:
        """Close the pool and all of its connections."""
        self._pool.close()

    def obtain(self) -> DelegatingLDAPContext:
        """Check out a context from the pool.

        Returns
        -------
        DelegatingLDAPContext
            Context whose ``close`` method returns the connection to the pool.

        Raises
        ------
        LDAPError
            Raised if no connection could be obtained.
        """
        with self._open_lock:
            if self._pool.closed:
                self.open()
        try:
            with socket_factory_scope(self._socket_factory):
                connection = self._pool.get()
        except bonsai.LDAPError as e:
            msg = "Cannot obtain LDAP connection"
            self._logger.exception(msg, error=str(e))
            raise LDAPError(msg) from e
        self._logger.debug("Obtained LDAP connection from pool")
        context = self._create_context(connection)
        lease = context.lease

        def release(released: DirContext) -> None:
            self._release(lease, released)

        return DelegatingLDAPContext(
            context,
            release,
            self._socket_factory,
            initial_context_factory=self.open_context,
            logger=self._logger,
        )

    def open_context(
        self, environment: Mapping[str, Any] | None = None
    ) -> BonsaiDirContext:
        """Open a context on a new connection outside the pool.

        The socket factory to use must already be installed for the current
        thread. The caller owns the returned context and must close it.

        Parameters
        ----------
        environment
            Initial environment of the context.

        Returns
        -------
        BonsaiDirContext
            Context owning a new connection.
        """
        client = create_client(self._config, str(self._config.url))
        prepare_client(client, [])
        connection = client.connect(timeout=self._config.timeout)
        return self._create_context(connection, environment)

    def _create_context(
        self,
        connection: LDAPConnection,
        environment: Mapping[str, Any] | None = None,
    ) -> BonsaiDirContext:
        controls = []
        if self._config.page_size:
            control = Control(PAGED_RESULTS_OID, value=self._config.page_size)
            controls.append(control)
        return BonsaiDirContext(
            connection,
            lambda url: create_client(self._config, url),
            str(self._config.url),
            base_dn=self._config.base_dn,
            referral=self._config.referral,
            timeout=self._config.timeout,
            request_controls=controls,
            environment=environment,
            logger=self._logger,
        )

    def _release(self, lease: ConnectionLease, context: DirContext) -> None:
        """Return a checked-out connection to the pool.

        The lease on the pooled connection is revoked first, so contexts
        derived from the pooled one can no longer use it. If the context
        reconnected, its new connection is closed and the original, now
        closed, connection goes back to the pool, which opens a replacement
        the next time it is handed out.
        """
        lease.revoke()
        if isinstance(context, BonsaiDirContext):
            if context.lease is not lease:
                context.close()
        self._logger.debug("Returning LDAP connection to pool")
        self._pool.put(lease.connection)


def create_client(config: Config, url: str) -> LDAPClient:
    """Create an unconnected bonsai client.

    Parameters
    ----------
    config
        LDAP configuration supplying credentials and referral handling.
    url
        URL of the server to connect to.

    Returns
    -------
    bonsai.LDAPClient
        Configured client.
    """
    client = LDAPClient(url, tls=config.use_starttls)
    if config.user_dn and config.password:
        client.set_credentials(
            "SIMPLE",
            user=config.user_dn,
            password=config.password.get_secret_value(),
        )
    client.server_chase_referrals = config.referral == ReferralMode.FOLLOW
    client.ignore_referrals = config.referral == ReferralMode.IGNORE
    return client
