"""Delegating LDAP context for pooled connections."""

from __future__ import annotations

from collections.abc import Mapping
from types import TracebackType
from typing import Any, Self

import structlog
from structlog.stdlib import BoundLogger

from .constants import LOGGER_NAME
from .cursor import ScopedSearchResults
from .exceptions import ReferralError, UnsupportedOperationError
from .interfaces import (
    CloseHandler,
    DirContext,
    InitialContextFactory,
    LDAPContext,
    NameParser,
)
from .models.ldap import (
    Attributes,
    Control,
    ExtendedRequest,
    ExtendedResponse,
    ModificationItem,
    NameClassPair,
    SearchControls,
    SearchResult,
)
from .scope import socket_factory_scope
from .sockets import SocketFactory

__all__ = ["DelegatingLDAPContext"]


class DelegatingLDAPContext:
    """Directory context that redefines close, reconnect and referrals.

    All directory operations are forwarded unchanged to the wrapped context,
    except:

    - `close` calls the close handler, if one was given, instead of closing
      the wrapped context. This is how a pooled connection is returned to its
      pool.
    - Operations that may open a new connection (`reconnect`, pulls from
      search results, following referrals, opening an initial context)
      install the socket factory for the calling thread while they run.
    - LDAP-specific operations raise `UnsupportedOperationError` if the
      wrapped context only supports the general directory operations.

    Contexts derived from this one with `new_instance` or
    `wrap_referral_context_obtaining` keep the socket factory but never the
    close handler, since only the original context belongs to the pool.

    Parameters
    ----------
    context
        Underlying context. This object takes ownership of it.
    close_handler
        Called with the underlying context when this context is closed,
        instead of closing it.
    socket_factory
        Socket factory to use for any connection opened on behalf of this
        context.
    initial_context_factory
        Opens new initial contexts for `new_initial_ldap_context`.
    logger
        Logger for debug messages.
    """

    def __init__(
        self,
        context: DirContext,
        close_handler: CloseHandler | None = None,
        socket_factory: SocketFactory | None = None,
        *,
        initial_context_factory: InitialContextFactory | None = None,
        logger: BoundLogger | None = None,
    ) -> None:
        self._context = context
        self._close_handler = close_handler
        self._socket_factory = socket_factory
        self._initial_context_factory = initial_context_factory
        self._logger = logger or structlog.get_logger(LOGGER_NAME)
        self._closed = False

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} -> {self._context!r}>"

    @property
    def socket_factory(self) -> SocketFactory | None:
        """Socket factory used for connections opened by this context."""
        return self._socket_factory

    def close(self) -> None:
        """Close the context or hand it back to its pool.

        The context must not be used afterwards. Closing again does nothing,
        so the underlying context is never both returned and closed.
        """
        if self._closed:
            return
        self._closed = True
        if self._close_handler is None:
            self._logger.debug("Closing LDAP context")
            self._context.close()
        else:
            self._logger.debug("Handing back LDAP context")
            self._close_handler(self._context)

    def new_initial_ldap_context(
        self,
        environment: Mapping[str, Any] | None = None,
        connect_controls: list[Control] | None = None,
    ) -> DirContext:
        """Open a new initial context using this context's socket factory.

        The new context is not wrapped and belongs to the caller.

        Parameters
        ----------
        environment
            Environment for the new context, or `None` for the defaults.
        connect_controls
            Ignored. The new context is opened without connection controls.

        Returns
        -------
        DirContext
            The new context.

        Raises
        ------
        UnsupportedOperationError
            Raised if this context was created without an initial context
            factory.
        """
        if self._initial_context_factory is None:
            msg = "No initial context factory configured"
            raise UnsupportedOperationError(msg)
        with socket_factory_scope(self._socket_factory):
            return self._initial_context_factory(environment)

    def wrap_referral_context_obtaining(
        self, error: ReferralError
    ) -> DelegatingLDAPContext:
        """Continue an operation at the server a referral points to.

        Obtaining the referral context may connect to the referred server, so
        the socket factory is installed while doing so.

        Parameters
        ----------
        error
            Referral raised by an operation on this context.

        Returns
        -------
        DelegatingLDAPContext
            Wrapped context for the referred server. It has the same socket
            factory as this context but no close handler.
        """
        self._logger.debug("Following LDAP referral", urls=error.urls)
        with socket_factory_scope(self._socket_factory):
            context = error.get_referral_context()
        return self._derive(context)

    # LDAP-specific operations.

    def extended_operation(self, request: ExtendedRequest) -> ExtendedResponse:
        return self._ldap_context().extended_operation(request)

    def new_instance(
        self, request_controls: list[Control] | None = None
    ) -> DelegatingLDAPContext:
        """Create a copy of this context with different request controls.

        The copy has the same socket factory but no close handler.
        """
        context = self._ldap_context().new_instance(request_controls)
        return self._derive(context)

    def reconnect(self, controls: list[Control] | None = None) -> None:
        """Reconnect to the server using this context's socket factory."""
        context = self._ldap_context()
        self._logger.debug("Reconnecting LDAP context")
        with socket_factory_scope(self._socket_factory):
            context.reconnect(controls)

    def get_connect_controls(self) -> list[Control]:
        return self._ldap_context().get_connect_controls()

    def set_request_controls(
        self, request_controls: list[Control] | None
    ) -> None:
        self._ldap_context().set_request_controls(request_controls)

    def get_request_controls(self) -> list[Control]:
        return self._ldap_context().get_request_controls()

    def get_response_controls(self) -> list[Control]:
        return self._ldap_context().get_response_controls()

    # Searches, whose results are read lazily.

    def search(
        self,
        name: str,
        filter_expr: str,
        filter_args: list[Any] | None = None,
        controls: SearchControls | None = None,
    ) -> ScopedSearchResults:
        results = self._context.search(
            name, filter_expr, filter_args, controls
        )
        return ScopedSearchResults(results, self._socket_factory)

    def search_by_attributes(
        self,
        name: str,
        matching_attributes: Attributes,
        attributes_to_return: list[str] | None = None,
    ) -> ScopedSearchResults:
        results = self._context.search_by_attributes(
            name, matching_attributes, attributes_to_return
        )
        return ScopedSearchResults(results, self._socket_factory)

    # Everything else is forwarded unchanged.

    def bind(
        self, name: str, obj: Any, attributes: Attributes | None = None
    ) -> None:
        self._context.bind(name, obj, attributes)

    def rebind(
        self, name: str, obj: Any, attributes: Attributes | None = None
    ) -> None:
        self._context.rebind(name, obj, attributes)

    def unbind(self, name: str) -> None:
        self._context.unbind(name)

    def rename(self, old_name: str, new_name: str) -> None:
        self._context.rename(old_name, new_name)

    def lookup(self, name: str) -> Any:
        return self._context.lookup(name)

    def lookup_link(self, name: str) -> Any:
        return self._context.lookup_link(name)

    def list(self, name: str) -> list[NameClassPair]:
        return self._context.list(name)

    def list_bindings(self, name: str) -> list[SearchResult]:
        return self._context.list_bindings(name)

    def get_attributes(
        self, name: str, attribute_ids: list[str] | None = None
    ) -> Attributes:
        return self._context.get_attributes(name, attribute_ids)

    def modify_attributes(
        self, name: str, modifications: list[ModificationItem]
    ) -> None:
        self._context.modify_attributes(name, modifications)

    def get_schema(self, name: str) -> Any:
        return self._context.get_schema(name)

    def get_schema_class_definition(self, name: str) -> Any:
        return self._context.get_schema_class_definition(name)

    def create_subcontext(
        self, name: str, attributes: Attributes | None = None
    ) -> DirContext:
        return self._context.create_subcontext(name, attributes)

    def destroy_subcontext(self, name: str) -> None:
        self._context.destroy_subcontext(name)

    def get_name_parser(self, name: str) -> NameParser:
        return self._context.get_name_parser(name)

    def compose_name(self, name: str, prefix: str) -> str:
        return self._context.compose_name(name, prefix)

    def add_to_environment(self, name: str, value: Any) -> Any:
        return self._context.add_to_environment(name, value)

    def remove_from_environment(self, name: str) -> Any:
        return self._context.remove_from_environment(name)

    def get_environment(self) -> dict[str, Any]:
        return self._context.get_environment()

    def get_name_in_namespace(self) -> str:
        return self._context.get_name_in_namespace()

    def _derive(self, context: DirContext) -> DelegatingLDAPContext:
        """Wrap a context derived from this one, without the close handler."""
        return DelegatingLDAPContext(
            context,
            socket_factory=self._socket_factory,
            initial_context_factory=self._initial_context_factory,
            logger=self._logger,
        )

    def _ldap_context(self) -> LDAPContext:
        """Return the underlying context if it supports LDAP extensions.

        Raises
        ------
        UnsupportedOperationError
            Raised if the underlying context supports only the general
            directory operations.
        """
        if not isinstance(self._context, LDAPContext):
            msg = f"{self._context!r} does not support LDAP extensions"
            raise UnsupportedOperationError(msg)
        return self._context
