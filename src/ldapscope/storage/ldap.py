"""LDAP directory context backed by bonsai."""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Iterator, Mapping
from typing import Any

import bonsai
import structlog
from bonsai import (
    LDAPClient,
    LDAPConnection,
    LDAPDN,
    LDAPEntry,
    LDAPModOp,
    LDAPReference,
    LDAPSearchScope,
)
from bonsai.utils import escape_filter_exp
from structlog.stdlib import BoundLogger

from ..constants import (
    LDAP_TIMEOUT,
    LOGGER_NAME,
    MANAGE_DSA_IT_OID,
    PAGED_RESULTS_OID,
    PASSWORD_POLICY_OID,
)
from ..exceptions import (
    ConnectionReleasedError,
    ReferralError,
    UnsupportedOperationError,
)
from ..models.ldap import (
    Attributes,
    Control,
    ExtendedRequest,
    ExtendedResponse,
    ModificationItem,
    ModificationOperation,
    NameClassPair,
    PasswordModifyRequest,
    ReferralMode,
    SearchControls,
    SearchResult,
    SearchScope,
    WhoAmIRequest,
)
from ..scope import get_socket_factory
from ..sockets import TLSSocketFactory

ClientFactory = Callable[[str], LDAPClient]
"""Creates a configured, unconnected bonsai client for an LDAP URL."""

_FILTER_ARG_REGEX = re.compile(r"\{(\d+)\}")
_NAME_REGEX = re.compile(r"NAME\s+(?:'([^']+)'|\(([^)]*)\))")

_MODIFICATION_OPS = {
    ModificationOperation.ADD: LDAPModOp.ADD,
    ModificationOperation.REPLACE: LDAPModOp.REPLACE,
    ModificationOperation.REMOVE: LDAPModOp.DELETE,
}

_SEARCH_SCOPES = {
    SearchScope.BASE: LDAPSearchScope.BASE,
    SearchScope.ONELEVEL: LDAPSearchScope.ONELEVEL,
    SearchScope.SUBTREE: LDAPSearchScope.SUBTREE,
}

__all__ = [
    "BonsaiDirContext",
    "BonsaiReferralError",
    "BonsaiSearchResults",
    "ClientFactory",
    "ConnectionLease",
    "format_filter",
    "prepare_client",
]


def format_filter(filter_expr: str, filter_args: list[Any] | None) -> str:
    """Substitute escaped arguments into a search filter.

    Parameters
    ----------
    filter_expr
        Search filter in which ``{0}``, ``{1}`` and so on refer to elements
        of ``filter_args``.
    filter_args
        Values to substitute, escaped for use in a filter.

    Returns
    -------
    str
        The search filter with all arguments substituted.
    """
    if not filter_args:
        return filter_expr
    args = filter_args

    def replace(match: re.Match[str]) -> str:
        return escape_filter_exp(str(args[int(match.group(1))]))

    return _FILTER_ARG_REGEX.sub(replace, filter_expr)


def prepare_client(
    client: LDAPClient, connect_controls: list[Control]
) -> None:
    """Configure a client just before it opens a connection.

    Applies the TLS settings of the socket factory installed for the current
    thread, since libldap opens the socket itself, and the supported
    connection controls.

    Parameters
    ----------
    client
        Client about to connect.
    connect_controls
        Controls to use for the connection.

    Raises
    ------
    UnsupportedOperationError
        Raised if a critical control cannot be honored.
    """
    factory = get_socket_factory()
    if isinstance(factory, TLSSocketFactory):
        factory.configure_client(client)
    for control in connect_controls:
        if control.oid == MANAGE_DSA_IT_OID:
            client.managedsait = True
        elif control.oid == PASSWORD_POLICY_OID:
            client.password_policy = True
        elif control.critical:
            msg = f"Unsupported critical connection control {control.oid}"
            raise UnsupportedOperationError(msg)


def _to_search_result(entry: LDAPEntry) -> SearchResult:
    attributes = {k: list(v) for k, v in entry.items() if k != "dn"}
    return SearchResult(name=str(entry.dn), attributes=attributes)


class BonsaiReferralError(ReferralError):
    """A search returned a referral to another server.

    Parameters
    ----------
    reference
        Search reference returned by bonsai.
    context
        Context whose search returned the referral.
    """

    def __init__(
        self, reference: LDAPReference, context: BonsaiDirContext
    ) -> None:
        urls = [str(u) for u in reference.references]
        super().__init__(f"Referral to {', '.join(urls)}", urls)
        self.reference = reference
        self._context = context

    def get_referral_context(self) -> BonsaiDirContext:
        """Connect to the first reachable referred server.

        Raises
        ------
        bonsai.LDAPError
            Raised if none of the referred servers could be reached.
        """
        error: bonsai.LDAPError | None = None
        for url in self.reference.references:
            try:
                return self._context.connect_referral(url)
            except bonsai.ConnectionError as e:
                error = e
        if error:
            raise error
        raise bonsai.ConnectionError("Referral has no URLs")


class ConnectionLease:
    """Connection shared by a context and the contexts derived from it.

    Once the lease is revoked, every context holding it refuses further
    operations. Revoking does not close the connection.

    Parameters
    ----------
    connection
        Open connection.
    """

    def __init__(self, connection: LDAPConnection) -> None:
        self.connection = connection
        self.revoked = False

    def revoke(self) -> None:
        """Stop all contexts holding this lease from using the connection."""
        self.revoked = True


class BonsaiSearchResults:
    """Lazy cursor over bonsai search results.

    Paged searches retrieve the next page from the server while the cursor is
    read.

    Parameters
    ----------
    results
        Entries (and possibly search references) returned by bonsai.
    context
        Context that ran the search.
    """

    def __init__(
        self, results: Iterable[Any], context: BonsaiDirContext
    ) -> None:
        self._results = iter(results)
        self._context = context
        self._lease = context.lease
        self._pending: SearchResult | None = None
        self._done = False

    def __iter__(self) -> Iterator[SearchResult]:
        return self

    def __next__(self) -> SearchResult:
        return self.next()

    def has_more(self) -> bool:
        """Return whether another entry is available.

        Raises
        ------
        BonsaiReferralError
            Raised if the next item is a referral and the context is
            configured to throw referrals.
        ConnectionReleasedError
            Raised if more results must be read from a connection that has
            been returned to its pool or closed.
        """
        while self._pending is None and not self._done:
            if self._lease.revoked:
                msg = "Connection of search results is no longer available"
                raise ConnectionReleasedError(msg)
            try:
                item = next(self._results)
            except StopIteration:
                self._done = True
                break
            if isinstance(item, LDAPReference):
                if self._context.referral == ReferralMode.THROW:
                    raise BonsaiReferralError(item, self._context)
                continue
            self._pending = _to_search_result(item)
        return self._pending is not None

    def next(self) -> SearchResult:
        if not self.has_more():
            raise StopIteration
        result = self._pending
        self._pending = None
        return result

    def close(self) -> None:
        self._results = iter(())
        self._pending = None
        self._done = True


class BonsaiDirContext:
    """Directory context on a bonsai LDAP connection.

    Names passed to the operations are DNs relative to ``base_dn``. Child
    contexts created by `create_subcontext` or `new_instance` share the
    connection lease and do not close the connection. Once the lease is
    revoked, this context and its children raise `ConnectionReleasedError`.

    Parameters
    ----------
    connection
        Open connection.
    client_factory
        Creates clients for reconnecting and for following referrals.
    url
        URL of the server the connection is to.
    base_dn
        DN that names are relative to.
    referral
        How to handle referrals returned by searches.
    timeout
        Timeout for each operation, in seconds.
    request_controls
        Controls to apply to operations.
    owns_connection
        Whether closing this context closes the connection.
    lease
        Lease on ``connection`` shared with the context this one was derived
        from. A new lease is created if not given.
    logger
        Logger for debug messages.
    """

    def __init__(
        self,
        connection: LDAPConnection,
        client_factory: ClientFactory,
        url: str,
        *,
        base_dn: str = "",
        referral: ReferralMode = ReferralMode.IGNORE,
        timeout: float = LDAP_TIMEOUT,
        request_controls: list[Control] | None = None,
        environment: Mapping[str, Any] | None = None,
        owns_connection: bool = True,
        lease: ConnectionLease | None = None,
        logger: BoundLogger | None = None,
    ) -> None:
        if lease is None:
            lease = ConnectionLease(connection)
        self._lease = lease
        self._client_factory = client_factory
        self._url = url
        self._base_dn = base_dn
        self._timeout = timeout
        self._environment = dict(environment or {})
        self._owns_connection = owns_connection
        self._connect_controls: list[Control] = []
        self._request_controls: list[Control] = []
        self._page_size: int | None = None
        self._logger = logger or structlog.get_logger(LOGGER_NAME)
        self.referral = referral
        self.set_request_controls(request_controls)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._url} base={self._base_dn!r}>"

    @property
    def connection(self) -> LDAPConnection:
        """Underlying bonsai connection."""
        return self._lease.connection

    @property
    def lease(self) -> ConnectionLease:
        """Lease on the connection, shared with derived contexts."""
        return self._lease

    @property
    def _connection(self) -> LDAPConnection:
        self.check_lease()
        return self._lease.connection

    def check_lease(self) -> None:
        """Check that the connection may still be used.

        Raises
        ------
        ConnectionReleasedError
            Raised if the connection has been returned to its pool or closed
            by the context that owns it.
        """
        if self._lease.revoked:
            msg = f"Connection of {self!r} is no longer available"
            raise ConnectionReleasedError(msg)

    def close(self) -> None:
        if self._owns_connection:
            self._lease.connection.close()
            self._lease.revoke()

    def connect_referral(self, url: bonsai.LDAPURL) -> BonsaiDirContext:
        """Open a context on the server named by a referral URL.

        Parameters
        ----------
        url
            Referral URL.

        Returns
        -------
        BonsaiDirContext
            New context owning its connection, rooted at the base DN of the
            referral URL.
        """
        address = url.get_address()
        self._logger.debug("Connecting to LDAP referral", ldap_url=str(url))
        client = self._client_factory(address)
        prepare_client(client, self._connect_controls)
        connection = client.connect(timeout=self._timeout)
        return BonsaiDirContext(
            connection,
            self._client_factory,
            address,
            base_dn=str(url.basedn or ""),
            referral=self.referral,
            timeout=self._timeout,
            request_controls=self._request_controls,
            environment=self._environment,
            logger=self._logger,
        )

    # LDAP extensions.

    def extended_operation(self, request: ExtendedRequest) -> ExtendedResponse:
        """Run a Who Am I or Password Modify extended operation.

        Raises
        ------
        UnsupportedOperationError
            Raised for any other extended operation.
        """
        if isinstance(request, WhoAmIRequest):
            value = self._connection.whoami(timeout=self._timeout)
        elif isinstance(request, PasswordModifyRequest):
            value = self._connection.modify_password(
                user=request.user,
                new_password=request.new_password,
                old_password=request.old_password,
                timeout=self._timeout,
            )
        else:
            msg = f"Unsupported extended operation {request.oid}"
            raise UnsupportedOperationError(msg)
        return ExtendedResponse(oid=request.oid, value=value)

    def new_instance(
        self, request_controls: list[Control] | None = None
    ) -> BonsaiDirContext:
        return BonsaiDirContext(
            self._connection,
            self._client_factory,
            self._url,
            base_dn=self._base_dn,
            referral=self.referral,
            timeout=self._timeout,
            request_controls=request_controls,
            environment=self._environment,
            owns_connection=False,
            lease=self._lease,
            logger=self._logger,
        )

    def reconnect(self, controls: list[Control] | None = None) -> None:
        """Replace the connection with a new one to the same server.

        Parameters
        ----------
        controls
            Connection controls for the new connection. If `None`, the
            controls of the previous connection are reused.
        """
        self.check_lease()
        if controls is not None:
            self._connect_controls = list(controls)
        client = self._client_factory(self._url)
        prepare_client(client, self._connect_controls)
        connection = client.connect(timeout=self._timeout)
        if self._owns_connection:
            self._lease.connection.close()
            self._lease.revoke()
        self._lease = ConnectionLease(connection)
        self._owns_connection = True

    def get_connect_controls(self) -> list[Control]:
        return list(self._connect_controls)

    def set_request_controls(
        self, request_controls: list[Control] | None
    ) -> None:
        """Set the controls used by later operations.

        The paged results control sets the page size of searches. Other
        non-critical controls are ignored.

        Raises
        ------
        UnsupportedOperationError
            Raised if a critical control is not supported.
        """
        page_size = None
        for control in request_controls or []:
            if control.oid == PAGED_RESULTS_OID:
                page_size = int(control.value)
            elif control.critical:
                msg = f"Unsupported critical request control {control.oid}"
                raise UnsupportedOperationError(msg)
        self._request_controls = list(request_controls or [])
        self._page_size = page_size

    def get_request_controls(self) -> list[Control]:
        return list(self._request_controls)

    def get_response_controls(self) -> list[Control]:
        # bonsai does not expose response controls.
        return []

    # Searches.

    def search(
        self,
        name: str,
        filter_expr: str,
        filter_args: list[Any] | None = None,
        controls: SearchControls | None = None,
    ) -> BonsaiSearchResults:
        """Search below an entry.

        Parameters
        ----------
        name
            Search base, relative to the context's base DN.
        filter_expr
            Search filter, possibly with ``{0}`` style placeholders.
        filter_args
            Values for the placeholders.
        controls
            Search parameters. Defaults to a one-level search.

        Returns
        -------
        BonsaiSearchResults
            Cursor over the results. If a page size is set, later pages are
            retrieved while the cursor is read.
        """
        controls = controls or SearchControls()
        page_size = controls.page_size or self._page_size
        args = {
            "base": self._resolve(name),
            "scope": _SEARCH_SCOPES[controls.scope],
            "filter_exp": format_filter(filter_expr, filter_args),
            "attrlist": controls.returning_attributes,
            "timeout": controls.time_limit or self._timeout,
            "sizelimit": controls.count_limit,
        }
        if page_size:
            results = self._connection.paged_search(
                **args, page_size=page_size
            )
        else:
            results = self._connection.search(**args)
        return BonsaiSearchResults(results, self)

    def search_by_attributes(
        self,
        name: str,
        matching_attributes: Attributes,
        attributes_to_return: list[str] | None = None,
    ) -> BonsaiSearchResults:
        terms = []
        for attr, values in matching_attributes.items():
            if not values:
                # An attribute without values only has to be present.
                terms.append(f"({attr}=*)")
            terms.extend(
                f"({attr}={escape_filter_exp(str(value))})" for value in values
            )
        if not terms:
            filter_expr = "(objectClass=*)"
        elif len(terms) == 1:
            filter_expr = terms[0]
        else:
            filter_expr = "(&" + "".join(terms) + ")"
        controls = SearchControls(returning_attributes=attributes_to_return)
        return self.search(name, filter_expr, controls=controls)

    # Entries.

    def bind(
        self, name: str, obj: Any, attributes: Attributes | None = None
    ) -> None:
        """Add an entry.

        LDAP can only store attributes, so ``obj`` must be `None` or a
        mapping of attributes, which is merged with ``attributes``.
        """
        entry = LDAPEntry(self._resolve(name))
        for attr, values in self._merge_attributes(obj, attributes).items():
            entry[attr] = values
        self._connection.add(entry, timeout=self._timeout)

    def rebind(
        self, name: str, obj: Any, attributes: Attributes | None = None
    ) -> None:
        self.unbind(name)
        self.bind(name, obj, attributes)

    def unbind(self, name: str) -> None:
        """Delete an entry. Deleting an entry that doesn't exist succeeds."""
        try:
            self._connection.delete(self._resolve(name), timeout=self._timeout)
        except bonsai.NoSuchObjectError:
            pass

    def rename(self, old_name: str, new_name: str) -> None:
        self._connection.rename(
            self._resolve(old_name),
            self._resolve(new_name),
            timeout=self._timeout,
        )

    def lookup(self, name: str) -> SearchResult:
        entries = self._search_base(self._resolve(name), None)
        if not entries:
            raise bonsai.NoSuchObjectError(f"No entry {name}")
        return _to_search_result(entries[0])

    def lookup_link(self, name: str) -> SearchResult:
        # LDAP has no links distinct from the entries they name.
        return self.lookup(name)

    def list(self, name: str) -> list[NameClassPair]:
        entries = self._connection.search(
            base=self._resolve(name),
            scope=LDAPSearchScope.ONELEVEL,
            filter_exp="(objectClass=*)",
            attrlist=["objectClass"],
            timeout=self._timeout,
        )
        pairs = []
        for entry in entries:
            if isinstance(entry, LDAPReference):
                continue
            classes = entry.get("objectClass") or [None]
            pair = NameClassPair(name=str(entry.dn), class_name=classes[-1])
            pairs.append(pair)
        return pairs

    def list_bindings(self, name: str) -> list[SearchResult]:
        controls = SearchControls(scope=SearchScope.ONELEVEL)
        return [*self.search(name, "(objectClass=*)", controls=controls)]

    def get_attributes(
        self, name: str, attribute_ids: list[str] | None = None
    ) -> Attributes:
        return self.lookup_attributes(self._resolve(name), attribute_ids)

    def lookup_attributes(
        self, dn: str, attribute_ids: list[str] | None
    ) -> Attributes:
        """Return the attributes of the entry with an absolute DN."""
        entries = self._search_base(dn, attribute_ids)
        if not entries:
            raise bonsai.NoSuchObjectError(f"No entry {dn}")
        return _to_search_result(entries[0]).attributes

    def modify_attributes(
        self, name: str, modifications: list[ModificationItem]
    ) -> None:
        entry = LDAPEntry(self._resolve(name), self._connection)
        for item in modifications:
            entry.change_attribute(
                item.attribute,
                _MODIFICATION_OPS[item.operation],
                *item.values,
            )
        entry.modify(timeout=self._timeout)

    # Schema.

    def get_schema(self, name: str) -> SearchResult:
        """Return the subschema entry governing an entry.

        Parameters
        ----------
        name
            Entry whose schema to return, or the empty string for the schema
            advertised by the root DSE.
        """
        attributes = self.lookup_attributes(
            self._resolve(name), ["subschemaSubentry"]
        )
        if not attributes.get("subschemaSubentry"):
            raise bonsai.NoSuchObjectError(f"No subschema for {name}")
        subschema_dn = attributes["subschemaSubentry"][0]
        attrlist = ["objectClasses", "attributeTypes", "ldapSyntaxes"]
        entries = self._search_base(str(subschema_dn), attrlist)
        if not entries:
            raise bonsai.NoSuchObjectError(f"No subschema {subschema_dn}")
        return _to_search_result(entries[0])

    def get_schema_class_definition(self, name: str) -> list[str]:
        """Return the schema definitions of the object classes of an entry."""
        attributes = self.get_attributes(name, ["objectClass"])
        wanted = {str(c).lower() for c in attributes.get("objectClass", [])}
        schema = self.get_schema(name)
        definitions = []
        for definition in schema.attributes.get("objectClasses", []):
            match = _NAME_REGEX.search(str(definition))
            if not match:
                continue
            names = match.group(1) or match.group(2).replace("'", " ")
            if wanted & {n.lower() for n in names.split()}:
                definitions.append(str(definition))
        return definitions

    # Subcontexts.

    def create_subcontext(
        self, name: str, attributes: Attributes | None = None
    ) -> BonsaiDirContext:
        self.bind(name, None, attributes)
        return BonsaiDirContext(
            self._connection,
            self._client_factory,
            self._url,
            base_dn=self._resolve(name),
            referral=self.referral,
            timeout=self._timeout,
            request_controls=self._request_controls,
            environment=self._environment,
            owns_connection=False,
            lease=self._lease,
            logger=self._logger,
        )

    def destroy_subcontext(self, name: str) -> None:
        self.unbind(name)

    # Names and environment.

    def get_name_parser(self, name: str) -> type[LDAPDN]:
        return LDAPDN

    def compose_name(self, name: str, prefix: str) -> str:
        if not prefix:
            return name
        if not name:
            return prefix
        return f"{name},{prefix}"

    def get_name_in_namespace(self) -> str:
        return self._base_dn

    def add_to_environment(self, name: str, value: Any) -> Any:
        previous = self._environment.get(name)
        self._environment[name] = value
        return previous

    def remove_from_environment(self, name: str) -> Any:
        return self._environment.pop(name, None)

    def get_environment(self) -> dict[str, Any]:
        return dict(self._environment)

    def _merge_attributes(
        self, obj: Any, attributes: Attributes | None
    ) -> Attributes:
        if obj is not None and not isinstance(obj, Mapping):
            msg = f"Cannot store {type(obj).__name__} in LDAP"
            raise UnsupportedOperationError(msg)
        merged: Attributes = {}
        for source in (obj or {}, attributes or {}):
            for attr, values in source.items():
                merged.setdefault(attr, []).extend(values)
        return merged

    def _resolve(self, name: str) -> str:
        return self.compose_name(name, self._base_dn)

    def _search_base(
        self, dn: str, attribute_ids: list[str] | None
    ) -> list[LDAPEntry]:
        return self._connection.search(
            base=dn,
            scope=LDAPSearchScope.BASE,
            filter_exp="(objectClass=*)",
            attrlist=attribute_ids,
            timeout=self._timeout,
        )
