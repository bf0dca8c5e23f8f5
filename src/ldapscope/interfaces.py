"""Capability protocols for LDAP directory contexts.

`DirContext` is the general directory capability set every context provides.
`LDAPContext` adds the LDAP-specific extensions (extended operations,
controls, reconnect, cloning) that only some contexts support. Code that
needs the extensions checks ``isinstance(context, LDAPContext)`` at runtime.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from typing import Any, Protocol, runtime_checkable

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

__all__ = [
    "CloseHandler",
    "DirContext",
    "InitialContextFactory",
    "LDAPContext",
    "NameParser",
    "SearchResults",
]

NameParser = Callable[[str], Any]
"""Parses a string name into its structured form."""


class SearchResults(Protocol):
    """Lazy cursor over the entries returned by a search.

    Pulling from the cursor may perform network I/O, such as retrieving the
    next page of a paged search.
    """

    def __iter__(self) -> Iterator[SearchResult]: ...

    def __next__(self) -> SearchResult: ...

    def has_more(self) -> bool:
        """Return whether another entry is available."""

    def next(self) -> SearchResult:
        """Return the next entry, raising `StopIteration` if exhausted."""

    def close(self) -> None:
        """Release the resources held by the cursor."""


class DirContext(Protocol):
    """General directory context operations."""

    def bind(
        self, name: str, obj: Any, attributes: Attributes | None = None
    ) -> None: ...

    def rebind(
        self, name: str, obj: Any, attributes: Attributes | None = None
    ) -> None: ...

    def unbind(self, name: str) -> None: ...

    def rename(self, old_name: str, new_name: str) -> None: ...

    def lookup(self, name: str) -> Any: ...

    def lookup_link(self, name: str) -> Any: ...

    def list(self, name: str) -> list[NameClassPair]: ...

    def list_bindings(self, name: str) -> list[SearchResult]: ...

    def search(
        self,
        name: str,
        filter_expr: str,
        filter_args: list[Any] | None = None,
        controls: SearchControls | None = None,
    ) -> SearchResults: ...

    def search_by_attributes(
        self,
        name: str,
        matching_attributes: Attributes,
        attributes_to_return: list[str] | None = None,
    ) -> SearchResults: ...

    def get_attributes(
        self, name: str, attribute_ids: list[str] | None = None
    ) -> Attributes: ...

    def modify_attributes(
        self, name: str, modifications: list[ModificationItem]
    ) -> None: ...

    def get_schema(self, name: str) -> Any: ...

    def get_schema_class_definition(self, name: str) -> Any: ...

    def create_subcontext(
        self, name: str, attributes: Attributes | None = None
    ) -> DirContext: ...

    def destroy_subcontext(self, name: str) -> None: ...

    def get_name_parser(self, name: str) -> NameParser: ...

    def compose_name(self, name: str, prefix: str) -> str: ...

    def add_to_environment(self, name: str, value: Any) -> Any: ...

    def remove_from_environment(self, name: str) -> Any: ...

    def get_environment(self) -> dict[str, Any]: ...

    def get_name_in_namespace(self) -> str: ...

    def close(self) -> None: ...


@runtime_checkable
class LDAPContext(DirContext, Protocol):
    """LDAP-specific extensions to a directory context."""

    def extended_operation(
        self, request: ExtendedRequest
    ) -> ExtendedResponse: ...

    def new_instance(
        self, request_controls: list[Control] | None = None
    ) -> LDAPContext: ...

    def reconnect(self, controls: list[Control] | None = None) -> None: ...

    def get_connect_controls(self) -> list[Control]: ...

    def set_request_controls(
        self, request_controls: list[Control] | None
    ) -> None: ...

    def get_request_controls(self) -> list[Control]: ...

    def get_response_controls(self) -> list[Control]: ...


CloseHandler = Callable[[DirContext], None]
"""Disposes of or returns an underlying context instead of closing it."""

InitialContextFactory = Callable[[Mapping[str, Any] | None], DirContext]
"""Opens a new initial context from an optional environment."""
