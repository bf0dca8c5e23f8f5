"""Fake directory contexts for testing."""

from __future__ import annotations

import socket
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

from ldapscope.exceptions import ReferralError
from ldapscope.interfaces import DirContext
from ldapscope.models.ldap import (
    Attributes,
    Control,
    ExtendedRequest,
    ExtendedResponse,
    ModificationItem,
    NameClassPair,
    SearchControls,
    SearchResult,
)
from ldapscope.scope import get_socket_factory
from ldapscope.sockets import SocketFactory

__all__ = [
    "Call",
    "FakeDirContext",
    "FakeLDAPContext",
    "FakeReferralError",
    "FakeSearchResults",
    "FakeSocketFactory",
]


@dataclass
class Call:
    """A call made to a fake, with the socket factory installed at the time."""

    method: str
    args: tuple[Any, ...]
    socket_factory: SocketFactory | None


class FakeSocketFactory:
    """Socket factory that records the connections it is asked to open."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.addresses: list[tuple[str, int]] = []

    def __repr__(self) -> str:
        return f"<FakeSocketFactory {self.name}>"

    def create_connection(
        self, address: tuple[str, int], timeout: float | None = None
    ) -> socket.socket:
        self.addresses.append(address)
        return socket.socket()


@dataclass
class FakeSearchResults:
    """Search cursor that records the socket factory seen by each pull."""

    entries: list[SearchResult]
    error: Exception | None = None
    pulls: list[SocketFactory | None] = field(default_factory=list)
    closed: bool = False
    closed_with: SocketFactory | None = None
    _position: int = 0

    def __iter__(self) -> Iterator[SearchResult]:
        return self

    def __next__(self) -> SearchResult:
        return self.next()

    def has_more(self) -> bool:
        self.pulls.append(get_socket_factory())
        if self.error and self._position >= len(self.entries):
            raise self.error
        return self._position < len(self.entries)

    def next(self) -> SearchResult:
        self.pulls.append(get_socket_factory())
        if self._position >= len(self.entries):
            if self.error:
                raise self.error
            raise StopIteration
        entry = self.entries[self._position]
        self._position += 1
        return entry

    def close(self) -> None:
        self.closed = True
        self.closed_with = get_socket_factory()


class FakeDirContext:
    """Directory context supporting only the general operations.

    Every call is recorded along with the socket factory installed at the
    time. Results can be preset per method in ``results`` and errors in
    ``errors``.
    """

    def __init__(self, name: str = "fake") -> None:
        self.name = name
        self.calls: list[Call] = []
        self.results: dict[str, Any] = {}
        self.errors: dict[str, Exception] = {}
        self.close_count = 0

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"

    def _call(self, method: str, *args: Any) -> Any:
        self.calls.append(Call(method, args, get_socket_factory()))
        if method in self.errors:
            raise self.errors[method]
        return self.results.get(method)

    @property
    def methods(self) -> list[str]:
        return [c.method for c in self.calls]

    def bind(
        self, name: str, obj: Any, attributes: Attributes | None = None
    ) -> None:
        self._call("bind", name, obj, attributes)

    def rebind(
        self, name: str, obj: Any, attributes: Attributes | None = None
    ) -> None:
        self._call("rebind", name, obj, attributes)

    def unbind(self, name: str) -> None:
        self._call("unbind", name)

    def rename(self, old_name: str, new_name: str) -> None:
        self._call("rename", old_name, new_name)

    def lookup(self, name: str) -> Any:
        return self._call("lookup", name)

    def lookup_link(self, name: str) -> Any:
        return self._call("lookup_link", name)

    def list(self, name: str) -> list[NameClassPair]:
        return self._call("list", name)

    def list_bindings(self, name: str) -> list[SearchResult]:
        return self._call("list_bindings", name)

    def search(
        self,
        name: str,
        filter_expr: str,
        filter_args: list[Any] | None = None,
        controls: SearchControls | None = None,
    ) -> FakeSearchResults:
        return self._call("search", name, filter_expr, filter_args, controls)

    def search_by_attributes(
        self,
        name: str,
        matching_attributes: Attributes,
        attributes_to_return: list[str] | None = None,
    ) -> FakeSearchResults:
        return self._call(
            "search_by_attributes",
            name,
            matching_attributes,
            attributes_to_return,
        )

    def get_attributes(
        self, name: str, attribute_ids: list[str] | None = None
    ) -> Attributes:
        return self._call("get_attributes", name, attribute_ids)

    def modify_attributes(
        self, name: str, modifications: list[ModificationItem]
    ) -> None:
        self._call("modify_attributes", name, modifications)

    def get_schema(self, name: str) -> Any:
        return self._call("get_schema", name)

    def get_schema_class_definition(self, name: str) -> Any:
        return self._call("get_schema_class_definition", name)

    def create_subcontext(
        self, name: str, attributes: Attributes | None = None
    ) -> DirContext:
        return self._call("create_subcontext", name, attributes)

    def destroy_subcontext(self, name: str) -> None:
        self._call("destroy_subcontext", name)

    def get_name_parser(self, name: str) -> Any:
        return self._call("get_name_parser", name)

    def compose_name(self, name: str, prefix: str) -> str:
        return self._call("compose_name", name, prefix)

    def add_to_environment(self, name: str, value: Any) -> Any:
        return self._call("add_to_environment", name, value)

    def remove_from_environment(self, name: str) -> Any:
        return self._call("remove_from_environment", name)

    def get_environment(self) -> dict[str, Any]:
        return self._call("get_environment")

    def get_name_in_namespace(self) -> str:
        return self._call("get_name_in_namespace")

    def close(self) -> None:
        self.close_count += 1
        self._call("close")


class FakeLDAPContext(FakeDirContext):
    """Directory context that also supports the LDAP extensions."""

    def extended_operation(
        self, request: ExtendedRequest
    ) -> ExtendedResponse:
        return self._call("extended_operation", request)

    def new_instance(
        self, request_controls: list[Control] | None = None
    ) -> FakeLDAPContext:
        self._call("new_instance", request_controls)
        return self.results.get("new_instance") or FakeLDAPContext(
            f"{self.name}-copy"
        )

    def reconnect(self, controls: list[Control] | None = None) -> None:
        self._call("reconnect", controls)

    def get_connect_controls(self) -> list[Control]:
        return self._call("get_connect_controls")

    def set_request_controls(
        self, request_controls: list[Control] | None
    ) -> None:
        self._call("set_request_controls", request_controls)

    def get_request_controls(self) -> list[Control]:
        return self._call("get_request_controls")

    def get_response_controls(self) -> list[Control]:
        return self._call("get_response_controls")


class FakeReferralError(ReferralError):
    """Referral whose context is preset, recording how it was obtained."""

    def __init__(
        self,
        context: DirContext | None = None,
        error: Exception | None = None,
    ) -> None:
        super().__init__("Referral", ["ldap://other.example.com/"])
        self.context = context
        self.error = error
        self.obtained_with: list[SocketFactory | None] = []

    def get_referral_context(self) -> DirContext:
        self.obtained_with.append(get_socket_factory())
        if self.error:
            raise self.error
        assert self.context
        return self.context
