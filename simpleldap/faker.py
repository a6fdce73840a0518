"""
An in-memory stand-in for the python-ldap ``LDAPObject``, so that
:py:class:`simpleldap.binding.LDAPBinding` (and everything above it) can be
tested without an LDAP server.

:py:class:`FakeLDAPObject` implements the calls ``LDAPBinding`` makes,
records each call in a :py:class:`CallHistory`, and raises the same
python-ldap exceptions a server would.  Its data lives in an
:py:class:`ObjectStore`.
"""

from __future__ import annotations

import inspect
import json
from copy import deepcopy
from dataclasses import dataclass
from functools import wraps
from pathlib import Path
from typing import TYPE_CHECKING, Any

import ldap
from case_insensitive_dict import CaseInsensitiveDict
from ldap_filter import Filter  # type: ignore[reportUnknownVariableType]
from ldap_filter.parser import ParseError

from .logging import logger

if TYPE_CHECKING:
    from collections.abc import Callable

    from .types import AddModList, LDAPData, LDAPRecord, LDAPSearchResult, ModList

#: The vendor info we answer ``OPT_API_INFO`` with
API_INFO: dict[str, int | str] = {
    "info_version": 1,
    "api_version": 3001,
    "vendor_name": "simpleldap-faker",
    "vendor_version": "1.0.0",
}


@dataclass
class LDAPCallRecord:
    """
    One call made to a :py:class:`FakeLDAPObject`.

    Example:
        ``conn.search_s('ou=people,dc=example,dc=com', ldap.SCOPE_ONELEVEL)``
        is recorded as::

            LDAPCallRecord(
                api_name='search_s',
                args={
                    'base': 'ou=people,dc=example,dc=com',
                    'scope': 1,
                    'filterstr': '(objectClass=*)',
                    'attrlist': None,
                }
            )

    """

    api_name: str  #: the name of the method called
    args: dict[str, Any]  #: argument name -> value, defaults included


class CallHistory:
    """
    The calls made to a :py:class:`FakeLDAPObject`, in order.
    """

    def __init__(self, calls: list[LDAPCallRecord] | None = None) -> None:
        self._calls: list[LDAPCallRecord] = calls if calls else []

    def register(self, api_name: str, arguments: dict[str, Any]) -> None:
        self._calls.append(LDAPCallRecord(api_name, arguments))

    def filter_calls(self, api_name: str) -> list[LDAPCallRecord]:
        """
        Return the calls to the method named ``api_name``.
        """
        return [call for call in self._calls if call.api_name == api_name]

    @property
    def calls(self) -> list[LDAPCallRecord]:
        return self._calls

    @property
    def names(self) -> list[str]:
        """
        The names of the methods called, in the order they were called.
        """
        return [call.api_name for call in self._calls]


def record_call(func: Callable[..., Any]) -> Callable[..., Any]:
    """
    Save a record of the call to ``func`` in ``self.calls``.
    """

    @wraps(func)
    def inner(*args, **kwargs) -> Any:
        sig = inspect.signature(func)
        bound = sig.bind(*args, **kwargs)
        bound.apply_defaults()
        args_dict = dict(bound.arguments)
        args_dict.pop("self").calls.register(func.__name__, args_dict)
        logger.debug("record_call api=%s, arguments=%s", func.__name__, args_dict)
        return func(*args, **kwargs)

    return inner


def needs_bind(func: Callable[..., Any]) -> Callable[..., Any]:
    """
    Refuse writes on connections that did not bind as a user.
    """

    @wraps(func)
    def inner(self, dn: str, *args, **kwargs) -> Any:
        if not self.bound_dn:
            raise ldap.INSUFFICIENT_ACCESS(  # type: ignore[attr-defined]
                {
                    "result": 50,
                    "desc": "Insufficient access",
                    "info": f"Insufficient '{func.__name__}' privilege for '{dn}'",
                }
            )
        return func(self, dn, *args, **kwargs)

    return inner


def _no_such_object(dn: str) -> Exception:
    return ldap.NO_SUCH_OBJECT(  # type: ignore[attr-defined]
        {"result": 32, "desc": "No such object", "matched": "", "info": dn}
    )


class ObjectStore:
    """
    The entries of our fake directory.

    Entries are kept twice: :py:attr:`raw_objects` holds them as python-ldap
    returns them (``dict[str, list[bytes]]``); :py:attr:`objects` holds the
    same data with case-insensitive attribute names and ``str`` values,
    which is what ``ldap_filter.Filter.match`` needs.  Both are keyed by DN,
    case-insensitively.
    """

    _DEFAULT_FILTER: str = "(objectclass=*)"

    def __init__(self) -> None:
        self.raw_objects: CaseInsensitiveDict[str, LDAPData] = CaseInsensitiveDict()
        self.objects: CaseInsensitiveDict[str, CaseInsensitiveDict[str, list[str]]] = (
            CaseInsensitiveDict()
        )

    # Loading

    def load_objects(self, filename: str) -> None:
        """
        Load records from a JSON file.  The file holds a list of ``[dn,
        {attribute: [value, ...]}]`` pairs with ``str`` values; they are
        encoded to ``bytes`` as we load them.

        Args:
            filename: the path to the JSON file

        Raises:
            ldap.ALREADY_EXISTS: two records have the same DN

        """
        with Path(filename).open(encoding="utf-8") as fd:
            records = json.load(fd)
        for dn, data in records:
            self.register_object(
                (dn, {attr: [v.encode("utf-8") for v in values] for attr, values in data.items()})
            )

    def register_objects(self, records: list[LDAPRecord]) -> None:
        for record in records:
            self.register_object(record)

    def register_object(self, record: LDAPRecord) -> None:
        """
        Add one python-ldap style ``(dn, data)`` record.

        Raises:
            ldap.ALREADY_EXISTS: there is already an entry with this DN

        """
        dn, data = record
        if self.exists(dn):
            raise ldap.ALREADY_EXISTS({"result": 68, "desc": "Already exists"})  # type: ignore[attr-defined]
        self.set(dn, data)

    # Helpers

    def _validate_dn(self, dn: str) -> None:
        if not ldap.dn.is_dn(dn):  # type: ignore[attr-defined]
            raise ldap.INVALID_DN_SYNTAX(  # type: ignore[attr-defined]
                {
                    "result": 34,
                    "desc": "Invalid DN syntax",
                    "info": "DN value invalid per syntax",
                }
            )

    def _check_base(self, base: str) -> None:
        # The root DSE (empty base) always exists
        if base and not self.exists(base):
            raise _no_such_object(base)

    def _check_bytes(self, values: Any) -> None:
        if not isinstance(values, list) or not all(isinstance(v, bytes) for v in values):
            msg = f"expected a list of byte strings, got {values!r}"
            raise TypeError(msg)

    def _filter(self, filterstr: str) -> Any:
        if filterstr.lower() == self._DEFAULT_FILTER:
            return None
        try:
            return Filter.parse(filterstr)
        except ParseError as exc:
            raise ldap.FILTER_ERROR(  # type: ignore[attr-defined]
                {"result": -7, "desc": "Bad search filter"}
            ) from exc

    def _explode(self, dn: str) -> list[str]:
        return ldap.dn.explode_dn(dn.lower(), flags=ldap.DN_FORMAT_LDAPV3)  # type: ignore[attr-defined]

    def _select(self, data: LDAPData, attrlist: list[str] | None) -> LDAPData:
        if not attrlist or "*" in attrlist:
            return deepcopy(data)
        wanted = {attr.lower() for attr in attrlist}
        return {
            attr: deepcopy(values)
            for attr, values in data.items()
            if attr.lower() in wanted
        }

    def _search(
        self,
        match: Callable[[list[str]], bool],
        filterstr: str,
        attrlist: list[str] | None,
    ) -> LDAPSearchResult:
        filt = self._filter(filterstr)
        results: LDAPSearchResult = []
        for dn, data in self.objects.items():
            if not match(self._explode(dn)):
                continue
            if filt is None or filt.match(data):
                results.append((dn, self._select(self.raw_objects[dn], attrlist)))
        return results

    # Main methods

    @property
    def count(self) -> int:
        return len(self.objects)

    def exists(self, dn: str) -> bool:
        return dn in self.objects

    def get(self, dn: str) -> LDAPData:
        """
        Return the python-ldap style data for ``dn``.

        Raises:
            ldap.INVALID_DN_SYNTAX: ``dn`` is not well formed
            ldap.NO_SUCH_OBJECT: there is no entry ``dn``

        """
        self._validate_dn(dn)
        try:
            return self.raw_objects[dn]
        except KeyError as exc:
            raise _no_such_object(dn) from exc

    def set(self, dn: str, data: LDAPData) -> None:
        self._validate_dn(dn)
        for values in data.values():
            self._check_bytes(values)
        self.raw_objects[dn] = data
        self.objects[dn] = CaseInsensitiveDict(
            {attr: [v.decode("utf-8", "replace") for v in values] for attr, values in data.items()}
        )

    def create(self, dn: str, modlist: AddModList) -> None:
        """
        Add the entry ``dn`` built from the add-modlist ``modlist``.

        Raises:
            ldap.ALREADY_EXISTS: there is already an entry ``dn``

        """
        self._validate_dn(dn)
        if self.exists(dn):
            raise ldap.ALREADY_EXISTS({"result": 68, "desc": "Already exists"})  # type: ignore[attr-defined]
        data: LDAPData = {}
        for attr, values in modlist:
            self._check_bytes(values)
            data[attr] = list(values)
        self.set(dn, data)

    def update(self, dn: str, modlist: ModList) -> None:
        """
        Apply the modify-modlist ``modlist`` to the entry ``dn``.  Nothing is
        changed if any modification fails.

        Raises:
            ldap.NO_SUCH_OBJECT: there is no entry ``dn``
            ldap.TYPE_OR_VALUE_EXISTS: a ``MOD_ADD`` value is already present
            ldap.NO_SUCH_ATTRIBUTE: a ``MOD_DELETE`` names a missing attribute
            ldap.PROTOCOL_ERROR: unknown modify operation

        """
        obj: CaseInsensitiveDict[str, list[bytes]] = CaseInsensitiveDict(deepcopy(self.get(dn)))
        for op, attr, values in modlist:
            if values is not None:
                self._check_bytes(values)
            if op == ldap.MOD_ADD:  # type: ignore[attr-defined]
                current = obj.get(attr, [])
                if {v.lower() for v in current} & {v.lower() for v in values or []}:
                    raise ldap.TYPE_OR_VALUE_EXISTS(  # type: ignore[attr-defined]
                        {"result": 20, "desc": "Type or value exists"}
                    )
                obj[attr] = current + list(values or [])
            elif op == ldap.MOD_DELETE:  # type: ignore[attr-defined]
                if attr not in obj:
                    raise ldap.NO_SUCH_ATTRIBUTE(  # type: ignore[attr-defined]
                        {"result": 16, "desc": "No such attribute"}
                    )
                if not values:
                    del obj[attr]
                else:
                    doomed = {v.lower() for v in values}
                    obj[attr] = [v for v in obj[attr] if v.lower() not in doomed]
                    if not obj[attr]:
                        del obj[attr]
            elif op == ldap.MOD_REPLACE:  # type: ignore[attr-defined]
                if values:
                    obj[attr] = list(values)
                elif attr in obj:
                    del obj[attr]
            else:
                raise ldap.PROTOCOL_ERROR(  # type: ignore[attr-defined]
                    {"result": 2, "desc": "Protocol error", "info": "unrecognized modify operation"}
                )
        self.set(dn, dict(obj.items()))

    def delete(self, dn: str) -> None:
        """
        Raises:
            ldap.NO_SUCH_OBJECT: there is no entry ``dn``

        """
        self._validate_dn(dn)
        if not self.exists(dn):
            raise _no_such_object(dn)
        del self.objects[dn]
        del self.raw_objects[dn]

    def search_base(
        self, base: str, filterstr: str, attrlist: list[str] | None = None
    ) -> LDAPSearchResult:
        """
        A ``SCOPE_BASE`` search: ``base`` itself, if it matches ``filterstr``.

        Raises:
            ldap.NO_SUCH_OBJECT: there is no entry ``base``

        """
        self.get(base)
        base_parts = self._explode(base)
        return self._search(lambda parts: parts == base_parts, filterstr, attrlist)

    def search_onelevel(
        self, base: str, filterstr: str, attrlist: list[str] | None = None
    ) -> LDAPSearchResult:
        """
        A ``SCOPE_ONELEVEL`` search: the entries directly under ``base``.

        Raises:
            ldap.NO_SUCH_OBJECT: there is no entry ``base``

        """
        self._validate_dn(base)
        self._check_base(base)
        base_parts = self._explode(base)
        return self._search(lambda parts: parts[1:] == base_parts, filterstr, attrlist)

    def search_subtree(
        self, base: str, filterstr: str, attrlist: list[str] | None = None
    ) -> LDAPSearchResult:
        """
        A ``SCOPE_SUBTREE`` search: ``base`` and everything under it.

        Raises:
            ldap.NO_SUCH_OBJECT: there is no entry ``base``

        """
        self._validate_dn(base)
        self._check_base(base)
        base_parts = self._explode(base)
        if not base_parts:
            return self._search(lambda parts: True, filterstr, attrlist)
        size = len(base_parts)
        return self._search(lambda parts: parts[-size:] == base_parts, filterstr, attrlist)


class FakeLDAPObject:
    """
    Simulates the parts of ``ldap.ldapobject.LDAPObject`` that
    :py:class:`simpleldap.binding.LDAPBinding` uses.

    Args:
        uri: the LDAP URI of the connection

    Keyword Args:
        store: the entries of the directory; an empty store if not given

    """

    def __init__(self, uri: str, store: ObjectStore | None = None) -> None:
        self.uri: str = uri  #: the LDAP URI for this connection
        self.store: ObjectStore = store if store is not None else ObjectStore()
        self.calls: CallHistory = CallHistory()  #: the method call history
        self.options: dict[int, Any] = {}  #: options set with :py:meth:`set_option`
        self.tls_enabled: bool = False  #: set by :py:meth:`start_tls_s`
        self.bound_dn: str | None = None  #: set by a successful :py:meth:`simple_bind_s`
        self.unbound: bool = False  #: set by :py:meth:`unbind_s`

    @record_call
    def set_option(self, option: int, invalue: Any) -> None:
        """
        Raises:
            ValueError: ``option`` is not a python-ldap option

        """
        if option not in ldap.OPT_NAMES_DICT:  # type: ignore[attr-defined]
            msg = f"unknown option {option}"
            raise ValueError(msg)
        self.options[option] = invalue

    @record_call
    def get_option(self, option: int) -> Any:
        """
        Raises:
            ValueError: ``option`` is not a python-ldap option
            KeyError: ``option`` was never set

        """
        if option not in ldap.OPT_NAMES_DICT:  # type: ignore[attr-defined]
            msg = f"unknown option {option}"
            raise ValueError(msg)
        if option == ldap.OPT_URI:  # type: ignore[attr-defined]
            return self.uri
        if option == ldap.OPT_PROTOCOL_VERSION:  # type: ignore[attr-defined]
            return self.options.get(option, ldap.VERSION3)  # type: ignore[attr-defined]
        if option == ldap.OPT_API_INFO:  # type: ignore[attr-defined]
            return dict(API_INFO)
        return self.options[option]

    @record_call
    def simple_bind_s(self, who: str | None = None, cred: str | None = None) -> None:
        """
        Bind as ``who``.  ``cred`` must equal one of the entry's
        ``userPassword`` values.  With neither argument this is an anonymous
        bind, which always works.

        Raises:
            ldap.INVALID_CREDENTIALS: no entry ``who``, or a wrong password

        """
        if not who and not cred:
            self.bound_dn = None
            return
        if who and self.store.exists(who) and cred is not None:
            passwords = CaseInsensitiveDict(self.store.get(who)).get("userPassword", [])
            if cred.encode("utf-8") in passwords:
                self.bound_dn = who
                return
        raise ldap.INVALID_CREDENTIALS(  # type: ignore[attr-defined]
            {"result": 49, "desc": "Invalid credentials"}
        )

    @record_call
    def start_tls_s(self) -> None:
        """
        Raises:
            ldap.LOCAL_ERROR: TLS was already started on this connection

        """
        if self.tls_enabled:
            raise ldap.LOCAL_ERROR(  # type: ignore[attr-defined]
                {"result": -2, "desc": "Local error", "info": "TLS already started"}
            )
        self.tls_enabled = True

    @record_call
    def search_s(
        self,
        base: str,
        scope: int,
        filterstr: str = "(objectClass=*)",
        attrlist: list[str] | None = None,
    ) -> LDAPSearchResult:
        if scope == ldap.SCOPE_BASE:  # type: ignore[attr-defined]
            return self.store.search_base(base, filterstr, attrlist)
        if scope == ldap.SCOPE_ONELEVEL:  # type: ignore[attr-defined]
            return self.store.search_onelevel(base, filterstr, attrlist)
        return self.store.search_subtree(base, filterstr, attrlist)

    @needs_bind
    @record_call
    def add_s(self, dn: str, modlist: AddModList) -> None:
        self.store.create(dn, modlist)

    @needs_bind
    @record_call
    def modify_s(self, dn: str, modlist: ModList) -> None:
        self.store.update(dn, modlist)

    @needs_bind
    @record_call
    def delete_s(self, dn: str) -> None:
        self.store.delete(dn)

    @needs_bind
    @record_call
    def rename_s(
        self,
        dn: str,
        newrdn: str,
        newsuperior: str | None = None,
        delold: int = 1,
    ) -> None:
        """
        Move ``dn`` to ``newrdn,newsuperior`` (``newsuperior`` defaults to the
        current parent).  The RDN attribute is set to its new value.

        Raises:
            ldap.NO_SUCH_OBJECT: there is no entry ``dn``
            ldap.ALREADY_EXISTS: the new DN is taken

        """
        data: CaseInsensitiveDict[str, list[bytes]] = CaseInsensitiveDict(
            deepcopy(self.store.get(dn))
        )
        parent = newsuperior if newsuperior else ",".join(dn.split(",")[1:])
        newdn = f"{newrdn},{parent}" if parent else newrdn
        if self.store.exists(newdn):
            raise ldap.ALREADY_EXISTS({"result": 68, "desc": "Already exists"})  # type: ignore[attr-defined]
        attr, value = newrdn.split("=", 1)
        if delold:
            data[attr] = [value.encode("utf-8")]
        else:
            data[attr] = [*data.get(attr, []), value.encode("utf-8")]
        self.store.set(newdn, dict(data.items()))
        self.store.delete(dn)

    @record_call
    def unbind_s(self) -> None:
        self.bound_dn = None
        self.unbound = True


class FakeLDAP:
    """
    Replacement for :py:func:`ldap.initialize`.  Every connection made
    through :py:meth:`initialize` gets a :py:class:`FakeLDAPObject` backed by
    a :py:func:`copy.deepcopy` of ``store``; connections to the same URI
    share their copy.

    Args:
        store: the entries every fake server starts with

    """

    def __init__(self, store: ObjectStore | None = None) -> None:
        self.store: ObjectStore = store if store is not None else ObjectStore()
        #: the connections handed out, in order
        self.connections: list[FakeLDAPObject] = []
        #: uri -> the store copy serving that uri
        self.stores: dict[str, ObjectStore] = {}
        #: URIs for which :py:meth:`initialize` acts as if the server is down
        self.down: set[str] = set()

    def initialize(self, uri: str, *args, **kwargs) -> FakeLDAPObject:  # noqa: ARG002
        """
        Raises:
            ldap.SERVER_DOWN: ``uri`` was added to :py:attr:`down`

        """
        logger.debug("fake_ldap.initialize uri=%s", uri)
        if uri in self.down:
            raise ldap.SERVER_DOWN(  # type: ignore[attr-defined]
                {"result": -1, "desc": "Can't contact LDAP server"}
            )
        if uri not in self.stores:
            self.stores[uri] = deepcopy(self.store)
        conn = FakeLDAPObject(uri, store=self.stores[uri])
        self.connections.append(conn)
        return conn

    def has_connection(self, uri: str) -> bool:
        return any(conn.uri == uri for conn in self.connections)

    def get_connections(self, uri: str) -> list[FakeLDAPObject]:
        return [conn for conn in self.connections if conn.uri == uri]
