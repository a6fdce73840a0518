"""
The thin layer between :py:class:`simpleldap.directory.Directory` and
python-ldap.

:py:class:`LDAPBinding` owns one ``ldap.ldapobject.LDAPObject`` and exposes
it through the small set of calls that ``Directory`` needs.  Search style
calls return a :py:class:`RawResult`, a forward-only handle on the records
the server sent back.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

import ldap
from ldap import modlist
from ldap_filter import Filter  # type: ignore[reportUnknownVariableType]
from ldap_filter.parser import ParseError

from .logging import logger

if TYPE_CHECKING:
    from .types import (
        AddModList,
        AttributeValue,
        LDAPData,
        LDAPOptionId,
        LDAPOptionValue,
        LDAPSearchResult,
        ModList,
    )

#: The filter used when the caller doesn't give one
DEFAULT_FILTER: str = "(objectClass=*)"


def resolve_option(option: LDAPOptionId) -> int:
    """
    Turn an option name like ``"OPT_REFERRALS"`` into the python-ldap option
    code.  Integers are returned untouched.

    Args:
        option: a python-ldap option code or its name

    Raises:
        ValueError: ``option`` is a name python-ldap does not know

    Returns:
        The option code.

    """
    if isinstance(option, int):
        return option
    name = option.upper()
    if not name.startswith("OPT_"):
        name = f"OPT_{name}"
    for code, code_name in ldap.OPT_NAMES_DICT.items():  # type: ignore[attr-defined]
        if code_name == name:
            return code
    msg = f"unknown option {option}"
    raise ValueError(msg)


def normalize_filter(filterstr: str | None) -> str:
    """
    Return ``filterstr`` as an RFC 4515 filter python-ldap will accept: add
    the outer parentheses if they are missing, and check the syntax.

    Args:
        filterstr: an LDAP filter, e.g. ``objectClass=*`` or ``(uid=foo)``

    Raises:
        ldap.FILTER_ERROR: the filter has bad syntax

    Returns:
        The filter string.

    """
    if not filterstr:
        return DEFAULT_FILTER
    filterstr = filterstr.strip()
    if not filterstr.startswith("("):
        filterstr = f"({filterstr})"
    if filterstr != DEFAULT_FILTER:
        try:
            Filter.parse(filterstr)
        except ParseError as exc:
            raise ldap.FILTER_ERROR(  # type: ignore[attr-defined]
                {"result": -7, "desc": "Bad search filter", "info": str(exc)}
            ) from exc
    return filterstr


def encode_value(value: Any) -> bytes:
    """
    Encode a single attribute value the way python-ldap wants it.
    """
    if isinstance(value, bytes):
        return value
    if isinstance(value, bool):
        return b"TRUE" if value else b"FALSE"
    return str(value).encode("utf-8")


def encode_values(value: AttributeValue) -> list[bytes]:
    """
    Encode an attribute value or list of values as ``list[bytes]``.

    Args:
        value: a scalar, a list of scalars, or ``None``

    Returns:
        The encoded values; empty for ``None``.

    """
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        return [encode_value(v) for v in value]
    return [encode_value(value)]


def encode_attributes(attributes: Mapping[str, AttributeValue]) -> LDAPData:
    return {name: encode_values(value) for name, value in attributes.items()}


class RawEntry:
    """
    One entry of a :py:class:`RawResult`.

    Args:
        result: the result this entry belongs to
        index: the position of this entry in ``result``
        record: the ``(dn, data)`` python-ldap record

    """

    def __init__(self, result: RawResult, index: int, record: tuple[str, LDAPData]):
        self.result = result
        self.index = index
        self.dn, self.data = record

    def get_dn(self) -> str:
        return self.dn

    def get_attributes(self) -> LDAPData:
        """
        Return the attributes exactly as python-ldap gave them to us: a dict of
        attribute name to ``list[bytes]``.
        """
        return self.data

    def next_entry(self) -> RawEntry | None:
        """
        Return the entry after this one, or ``None`` at the end of the result.
        """
        return self.result.entry_at(self.index + 1)


class RawResult:
    """
    A forward-only handle on the records returned by a search.  Referral
    records (python-ldap returns them with a ``dn`` of ``None``) are dropped.

    Args:
        records: the records returned by ``search_s``

    """

    def __init__(self, records: LDAPSearchResult | None = None):
        self.records: LDAPSearchResult | None = [
            record for record in (records or []) if record[0] is not None
        ]

    def entry_count(self) -> int:
        if self.records is None:
            return 0
        return len(self.records)

    def first_entry(self) -> RawEntry | None:
        return self.entry_at(0)

    def entry_at(self, index: int) -> RawEntry | None:
        if self.records is None or index >= len(self.records):
            return None
        return RawEntry(self, index, self.records[index])

    def close(self) -> None:
        """
        Release the records.  A closed result has no entries.
        """
        self.records = None

    @property
    def closed(self) -> bool:
        return self.records is None


class LDAPBinding:
    """
    Drive a python-ldap ``LDAPObject``.

    Errors are not caught here: python-ldap exceptions propagate to
    :py:class:`simpleldap.directory.Directory`, which wraps them.
    """

    def __init__(self) -> None:
        self.uri: str | None = None  #: the URI we connected to
        self.connection: Any = None  #: the python-ldap LDAPObject

    def _conn(self) -> Any:
        if self.connection is None:
            raise ldap.SERVER_DOWN({"desc": "Not connected", "result": -1})  # type: ignore[attr-defined]
        return self.connection

    def _search(
        self,
        base: str,
        scope: int,
        filterstr: str | None,
        attrlist: Iterable[str] | None,
    ) -> RawResult:
        attrs = list(attrlist) if attrlist is not None else None
        filterstr = normalize_filter(filterstr)
        logger.debug(
            "binding.search base=%s scope=%s filter=%s attrs=%s",
            base,
            scope,
            filterstr,
            attrs,
        )
        return RawResult(self._conn().search_s(base, scope, filterstr, attrs))

    def _modify(self, dn: str, op: int, attributes: Mapping[str, AttributeValue]) -> None:
        mods: ModList = []
        for name, value in attributes.items():
            values = encode_values(value)
            mods.append((op, name, values or None))
        logger.debug("binding.modify dn=%s op=%s attrs=%s", dn, op, list(attributes))
        self._conn().modify_s(dn, mods)

    # Connection

    def connect(self, uri: str) -> None:
        """
        Create the python-ldap connection object for ``uri``.  python-ldap
        doesn't open the socket until the first operation (the bind).
        """
        logger.debug("binding.connect uri=%s", uri)
        self.connection = ldap.initialize(uri)
        self.uri = uri

    def bind(self, user: str | None = None, password: str | None = None) -> None:
        logger.debug("binding.bind user=%s", user)
        self._conn().simple_bind_s(user, password)

    def start_tls(self) -> None:
        logger.debug("binding.start_tls uri=%s", self.uri)
        self._conn().start_tls_s()

    def set_option(self, option: LDAPOptionId, value: LDAPOptionValue) -> None:
        self._conn().set_option(resolve_option(option), value)

    def get_option(self, option: LDAPOptionId) -> Any:
        return self._conn().get_option(resolve_option(option))

    def close(self) -> None:
        """
        Unbind and forget the connection.  Closing twice does nothing.
        """
        if self.connection is None:
            return
        connection, self.connection = self.connection, None
        logger.debug("binding.close uri=%s", self.uri)
        connection.unbind_s()

    # Writes

    def add(self, dn: str, attributes: Mapping[str, AttributeValue]) -> None:
        mods: AddModList = modlist.addModlist(encode_attributes(attributes))
        logger.debug("binding.add dn=%s attrs=%s", dn, list(attributes))
        self._conn().add_s(dn, mods)

    def delete(self, dn: str) -> None:
        logger.debug("binding.delete dn=%s", dn)
        self._conn().delete_s(dn)

    def modify(self, dn: str, attributes: Mapping[str, AttributeValue]) -> None:
        self._modify(dn, ldap.MOD_REPLACE, attributes)  # type: ignore[attr-defined]

    def mod_add(self, dn: str, attributes: Mapping[str, AttributeValue]) -> None:
        self._modify(dn, ldap.MOD_ADD, attributes)  # type: ignore[attr-defined]

    def mod_del(self, dn: str, attributes: Mapping[str, AttributeValue]) -> None:
        self._modify(dn, ldap.MOD_DELETE, attributes)  # type: ignore[attr-defined]

    def mod_replace(self, dn: str, attributes: Mapping[str, AttributeValue]) -> None:
        self._modify(dn, ldap.MOD_REPLACE, attributes)  # type: ignore[attr-defined]

    def rename(self, dn: str, new_rdn: str, new_parent: str | None = None) -> None:
        logger.debug(
            "binding.rename dn=%s new_rdn=%s new_parent=%s", dn, new_rdn, new_parent
        )
        self._conn().rename_s(dn, new_rdn, new_parent or None, 1)

    # Reads

    def read(
        self,
        dn: str,
        filterstr: str | None = DEFAULT_FILTER,
        attrlist: Iterable[str] | None = None,
    ) -> RawResult:
        """
        Fetch the single entry ``dn``.  A DN that doesn't exist gives an empty
        result rather than ``ldap.NO_SUCH_OBJECT``.
        """
        try:
            return self._search(dn, ldap.SCOPE_BASE, filterstr, attrlist)  # type: ignore[attr-defined]
        except ldap.NO_SUCH_OBJECT:  # type: ignore[attr-defined]
            return RawResult()

    def search(
        self,
        dn: str,
        filterstr: str | None = DEFAULT_FILTER,
        attrlist: Iterable[str] | None = None,
    ) -> RawResult:
        return self._search(dn, ldap.SCOPE_SUBTREE, filterstr, attrlist)  # type: ignore[attr-defined]

    def list_children(
        self,
        dn: str,
        filterstr: str | None = DEFAULT_FILTER,
        attrlist: Iterable[str] | None = None,
    ) -> RawResult:
        return self._search(dn, ldap.SCOPE_ONELEVEL, filterstr, attrlist)  # type: ignore[attr-defined]
