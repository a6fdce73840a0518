from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from typing import TYPE_CHECKING

from case_insensitive_dict import CaseInsensitiveDict

from .binding import DEFAULT_FILTER
from .exceptions import EntryNotFound
from .logging import logger
from .types import AttributeValue, EntryAttributes

if TYPE_CHECKING:
    from .binding import RawEntry
    from .directory import Directory
    from .resultset import ResultSet
    from .types import Attributes, LDAPData


def _decode(value: bytes) -> str | bytes:
    try:
        return value.decode("utf-8")
    except UnicodeDecodeError:
        # binary attribute (jpegPhoto, objectGUID, ...)
        return value


def normalize_attributes(data: Mapping[str, list[bytes]]) -> EntryAttributes:
    """
    Convert attributes as python-ldap returns them (``dict[str,
    list[bytes]]``) into the form :py:class:`Entry` presents them:

    * attribute names are lower-cased
    * values are decoded from UTF-8 (binary values stay ``bytes``)
    * an attribute with one value maps to that value, an attribute with
      several values maps to the list of them, in order

    Example:
        >>> attrs = normalize_attributes(
        ...     {'objectClass': [b'top', b'person', b'inetOrgPerson'], 'CN': [b'Fred']}
        ... )
        >>> attrs['objectclass']
        ['top', 'person', 'inetOrgPerson']
        >>> attrs['cn']
        'Fred'

    Args:
        data: the python-ldap attribute dict

    Returns:
        A case-insensitive dict of the normalized attributes.

    """
    attributes: EntryAttributes = CaseInsensitiveDict()
    for name, values in data.items():
        decoded = [_decode(v) for v in values]
        value: AttributeValue
        if len(decoded) > 1:
            value = decoded
        elif decoded:
            value = decoded[0]
        else:
            value = None
        attributes[name.lower()] = value
    return attributes


class Entry:
    """
    An object in the directory, addressed by its DN.

    An entry built from a search result already has its attributes.  An
    entry built from just a DN (see :py:meth:`Directory.fetch`) has none
    until they are first needed: :py:meth:`get`, :py:meth:`attributes`,
    :py:meth:`has_attribute`, ``len()`` and iteration all read the entry
    from the directory on first use.

    Attribute names are case-insensitive.  Reading an attribute the entry
    doesn't have logs a warning and returns ``None``.

    Writes (:py:meth:`set_attribute`, :py:meth:`modify` etc.) go straight to
    the directory.  After a write the entry reloads itself on next access.

    Args:
        directory: the directory this entry lives in
        dn: the DN of the entry

    Keyword Args:
        attributes: the attributes as returned by python-ldap.  If given, the
            entry counts as loaded.

    """

    def __init__(
        self,
        directory: Directory,
        dn: str,
        attributes: LDAPData | None = None,
    ) -> None:
        self.directory: Directory = directory
        self._dn: str = str(dn)
        self._attributes: EntryAttributes = CaseInsensitiveDict()
        self._loaded: bool = False
        if attributes is not None:
            self._attributes = normalize_attributes(attributes)
            self._loaded = True

    @classmethod
    def from_raw(cls, directory: Directory, raw: RawEntry) -> Entry:
        """
        Build a loaded entry from a binding result entry.  All data is copied
        out of ``raw`` here.
        """
        return cls(directory, raw.get_dn(), attributes=raw.get_attributes())

    def __str__(self) -> str:
        return self._dn

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {self._dn}>"

    @property
    def dn(self) -> str:
        return self._dn

    @property
    def loaded(self) -> bool:
        """
        ``True`` once the attributes have been fetched from the directory.
        """
        return self._loaded

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.refresh()

    def _written(self) -> None:
        self._loaded = False

    # Reading

    def refresh(self) -> None:
        """
        (Re)load the attributes of this entry from the directory.

        Raises:
            EntryNotFound: there is no entry with our DN in the directory
            OperationFailure: the read failed

        """
        logger.debug("entry.refresh dn=%s", self._dn)
        entry = self.directory.read(self._dn)
        if entry is None:
            raise EntryNotFound(self._dn)
        self._attributes = CaseInsensitiveDict(entry._attributes)
        self._loaded = True

    def attributes(self) -> Attributes:
        """
        Return all attributes as a dict keyed by lower-cased attribute name.
        """
        self._ensure_loaded()
        return dict(self._attributes.items())

    def get(self, name: str) -> AttributeValue:
        """
        Return the value of attribute ``name``: a single value, or a list if
        the attribute has several values.

        If the entry has no such attribute a warning is logged and ``None``
        is returned.

        Args:
            name: the attribute name, in any case

        """
        self._ensure_loaded()
        try:
            return self._attributes[name.lower()]
        except KeyError:
            logger.warning("Undefined attribute %s on entry %s", name, self._dn)
            return None

    def has_attribute(self, name: str) -> bool:
        self._ensure_loaded()
        return name.lower() in self._attributes

    def __len__(self) -> int:
        self._ensure_loaded()
        return len(self._attributes)

    def __iter__(self) -> Iterator[tuple[str, AttributeValue]]:
        self._ensure_loaded()
        return iter(list(self._attributes.items()))

    # Navigation

    def parent(self) -> Entry | None:
        """
        Return an (unloaded) entry for our parent, worked out from our DN
        alone, or ``None`` if our DN has a single component.
        """
        parent_dn = ",".join(self._dn.split(",")[1:]).strip()
        if not parent_dn:
            return None
        return Entry(self.directory, parent_dn)

    def search(
        self, filterstr: str, attributes: Iterable[str] | None = None
    ) -> ResultSet:
        """
        Search the subtree under (and including) this entry.
        """
        return self.directory.search(self._dn, filterstr, attributes)

    def list_children(
        self,
        filterstr: str = DEFAULT_FILTER,
        attributes: Iterable[str] | None = None,
    ) -> ResultSet:
        """
        List the entries directly under this entry.
        """
        return self.directory.list_children(self._dn, filterstr, attributes)

    # Writing

    def set_attribute(self, name: str, value: AttributeValue) -> None:
        """
        Replace the values of attribute ``name`` with ``value``.
        """
        self.modify({name: value})

    def delete_attribute(self, name: str) -> None:
        """
        Remove attribute ``name`` and all of its values.
        """
        self.mod_del({name: []})

    def modify(self, attributes: Attributes) -> None:
        self.directory.modify(self._dn, attributes)
        self._written()

    def mod_add(self, attributes: Attributes) -> None:
        self.directory.mod_add(self._dn, attributes)
        self._written()

    def mod_del(self, attributes: Attributes) -> None:
        self.directory.mod_del(self._dn, attributes)
        self._written()

    def mod_replace(self, attributes: Attributes) -> None:
        self.directory.mod_replace(self._dn, attributes)
        self._written()

    def rename(self, new_dn: str) -> None:
        """
        Rename this entry.  See :py:meth:`Directory.rename` for how
        ``new_dn`` is interpreted.  Afterwards this object addresses the new
        DN.
        """
        self._dn = self.directory.rename(self._dn, new_dn)
        self._written()

    def delete(self) -> None:
        self.directory.delete(self._dn)
