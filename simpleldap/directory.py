"""
:py:class:`Directory` is the entry point of ``simpleldap``: a connected,
bound session against one LDAP server.

Example:
    >>> from simpleldap import DirectoryFactory, OPT_ENTRY_PERSISTENCE
    >>> factory = DirectoryFactory(options={OPT_ENTRY_PERSISTENCE: True})
    >>> with factory.create("tls://ldap.example.com", "cn=admin,dc=example,dc=com", "secret") as directory:
    ...     for person in directory.search("ou=people,dc=example,dc=com", "(objectClass=person)"):
    ...         print(person.dn, person.get("mail"))
"""  # noqa: E501

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from contextlib import suppress
from functools import wraps
from typing import TYPE_CHECKING, Any

from .binding import DEFAULT_FILTER, LDAPBinding
from .entry import Entry
from .exceptions import ConnectionFailure, OperationFailure, SimpleLDAPError
from .logging import logger
from .options import DirectoryOptions
from .resultset import ResultSet
from .uri import ConnectionDescriptor, SecurityMode, parse_uri

if TYPE_CHECKING:
    from .binding import RawResult
    from .types import Attributes, LDAPOptionId, LDAPOptions, LDAPOptionValue


def wrap_errors(verb: str) -> Callable[..., Any]:
    """
    Re-raise any non-``simpleldap`` error raised by the decorated method as
    :py:class:`simpleldap.exceptions.OperationFailure`.  The first argument
    of the decorated method must be the target DN.

    Args:
        verb: used in the error message, as in ``Unable to <verb> <dn>``

    """

    def real_decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(func)
        def inner(self, dn: str, *args, **kwargs) -> Any:
            try:
                return func(self, dn, *args, **kwargs)
            except SimpleLDAPError:
                raise
            except Exception as exc:
                logger.debug("directory.%s.failed dn=%s error=%r", func.__name__, dn, exc)
                raise OperationFailure(
                    func.__name__, dn, exc, message=f"Unable to {verb} {dn}"
                ) from exc

        return inner

    return real_decorator


class Directory:
    """
    A session with an LDAP directory.

    Constructing a :py:class:`Directory` connects and binds:

    1. ``uri`` is resolved with :py:func:`simpleldap.uri.parse_uri`
    2. the binding connects to ``{scheme}://{host}:{port}``
    3. each option in ``options`` is set, in order
    4. the binding binds as the resolved user (anonymously if there is none)
    5. for ``tls://`` URIs, the connection is upgraded with StartTLS

    If any of steps 2-5 fails, :py:class:`simpleldap.exceptions.ConnectionFailure`
    is raised and no session is returned.

    Every operation forwards to the binding; errors from the binding are
    raised as :py:class:`simpleldap.exceptions.OperationFailure`.

    Args:
        binding: a fresh, unconnected binding, normally a
            :py:class:`simpleldap.binding.LDAPBinding`
        uri: the connection string, e.g. ``ldaps://ldap.example.com``

    Keyword Args:
        user: the bind DN; overrides a user given in ``uri``
        password: the bind password; overrides a password given in ``uri``
        options: option id -> value.  ``simpleldap`` options (see
            :py:mod:`simpleldap.options`) are kept by us, the rest are set on
            the binding before binding.

    Raises:
        InvalidURI: ``uri`` could not be resolved
        ConnectionFailure: connecting, setting options, binding or StartTLS
            failed

    """

    def __init__(
        self,
        binding: Any,
        uri: str,
        user: str | None = None,
        password: str | None = None,
        options: LDAPOptions | None = None,
    ) -> None:
        self.options: DirectoryOptions = DirectoryOptions()
        self._descriptor: ConnectionDescriptor = parse_uri(uri, user, password)
        d = self._descriptor
        try:
            binding.connect(d.uri)
            for option, value in (options or {}).items():
                if self.options.is_internal(option):
                    self.options.set(option, value)
                else:
                    binding.set_option(option, value)
            binding.bind(d.user, d.password)
            if d.security_mode == SecurityMode.TLS:
                binding.start_tls()
        except Exception as exc:
            logger.debug("directory.connect.failed uri=%s error=%r", d.uri, exc)
            with suppress(Exception):
                binding.close()
            raise ConnectionFailure(d.host, d.port, exc) from exc
        self._binding: Any = binding
        logger.debug(
            "directory.connected uri=%s user=%s security=%s",
            d.uri,
            d.user,
            d.security_mode.name,
        )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {self._descriptor.uri}>"

    def __enter__(self) -> Directory:
        return self

    def __exit__(self, *args) -> None:
        self.close()

    # Connection details

    @property
    def descriptor(self) -> ConnectionDescriptor:
        return self._descriptor

    @property
    def host(self) -> str:
        return self._descriptor.host

    @property
    def port(self) -> int:
        return self._descriptor.port

    @property
    def user(self) -> str | None:
        return self._descriptor.user

    @property
    def security_mode(self) -> SecurityMode:
        return self._descriptor.security_mode

    @property
    def binding(self) -> Any:
        return self._binding

    def close(self) -> None:
        """
        Unbind from the server.

        Raises:
            OperationFailure: the unbind failed

        """
        try:
            self._binding.close()
        except Exception as exc:
            raise OperationFailure(
                "close", None, exc, message=f"Unable to close {self._descriptor.uri}"
            ) from exc

    # Options

    def get_option(self, option: LDAPOptionId) -> Any:
        """
        Return the value of ``option``: from us for ``simpleldap`` options,
        from the binding otherwise.

        Raises:
            OperationFailure: the binding could not read the option

        """
        if self.options.is_internal(option):
            return self.options.get(option)
        try:
            return self._binding.get_option(option)
        except Exception as exc:
            raise OperationFailure(
                "get_option",
                None,
                exc,
                message=f"Unable to read value of option {option}",
            ) from exc

    def set_option(self, option: LDAPOptionId, value: LDAPOptionValue) -> None:
        """
        Set ``option`` to ``value``: on us for ``simpleldap`` options, on the
        binding otherwise.

        Raises:
            OperationFailure: the binding rejected the option

        """
        if self.options.is_internal(option):
            self.options.set(option, value)
            return
        try:
            self._binding.set_option(option, value)
        except Exception as exc:
            raise OperationFailure(
                "set_option",
                None,
                exc,
                message=f"Unable to write value of option {option}",
            ) from exc

    # Writes

    @wrap_errors("add")
    def add(self, dn: str, attributes: Attributes) -> None:
        """
        Add a new entry ``dn`` with ``attributes``.
        """
        self._binding.add(dn, attributes)

    @wrap_errors("delete")
    def delete(self, dn: str) -> None:
        self._binding.delete(dn)

    @wrap_errors("modify")
    def modify(self, dn: str, attributes: Attributes) -> None:
        """
        Replace the values of each attribute named in ``attributes``.
        """
        self._binding.modify(dn, attributes)

    @wrap_errors("modify")
    def mod_add(self, dn: str, attributes: Attributes) -> None:
        """
        Add values to the attributes of ``dn``.
        """
        self._binding.mod_add(dn, attributes)

    @wrap_errors("modify")
    def mod_del(self, dn: str, attributes: Attributes) -> None:
        """
        Remove values from the attributes of ``dn``.  An empty value list
        removes the whole attribute.
        """
        self._binding.mod_del(dn, attributes)

    @wrap_errors("modify")
    def mod_replace(self, dn: str, attributes: Attributes) -> None:
        self._binding.mod_replace(dn, attributes)

    @wrap_errors("rename")
    def rename(self, dn: str, new_dn: str) -> str:
        """
        Rename (and possibly move) the entry ``dn``.

        The first component of ``new_dn`` is the new RDN.  The rest of
        ``new_dn`` is the new parent; if ``new_dn`` is just an RDN the entry
        stays under its current parent::

            >>> directory.rename("cn=a,ou=x,dc=b", "cn=c")            # -> cn=c,ou=x,dc=b
            >>> directory.rename("cn=a,ou=x,dc=b", "cn=c,ou=y,dc=b")  # -> cn=c,ou=y,dc=b

        Args:
            dn: the DN of the entry to rename
            new_dn: the new RDN, or the new full DN

        Returns:
            The new DN of the entry.

        """
        parts = new_dn.split(",")
        new_rdn = parts.pop(0).strip()
        if not parts:
            parts = dn.split(",")[1:]
        new_parent = ",".join(parts).strip()
        self._binding.rename(dn, new_rdn, new_parent)
        if new_parent:
            return f"{new_rdn},{new_parent}"
        return new_rdn

    # Reads

    def _release(self, result: RawResult | None) -> None:
        if result is not None:
            result.close()

    @wrap_errors("read")
    def read(self, dn: str, attributes: Iterable[str] | None = None) -> Entry | None:
        """
        Read the entry ``dn``.

        Args:
            dn: the DN of the entry

        Keyword Args:
            attributes: only fetch these attributes

        Returns:
            The entry, fully loaded, or ``None`` if there is no entry ``dn``.

        """
        result = None
        try:
            result = self._binding.read(dn, DEFAULT_FILTER, attributes)
            if not result.entry_count():
                return None
            # Build the Entry (copying its data out of the result) before the
            # result is released below.
            entry = Entry.from_raw(self, result.first_entry())
        finally:
            self._release(result)
        return entry

    def _result_set(self, result: RawResult) -> ResultSet:
        try:
            return ResultSet(self, result)
        except BaseException:
            self._release(result)
            raise

    @wrap_errors("search children of")
    def search(
        self,
        dn: str,
        filterstr: str = DEFAULT_FILTER,
        attributes: Iterable[str] | None = None,
    ) -> ResultSet:
        """
        Search the subtree rooted at ``dn`` (``dn`` included).

        Args:
            dn: the base DN of the search

        Keyword Args:
            filterstr: an LDAP filter; the outer parentheses may be left off
            attributes: only fetch these attributes

        """
        return self._result_set(self._binding.search(dn, filterstr, attributes))

    @wrap_errors("list children of")
    def list_children(
        self,
        dn: str,
        filterstr: str = DEFAULT_FILTER,
        attributes: Iterable[str] | None = None,
    ) -> ResultSet:
        """
        Search the entries directly under ``dn``.
        """
        return self._result_set(
            self._binding.list_children(dn, filterstr, attributes)
        )

    # DN-addressed helpers

    def exists(self, dn: str) -> bool:
        """
        Test whether there is an entry ``dn``.  This reads only the
        ``objectClass`` attribute.
        """
        return self.read(dn, ["objectClass"]) is not None

    def fetch(self, dn: str) -> Entry:
        """
        Return an :py:class:`Entry` for ``dn`` without talking to the server.
        The entry loads itself when its attributes are first used, so a
        missing ``dn`` only shows up then, as
        :py:class:`simpleldap.exceptions.EntryNotFound`.
        """
        return Entry(self, dn)

    def upsert(self, dn: str, attributes: Attributes | Entry) -> None:
        """
        Create the entry ``dn`` if it does not exist, otherwise replace the
        given attributes.

        This always makes two requests (see :py:meth:`exists`); call
        :py:meth:`add` or :py:meth:`modify` directly if you know which one you
        need.

        Args:
            dn: the DN of the entry
            attributes: the attributes to write, or an :py:class:`Entry` whose
                attributes to copy

        """
        if isinstance(attributes, Entry):
            attributes = attributes.attributes()
        else:
            attributes = dict(attributes)
        if self.exists(dn):
            self.modify(dn, attributes)
        else:
            self.add(dn, attributes)

    def remove(self, dn: str) -> None:
        """
        Alias of :py:meth:`delete`.
        """
        self.delete(dn)


class DirectoryFactory:
    """
    Build :py:class:`Directory` objects that each get a new binding.

    Keyword Args:
        binding_class: called with no arguments to make each binding
        options: options applied to every directory we create; options passed
            to :py:meth:`create` win over these

    """

    def __init__(
        self,
        binding_class: Callable[[], Any] = LDAPBinding,
        options: Mapping[LDAPOptionId, LDAPOptionValue] | None = None,
    ) -> None:
        self.binding_class = binding_class
        self.options: LDAPOptions = dict(options or {})

    def create(
        self,
        uri: str,
        user: str | None = None,
        password: str | None = None,
        options: Mapping[LDAPOptionId, LDAPOptionValue] | None = None,
    ) -> Directory:
        """
        Connect to ``uri``.  See :py:class:`Directory` for the arguments.
        """
        merged: LDAPOptions = dict(self.options)
        merged.update(options or {})
        return Directory(self.binding_class(), uri, user, password, merged)
