from __future__ import annotations

from typing import Any

import ldap

#: Code used when the underlying error carries no LDAP result code.  It is
#: outside the range of LDAP result codes.
DEFAULT_ERROR_CODE: int = 1000000


def _error_info(exc: BaseException) -> dict[str, Any]:
    if isinstance(exc, ldap.LDAPError) and exc.args and isinstance(exc.args[0], dict):
        return exc.args[0]
    return {}


def error_code(exc: BaseException) -> int:
    """
    Return the LDAP result code carried by ``exc``.

    python-ldap puts a dict with a ``result`` key as the first argument of its
    exceptions.  Our own exceptions carry a ``code`` attribute.  Anything else
    gets :py:data:`DEFAULT_ERROR_CODE`.

    Args:
        exc: the exception to inspect

    Returns:
        The result code.

    """
    if isinstance(exc, SimpleLDAPError):
        return exc.code
    code = _error_info(exc).get("result")
    if isinstance(code, int):
        return code
    return DEFAULT_ERROR_CODE


def error_description(exc: BaseException) -> str:
    """
    Return a human readable description of ``exc``, using the ``desc`` and
    ``info`` keys of python-ldap errors when they are there.

    Args:
        exc: the exception to describe

    Returns:
        The description.

    """
    info = _error_info(exc)
    if not info:
        return str(exc) or exc.__class__.__name__
    desc = str(info.get("desc", exc.__class__.__name__))
    extra = info.get("info")
    if extra:
        if isinstance(extra, (tuple, list)):
            extra = " ".join(str(i) for i in extra)
        desc = f"{desc} ({str(extra).strip()})"
    return desc


class SimpleLDAPError(Exception):
    """
    Base class for every error raised by ``simpleldap``.

    Args:
        message: the error message

    Keyword Args:
        code: an LDAP result code, or :py:data:`DEFAULT_ERROR_CODE`
        cause: the lower level exception that caused this one, if any

    """

    def __init__(
        self,
        message: str,
        code: int = DEFAULT_ERROR_CODE,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message: str = message  #: the error message
        self.code: int = code  #: the LDAP result code, if we know it
        self.cause: BaseException | None = cause  #: the wrapped exception


class InvalidURI(SimpleLDAPError, ValueError):
    """
    The connection URI has no host, or a scheme other than ``ldap``,
    ``ldaps`` or ``tls``.
    """


class ConnectionFailure(SimpleLDAPError):
    """
    Opening, configuring, binding or upgrading the connection failed.

    Args:
        host: the host we tried to reach
        port: the port we tried to reach
        cause: the exception raised by the binding

    """

    def __init__(self, host: str, port: int, cause: BaseException) -> None:
        super().__init__(
            f"Unable to connect to directory at {host}:{port}: "
            f"{error_description(cause)}",
            code=error_code(cause),
            cause=cause,
        )
        self.host: str = host
        self.port: int = port


class OperationFailure(SimpleLDAPError):
    """
    A directory operation failed in the binding.

    Args:
        operation: the name of the operation (e.g. ``add``, ``search``)
        dn: the DN the operation targeted, if any
        cause: the exception raised by the binding

    Keyword Args:
        message: override the generated message prefix

    """

    def __init__(
        self,
        operation: str,
        dn: str | None,
        cause: BaseException,
        message: str | None = None,
    ) -> None:
        if message is None:
            message = f"Unable to {operation} {dn}"
        super().__init__(
            f"{message}: {error_description(cause)}",
            code=error_code(cause),
            cause=cause,
        )
        self.operation: str = operation
        self.dn: str | None = dn


class InvalidIndex(SimpleLDAPError, IndexError):
    """
    A result set was indexed outside of ``[0, len(result_set))``.
    """

    def __init__(self, index: int, count: int) -> None:
        super().__init__(f"Undefined index in result set: {index} (size {count})")
        self.index: int = index
        self.count: int = count


class EntryNotFound(SimpleLDAPError, LookupError):
    """
    A lazily loaded entry was refreshed but its DN does not exist in the
    directory.
    """

    def __init__(self, dn: str) -> None:
        super().__init__(f"No entry found in the directory for {dn}")
        self.dn: str = dn
