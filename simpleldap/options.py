from __future__ import annotations

from typing import Any

from .logging import logger
from .types import LDAPOptionId

#: When true, result sets keep every entry they materialize so that earlier
#: indexes can be revisited.  When false (the default) entries are handed out
#: once and dropped.
OPT_ENTRY_PERSISTENCE: int = 10000001


class DirectoryOptions:
    """
    The options that belong to ``simpleldap`` itself rather than to the LDAP
    library underneath.  :py:class:`simpleldap.directory.Directory` asks us
    first and forwards every option we don't own to its binding.
    """

    #: option id -> default value
    DEFAULTS: dict[int, Any] = {
        OPT_ENTRY_PERSISTENCE: False,
    }

    def __init__(self) -> None:
        self.options: dict[int, Any] = dict(self.DEFAULTS)

    def is_internal(self, option: LDAPOptionId) -> bool:
        """
        Test whether ``option`` is one of ours.

        Args:
            option: an option id

        Returns:
            ``True`` if we store this option, ``False`` if it belongs to the
            binding.

        """
        return option in self.options

    def set(self, option: LDAPOptionId, value: Any) -> None:
        """
        Set an internal option, coercing ``value`` to the option's type.
        Ids we don't know are ignored.

        Args:
            option: the option id (e.g. :py:data:`OPT_ENTRY_PERSISTENCE`)
            value: the new value

        """
        if option == OPT_ENTRY_PERSISTENCE:
            self.options[OPT_ENTRY_PERSISTENCE] = bool(value)
            logger.debug("options.set option=%s value=%s", option, bool(value))

    def get(self, option: LDAPOptionId) -> Any:
        """
        Get the value of an internal option.

        Args:
            option: the option id

        Raises:
            KeyError: ``option`` is not an internal option

        Returns:
            The current value.

        """
        return self.options[option]
