from __future__ import annotations

from collections.abc import Iterator
from typing import TYPE_CHECKING

from .entry import Entry
from .exceptions import InvalidIndex, OperationFailure, SimpleLDAPError
from .logging import logger
from .options import OPT_ENTRY_PERSISTENCE

if TYPE_CHECKING:
    from .binding import RawEntry, RawResult
    from .directory import Directory


class ResultSet:
    """
    The entries returned by a search, as :py:class:`simpleldap.entry.Entry`
    objects built on demand.

    The number of entries is fixed when the result set is created.  The
    underlying result can only be walked forwards, so asking for index ``n``
    builds every entry up to ``n`` that hasn't been built yet.  Whether built
    entries are kept depends on the directory's
    :py:data:`simpleldap.options.OPT_ENTRY_PERSISTENCE` option at the time they
    are built:

    * persistence on: every entry is kept, and can be asked for again
    * persistence off: only the requested entry is returned; asking again for
      an index we have already passed gives ``None``

    A result set can be walked by index with :py:meth:`item`, with the cursor
    methods (:py:meth:`has_next`, :py:meth:`current`, :py:meth:`advance`,
    :py:meth:`rewind`), or by iterating over it.

    Args:
        directory: the directory that ran the search
        result: the binding's result handle.  We take ownership of it.

    """

    def __init__(self, directory: Directory, result: RawResult) -> None:
        self.directory: Directory = directory
        self._result: RawResult | None = result
        self._count: int = result.entry_count()
        #: the last raw entry we read from ``_result``
        self._current: RawEntry | None = None
        #: index -> entry, or ``None`` for entries we didn't keep
        self._entries: dict[int, Entry | None] = {}
        #: position of the cursor methods
        self._pointer: int = 0

    def __len__(self) -> int:
        return self._count

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {self._count} entries>"

    def _next_entry(self) -> Entry | None:
        """
        Advance the raw result by one and build an :py:class:`Entry` from it.
        Once the raw result runs out it is closed and dropped.
        """
        if self._result is None:
            return None
        if self._current is not None:
            self._current = self._current.next_entry()
        else:
            self._current = self._result.first_entry()
        if self._current is None:
            logger.debug("resultset.exhausted count=%s", self._count)
            self._result.close()
            self._result = None
            return None
        return Entry.from_raw(self.directory, self._current)

    def has_index(self, index: int) -> bool:
        return 0 <= index < self._count

    def item(self, index: int) -> Entry | None:
        """
        Return the entry at ``index``.

        Args:
            index: the position of the entry, from 0

        Raises:
            InvalidIndex: ``index`` is outside ``[0, len(self))``
            OperationFailure: reading from the underlying result failed

        Returns:
            The entry, or ``None`` if it was passed over while entry
            persistence was off.

        """
        index = int(index)
        if index in self._entries:
            return self._entries[index]
        if not self.has_index(index):
            raise InvalidIndex(index, self._count)

        keep = self.directory.get_option(OPT_ENTRY_PERSISTENCE)
        entry: Entry | None = None
        i = len(self._entries)
        try:
            for i in range(len(self._entries), index + 1):
                entry = self._next_entry()
                self._entries[i] = entry if keep else None
        except SimpleLDAPError:
            raise
        except Exception as exc:
            raise OperationFailure(
                "fetch", None, exc, message=f"Error fetching entry at index {i}"
            ) from exc
        logger.debug("resultset.item index=%s persist=%s", index, keep)
        return entry

    # Cursor

    def current(self) -> Entry | None:
        return self.item(self._pointer)

    def key(self) -> int:
        return self._pointer

    def advance(self) -> None:
        self._pointer += 1

    def has_next(self) -> bool:
        return self._pointer < self._count

    def rewind(self) -> None:
        """
        Move the cursor back to the first entry.  Entries are not read again:
        entries we kept are returned from memory, and entries we didn't keep
        come back as ``None``.
        """
        self._pointer = 0

    def __iter__(self) -> Iterator[Entry | None]:
        self.rewind()
        while self.has_next():
            yield self.current()
            self.advance()
