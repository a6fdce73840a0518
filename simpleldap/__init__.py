__version__ = "1.0.0"

from .binding import DEFAULT_FILTER, LDAPBinding, RawEntry, RawResult
from .directory import Directory, DirectoryFactory
from .entry import Entry, normalize_attributes
from .exceptions import (
    ConnectionFailure,
    EntryNotFound,
    InvalidIndex,
    InvalidURI,
    OperationFailure,
    SimpleLDAPError,
)
from .options import OPT_ENTRY_PERSISTENCE, DirectoryOptions
from .resultset import ResultSet
from .uri import ConnectionDescriptor, SecurityMode, parse_uri
