from case_insensitive_dict import CaseInsensitiveDict

# ====================================
# Types
# ====================================

# LDAP records as python-ldap hands them to us
LDAPData = dict[str, list[bytes]]
LDAPRecord = tuple[str, LDAPData]
LDAPSearchResult = list[LDAPRecord]

# Attribute values as callers supply them and as entries present them
AttributeScalar = str | bytes | int | float | bool
AttributeValue = AttributeScalar | list[AttributeScalar] | None
Attributes = dict[str, AttributeValue]
EntryAttributes = CaseInsensitiveDict[str, AttributeValue]

# Options
LDAPOptionId = int | str
LDAPOptionValue = int | str | float | bool
LDAPOptions = dict[LDAPOptionId, LDAPOptionValue]

# Modlists
ModList = list[tuple[int, str, list[bytes] | None]]
AddModList = list[tuple[str, list[bytes]]]

# unittest support
LDAPFixtureList = str | list[tuple[str, str]]
