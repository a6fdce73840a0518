import unittest
from unittest.mock import Mock, call

import ldap

from simpleldap import (
    OPT_ENTRY_PERSISTENCE,
    ConnectionFailure,
    Directory,
    DirectoryFactory,
    Entry,
    InvalidURI,
    LDAPBinding,
    OperationFailure,
    SecurityMode,
)
from simpleldap.unittest import DirectoryFakerMixin

ADMIN = "cn=admin,dc=example,dc=com"
FRED = "uid=fred,ou=people,dc=example,dc=com"
BARNEY = "uid=barney,ou=people,dc=example,dc=com"
PEOPLE = "ou=people,dc=example,dc=com"


class TestDirectory_construction(unittest.TestCase):

    def test_steps_run_in_order(self):
        binding = Mock()
        Directory(binding, "tls://ldap.example.com", ADMIN, "secret", {17: 3})
        self.assertEqual(
            binding.mock_calls,
            [
                call.connect("ldap://ldap.example.com:389"),
                call.set_option(17, 3),
                call.bind(ADMIN, "secret"),
                call.start_tls(),
            ],
        )

    def test_no_start_tls_without_tls_scheme(self):
        binding = Mock()
        Directory(binding, "ldaps://ldap.example.com")
        binding.start_tls.assert_not_called()
        binding.connect.assert_called_once_with("ldaps://ldap.example.com:636")
        binding.bind.assert_called_once_with(None, None)

    def test_internal_options_are_not_sent_to_binding(self):
        binding = Mock()
        directory = Directory(binding, "ldap://ldap.example.com", options={OPT_ENTRY_PERSISTENCE: 1})
        binding.set_option.assert_not_called()
        self.assertIs(directory.get_option(OPT_ENTRY_PERSISTENCE), True)

    def test_bind_failure_raises_ConnectionFailure_and_closes(self):
        binding = Mock()
        binding.bind.side_effect = ldap.INVALID_CREDENTIALS({"result": 49, "desc": "Invalid credentials"})
        with self.assertRaises(ConnectionFailure) as ctx:
            Directory(binding, "ldap://ldap.example.com", ADMIN, "wrong")
        self.assertEqual(ctx.exception.code, 49)
        self.assertEqual(ctx.exception.host, "ldap.example.com")
        self.assertEqual(ctx.exception.port, 389)
        binding.close.assert_called_once_with()

    def test_option_failure_raises_ConnectionFailure(self):
        binding = Mock()
        binding.set_option.side_effect = ValueError("unknown option")
        with self.assertRaises(ConnectionFailure):
            Directory(binding, "ldap://ldap.example.com", options={"OPT_BOGUS": 1})
        binding.bind.assert_not_called()

    def test_bad_uri_raises_InvalidURI_before_connecting(self):
        binding = Mock()
        with self.assertRaises(InvalidURI):
            Directory(binding, "http://ldap.example.com")
        binding.connect.assert_not_called()

    def test_connection_details(self):
        directory = Directory(Mock(), "ldaps://admin@ldap.example.com:1636")
        self.assertEqual(directory.host, "ldap.example.com")
        self.assertEqual(directory.port, 1636)
        self.assertEqual(directory.user, "admin")
        self.assertEqual(directory.security_mode, SecurityMode.SSL)
        self.assertEqual(repr(directory), "<Directory: ldaps://ldap.example.com:1636>")

    def test_context_manager_closes(self):
        binding = Mock()
        with Directory(binding, "ldap://ldap.example.com"):
            pass
        binding.close.assert_called_once_with()


class TestDirectory_options(unittest.TestCase):

    def setUp(self):
        self.binding = Mock()
        self.directory = Directory(self.binding, "ldap://ldap.example.com")

    def test_library_options_go_to_binding(self):
        self.binding.get_option.return_value = 3
        self.directory.set_option(17, 3)
        self.binding.set_option.assert_called_once_with(17, 3)
        self.assertEqual(self.directory.get_option(17), 3)

    def test_set_option_failure_is_wrapped(self):
        self.binding.set_option.side_effect = ValueError("nope")
        with self.assertRaises(OperationFailure) as ctx:
            self.directory.set_option(17, 3)
        self.assertTrue(str(ctx.exception).startswith("Unable to write value of option 17"))

    def test_get_option_failure_is_wrapped(self):
        self.binding.get_option.side_effect = ValueError("nope")
        with self.assertRaises(OperationFailure) as ctx:
            self.directory.get_option(17)
        self.assertTrue(str(ctx.exception).startswith("Unable to read value of option 17"))

    def test_internal_option_round_trip(self):
        self.directory.set_option(OPT_ENTRY_PERSISTENCE, True)
        self.assertTrue(self.directory.get_option(OPT_ENTRY_PERSISTENCE))
        self.binding.set_option.assert_not_called()


class TestDirectory_rename(unittest.TestCase):

    def setUp(self):
        self.binding = Mock()
        self.directory = Directory(self.binding, "ldap://ldap.example.com")

    def test_rdn_only_keeps_parent(self):
        new_dn = self.directory.rename("cn=a,ou=x,dc=b", "cn=c")
        self.binding.rename.assert_called_once_with("cn=a,ou=x,dc=b", "cn=c", "ou=x,dc=b")
        self.assertEqual(new_dn, "cn=c,ou=x,dc=b")

    def test_full_dn_moves(self):
        new_dn = self.directory.rename("cn=a,ou=x,dc=b", "cn=c,ou=y,dc=b")
        self.binding.rename.assert_called_once_with("cn=a,ou=x,dc=b", "cn=c", "ou=y,dc=b")
        self.assertEqual(new_dn, "cn=c,ou=y,dc=b")


class DirectoryTestCase(DirectoryFakerMixin, unittest.TestCase):

    ldap_fixtures = "directory.json"

    def setUp(self):
        super().setUp()
        self.directory = Directory(LDAPBinding(), "ldap://ldap.example.com", ADMIN, "secret")
        self.conn = self.last_connection()


class TestDirectory_connects_through_binding(DirectoryTestCase):

    def test_bound_as_admin(self):
        self.assertEqual(self.conn.uri, "ldap://ldap.example.com:389")
        self.assertEqual(self.conn.bound_dn, ADMIN)

    def test_tls_starts_after_bind(self):
        Directory(LDAPBinding(), "tls://ldap.example.com", ADMIN, "secret")
        self.assertLDAPConnectionMethodCalledAfter(self.last_connection(), "start_tls_s", "simple_bind_s")

    def test_wrong_password(self):
        with self.assertRaises(ConnectionFailure) as ctx:
            Directory(LDAPBinding(), "ldap://ldap.example.com", ADMIN, "wrong")
        self.assertEqual(ctx.exception.code, 49)
        self.assertTrue(self.last_connection().unbound)

    def test_server_down(self):
        self.fake_ldap.down.add("ldap://down.example.com:389")
        with self.assertRaises(ConnectionFailure) as ctx:
            Directory(LDAPBinding(), "ldap://down.example.com")
        self.assertEqual(ctx.exception.code, -1)

    def test_close_unbinds(self):
        self.directory.close()
        self.assertTrue(self.conn.unbound)


class TestDirectory_reads(DirectoryTestCase):

    def test_read(self):
        entry = self.directory.read(FRED)
        self.assertIsInstance(entry, Entry)
        self.assertTrue(entry.loaded)
        self.assertEqual(entry.dn, FRED)
        self.assertEqual(entry.get("cn"), "Fred Flintstone")
        self.assertEqual(entry.get("mail"), ["fred@example.com", "fred.flintstone@example.com"])

    def test_read_attributes(self):
        entry = self.directory.read(FRED, ["uid"])
        self.assertEqual(entry.attributes(), {"uid": "fred"})

    def test_read_missing_entry_is_None(self):
        self.assertIsNone(self.directory.read("uid=nobody,ou=people,dc=example,dc=com"))

    def test_exists(self):
        self.assertTrue(self.directory.exists(FRED))
        self.assertFalse(self.directory.exists("uid=nobody,ou=people,dc=example,dc=com"))

    def test_fetch_does_not_talk_to_server(self):
        before = len(self.conn.calls.calls)
        entry = self.directory.fetch(FRED)
        self.assertFalse(entry.loaded)
        self.assertEqual(len(self.conn.calls.calls), before)

    def test_search(self):
        results = self.directory.search(PEOPLE, "objectClass=person")
        self.assertEqual(len(results), 3)
        self.assertEqual([entry.dn for entry in results][0], FRED)

    def test_search_includes_base(self):
        self.assertEqual(len(self.directory.search(PEOPLE)), 4)

    def test_list_children(self):
        results = self.directory.list_children("dc=example,dc=com")
        self.assertEqual(len(results), 3)

    def test_search_missing_base_is_wrapped(self):
        with self.assertRaises(OperationFailure) as ctx:
            self.directory.search("ou=nowhere,dc=example,dc=com")
        self.assertEqual(ctx.exception.code, 32)
        self.assertTrue(str(ctx.exception).startswith("Unable to search children of ou=nowhere"))

    def test_list_children_missing_base_is_wrapped(self):
        with self.assertRaises(OperationFailure) as ctx:
            self.directory.list_children("ou=nowhere,dc=example,dc=com")
        self.assertTrue(str(ctx.exception).startswith("Unable to list children of ou=nowhere"))


class TestDirectory_writes(DirectoryTestCase):

    def test_add(self):
        dn = "uid=betty,ou=people,dc=example,dc=com"
        self.directory.add(dn, {"objectClass": ["top", "person"], "uid": "betty", "cn": "Betty", "sn": "Rubble"})
        self.assertEqual(self.directory.read(dn).get("sn"), "Rubble")

    def test_add_existing_raises_OperationFailure(self):
        with self.assertRaises(OperationFailure) as ctx:
            self.directory.add(FRED, {"uid": "fred"})
        exc = ctx.exception
        self.assertEqual(exc.code, 68)
        self.assertEqual(exc.operation, "add")
        self.assertEqual(exc.dn, FRED)
        self.assertEqual(str(exc), f"Unable to add {FRED}: Already exists")

    def test_delete(self):
        self.directory.delete(BARNEY)
        self.assertFalse(self.directory.exists(BARNEY))

    def test_delete_missing_raises_OperationFailure(self):
        with self.assertRaises(OperationFailure) as ctx:
            self.directory.delete("uid=nobody,ou=people,dc=example,dc=com")
        self.assertEqual(ctx.exception.code, 32)

    def test_remove_is_delete(self):
        self.directory.remove(BARNEY)
        self.assertFalse(self.directory.exists(BARNEY))

    def test_modify(self):
        self.directory.modify(FRED, {"sn": "Stone", "title": "Crane operator"})
        entry = self.directory.read(FRED)
        self.assertEqual(entry.get("sn"), "Stone")
        self.assertEqual(entry.get("title"), "Crane operator")

    def test_mod_add_and_mod_del(self):
        self.directory.mod_add(BARNEY, {"mail": "rubble@example.com"})
        self.assertEqual(self.directory.read(BARNEY).get("mail"), ["barney@example.com", "rubble@example.com"])
        self.directory.mod_del(BARNEY, {"mail": "barney@example.com"})
        self.assertEqual(self.directory.read(BARNEY).get("mail"), "rubble@example.com")

    def test_mod_replace(self):
        self.directory.mod_replace(FRED, {"mail": "fred@bedrock.example.com"})
        self.assertEqual(self.directory.read(FRED).get("mail"), "fred@bedrock.example.com")

    def test_rename(self):
        new_dn = self.directory.rename(BARNEY, "uid=bubble")
        self.assertEqual(new_dn, "uid=bubble,ou=people,dc=example,dc=com")
        self.assertFalse(self.directory.exists(BARNEY))
        self.assertEqual(self.directory.read(new_dn).get("uid"), "bubble")

    def test_upsert_adds_missing_entry(self):
        dn = "uid=betty,ou=people,dc=example,dc=com"
        self.directory.upsert(dn, {"objectClass": ["top", "person"], "uid": "betty", "cn": "Betty", "sn": "Rubble"})
        self.assertTrue(self.directory.exists(dn))
        self.assertLDAPConnectionMethodCalled(self.conn, "add_s")

    def test_upsert_modifies_existing_entry(self):
        self.directory.upsert(FRED, {"sn": "Stone"})
        self.assertEqual(self.directory.read(FRED).get("sn"), "Stone")
        self.assertLDAPConnectionMethodNotCalled(self.conn, "add_s")

    def test_upsert_from_entry(self):
        source = self.directory.read(BARNEY, ["cn", "sn"])
        self.directory.upsert(FRED, source)
        self.assertEqual(self.directory.read(FRED).get("cn"), "Barney Rubble")

    def test_anonymous_write_is_refused(self):
        anonymous = Directory(LDAPBinding(), "ldap://ldap.example.com")
        with self.assertRaises(OperationFailure) as ctx:
            anonymous.delete(FRED)
        self.assertEqual(ctx.exception.code, 50)


class TestDirectoryFactory(DirectoryFakerMixin, unittest.TestCase):

    ldap_fixtures = "directory.json"

    def test_create_builds_connected_directory(self):
        directory = DirectoryFactory().create("ldap://ldap.example.com", ADMIN, "secret")
        self.assertIsInstance(directory.binding, LDAPBinding)
        self.assertEqual(self.last_connection().bound_dn, ADMIN)

    def test_each_directory_gets_its_own_binding(self):
        factory = DirectoryFactory()
        first = factory.create("ldap://ldap.example.com")
        second = factory.create("ldap://ldap.example.com")
        self.assertIsNot(first.binding, second.binding)

    def test_factory_options_apply_to_every_directory(self):
        factory = DirectoryFactory(options={OPT_ENTRY_PERSISTENCE: True})
        directory = factory.create("ldap://ldap.example.com")
        self.assertTrue(directory.get_option(OPT_ENTRY_PERSISTENCE))

    def test_call_options_win(self):
        factory = DirectoryFactory(options={OPT_ENTRY_PERSISTENCE: True})
        directory = factory.create("ldap://ldap.example.com", options={OPT_ENTRY_PERSISTENCE: False})
        self.assertFalse(directory.get_option(OPT_ENTRY_PERSISTENCE))

    def test_binding_class(self):
        binding = Mock()
        directory = DirectoryFactory(binding_class=lambda: binding).create("ldap://ldap.example.com")
        self.assertIs(directory.binding, binding)
