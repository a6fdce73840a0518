import unittest

import ldap

from simpleldap.binding import (
    DEFAULT_FILTER,
    LDAPBinding,
    RawResult,
    encode_values,
    normalize_filter,
    resolve_option,
)
from simpleldap.unittest import DirectoryFakerMixin


class TestHelpers(unittest.TestCase):

    def test_resolve_option_passes_ints_through(self):
        self.assertEqual(resolve_option(17), 17)

    def test_resolve_option_by_name(self):
        self.assertEqual(resolve_option("OPT_REFERRALS"), ldap.OPT_REFERRALS)
        self.assertEqual(resolve_option("referrals"), ldap.OPT_REFERRALS)

    def test_resolve_unknown_option_raises_ValueError(self):
        with self.assertRaises(ValueError):
            resolve_option("OPT_NOT_A_THING")

    def test_normalize_filter_adds_parentheses(self):
        self.assertEqual(normalize_filter("uid=fred"), "(uid=fred)")
        self.assertEqual(normalize_filter("(uid=fred)"), "(uid=fred)")

    def test_normalize_empty_filter_is_default(self):
        self.assertEqual(normalize_filter(""), DEFAULT_FILTER)
        self.assertEqual(normalize_filter(None), DEFAULT_FILTER)

    def test_encode_values(self):
        self.assertEqual(encode_values("fred"), [b"fred"])
        self.assertEqual(encode_values(["a", b"b", 3]), [b"a", b"b", b"3"])
        self.assertEqual(encode_values(True), [b"TRUE"])
        self.assertEqual(encode_values(False), [b"FALSE"])
        self.assertEqual(encode_values(None), [])


class TestRawResult(unittest.TestCase):

    def setUp(self):
        self.result = RawResult(
            [
                ("cn=a,dc=example,dc=com", {"cn": [b"a"]}),
                (None, ["ldap://other.example.com/dc=example,dc=com"]),
                ("cn=b,dc=example,dc=com", {"cn": [b"b"]}),
            ]
        )

    def test_referrals_are_dropped(self):
        self.assertEqual(self.result.entry_count(), 2)

    def test_walk_forward(self):
        first = self.result.first_entry()
        self.assertEqual(first.get_dn(), "cn=a,dc=example,dc=com")
        second = first.next_entry()
        self.assertEqual(second.get_attributes(), {"cn": [b"b"]})
        self.assertIsNone(second.next_entry())

    def test_closed_result_is_empty(self):
        self.result.close()
        self.assertTrue(self.result.closed)
        self.assertEqual(self.result.entry_count(), 0)
        self.assertIsNone(self.result.first_entry())


class LDAPBindingTestCase(DirectoryFakerMixin, unittest.TestCase):

    ldap_fixtures = "directory.json"

    def setUp(self):
        super().setUp()
        self.binding = LDAPBinding()
        self.binding.connect("ldap://ldap.example.com:389")
        self.conn = self.last_connection()


class TestLDAPBinding_connection(LDAPBindingTestCase):

    def test_connect_initializes_connection(self):
        self.assertEqual(self.conn.uri, "ldap://ldap.example.com:389")
        self.assertEqual(self.binding.uri, "ldap://ldap.example.com:389")

    def test_bind(self):
        self.binding.bind("cn=admin,dc=example,dc=com", "secret")
        self.assertLDAPConnectionMethodCalled(
            self.conn, "simple_bind_s", {"who": "cn=admin,dc=example,dc=com", "cred": "secret"}
        )
        self.assertEqual(self.conn.bound_dn, "cn=admin,dc=example,dc=com")

    def test_bind_with_wrong_password_raises(self):
        with self.assertRaises(ldap.INVALID_CREDENTIALS):
            self.binding.bind("cn=admin,dc=example,dc=com", "wrong")

    def test_start_tls(self):
        self.binding.start_tls()
        self.assertTrue(self.conn.tls_enabled)

    def test_set_and_get_option_by_name(self):
        self.binding.set_option("OPT_REFERRALS", 0)
        self.assertLDAPConnectionOptionSet(self.conn, ldap.OPT_REFERRALS, 0)
        self.assertEqual(self.binding.get_option(ldap.OPT_REFERRALS), 0)

    def test_close_unbinds_once(self):
        self.binding.close()
        self.binding.close()
        self.assertEqual(len(self.conn.calls.filter_calls("unbind_s")), 1)
        self.assertIsNone(self.binding.connection)

    def test_operations_after_close_raise_SERVER_DOWN(self):
        self.binding.close()
        with self.assertRaises(ldap.SERVER_DOWN):
            self.binding.read("dc=example,dc=com")


class TestLDAPBinding_reads(LDAPBindingTestCase):

    def test_read_uses_base_scope(self):
        result = self.binding.read("uid=fred,ou=people,dc=example,dc=com")
        self.assertEqual(result.entry_count(), 1)
        self.assertLDAPConnectionMethodCalled(
            self.conn,
            "search_s",
            {
                "base": "uid=fred,ou=people,dc=example,dc=com",
                "scope": ldap.SCOPE_BASE,
                "filterstr": DEFAULT_FILTER,
                "attrlist": None,
            },
        )

    def test_read_missing_entry_is_empty(self):
        result = self.binding.read("uid=nobody,ou=people,dc=example,dc=com")
        self.assertEqual(result.entry_count(), 0)

    def test_search_uses_subtree_scope(self):
        result = self.binding.search("ou=people,dc=example,dc=com", "objectClass=person", ["uid"])
        self.assertEqual(result.entry_count(), 3)
        self.assertEqual(self.conn.calls.filter_calls("search_s")[0].args["scope"], ldap.SCOPE_SUBTREE)
        self.assertEqual(result.first_entry().get_attributes(), {"uid": [b"fred"]})

    def test_list_children_uses_onelevel_scope(self):
        result = self.binding.list_children("dc=example,dc=com")
        self.assertEqual(result.entry_count(), 3)
        self.assertEqual(self.conn.calls.filter_calls("search_s")[0].args["scope"], ldap.SCOPE_ONELEVEL)


class TestLDAPBinding_writes(LDAPBindingTestCase):

    def setUp(self):
        super().setUp()
        self.binding.bind("cn=admin,dc=example,dc=com", "secret")

    def get(self, dn):
        return self.conn.store.get(dn)

    def test_add_encodes_values(self):
        self.binding.add(
            "uid=betty,ou=people,dc=example,dc=com",
            {"objectClass": ["top", "person"], "uid": "betty", "cn": "Betty Rubble", "sn": "Rubble"},
        )
        data = self.get("uid=betty,ou=people,dc=example,dc=com")
        self.assertEqual(data["objectClass"], [b"top", b"person"])
        self.assertEqual(data["uid"], [b"betty"])

    def test_modify_replaces(self):
        self.binding.modify("uid=fred,ou=people,dc=example,dc=com", {"sn": "Stone"})
        self.assertEqual(self.get("uid=fred,ou=people,dc=example,dc=com")["sn"], [b"Stone"])
        self.assertLDAPConnectionMethodCalled(
            self.conn,
            "modify_s",
            {"dn": "uid=fred,ou=people,dc=example,dc=com", "modlist": [(ldap.MOD_REPLACE, "sn", [b"Stone"])]},
        )

    def test_mod_add_appends(self):
        self.binding.mod_add("uid=barney,ou=people,dc=example,dc=com", {"mail": "rubble@example.com"})
        self.assertEqual(
            self.get("uid=barney,ou=people,dc=example,dc=com")["mail"],
            [b"barney@example.com", b"rubble@example.com"],
        )

    def test_mod_del_with_no_values_removes_attribute(self):
        self.binding.mod_del("uid=fred,ou=people,dc=example,dc=com", {"mail": []})
        self.assertLDAPConnectionMethodCalled(
            self.conn,
            "modify_s",
            {"dn": "uid=fred,ou=people,dc=example,dc=com", "modlist": [(ldap.MOD_DELETE, "mail", None)]},
        )
        self.assertNotIn("mail", self.get("uid=fred,ou=people,dc=example,dc=com"))

    def test_delete(self):
        self.binding.delete("uid=wilma,ou=people,dc=example,dc=com")
        self.assertFalse(self.conn.store.exists("uid=wilma,ou=people,dc=example,dc=com"))

    def test_rename_without_parent_sends_none(self):
        self.binding.rename("uid=barney,ou=people,dc=example,dc=com", "uid=bubble", "")
        self.assertLDAPConnectionMethodCalled(
            self.conn,
            "rename_s",
            {
                "dn": "uid=barney,ou=people,dc=example,dc=com",
                "newrdn": "uid=bubble",
                "newsuperior": None,
                "delold": 1,
            },
        )
        self.assertTrue(self.conn.store.exists("uid=bubble,ou=people,dc=example,dc=com"))
