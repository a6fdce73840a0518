from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any, ClassVar, cast
from unittest.mock import patch

from .faker import FakeLDAP, FakeLDAPObject, ObjectStore

if TYPE_CHECKING:
    from .types import LDAPFixtureList


class DirectoryFakerMixin:
    """
    A mixin for use with :py:class:`unittest.TestCase`.  It patches
    :py:func:`ldap.initialize` so that :py:class:`simpleldap.binding.LDAPBinding`
    (and so every :py:class:`simpleldap.directory.Directory`) talks to a
    :py:class:`simpleldap.faker.FakeLDAPObject` instead of a real server.

    :py:attr:`ldap_modules` lists the python modules in which to patch
    ``ldap.initialize``.  The default covers ``simpleldap`` itself; add your
    own modules if they also ``import ldap``.

    :py:attr:`ldap_fixtures` names the JSON files to load into the
    :py:class:`simpleldap.faker.ObjectStore` every test starts with, either
    as a single filename or a list of ``(filename, description)`` tuples.
    Relative names are resolved against the directory of the test module::

        class TestPeople(DirectoryFakerMixin, unittest.TestCase):

            ldap_fixtures = 'people.json'

            def test_fred(self):
                directory = Directory(LDAPBinding(), 'ldap://ldap.example.com')
                entry = directory.read('uid=fred,ou=people,dc=example,dc=com')
                self.assertEqual(entry.get('cn'), 'Fred Flintstone')

    Each test gets a fresh :py:class:`simpleldap.faker.FakeLDAP`, so writes
    made in one test are not seen by the next.
    """

    #: The python paths of the modules that ``import ldap``
    ldap_modules: ClassVar[list[str]] = ["simpleldap.binding"]
    #: The fixture files to load into the fake directory
    ldap_fixtures: ClassVar[LDAPFixtureList | None] = None

    #: Built once per test class by :py:meth:`setUpClass`
    store: ClassVar[ObjectStore]

    def __init__(self, *args, **kwargs) -> None:
        #: The :py:class:`FakeLDAP` instance created by :py:meth:`setUp`
        self.fake_ldap: FakeLDAP
        self.patches: list[Any]
        super().__init__(*args, **kwargs)

    @classmethod
    def resolve_file(cls, filename: str) -> str:
        """
        Resolve a relative ``filename`` against the folder holding our
        subclass' module.  Absolute paths are returned as they are.

        Raises:
            FileNotFoundError: the fixture file does not exist

        """
        full_path = Path(filename)
        if not full_path.is_absolute():
            dirname = Path(cast("str", sys.modules[cls.__module__].__file__)).parent
            full_path = dirname / filename
        if not full_path.exists():
            msg = f"{full_path} does not exist"
            raise FileNotFoundError(msg)
        return str(full_path)

    @classmethod
    def load_store(cls, store: ObjectStore) -> None:
        """
        Populate ``store`` from :py:attr:`ldap_fixtures`.  Override this to
        fill the store some other way.
        """
        if not cls.ldap_fixtures:
            return
        if isinstance(cls.ldap_fixtures, str):
            filenames = [cls.ldap_fixtures]
        else:
            filenames = [filename for filename, _ in cls.ldap_fixtures]
        for filename in filenames:
            store.load_objects(cls.resolve_file(filename))

    @classmethod
    def setUpClass(cls) -> None:
        super().setUpClass()  # type: ignore[misc]
        cls.store = ObjectStore()
        cls.load_store(cls.store)

    @classmethod
    def tearDownClass(cls) -> None:
        del cls.store
        super().tearDownClass()  # type: ignore[misc]

    def setUp(self) -> None:
        """
        Create a :py:class:`FakeLDAP` over a copy of :py:attr:`store` and
        patch ``ldap.initialize`` in each of :py:attr:`ldap_modules`.
        """
        super().setUp()  # type: ignore[misc]
        self.fake_ldap = FakeLDAP(self.store)
        self.patches = []
        for mod in self.ldap_modules:
            init_patch = patch(f"{mod}.ldap.initialize", self.fake_ldap.initialize)
            init_patch.start()
            self.patches.append(init_patch)

    def tearDown(self) -> None:
        for p in self.patches:
            p.stop()
        super().tearDown()  # type: ignore[misc]

    # Helpers

    def last_connection(self) -> FakeLDAPObject | None:
        """
        Return the last :py:class:`FakeLDAPObject` handed out during this
        test, or ``None`` if no connection was made.
        """
        if self.fake_ldap.connections:
            return self.fake_ldap.connections[-1]
        return None

    def get_connections(self, uri: str | None = None) -> list[FakeLDAPObject]:
        if not uri:
            return self.fake_ldap.connections
        return self.fake_ldap.get_connections(uri)

    # Asserts

    def assertLDAPConnectionMethodCalled(  # noqa: N802
        self,
        conn: FakeLDAPObject,
        api_name: str,
        arguments: dict[str, Any] | None = None,
    ) -> None:
        """
        Assert that ``conn.<api_name>`` was called, and if ``arguments`` is
        given, that one of the calls had exactly those arguments.  See
        :py:class:`simpleldap.faker.LDAPCallRecord` for the shape of
        ``arguments``.
        """
        test = cast("Any", self)
        if arguments is None:
            test.assertIn(api_name, conn.calls.names)
            return
        for call in conn.calls.filter_calls(api_name):
            if call.args == arguments:
                return
        test.fail(f'No call for "{api_name}" with args {arguments} found.')

    def assertLDAPConnectionMethodNotCalled(  # noqa: N802
        self, conn: FakeLDAPObject, api_name: str
    ) -> None:
        cast("Any", self).assertNotIn(api_name, conn.calls.names)

    def assertLDAPConnectionMethodCalledAfter(  # noqa: N802
        self, conn: FakeLDAPObject, api_name: str, target_api_name: str
    ) -> None:
        """
        Assert that ``api_name`` was first called after ``target_api_name``
        was first called.
        """
        test = cast("Any", self)
        self.assertLDAPConnectionMethodCalled(conn, target_api_name)
        self.assertLDAPConnectionMethodCalled(conn, api_name)
        names = conn.calls.names
        test.assertGreater(names.index(api_name), names.index(target_api_name))

    def assertLDAPConnectionOptionSet(  # noqa: N802
        self, conn: FakeLDAPObject, option: int, value: Any
    ) -> None:
        test = cast("Any", self)
        self.assertLDAPConnectionMethodCalled(conn, "set_option")
        test.assertIn(option, conn.options)
        test.assertEqual(conn.options[option], value)
