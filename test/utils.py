"""
Tests for the internal helpers (Unset sentinel, coalesce, rename, mirror).

Scope
- Singleton identity, falsy semantics and finality of the Unset sentinel.
- Identity through copy, deepcopy and pickle.
- coalesce only replaces Unset, never other falsy values.
- rename in its direct and decorator forms.
- mirror exposes read-only, copied views of backing fields.
"""
from __future__ import annotations

import copy
import pickle
import unittest
from threading import Thread, Lock
from unittest import TestCase

from helmsman.utils import *


class TestUnset(TestCase):
    """Semantic guarantees of the Unset sentinel."""

    def testSingleton(self) -> None:
        """
        The constructor returns the exported instance on every call.
        """
        self.assertIs(UnsetType(), Unset)
        self.assertIs(UnsetType(), UnsetType())

    def testFalsyButDistinct(self) -> None:
        """
        Unset is falsy without being equal to other falsy values.
        """
        self.assertFalse(Unset)
        for value in (None, 0, "", (), False):
            self.assertNotEqual(Unset, value)

    def testRepr(self) -> None:
        self.assertEqual(repr(Unset), "Unset")

    def testUnion(self) -> None:
        """
        Unset participates in PEP 604 unions for isinstance checks.
        """
        self.assertIsInstance(Unset, str | Unset)
        self.assertIsInstance("add", str | Unset)
        self.assertNotIsInstance(3, str | Unset)

    def testCopyPreservesIdentity(self) -> None:
        self.assertIs(copy.copy(Unset), Unset)
        self.assertIs(copy.deepcopy(Unset), Unset)

    def testPicklePreservesIdentity(self) -> None:
        for protocol in range(2, pickle.HIGHEST_PROTOCOL + 1):
            with self.subTest(protocol=protocol):
                self.assertIs(pickle.loads(pickle.dumps(Unset, protocol)), Unset)

    def testThreadSafeConstruction(self) -> None:
        """
        Concurrent construction always yields the same instance.
        """
        seen, lock = set(), Lock()

        def build():
            instance = UnsetType()
            with lock:
                seen.add(id(instance))

        threads = [Thread(target=build) for _ in range(16)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(seen, {id(Unset)})

    def testFinal(self) -> None:
        with self.assertRaises(TypeError):
            class Derived(UnsetType):  # NOQA: F-841
                pass


class TestHelpers(TestCase):
    """coalesce, rename and mirror."""

    def testCoalesce(self) -> None:
        self.assertEqual(coalesce(Unset, "fallback"), "fallback")
        self.assertEqual(coalesce("add", "fallback"), "add")
        self.assertIsNone(coalesce(Unset))
        # Falsy values other than Unset are kept.
        for value in (None, 0, "", []):
            self.assertIs(coalesce(value, "fallback"), value)

    def testRenameDirect(self) -> None:
        def work():
            pass

        self.assertIs(rename(work, "job"), work)
        self.assertEqual(work.__name__, "job")
        self.assertEqual(work.__qualname__, "job")

    def testRenameDecorator(self) -> None:
        @rename("job")
        def work():
            pass

        self.assertEqual(work.__name__, "job")

    def testRenameErrors(self) -> None:
        with self.assertRaises(TypeError):
            rename(42, "job")
        with self.assertRaises(TypeError):
            rename(lambda: None, 42)
        with self.assertRaises(TypeError):
            rename(42)
        with self.assertRaises(TypeError):
            rename()
        with self.assertRaises(TypeError):
            rename(len, "size")

    def testMirror(self) -> None:
        """
        Mirrored properties are read-only and hand out copies of containers.
        """
        class Holder:
            names = mirror("names")
            table = mirror("table")
            label = mirror("label")

            def __init__(self):
                self._names = ["add", "sub"]
                self._table = {"add": 1}
                self._label = "holder"

        holder = Holder()
        self.assertEqual(holder.names, ("add", "sub"))
        self.assertEqual(holder.label, "holder")

        table = holder.table
        table["sub"] = 2
        self.assertEqual(holder.table, {"add": 1})

        with self.assertRaises(AttributeError):
            holder.names = ()

    def testMirrorRequiresString(self) -> None:
        with self.assertRaises(TypeError):
            mirror(42)


if __name__ == "__main__":
    unittest.main()
