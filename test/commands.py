"""
Command behavioral tests (building, kinds, invocation, faults).

Scope
- Build-time validation: names, signatures, parameter types.
- The three kinds (function, static, closure) and how command() picks them.
- Invocation contract: arity first, aggregated conversion failures, exactly one call.
- Captured state shared by reference or copied by value.

Conventions
- Test method names follow CamelCase per project convention.
- Tests use the public API (command, Command and the kind classes).
- Annotated callbacks live at module level so their annotations resolve.
"""
from __future__ import annotations

import functools
import inspect
import unittest
from enum import Enum
from threading import Thread, Lock
from unittest import TestCase

from helmsman import command, Command, FunctionCommand, StaticCommand, ClosureCommand
from helmsman.faults import (
    ArityMismatchError,
    ConversionError,
    ConversionFailure,
    FaultCode,
    IgnoredDefaultWarning,
)

received = []


class Color(Enum):
    RED = 1
    BLUE = 2


class Opaque:
    pass


def add(a: int, b: int):
    """Add two integers.

    The sum is recorded and returned.
    """
    received.append((a, b))
    return a + b


def triple(a: int, b: float, c: str):
    received.append((a, b, c))


def shout(word):
    received.append(word)


def noop():
    received.append(())


def paint(color: Color):
    received.append(color)


def boom(a: int):
    raise RuntimeError("boom")


def opaque(value: Opaque):
    pass


def variadic(*values: int):
    pass


def keywords(**values: int):
    pass


def required(a: int, *, b: int):
    pass


def optional(a: int, *, b: int = 0):
    received.append((a, b))


def defaulted(a: int, b: int = 1):
    received.append((a, b))


def badsyntax(a):
    pass


def badattribute(a):
    pass


badsyntax.__annotations__ = {"a": "1 +"}
badattribute.__annotations__ = {"a": "int.nope"}


class Tally:
    """Holder of a running total."""

    def __init__(self):
        self.total = 0

    def add(self, n: int):
        """Add to the running total."""
        self.total += n


class Accumulator:
    def __init__(self):
        self.total = 0

    def __call__(self, value: int):
        self.total += value

    def push(self, value: int):
        self.total += value


def counter():
    total = 0

    def count(c: int):
        nonlocal total
        total += c

    def read():
        return total

    return count, read


class TestCommandBuilding(TestCase):
    """Construction, validation and introspection."""

    def setUp(self):
        received.clear()

    def testFunctionKind(self):
        cmd = command(add)
        self.assertIsInstance(cmd, FunctionCommand)
        self.assertIsInstance(cmd, Command)
        self.assertEqual(cmd.kind, "function")
        self.assertEqual(cmd.name, "add")
        self.assertEqual(cmd.types, (int, int))
        self.assertEqual(cmd.parameters, ("a", "b"))
        self.assertEqual(cmd.arity, 2)
        self.assertEqual(cmd.descr, "Add two integers.")
        self.assertIs(cmd.callback, add)

    def testUnannotatedIsString(self):
        self.assertEqual(command(shout).types, (str,))
        self.assertIsNone(command(shout).descr)

    def testTypesOverride(self):
        cmd = command(shout, types=(int,))
        self.assertIsNone(cmd.__invoke__(["4"]))
        self.assertEqual(received, [4])

    def testTypesOverrideMustMatchSignature(self):
        with self.assertRaises(TypeError):
            command(shout, types=(int, int))
        with self.assertRaises(TypeError):
            command(shout, types="int")

    def testUnsupportedTypeRejectedAtBuild(self):
        with self.assertRaises(TypeError) as context:
            command(opaque)
        self.assertIn("'value'", str(context.exception))
        with self.assertRaises(TypeError):
            command(shout, types=(Opaque,))

    def testUnresolvableAnnotationsRejectedAtBuild(self):
        for callback in (badsyntax, badattribute):
            with self.subTest(callback=callback.__name__), self.assertRaises(TypeError) as context:
                command(callback)
            self.assertIn("annotations cannot be resolved", str(context.exception))

    def testDescriptionComesFromCalledCode(self):
        self.assertEqual(command(functools.partial(add, 1), "inc").descr, "Add two integers.")
        self.assertIsNone(command(functools.partial(triple, 1), "pair").descr)
        self.assertEqual(command(Tally().add, "tally").descr, "Add to the running total.")
        # Neither the class docstring of the object nor object.__call__ leaks through.
        self.assertIsNone(command(Accumulator(), "acc").descr)

    def testVariadicRejected(self):
        with self.assertRaises(TypeError):
            command(variadic)
        with self.assertRaises(TypeError):
            command(keywords)

    def testKeywordOnlyParameters(self):
        with self.assertRaises(TypeError):
            command(required)
        # Keyword-only parameters with defaults are not part of the command.
        cmd = command(optional)
        self.assertEqual(cmd.arity, 1)
        self.assertIsNone(cmd.__invoke__(["3"]))
        self.assertEqual(received, [(3, 0)])

    def testPositionalDefaultWarns(self):
        with self.assertWarns(IgnoredDefaultWarning):
            cmd = command(defaulted)
        # The default is ignored: the parameter stays required.
        self.assertEqual(cmd.arity, 2)
        self.assertIsInstance(cmd.__invoke__(["3"]), ArityMismatchError)
        self.assertEqual(received, [])

    def testNameOverride(self):
        cmd = command(add, "plus")
        self.assertEqual(cmd.name, "plus")
        self.assertEqual(cmd.usage, "plus <a:int> <b:int>")

    def testLambdaRequiresName(self):
        with self.assertRaises(ValueError):
            command(lambda value: None)
        cmd = command(lambda value: received.append(value), "echo")
        self.assertEqual(cmd.name, "echo")
        self.assertIsNone(cmd.__invoke__(["hi"]))
        self.assertEqual(received, ["hi"])

    def testInvalidNames(self):
        for name in ("", "   ", "two words", "tab\tbed"):
            with self.subTest(name=name), self.assertRaises(ValueError):
                command(add, name)
        with self.assertRaises(TypeError):
            command(add, 42)

    def testNonCallableRejected(self):
        with self.assertRaises(TypeError):
            command(42)
        with self.assertRaises(TypeError):
            Command(42)

    def testDecoratorForms(self):
        @command
        def first(a: int):
            pass

        @command("second")
        def named(a: int):
            pass

        @command(name="third", types=(float,))
        def typed(a):
            pass

        self.assertEqual(first.name, "first")
        self.assertEqual(named.name, "second")
        self.assertEqual((typed.name, typed.types), ("third", (float,)))

        with self.assertRaises(TypeError):
            command("twice", name="twice")

    def testCommandConstructorClassifies(self):
        self.assertIsInstance(Command(add), FunctionCommand)
        count, _ = counter()
        self.assertIsInstance(Command(count), ClosureCommand)

    def testBoundMethodIsFunction(self):
        accumulator = Accumulator()
        cmd = command(accumulator.push)
        self.assertEqual(cmd.kind, "function")
        self.assertEqual(cmd.parameters, ("value",))
        cmd.__invoke__(["4"])
        self.assertEqual(accumulator.total, 4)

    def testClosureKinds(self):
        count, _ = counter()
        self.assertEqual(command(count).kind, "closure")
        self.assertEqual(command(count).capture, "reference")
        self.assertEqual(command(Accumulator(), "acc").kind, "closure")
        cmd = command(functools.partial(triple, 1), "partial")
        self.assertEqual(cmd.kind, "closure")
        self.assertEqual(cmd.types, (float, str))

    def testNamelessObjectRequiresName(self):
        with self.assertRaises(ValueError):
            command(Accumulator())

    def testStaticKind(self):
        cmd = command(add, static=True)
        self.assertIsInstance(cmd, StaticCommand)
        self.assertEqual(cmd.kind, "static")
        self.assertIs(cmd.callback, add)
        self.assertIsNot(type(cmd).__invoke__, Command.__invoke__)

    def testStaticBoundMethod(self):
        tally = Tally()
        cmd = command(tally.add, "scount", static=True)
        self.assertEqual(cmd.kind, "static")
        self.assertEqual(cmd.parameters, ("n",))
        self.assertIsNone(cmd.__invoke__(["5"]))
        self.assertIsNone(cmd.__invoke__(["3"]))
        self.assertEqual(tally.total, 8)

    def testStaticRestrictions(self):
        with self.assertRaises(TypeError):
            command(Accumulator(), "acc", static=True)
        with self.assertRaises(TypeError):
            command(add, static=True, capture="value")

    def testInvalidCapture(self):
        count, _ = counter()
        with self.assertRaises(ValueError):
            command(count, capture="copy")

    def testSealed(self):
        cmd = command(add)
        with self.assertRaises(TypeError):
            class Derived(type(cmd)):  # NOQA: F-841
                pass

    def testReadOnlyIntrospection(self):
        cmd = command(add)
        with self.assertRaises(AttributeError):
            cmd.name = "sub"

    def testRepr(self):
        cmd = command(add)
        self.assertTrue(repr(cmd).startswith("function-command(name='add', kind='function'"))
        self.assertTrue(repr(command(add, static=True)).startswith("static-command("))

    def testTrampolineCall(self):
        cmd = command(add)
        self.assertEqual(cmd(2, 3), 5)
        self.assertEqual(received, [(2, 3)])
        self.assertEqual(list(inspect.signature(type(cmd).__call__).parameters), ["self", "a", "b"])


class TestCommandInvocation(TestCase):
    """The __invoke__ contract."""

    def setUp(self):
        received.clear()

    def testRoundTrip(self):
        self.assertIsNone(command(add).__invoke__(["2", "3"]))
        self.assertEqual(received, [(2, 3)])

    def testArityCheckedFirst(self):
        cmd = command(add)

        fault = cmd.__invoke__(["2"])
        self.assertIsInstance(fault, ArityMismatchError)
        self.assertEqual(fault.message, "add expects 2 arguments but 1 was given")
        self.assertEqual((fault.expected, fault.got), (2, 1))
        self.assertIs(fault.code, FaultCode.ARITY_MISMATCH)
        self.assertEqual(fault.hint, "usage: add <a:int> <b:int>")

        # Invalid tokens are not converted when the count is wrong.
        fault = cmd.__invoke__(["x", "y", "z"])
        self.assertIsInstance(fault, ArityMismatchError)
        self.assertEqual(fault.message, "add expects 2 arguments but 3 were given")

        self.assertEqual(received, [])

    def testZeroArity(self):
        cmd = command(noop)
        self.assertIsNone(cmd.__invoke__([]))
        self.assertEqual(received, [()])
        fault = cmd.__invoke__(["x"])
        self.assertEqual(fault.message, "noop expects 0 arguments but 1 was given")

    def testAggregatedConversionFailure(self):
        fault = command(triple).__invoke__(["x", "y", "ok"])
        self.assertIsInstance(fault, ConversionFailure)
        self.assertIs(fault.options["code"], FaultCode.CONVERSION_FAILURE)
        self.assertEqual(len(fault.exceptions), 2)
        self.assertEqual(
            [exception.message for exception in fault.exceptions],
            ["x is not a int.", "y is not a float."],
        )
        self.assertEqual(fault.message, "x is not a int.\ny is not a float.")
        self.assertEqual([exception.position for exception in fault.exceptions], [1, 2])
        self.assertEqual([exception.parameter for exception in fault.exceptions], ["a", "b"])
        self.assertEqual(fault.exceptions[1].hint, "use a valid float for 'b' at second position")
        self.assertTrue(all(isinstance(exception, ConversionError) for exception in fault.exceptions))
        self.assertEqual(received, [])

    def testLaterFailureStillReported(self):
        fault = command(add).__invoke__(["2", "x"])
        self.assertEqual(fault.message, "x is not a int.")
        self.assertEqual(fault.exceptions[0].position, 2)
        self.assertEqual(received, [])

    def testEmptyToken(self):
        fault = command(add).__invoke__(["", "3"])
        self.assertEqual(fault.message, '"" is not a int.')

    def testTokensMustBeStrings(self):
        cmd = command(add)
        with self.assertRaises(TypeError):
            cmd.__invoke__("2 3")
        with self.assertRaises(TypeError):
            cmd.__invoke__([2, 3])
        with self.assertRaises(TypeError):
            cmd.__invoke__(None)

    def testAnyIterableOfTokens(self):
        cmd = command(add)
        self.assertIsNone(cmd.__invoke__(("1", "2")))
        self.assertIsNone(cmd.__invoke__(token for token in ("3", "4")))
        self.assertEqual(received, [(1, 2), (3, 4)])

    def testEnumParameter(self):
        self.assertIsNone(command(paint).__invoke__(["BLUE"]))
        self.assertEqual(received, [Color.BLUE])
        fault = command(paint).__invoke__(["PINK"])
        self.assertEqual(fault.message, "PINK is not a Color.")

    def testCallbackExceptionPropagates(self):
        with self.assertRaises(RuntimeError):
            command(boom).__invoke__(["1"])

    def testStaticMatchesGeneric(self):
        generic, static = command(add), command(add, static=True)
        for tokens in (["2", "3"], ["2"], ["x", "y"], ["1", "2", "3"], ["", "1"]):
            with self.subTest(tokens=tokens):
                self.assertEqual(generic.__invoke__(tokens), static.__invoke__(tokens))
        self.assertEqual(received, [(2, 3), (2, 3)])

    def testClosureByReference(self):
        count, read = counter()
        cmd = command(count)
        self.assertIsNone(cmd.__invoke__(["5"]))
        self.assertIsNone(cmd.__invoke__(["3"]))
        self.assertEqual(read(), 8)

    def testClosureByValue(self):
        count, read = counter()
        cmd = command(count, capture="value")
        self.assertEqual(cmd.capture, "value")
        cmd.__invoke__(["5"])
        cmd.__invoke__(["3"])
        # The owner's state is untouched; the command owns its copy.
        self.assertEqual(read(), 0)
        self.assertEqual(cmd.callback.__closure__[0].cell_contents, 8)
        self.assertEqual(cmd.name, "count")

    def testObjectCapture(self):
        accumulator = Accumulator()
        command(accumulator, "acc").__invoke__(["4"])
        self.assertEqual(accumulator.total, 4)

        cmd = command(accumulator, "acc", capture="value")
        cmd.__invoke__(["6"])
        self.assertEqual(accumulator.total, 4)
        self.assertEqual(cmd.callback.total, 10)

    def testIdempotentFaults(self):
        cmd = command(triple)
        first, second = cmd.__invoke__(["x", "y", "z"]), cmd.__invoke__(["x", "y", "z"])
        self.assertEqual(first, second)
        self.assertEqual(hash(first), hash(second))
        self.assertEqual(cmd.__invoke__(["1"]), cmd.__invoke__(["1"]))

    def testConcurrentInvocation(self):
        total, lock = 0, Lock()

        def count(c: int):
            nonlocal total
            with lock:
                total += c

        cmd = command(count)

        def work():
            for _ in range(100):
                cmd.__invoke__(["1"])

        threads = [Thread(target=work) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(total, 800)


if __name__ == "__main__":
    unittest.main()
